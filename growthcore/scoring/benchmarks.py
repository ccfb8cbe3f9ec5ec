"""
Benchmark lookup tables and percentile growth curves.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Union

from growthcore.models import Benchmark, Gender


def _gender_value(gender: Union[None, str, Gender]) -> Optional[str]:
    if gender is None:
        return None
    return gender.value if isinstance(gender, Gender) else str(gender)


class BenchmarkTable:
    """Static percentile rows keyed by quality, age band and optional gender."""

    def __init__(self, rows: Iterable[Benchmark] = ()):
        self.rows: List[Benchmark] = list(rows)

    def __len__(self) -> int:
        return len(self.rows)

    def find(
        self,
        quality: str,
        age: Optional[float],
        gender: Union[None, str, Gender] = None,
        unit: Optional[str] = None,
    ) -> Optional[Benchmark]:
        """
        First row for `quality` whose age band contains `age`.

        Rows without a gender match any gender; a gendered row only matches
        the same gender. An unknown age matches any band. When `unit` is given
        only rows measured in that unit match.
        """
        wanted = _gender_value(gender)
        for row in self.rows:
            if row.quality != quality or (unit and row.unit != unit):
                continue
            if age is not None and not (row.age_min <= age <= row.age_max):
                continue
            row_gender = _gender_value(row.gender)
            if row_gender and wanted and row_gender != wanted:
                continue
            return row
        return None

    def coverage_gaps(
        self,
        quality: str,
        min_age: int,
        max_age: int,
        gender: Union[None, str, Gender] = None,
    ) -> List[int]:
        """Integer ages in [min_age, max_age] with no row for `quality`."""
        return [
            age for age in range(min_age, max_age + 1)
            if self.find(quality, age, gender) is None
        ]


@dataclass(frozen=True)
class CurvePoint:
    age: float
    p3: float
    p50: float
    p97: float


def _clamp(value: float, low: float, high: float) -> float:
    return min(max(value, low), high)


class PercentileCurve:
    """
    Growth curve of p3/p50/p97 reference values by age.

    Values between two ages are linearly interpolated; ages outside the table
    take the nearest edge row.
    """

    def __init__(self, points: Sequence[CurvePoint]):
        if not points:
            raise ValueError("PercentileCurve needs at least one point")
        self.points = sorted(points, key=lambda p: p.age)

    @property
    def min_age(self) -> float:
        return self.points[0].age

    @property
    def max_age(self) -> float:
        return self.points[-1].age

    def at(self, age: float) -> CurvePoint:
        age = _clamp(age, self.min_age, self.max_age)
        for current, nxt in zip(self.points, self.points[1:]):
            if age == current.age:
                return current
            if current.age < age < nxt.age:
                ratio = (age - current.age) / (nxt.age - current.age)
                return CurvePoint(
                    age=age,
                    p3=current.p3 + (nxt.p3 - current.p3) * ratio,
                    p50=current.p50 + (nxt.p50 - current.p50) * ratio,
                    p97=current.p97 + (nxt.p97 - current.p97) * ratio,
                )
        return self.points[-1] if age >= self.max_age else self.points[0]

    def estimate_percentile(self, age: float, value: float) -> int:
        """Approximate percentile (1..99) of `value` at `age`."""
        ref = self.at(age)
        if value <= ref.p3:
            if ref.p3 <= 0:
                return 1
            return int(_clamp(round(value / ref.p3 * 3), 1, 3))
        if value >= ref.p97:
            span = (ref.p97 - ref.p50) or 1
            return int(_clamp(round(97 + (value - ref.p97) / span * 3), 97, 99))
        if value <= ref.p50:
            span = (ref.p50 - ref.p3) or 1
            return int(_clamp(round(3 + (value - ref.p3) / span * 47), 3, 50))
        span = (ref.p97 - ref.p50) or 1
        return int(_clamp(round(50 + (value - ref.p50) / span * 47), 50, 97))

    def series(self, min_age: float, max_age: float, step: float = 0.5) -> List[CurvePoint]:
        """Sample the curve over [min_age, max_age], clamped to the table range."""
        if min_age > max_age or step <= 0:
            return []
        start = _clamp(min_age, self.min_age, self.max_age)
        end = _clamp(max_age, self.min_age, self.max_age)
        samples = []
        age = start
        while age <= end + 1e-6:
            samples.append(self.at(age))
            age += step
        return samples
