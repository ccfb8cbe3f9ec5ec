"""
BenchmarkScorer: raw measurement -> 0..100 score, composites and tiers.
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from growthcore.models import Benchmark, Gender
from growthcore.scoring.benchmarks import BenchmarkTable
from growthcore.scoring.standards import (
    Anchor,
    CATEGORY_WEIGHTS,
    LEVEL_TITLES,
    SPEED_RANK_FALLBACK,
    TierThreshold,
)
from growthcore.shared.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SpeedRankThreshold:
    rank: int
    min_reps: int
    window_sec: int = 30
    mode: str = "single"


def clamp_score(value: float) -> float:
    """Clamp into [0, 100]; NaN scores as 0."""
    if math.isnan(value):
        return 0.0
    return max(0.0, min(100.0, value))


def rating(score: Optional[float]) -> str:
    """Rating label for a 0..100 score."""
    if score is None:
        return "untested"
    if score >= 90:
        return "excellent"
    if score >= 80:
        return "good"
    if score >= 60:
        return "pass"
    if score > 0:
        return "needs_work"
    return "untested"


class BenchmarkScorer:
    """Scores measurements against a benchmark table and resolves tiers."""

    def __init__(
        self,
        table: Optional[BenchmarkTable] = None,
        weights: Optional[Mapping[str, float]] = None,
        tiers: Optional[Sequence[TierThreshold]] = None,
        speed_thresholds: Optional[Sequence[SpeedRankThreshold]] = None,
    ):
        self.table = table or BenchmarkTable()
        self.weights = dict(weights if weights is not None else CATEGORY_WEIGHTS)
        self.tiers = sorted(tiers if tiers is not None else LEVEL_TITLES, key=lambda t: t.threshold)
        self.speed_thresholds = list(speed_thresholds or [])

    def score(
        self,
        value: float,
        quality: str,
        age: Optional[float],
        gender: Union[None, str, Gender] = None,
        unit: Optional[str] = None,
    ) -> Tuple[float, Optional[Benchmark]]:
        """
        Percentile-normalized score for one measurement.

        <= p25 maps onto [0, 60], (p25, p50] onto (60, 75], (p50, p75] onto
        (75, 90] and anything above p75 onto 90 + 10 * (value - p75) / max(1, p75),
        clamped to 100. With no matching row the raw value is clamped into
        [0, 100] directly.
        """
        if value is None or not math.isfinite(value):
            return 0.0, None

        row = self.table.find(quality, age, gender, unit)
        if row is None:
            logger.debug(f"No benchmark for {quality} age={age} gender={gender}; using raw value")
            return clamp_score(value), None

        if value <= row.p25:
            raw = (value / row.p25) * 60 if row.p25 > 0 else 0.0
        elif value <= row.p50:
            raw = 60 + 15 * ((value - row.p25) / (row.p50 - row.p25))
        elif value <= row.p75:
            raw = 75 + 15 * ((value - row.p50) / (row.p75 - row.p50))
        else:
            raw = 90 + 10 * ((value - row.p75) / max(1, row.p75))
        return clamp_score(raw), row

    def normalize_min_max(
        self,
        value: float,
        quality: str,
        age: Optional[float],
        gender: Union[None, str, Gender] = None,
        unit: Optional[str] = None,
    ) -> int:
        """Linear min/max normalization against the matched row (0..100, rounded)."""
        if value is None or not math.isfinite(value):
            return 0
        row = self.table.find(quality, age, gender, unit)
        low = row.min if row else 0
        high = row.max if row else 100
        if high == low:
            return 0
        return int(round(clamp_score((value - low) / (high - low) * 100)))

    @staticmethod
    def interpolate_standard(value: float, anchors: Sequence[Anchor], higher_is_better: bool = True) -> float:
        """Piecewise-linear score from (value, score) anchors, clamped at both ends."""
        if value is None or not math.isfinite(value) or not anchors:
            return 0.0
        ordered = sorted(anchors, key=lambda a: a[0], reverse=not higher_is_better)
        first, last = ordered[0], ordered[-1]
        if higher_is_better:
            if value <= first[0]:
                return max(0.0, first[1])
            if value >= last[0]:
                return last[1]
        else:
            if value >= first[0]:
                return max(0.0, first[1])
            if value <= last[0]:
                return last[1]
        for (x0, y0), (x1, y1) in zip(ordered, ordered[1:]):
            inside = x0 <= value <= x1 if higher_is_better else x1 <= value <= x0
            if inside:
                ratio = (value - x0) / ((x1 - x0) or 1)
                return y0 + ratio * (y1 - y0)
        return 0.0

    def composite(self, category_scores: Mapping[str, float], weights: Optional[Mapping[str, float]] = None) -> float:
        """
        Weighted average over the weight table.

        A category scoring exactly 0 counts as not measured and drops out of
        both numerator and denominator; with nothing measured the result is 0.
        """
        weights = weights if weights is not None else self.weights
        total = 0.0
        weight_sum = 0.0
        for key, weight in weights.items():
            score = category_scores.get(key) or 0
            if score > 0:
                total += score * weight
                weight_sum += weight
        if weight_sum == 0:
            return 0.0
        return round(total / weight_sum, 1)

    def resolve_tier(self, score: float, tiers: Optional[Sequence[TierThreshold]] = None) -> TierThreshold:
        """Highest tier whose threshold is <= score."""
        ordered = sorted(tiers, key=lambda t: t.threshold) if tiers is not None else self.tiers
        current = ordered[0]
        for tier in ordered:
            if score >= tier.threshold:
                current = tier
        return current

    def eval_speed_rank(self, best_reps: float, window_sec: int = 30, mode: str = "single") -> int:
        """Highest speed rank (0..9) reached by a best rep count."""
        thresholds = sorted(
            (t for t in self.speed_thresholds if t.window_sec == window_sec and t.mode == mode),
            key=lambda t: t.rank,
        )
        achieved = 0
        if not thresholds:
            for idx, minimum in enumerate(SPEED_RANK_FALLBACK):
                if best_reps >= minimum:
                    achieved = idx + 1
            return achieved
        for row in thresholds:
            if best_reps >= row.min_reps:
                achieved = max(achieved, row.rank)
        return achieved

    def speed_rank_trajectory(self, sessions: Iterable[Tuple[str, Iterable[float]]]) -> List[Tuple[str, int]]:
        """(date, rank) per session from each session's rep counts; rank uses the best so far."""
        best = 0.0
        trajectory = []
        for date, reps in sorted(sessions, key=lambda s: s[0]):
            reps = list(reps)
            if not reps:
                continue
            best = max(best, max(reps))
            trajectory.append((date, self.eval_speed_rank(best)))
        return trajectory


def rank_trajectory(sessions: Iterable[Tuple[str, Iterable[int]]]) -> List[Tuple[str, int]]:
    """
    Highest passed rank over time.

    `sessions` yields (date, ranks passed in that session). The rank never
    decreases; sessions before the first pass are omitted.
    """
    current = 0
    trajectory = []
    for date, ranks in sorted(sessions, key=lambda s: s[0]):
        ranks = [r for r in ranks if r]
        if ranks:
            current = max(current, max(ranks))
        if current > 0:
            trajectory.append((date, current))
    return trajectory
