"""
Pure balance replay over point events, exchanges and energy logs.

Nothing here touches the store: production balance queries and the audit
tooling both fold the same event lists through these functions.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from growthcore.models import (
    Balance,
    EnergyLog,
    PointEvent,
    PointEventType,
    SquadChallenge,
    SquadProgressLog,
    Student,
    StudentExchange,
)


@dataclass
class PointsSnapshot:
    total: int = 0
    breakdown: Dict[str, int] = field(default_factory=lambda: {t.value: 0 for t in PointEventType})
    series: List[Tuple[str, int, int]] = field(default_factory=list)  # (date, delta, running total)


@dataclass(frozen=True)
class Drift:
    """A cached counter that disagrees with its log."""
    record_id: str
    cached: float
    replayed: float

    @property
    def difference(self) -> float:
        return self.cached - self.replayed


def points_snapshot(events: Iterable[PointEvent]) -> PointsSnapshot:
    """Fold point events in date order into total, per-type breakdown and series."""
    snapshot = PointsSnapshot()
    for event in sorted(events, key=lambda e: e.date):
        snapshot.total += event.points
        snapshot.breakdown[event.type.value] += event.points
        snapshot.series.append((event.date, event.points, snapshot.total))
    return snapshot


def energy_total(logs: Iterable[EnergyLog]) -> int:
    return sum(log.delta for log in logs)


def replay_balance(
    student_id: str,
    point_events: Iterable[PointEvent],
    exchanges: Iterable[StudentExchange],
    energy_logs: Optional[Iterable[EnergyLog]] = None,
    cached_energy: Optional[int] = None,
) -> Balance:
    """
    Derive a student's balance from their events.

    score_balance = sum(points) - sum(exchange score costs). The energy
    balance is the cached counter when given, else the log sum; the two are
    equal whenever the ledger is consistent.
    """
    exchanges = list(exchanges)
    earned = points_snapshot(point_events).total
    spent = sum(ex.cost_score or 0 for ex in exchanges)
    energy_spent = sum(ex.cost_energy or 0 for ex in exchanges)

    if cached_energy is not None:
        energy = cached_energy
    elif energy_logs is not None:
        energy = energy_total(energy_logs)
    else:
        energy = 0

    return Balance(
        student_id=student_id,
        score_balance=earned - spent,
        total_earned=earned,
        total_spent=spent,
        energy_balance=energy,
        total_energy_spent=energy_spent,
    )


def energy_level(energy: int, span: int = 120) -> Tuple[int, float, int]:
    """(level, progress within level 0..1, energy needed for next level)."""
    energy = max(0, energy)
    level = energy // span + 1
    floor = (level - 1) * span
    ceil = level * span
    progress = (energy - floor) / (ceil - floor)
    return level, min(1.0, max(0.0, progress)), ceil


def find_energy_drift(students: Iterable[Student], logs: Iterable[EnergyLog]) -> List[Drift]:
    """Students whose cached energy differs from the sum of their energy logs."""
    totals: Dict[str, int] = {}
    for log in logs:
        totals[log.student_id] = totals.get(log.student_id, 0) + log.delta
    drift = []
    for student in students:
        replayed = totals.get(student.id, 0)
        if student.energy != replayed:
            drift.append(Drift(student.id, student.energy, replayed))
    return drift


def find_progress_drift(
    challenges: Iterable[SquadChallenge],
    logs_by_challenge: Mapping[str, Iterable[SquadProgressLog]],
) -> List[Drift]:
    """Challenges whose progress differs from the sum of their progress logs."""
    drift = []
    for challenge in challenges:
        replayed = sum(log.value for log in logs_by_challenge.get(challenge.id, ()))
        if abs(challenge.progress - replayed) > 1e-9:
            drift.append(Drift(challenge.id, challenge.progress, replayed))
    return drift
