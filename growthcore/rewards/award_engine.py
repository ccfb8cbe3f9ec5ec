"""
AwardEngine: decides when and how much to award.

Points are capped per student per session; energy grants are idempotent per
(student, source, ref) key.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from growthcore.ledger.event_ledger import EventLedger, new_id, now_iso
from growthcore.models import (
    EnergySource,
    GrantKey,
    PointEvent,
    PointEventType,
    as_ref,
)
from growthcore.shared.config import EnergyConfig, LedgerConfig, RankReward, RewardTableConfig, settings
from growthcore.shared.exceptions import ValidationError
from growthcore.shared.logging import get_logger, log_with_context
from growthcore.store import base as tables
from growthcore.store.base import StoreSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class SessionAward:
    """One award to replay when a session is recomputed."""
    student_id: str
    type: PointEventType
    points: float
    reason: Optional[str] = None


@dataclass(frozen=True)
class AttendanceAward:
    points: int
    energy: int
    streak: int
    streak_bonus: int


def _coerce_type(event_type: Union[str, PointEventType]) -> PointEventType:
    try:
        return PointEventType(event_type)
    except ValueError as e:
        raise ValidationError(f"Unknown point event type: {event_type}") from e


def _coerce_source(source: Union[str, EnergySource]) -> EnergySource:
    try:
        return EnergySource(source)
    except ValueError as e:
        raise ValidationError(f"Unknown energy source: {source}") from e


class AwardEngine:
    """Business rules for point and energy awards."""

    def __init__(
        self,
        ledger: EventLedger,
        ledger_config: Optional[LedgerConfig] = None,
        energy_config: Optional[EnergyConfig] = None,
        reward_table: Optional[RewardTableConfig] = None,
    ):
        self.ledger = ledger
        self.store = ledger.store
        self.ledger_config = ledger_config or settings.ledger
        self.energy_config = energy_config or settings.energy
        self.reward_table = reward_table or settings.rewards

    @property
    def session_cap(self) -> int:
        return self.ledger_config.session_point_cap

    # Points

    def award_points(
        self,
        student_id: str,
        session_id: str,
        event_type: Union[str, PointEventType],
        raw_points: float,
        reason: Optional[str] = None,
        when: Optional[datetime] = None,
        session: Optional[StoreSession] = None,
    ) -> int:
        """
        Award points within a session, never exceeding the session cap.

        The raw amount is floored to a non-negative integer and trimmed to the
        student's remaining allowance for the session. An exhausted allowance
        or a zero amount writes nothing. Runs inside `session` when given (it
        must cover students and point_events).

        Returns:
            Points actually applied
        """
        event_type = _coerce_type(event_type)
        if raw_points is None or not math.isfinite(raw_points):
            raise ValidationError(f"Points must be a finite number, got {raw_points}")
        if raw_points < 0:
            raise ValidationError(f"Points must be >= 0, got {raw_points}")
        if not session_id:
            raise ValidationError("session_id is required")

        base = int(math.floor(raw_points))

        def _award(txn: StoreSession) -> int:
            self.ledger.require_student(student_id, txn)
            if base == 0:
                return 0
            used = self.ledger.session_total(student_id, session_id, txn)
            allowance = self.session_cap - used
            if allowance <= 0:
                return 0
            applied = min(base, allowance)
            self.ledger.record_point_event(PointEvent(
                id=new_id(),
                student_id=student_id,
                session_id=session_id,
                date=now_iso(when),
                type=event_type,
                points=applied,
                reason=reason,
            ), txn)
            return applied

        if session is not None:
            applied = _award(session)
        else:
            applied = self.store.transaction([tables.STUDENTS, tables.POINT_EVENTS], _award)

        if applied:
            log_with_context(
                logger, logging.INFO,
                f"Awarded {applied}/{base} {event_type.value} points",
                student_id=student_id, action="award_points", session_id=session_id,
            )
        else:
            log_with_context(
                logger, logging.DEBUG,
                f"No points applied for {event_type.value} (raw={raw_points}, cap={self.session_cap})",
                student_id=student_id, action="award_points", session_id=session_id,
            )
        return applied

    def award_rule_points(
        self,
        student_id: str,
        session_id: str,
        event_type: Union[str, PointEventType],
        reason: Optional[str] = None,
        when: Optional[datetime] = None,
    ) -> int:
        """Award the configured default points for an event type."""
        event_type = _coerce_type(event_type)
        return self.award_points(
            student_id, session_id, event_type,
            self.ledger_config.point_value(event_type.value), reason, when,
        )

    def recompute_session(
        self,
        session_id: str,
        awards: Iterable[SessionAward],
        when: Optional[datetime] = None,
    ) -> Dict[str, int]:
        """
        Drop a session's point events and award them again under a fresh cap.

        The delete and every re-award share one transaction, so a failing
        award leaves the session's previous events in place.

        Returns:
            student_id -> total points applied
        """
        awards = list(awards)

        def _recompute(txn: StoreSession) -> Dict[str, int]:
            self.ledger.remove_session_events(session_id, txn)
            totals: Dict[str, int] = {}
            for award in awards:
                applied = self.award_points(
                    award.student_id, session_id, award.type, award.points, award.reason, when, session=txn
                )
                totals[award.student_id] = totals.get(award.student_id, 0) + applied
            return totals

        return self.store.transaction([tables.STUDENTS, tables.POINT_EVENTS], _recompute)

    # Energy

    def grant_energy(
        self,
        student_id: str,
        amount: int,
        source: Union[str, EnergySource],
        ref: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
        when: Optional[datetime] = None,
        session: Optional[StoreSession] = None,
    ) -> bool:
        """
        Grant energy at most once per (student_id, source, ref).

        The idempotency check and the write happen in one store transaction:
        the caller's when `session` is given (it must cover students and
        energy_logs), otherwise a new one. Grants without a ref are not
        deduplicated.

        Returns:
            True if a new energy log was written
        """
        source = _coerce_source(source)
        if isinstance(amount, bool) or not isinstance(amount, (int, float)) or not math.isfinite(amount):
            raise ValidationError(f"Energy amount must be a finite number, got {amount}")
        if amount < 0:
            raise ValidationError(f"Energy amount must be >= 0, got {amount}")
        if int(amount) != amount:
            raise ValidationError(f"Energy amount must be an integer, got {amount}")
        amount = int(amount)
        if amount == 0:
            return False
        key = GrantKey(student_id, source, as_ref(ref))

        def _grant(txn: StoreSession) -> bool:
            student = self.ledger.require_student(student_id, txn)
            if key.ref and self.ledger.find_grant(key, txn) is not None:
                return False
            self.ledger.apply_energy(txn, student, amount, source, key.ref, metadata, when)
            return True

        if session is not None:
            written = _grant(session)
        else:
            written = self.store.transaction([tables.STUDENTS, tables.ENERGY_LOGS], _grant)

        if written:
            log_with_context(
                logger, logging.INFO, f"Granted {amount} energy from {source.value}",
                student_id=student_id, action="grant_energy", ref=list(key.ref),
            )
        else:
            log_with_context(
                logger, logging.DEBUG, f"Duplicate {source.value} grant skipped",
                student_id=student_id, action="grant_energy", ref=list(key.ref),
            )
        return written

    # Rank-scaled rewards

    def freestyle_reward(self, rank: int) -> RankReward:
        """Reward for passing a move of `rank`; ranks outside the table use the fallback formula."""
        reward = self.reward_table.ranks.get(rank)
        if reward is not None:
            return reward
        return RankReward(
            points=max(5, 5 + (rank - 1) * 2),
            energy=max(8, 10 + (rank - 1) * 4),
        )

    rank_up_reward = freestyle_reward

    def award_freestyle_pass(
        self,
        student_id: str,
        session_id: str,
        move_id: str,
        rank: int,
        move_name: str = "",
        when: Optional[datetime] = None,
    ) -> Tuple[int, bool]:
        """
        Points (capped) and energy (once per session and move) for a passed move.

        Returns:
            (points applied, whether energy was granted)
        """
        reward = self.freestyle_reward(rank)
        reason = f"Passed freestyle {move_name or move_id}"
        points = self.award_points(student_id, session_id, PointEventType.FREESTYLE_PASS, reward.points, reason, when)
        granted = self.grant_energy(
            student_id, reward.energy, EnergySource.ASSESSMENT, ("freestyle", session_id, move_id),
            {"move_id": move_id, "rank": rank, "session_id": session_id}, when,
        )
        return points, granted

    def award_assessment_rank_up(self, student_id: str, rank_code: str, badge_name: str = "") -> int:
        """Energy for reaching a new assessed rank, once per rank code."""
        amount = self.energy_config.assessment_rank_up
        granted = self.grant_energy(
            student_id, amount, EnergySource.ASSESSMENT, ("rank", rank_code), {"badge": badge_name}
        )
        return amount if granted else 0

    # Activity awards

    def attendance_streak(self, attendance_days: Iterable[date], today: date) -> int:
        """Consecutive attended days ending today (today counts as attended)."""
        days = {d.date() if isinstance(d, datetime) else d for d in attendance_days}
        days.add(today)
        streak = 0
        cursor = today
        while cursor in days:
            streak += 1
            cursor -= timedelta(days=1)
        return streak

    def award_attendance(
        self,
        student_id: str,
        session_id: str,
        class_id: str,
        attendance_days: Iterable[date] = (),
        when: Optional[datetime] = None,
    ) -> AttendanceAward:
        """Attendance points plus attendance energy with a streak bonus, once per session."""
        when = when or datetime.now()
        streak = self.attendance_streak(attendance_days, when.date())
        bonus = self.energy_config.streak_bonus if streak >= self.energy_config.streak_bonus_threshold else 0
        energy = self.energy_config.attendance + bonus

        points = self.award_rule_points(student_id, session_id, PointEventType.ATTENDANCE, "present", when)
        granted = self.grant_energy(
            student_id, energy, EnergySource.ATTENDANCE, ("attendance", session_id),
            {"class_id": class_id, "streak": streak}, when,
        )
        return AttendanceAward(points=points, energy=energy if granted else 0, streak=streak, streak_bonus=bonus)

    def award_mission(
        self,
        student_id: str,
        mission_id: str,
        stars: int,
        class_id: Optional[str] = None,
        when: Optional[datetime] = None,
    ) -> int:
        """Energy for a completed mission: stars (clamped to 1..5) times energy per star."""
        safe_stars = max(1, min(5, int(stars)))
        energy = safe_stars * self.energy_config.mission_per_star
        granted = self.grant_energy(
            student_id, energy, EnergySource.MISSION, ("mission", mission_id),
            {"class_id": class_id, "stars": safe_stars}, when,
        )
        return energy if granted else 0

    def award_kudos(
        self,
        from_student_id: str,
        to_student_id: str,
        badge: str,
        kudos_id: Optional[str] = None,
        when: Optional[datetime] = None,
    ) -> int:
        """Energy for a peer kudos; one grant per kudos id."""
        if from_student_id == to_student_id:
            raise ValidationError("A student cannot give kudos to themselves")
        self.ledger.require_student(from_student_id)
        amount = self.energy_config.kudos
        granted = self.grant_energy(
            to_student_id, amount, EnergySource.KUDOS, ("kudos", kudos_id or new_id()),
            {"from_student_id": from_student_id, "badge": badge}, when,
        )
        return amount if granted else 0

    def energy_history(self, student_id: str) -> List[Tuple[str, int, int]]:
        """(created_at, delta, running total) for a student's energy logs."""
        running = 0
        history = []
        for log in sorted(self.ledger.list_energy_logs(student_id), key=lambda l: l.created_at):
            running += log.delta
            history.append((log.created_at, log.delta, running))
        return history
