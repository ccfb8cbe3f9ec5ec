"""
EventLedger: append-only point/energy event access and balance queries.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from growthcore.ledger.replay import Drift, find_energy_drift, find_progress_drift, replay_balance
from growthcore.models import (
    Balance,
    EnergyLog,
    EnergySource,
    GrantKey,
    PointEvent,
    SquadChallenge,
    SquadProgressLog,
    Student,
    StudentExchange,
    as_ref,
)
from growthcore.shared.exceptions import NotFoundError
from growthcore.shared.logging import get_logger
from growthcore.store import base as tables
from growthcore.store.base import StoreSession, TransactionalStore

logger = get_logger(__name__)


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso(when: Optional[datetime] = None) -> str:
    """ISO timestamp in UTC (naive datetimes are taken as UTC)."""
    when = when or datetime.now(timezone.utc)
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return when.isoformat()


@dataclass
class AuditReport:
    energy_drift: List[Drift] = field(default_factory=list)
    progress_drift: List[Drift] = field(default_factory=list)
    fixed: bool = False

    @property
    def clean(self) -> bool:
        return not self.energy_drift and not self.progress_drift


class EventLedger:
    """
    Reads and appends ledger events.

    Every method takes an optional `session`; pass the handle received inside
    `store.transaction(...)` to read and write within that transaction.
    """

    def __init__(self, store: TransactionalStore):
        self.store = store

    def _s(self, session: Optional[StoreSession]) -> StoreSession:
        return session if session is not None else self.store

    # Students

    def get_student(self, student_id: str, session: Optional[StoreSession] = None) -> Optional[Student]:
        record = self._s(session).get(tables.STUDENTS, student_id)
        return Student(**record) if record else None

    def require_student(self, student_id: str, session: Optional[StoreSession] = None) -> Student:
        student = self.get_student(student_id, session)
        if student is None:
            raise NotFoundError(f"Student {student_id} not found")
        return student

    def save_student(self, student: Student, session: Optional[StoreSession] = None):
        self._s(session).put(tables.STUDENTS, student.model_dump(mode="json"))

    def list_students(self, session: Optional[StoreSession] = None) -> List[Student]:
        return [Student(**r) for r in self._s(session).all(tables.STUDENTS)]

    # Point events

    def record_point_event(self, event: PointEvent, session: Optional[StoreSession] = None):
        self._s(session).put(tables.POINT_EVENTS, event.model_dump(mode="json"))

    def list_point_events(self, student_id: str, session: Optional[StoreSession] = None) -> List[PointEvent]:
        records = self._s(session).query_by_index(tables.POINT_EVENTS, "student_id", student_id)
        return sorted((PointEvent(**r) for r in records), key=lambda e: e.date)

    def list_session_events(self, session_id: str, session: Optional[StoreSession] = None) -> List[PointEvent]:
        records = self._s(session).query_by_index(tables.POINT_EVENTS, "session_id", session_id)
        return [PointEvent(**r) for r in records]

    def session_total(self, student_id: str, session_id: str, session: Optional[StoreSession] = None) -> int:
        """Points already awarded to a student within one session."""
        return sum(
            e.points for e in self.list_session_events(session_id, session)
            if e.student_id == student_id
        )

    def remove_session_events(self, session_id: str, session: Optional[StoreSession] = None) -> int:
        """Compensating delete of every point event of a session (used on recompute)."""
        def _remove(txn: StoreSession) -> int:
            ids = [r["id"] for r in txn.query_by_index(tables.POINT_EVENTS, "session_id", session_id)]
            return txn.delete_many(tables.POINT_EVENTS, ids)

        if session is not None:
            removed = _remove(session)
        else:
            removed = self.store.transaction([tables.POINT_EVENTS], _remove)
        logger.info(f"Removed {removed} point events for session {session_id}", extra={
            "session_id": session_id,
            "action": "remove_session_events",
        })
        return removed

    # Energy

    def list_energy_logs(self, student_id: str, session: Optional[StoreSession] = None) -> List[EnergyLog]:
        records = self._s(session).query_by_index(tables.ENERGY_LOGS, "student_id", student_id)
        return [EnergyLog(**r) for r in records]

    def find_grant(self, key: GrantKey, session: Optional[StoreSession] = None) -> Optional[EnergyLog]:
        """Existing energy log for an idempotency key, if any."""
        for log in self.list_energy_logs(key.student_id, session):
            if log.key == key:
                return log
        return None

    def apply_energy(
        self,
        session: StoreSession,
        student: Student,
        delta: int,
        source: EnergySource,
        ref: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
        when: Optional[datetime] = None,
    ) -> EnergyLog:
        """
        Append an energy log and move the student's cached energy by the same delta.

        Must run inside a transaction covering students and energy_logs so the
        cache always equals the log sum.
        """
        log = EnergyLog(
            id=new_id(),
            student_id=student.id,
            source=source,
            ref=as_ref(ref),
            delta=delta,
            created_at=now_iso(when),
            metadata=metadata or {},
        )
        session.put(tables.ENERGY_LOGS, log.model_dump(mode="json"))
        student.energy += delta
        self.save_student(student, session)
        return log

    # Exchanges

    def list_exchanges(self, student_id: str, session: Optional[StoreSession] = None) -> List[StudentExchange]:
        records = self._s(session).query_by_index(tables.STUDENT_EXCHANGES, "student_id", student_id)
        return [StudentExchange(**r) for r in records]

    # Balances

    def balance(self, student_id: str, session: Optional[StoreSession] = None) -> Balance:
        """Balance re-derived from the current events on every call."""
        student = self.require_student(student_id, session)
        return replay_balance(
            student_id,
            self.list_point_events(student_id, session),
            self.list_exchanges(student_id, session),
            cached_energy=student.energy,
        )

    def replayed_energy(self, student_id: str, session: Optional[StoreSession] = None) -> int:
        return sum(log.delta for log in self.list_energy_logs(student_id, session))

    # Audit

    def audit(self, fix: bool = False) -> AuditReport:
        """
        Recompute cached counters from their logs and report any drift.

        With fix=True the cached fields are rewritten from the logs inside one
        transaction.
        """
        scope = [tables.STUDENTS, tables.ENERGY_LOGS, tables.SQUAD_CHALLENGES, tables.SQUAD_PROGRESS]

        def _audit(txn: StoreSession) -> AuditReport:
            students = [Student(**r) for r in txn.all(tables.STUDENTS)]
            logs = [EnergyLog(**r) for r in txn.all(tables.ENERGY_LOGS)]
            challenges = [SquadChallenge(**r) for r in txn.all(tables.SQUAD_CHALLENGES)]
            progress: Dict[str, List[SquadProgressLog]] = {}
            for record in txn.all(tables.SQUAD_PROGRESS):
                log = SquadProgressLog(**record)
                progress.setdefault(log.challenge_id, []).append(log)

            report = AuditReport(
                energy_drift=find_energy_drift(students, logs),
                progress_drift=find_progress_drift(challenges, progress),
            )
            if fix and not report.clean:
                by_id = {s.id: s for s in students}
                for drift in report.energy_drift:
                    student = by_id[drift.record_id]
                    student.energy = int(drift.replayed)
                    self.save_student(student, txn)
                challenge_by_id = {c.id: c for c in challenges}
                for drift in report.progress_drift:
                    challenge = challenge_by_id[drift.record_id]
                    challenge.progress = drift.replayed
                    txn.put(tables.SQUAD_CHALLENGES, challenge.model_dump(mode="json"))
                report.fixed = True
            return report

        report = self.store.transaction(scope, _audit)
        if not report.clean:
            logger.warning(
                f"Ledger drift: {len(report.energy_drift)} students, "
                f"{len(report.progress_drift)} challenges (fixed={report.fixed})"
            )
        return report
