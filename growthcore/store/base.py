"""
Abstract transactional key-value store consumed by the ledger and engines.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Iterable, List, Optional, TypeVar

T = TypeVar("T")

STUDENTS = "students"
POINT_EVENTS = "point_events"
ENERGY_LOGS = "energy_logs"
SQUADS = "squads"
SQUAD_CHALLENGES = "squad_challenges"
SQUAD_PROGRESS = "squad_progress"
REWARD_ITEMS = "reward_items"
STUDENT_EXCHANGES = "student_exchanges"

TABLES = (
    STUDENTS,
    POINT_EVENTS,
    ENERGY_LOGS,
    SQUADS,
    SQUAD_CHALLENGES,
    SQUAD_PROGRESS,
    REWARD_ITEMS,
    STUDENT_EXCHANGES,
)

# Fields each table can be queried by
INDEXES: Dict[str, tuple] = {
    STUDENTS: ("class_id",),
    POINT_EVENTS: ("student_id", "session_id"),
    ENERGY_LOGS: ("student_id", "source"),
    SQUADS: ("class_id",),
    SQUAD_CHALLENGES: ("squad_id",),
    SQUAD_PROGRESS: ("challenge_id",),
    REWARD_ITEMS: ("type",),
    STUDENT_EXCHANGES: ("student_id", "reward_id"),
}

Record = Dict[str, Any]


class StoreSession(ABC):
    """Read/write access to the logical tables."""

    @abstractmethod
    def get(self, table: str, record_id: str) -> Optional[Record]:
        ...

    @abstractmethod
    def put(self, table: str, record: Record) -> None:
        ...

    @abstractmethod
    def delete(self, table: str, record_id: str) -> None:
        ...

    @abstractmethod
    def query_by_index(self, table: str, field: str, value: Any) -> List[Record]:
        """All records whose indexed `field` equals `value`, in insertion order."""
        ...

    @abstractmethod
    def all(self, table: str) -> List[Record]:
        ...

    def delete_many(self, table: str, record_ids: Iterable[str]) -> int:
        count = 0
        for record_id in record_ids:
            self.delete(table, record_id)
            count += 1
        return count


class TransactionalStore(StoreSession):
    """Store that can run a function atomically over a set of tables."""

    @abstractmethod
    def transaction(self, tables: Iterable[str], fn: Callable[[StoreSession], T]) -> T:
        """
        Run `fn` with read/write access to `tables` and commit atomically.

        Any exception raised by `fn` rolls the transaction back and is re-raised.

        Raises:
            ConcurrencyConflictError if a conflicting transaction could not be serialized
        """
        ...
