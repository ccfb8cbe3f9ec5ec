"""
GrowthCore: wires the store, ledger, award engine, squads, market and scorers.
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from growthcore.ledger.event_ledger import AuditReport, EventLedger
from growthcore.models import (
    Balance,
    Benchmark,
    CompositeReport,
    EnergySource,
    Gender,
    PointEventType,
    RankMove,
    RedeemResult,
    SquadChallenge,
    Student,
)
from growthcore.rewards.award_engine import AwardEngine
from growthcore.rewards.market import RewardMarket
from growthcore.rewards.squads import SquadChallengeTracker
from growthcore.scoring.assessment import AssessmentScorer
from growthcore.scoring.benchmarks import BenchmarkTable, CurvePoint
from growthcore.scoring.scorer import BenchmarkScorer, rank_trajectory
from growthcore.shared.config import GrowthSettings, settings as default_settings
from growthcore.shared.logging import get_logger
from growthcore.store.base import TransactionalStore
from growthcore.store.sqlite_store import SqliteStore

logger = get_logger(__name__)


class GrowthCore:
    """Entry point used by the API and the CLI scripts."""

    def __init__(
        self,
        store: Optional[TransactionalStore] = None,
        settings: Optional[GrowthSettings] = None,
        db_path: Optional[Path] = None,
        scorer: Optional[BenchmarkScorer] = None,
    ):
        self.settings = settings or default_settings
        self.store = store or SqliteStore(
            db_path or self.settings.store.db_path,
            timeout=self.settings.store.busy_timeout_seconds,
        )
        self.ledger = EventLedger(self.store)
        self.awards = AwardEngine(
            self.ledger,
            ledger_config=self.settings.ledger,
            energy_config=self.settings.energy,
            reward_table=self.settings.rewards,
        )
        self.squads = SquadChallengeTracker(self.awards)
        self.market = RewardMarket(self.ledger)
        self.assessments = AssessmentScorer(
            scorer=scorer,
            benchmarks=BenchmarkTable(Benchmark(**row) for row in self.settings.scoring.benchmarks),
        )
        self.benchmarks = self.assessments.scorer.table

    def register_student(self, student: Student) -> Student:
        self.ledger.save_student(student)
        logger.info(f"Registered student {student.id}", extra={
            "student_id": student.id,
            "action": "register_student",
        })
        return student

    def award_points(
        self,
        student_id: str,
        session_id: str,
        event_type: Union[str, PointEventType],
        points: float,
        reason: Optional[str] = None,
    ) -> int:
        return self.awards.award_points(student_id, session_id, event_type, points, reason)

    def grant_energy(
        self,
        student_id: str,
        amount: int,
        source: Union[str, EnergySource],
        ref: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
        when: Optional[datetime] = None,
    ) -> bool:
        return self.awards.grant_energy(student_id, amount, source, ref, metadata, when)

    def add_squad_progress(self, challenge_id: str, value: float, **meta: Any) -> SquadChallenge:
        """`meta` accepts by, created_by, ref_session_id and note."""
        return self.squads.add_progress(challenge_id, value, **meta)

    def redeem(self, student_id: str, reward_id: str) -> RedeemResult:
        return self.market.redeem(student_id, reward_id)

    def score_assessment(
        self,
        raw_measurements: Mapping[str, Optional[float]],
        gender: Union[None, str, Gender],
        age: Optional[int],
        passed_move_ids: Iterable[str] = (),
        rank_moves: Iterable[RankMove] = (),
    ) -> CompositeReport:
        return self.assessments.score_assessment(raw_measurements, gender, age, passed_move_ids, rank_moves)

    def get_balance(self, student_id: str) -> Balance:
        return self.ledger.balance(student_id)

    def audit(self, fix: bool = False) -> AuditReport:
        return self.ledger.audit(fix=fix)

    def energy_history(self, student_id: str):
        self.ledger.require_student(student_id)
        return self.awards.energy_history(student_id)

    # Benchmarks and progress curves

    def score_quality(
        self,
        value: float,
        quality: str,
        age: Optional[float],
        gender: Union[None, str, Gender] = None,
        unit: Optional[str] = None,
    ) -> Tuple[float, Optional[Benchmark]]:
        return self.assessments.scorer.score(value, quality, age, gender, unit)

    def benchmark_gaps(
        self, quality: str, min_age: int, max_age: int, gender: Union[None, str, Gender] = None
    ) -> List[int]:
        """Ages in [min_age, max_age] that fall back to raw scoring for `quality`."""
        return self.benchmarks.coverage_gaps(quality, min_age, max_age, gender)

    def height_curve(
        self, gender: Union[None, str, Gender], min_age: float, max_age: float, step: float = 0.5
    ) -> List[CurvePoint]:
        return self.assessments.height_curve_series(gender, min_age, max_age, step)

    def speed_rank_trajectory(self, sessions: Iterable[Tuple[str, Iterable[float]]]) -> List[Tuple[str, int]]:
        return self.assessments.scorer.speed_rank_trajectory(sessions)

    def rank_trajectory(self, sessions: Iterable[Tuple[str, Iterable[int]]]) -> List[Tuple[str, int]]:
        return rank_trajectory(sessions)
