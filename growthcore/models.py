"""
Pydantic models for the growth ledger, rewards market and scoring.
"""

from enum import Enum
from typing import Optional, List, Dict, Any, NamedTuple, Tuple, Union
from pydantic import BaseModel, Field, field_validator, model_validator


class PointEventType(str, Enum):
    ATTENDANCE = "attendance"
    PR = "pr"
    FREESTYLE_PASS = "freestyle_pass"
    EXCELLENT = "excellent"
    CHALLENGE = "challenge"


class EnergySource(str, Enum):
    ATTENDANCE = "attendance"
    MISSION = "mission"
    ASSESSMENT = "assessment"
    KUDOS = "kudos"
    SQUAD_MILESTONE = "squad_milestone"
    SQUAD_COMPLETION = "squad_completion"
    PUZZLE_CARD = "puzzle_card"
    MANUAL = "manual"
    MARKET_REDEEM = "market_redeem"


class ChallengeStatus(str, Enum):
    ONGOING = "ongoing"
    DONE = "done"


class ExchangeStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    CONFIRMED = "confirmed"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


Ref = Tuple[str, ...]


def as_ref(ref: Union[None, str, int, Tuple[Any, ...], List[Any]]) -> Ref:
    """Normalize a caller-supplied reference into a tuple of strings."""
    if ref is None:
        return ()
    if isinstance(ref, (tuple, list)):
        return tuple(str(part) for part in ref)
    return (str(ref),)


class GrantKey(NamedTuple):
    """Idempotency key for an energy grant."""
    student_id: str
    source: EnergySource
    ref: Ref


class Student(BaseModel):
    """Student record; energy is a cache of the energy log sum."""
    id: str
    name: str = ""
    gender: Optional[Gender] = None
    birth: Optional[str] = None
    class_id: Optional[str] = None
    energy: int = 0
    current_rank: int = 0


class PointEvent(BaseModel):
    """One immutable point award scoped to a session."""
    id: str
    student_id: str
    session_id: str
    date: str
    type: PointEventType
    points: int = Field(ge=0)
    reason: Optional[str] = None


class EnergyLog(BaseModel):
    """Append-only energy movement; negative delta is a spend."""
    id: str
    student_id: str
    source: EnergySource
    ref: Ref = ()
    delta: int
    created_at: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("ref", mode="before")
    @classmethod
    def _normalize_ref(cls, value: Any) -> Ref:
        return as_ref(value)

    @property
    def key(self) -> GrantKey:
        return GrantKey(self.student_id, self.source, self.ref)


class Squad(BaseModel):
    id: str
    name: str
    member_ids: List[str] = Field(min_length=1)
    class_id: Optional[str] = None
    season_code: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator("member_ids")
    @classmethod
    def _unique_members(cls, value: List[str]) -> List[str]:
        return list(dict.fromkeys(value))


class SquadChallenge(BaseModel):
    id: str
    squad_id: str
    title: str = ""
    target: float = Field(default=0, ge=0)
    unit: str = "count"
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    progress: float = Field(default=0, ge=0)
    status: ChallengeStatus = ChallengeStatus.ONGOING
    milestone_level: int = Field(default=0, ge=0, le=10)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class SquadProgressLog(BaseModel):
    """Immutable record of one progress contribution."""
    id: str
    squad_id: str
    challenge_id: str
    value: float = Field(gt=0)
    by: str = "coach"
    created_by: str = ""
    ref_session_id: Optional[str] = None
    note: Optional[str] = None
    created_at: str


class RewardItem(BaseModel):
    id: str
    name: str = ""
    type: str = "virtual"
    cost_score: int = Field(default=0, ge=0)
    cost_energy: Optional[int] = Field(default=None, ge=0)
    stock: Optional[int] = Field(default=None, ge=0)  # None means unlimited
    visible: bool = True
    season_tag: Optional[str] = None


class StudentExchange(BaseModel):
    id: str
    student_id: str
    reward_id: str
    cost_score: int = 0
    cost_energy: Optional[int] = None
    redeemed_at: str
    status: ExchangeStatus = ExchangeStatus.PENDING
    note: Optional[str] = None


class Balance(BaseModel):
    """Balance derived by replaying a student's events."""
    student_id: str
    score_balance: int = 0
    total_earned: int = 0
    total_spent: int = 0
    energy_balance: int = 0
    total_energy_spent: int = 0


class RedeemResult(BaseModel):
    ok: bool
    message: str
    exchange: Optional[StudentExchange] = None
    reward: Optional[RewardItem] = None
    balance: Optional[Balance] = None


class Benchmark(BaseModel):
    """Percentile lookup row for one quality within an age/gender band."""
    id: Optional[str] = None
    quality: str
    age_min: int
    age_max: int
    gender: Optional[Gender] = None
    unit: str = "count"
    p25: float
    p50: float
    p75: float
    min: float = 0
    max: float = 100

    @model_validator(mode="before")
    @classmethod
    def _default_max(cls, data: Any) -> Any:
        """Rows without an explicit max stretch to 1.5x p75 (at least p75 + 10)."""
        if isinstance(data, dict) and data.get("max") is None and data.get("p75") is not None:
            p75 = float(data["p75"])
            data = {**data, "max": max(p75 * 1.5, p75 + 10)}
        return data


class RankMove(BaseModel):
    """A freestyle move belonging to one rank tier."""
    id: str
    rank: int = Field(ge=1)
    name: str = ""


class MetricScore(BaseModel):
    id: str
    label: str = ""
    unit: Optional[str] = None
    value: Optional[float] = None
    score: float = 0
    rating: str = "untested"
    description: Optional[str] = None
    percentile: Optional[int] = None


class QualityScore(BaseModel):
    """One measurement scored against its benchmark row."""
    metric: str
    quality: str
    value: float
    score: int
    reference: int
    normalized: int
    p50: float


class RankMastery(BaseModel):
    rank: int
    mastered: int
    total: int


class Tier(BaseModel):
    title: str
    index: int
    threshold: float = 0


class CompositeReport(BaseModel):
    gender: Gender
    age: Optional[int] = None
    inputs: Dict[str, float] = Field(default_factory=dict)
    scores: Dict[str, MetricScore] = Field(default_factory=dict)
    benchmark_scores: Dict[str, QualityScore] = Field(default_factory=dict)
    body: Dict[str, MetricScore] = Field(default_factory=dict)
    radar: Dict[str, int] = Field(default_factory=dict)
    total_score: float = 0
    tier: Tier
    highest_rank: int = 0
    mastered_rank_count: int = 0
    rank_mastery: List[RankMastery] = Field(default_factory=list)
    growth_stage_index: int = 0
    honor_title: str = ""
