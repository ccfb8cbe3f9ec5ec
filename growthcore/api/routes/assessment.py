"""
Assessment scoring, benchmark and progress-curve endpoints.
"""

from typing import Dict, List, Optional, Tuple

from fastapi import APIRouter, Query
from pydantic import BaseModel, Field

from growthcore.api.dependencies import CoreDep
from growthcore.models import Benchmark, CompositeReport, Gender, RankMove

router = APIRouter(prefix="/assessments", tags=["assessment"])


class AssessmentRequest(BaseModel):
    measurements: Dict[str, Optional[float]]
    gender: Optional[Gender] = None
    age: Optional[int] = None
    passed_move_ids: List[str] = Field(default_factory=list)
    rank_moves: List[RankMove] = Field(default_factory=list)


class QualityScoreRequest(BaseModel):
    value: float
    quality: str
    age: Optional[float] = None
    gender: Optional[Gender] = None
    unit: Optional[str] = None


class QualityScoreResponse(BaseModel):
    score: float
    benchmark: Optional[Benchmark] = None


class TrajectoryRequest(BaseModel):
    """Per-session inputs: (date, 30 s rep counts) and (date, ranks passed)."""
    speed_sessions: List[Tuple[str, List[float]]] = Field(default_factory=list)
    rank_sessions: List[Tuple[str, List[int]]] = Field(default_factory=list)


class TrajectoryPoint(BaseModel):
    date: str
    rank: int


class TrajectoryResponse(BaseModel):
    speed_rank: List[TrajectoryPoint]
    rank: List[TrajectoryPoint]


@router.post("/score", response_model=CompositeReport)
def score_assessment(body: AssessmentRequest, core: CoreDep):
    return core.score_assessment(
        body.measurements, body.gender, body.age, body.passed_move_ids, body.rank_moves
    )


@router.post("/benchmarks/score", response_model=QualityScoreResponse)
def score_quality(body: QualityScoreRequest, core: CoreDep):
    score, row = core.score_quality(body.value, body.quality, body.age, body.gender, body.unit)
    return QualityScoreResponse(score=round(score, 1), benchmark=row)


@router.get("/benchmarks/gaps", response_model=List[int])
def benchmark_gaps(
    core: CoreDep,
    quality: str,
    min_age: int = Query(6, ge=0),
    max_age: int = Query(17, ge=0),
    gender: Optional[Gender] = None,
):
    return core.benchmark_gaps(quality, min_age, max_age, gender)


@router.get("/height-curve/{gender}")
def height_curve(
    gender: Gender,
    core: CoreDep,
    min_age: float = Query(6, ge=0),
    max_age: float = Query(17, ge=0),
    step: float = Query(0.5, gt=0),
):
    return [
        {"age": p.age, "p3": p.p3, "p50": p.p50, "p97": p.p97}
        for p in core.height_curve(gender, min_age, max_age, step)
    ]


@router.post("/trajectories", response_model=TrajectoryResponse)
def trajectories(body: TrajectoryRequest, core: CoreDep):
    return TrajectoryResponse(
        speed_rank=[TrajectoryPoint(date=d, rank=r) for d, r in core.speed_rank_trajectory(body.speed_sessions)],
        rank=[TrajectoryPoint(date=d, rank=r) for d, r in core.rank_trajectory(body.rank_sessions)],
    )
