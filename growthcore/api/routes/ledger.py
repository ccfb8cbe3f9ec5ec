"""
Student ledger endpoints: registration, points, energy and balances.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from growthcore.api.dependencies import CoreDep
from growthcore.ledger.replay import energy_level, points_snapshot
from growthcore.models import Balance, EnergyLog, EnergySource, PointEventType, Student

router = APIRouter(prefix="/students", tags=["ledger"])


class AwardPointsRequest(BaseModel):
    session_id: str
    type: PointEventType
    points: float = Field(ge=0)
    reason: Optional[str] = None


class AwardPointsResponse(BaseModel):
    applied: int


class GrantEnergyRequest(BaseModel):
    amount: int = Field(ge=0)
    source: EnergySource
    ref: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class GrantEnergyResponse(BaseModel):
    granted: bool


class EnergyLevelResponse(BaseModel):
    energy: int
    level: int
    progress: float
    next_level_at: int


@router.post("", response_model=Student, status_code=201)
def register_student(student: Student, core: CoreDep):
    return core.register_student(student)


@router.get("/{student_id}", response_model=Student)
def get_student(student_id: str, core: CoreDep):
    return core.ledger.require_student(student_id)


@router.post("/{student_id}/points", response_model=AwardPointsResponse)
def award_points(student_id: str, body: AwardPointsRequest, core: CoreDep):
    applied = core.award_points(student_id, body.session_id, body.type, body.points, body.reason)
    return AwardPointsResponse(applied=applied)


@router.get("/{student_id}/points")
def points_history(student_id: str, core: CoreDep):
    core.ledger.require_student(student_id)
    snapshot = points_snapshot(core.ledger.list_point_events(student_id))
    return {
        "total": snapshot.total,
        "breakdown": snapshot.breakdown,
        "series": [{"date": d, "delta": delta, "total": total} for d, delta, total in snapshot.series],
    }


@router.post("/{student_id}/energy", response_model=GrantEnergyResponse)
def grant_energy(student_id: str, body: GrantEnergyRequest, core: CoreDep):
    granted = core.grant_energy(student_id, body.amount, body.source, tuple(body.ref), body.metadata)
    return GrantEnergyResponse(granted=granted)


@router.get("/{student_id}/energy", response_model=EnergyLevelResponse)
def energy_status(student_id: str, core: CoreDep):
    student = core.ledger.require_student(student_id)
    level, progress, next_level_at = energy_level(student.energy, core.settings.energy.level_span)
    return EnergyLevelResponse(
        energy=student.energy, level=level, progress=round(progress, 3), next_level_at=next_level_at
    )


@router.get("/{student_id}/energy/logs", response_model=List[EnergyLog])
def energy_logs(student_id: str, core: CoreDep):
    core.ledger.require_student(student_id)
    return sorted(core.ledger.list_energy_logs(student_id), key=lambda log: log.created_at)


@router.get("/{student_id}/balance", response_model=Balance)
def get_balance(student_id: str, core: CoreDep):
    return core.get_balance(student_id)


@router.get("/{student_id}/energy/history")
def energy_history(student_id: str, core: CoreDep):
    return [
        {"created_at": created_at, "delta": delta, "total": total}
        for created_at, delta, total in core.energy_history(student_id)
    ]
