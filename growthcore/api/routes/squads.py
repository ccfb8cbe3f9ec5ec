"""
Squad and squad challenge endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from growthcore.api.dependencies import CoreDep
from growthcore.models import Squad, SquadChallenge, SquadProgressLog

router = APIRouter(prefix="/squads", tags=["squads"])


class CreateSquadRequest(BaseModel):
    name: str
    member_ids: List[str]
    class_id: Optional[str] = None
    season_code: Optional[str] = None


class CreateChallengeRequest(BaseModel):
    title: str
    target: float
    unit: str = "count"
    start_date: Optional[str] = None
    end_date: Optional[str] = None


class ProgressRequest(BaseModel):
    value: float = Field(gt=0)
    by: str = "coach"
    created_by: str = ""
    ref_session_id: Optional[str] = None
    note: Optional[str] = None


@router.post("", response_model=Squad, status_code=201)
def create_squad(body: CreateSquadRequest, core: CoreDep):
    return core.squads.create_squad(body.name, body.member_ids, body.class_id, body.season_code)


@router.get("", response_model=List[Squad])
def list_squads(core: CoreDep, class_id: Optional[str] = None, student_id: Optional[str] = None):
    if student_id:
        return core.squads.list_for_student(student_id)
    if class_id:
        return core.squads.list_by_class(class_id)
    return []


@router.post("/{squad_id}/challenges", response_model=SquadChallenge, status_code=201)
def create_challenge(squad_id: str, body: CreateChallengeRequest, core: CoreDep):
    return core.squads.create_challenge(
        squad_id, body.title, body.target, body.unit, body.start_date, body.end_date
    )


@router.get("/{squad_id}/challenges", response_model=List[SquadChallenge])
def list_challenges(squad_id: str, core: CoreDep):
    core.squads.get_squad(squad_id)
    return core.squads.list_challenges(squad_id)


@router.post("/challenges/{challenge_id}/progress", response_model=SquadChallenge)
def add_progress(challenge_id: str, body: ProgressRequest, core: CoreDep):
    return core.add_squad_progress(
        challenge_id,
        body.value,
        by=body.by,
        created_by=body.created_by,
        ref_session_id=body.ref_session_id,
        note=body.note,
    )


@router.get("/challenges/{challenge_id}/progress", response_model=List[SquadProgressLog])
def list_progress(challenge_id: str, core: CoreDep):
    core.squads.get_challenge(challenge_id)
    return core.squads.list_progress_logs(challenge_id)
