"""
Rewards market endpoints.
"""

from typing import List, Optional

from fastapi import APIRouter
from pydantic import BaseModel

from growthcore.api.dependencies import CoreDep
from growthcore.models import ExchangeStatus, RedeemResult, RewardItem, StudentExchange

router = APIRouter(prefix="/market", tags=["market"])


class RedeemRequest(BaseModel):
    student_id: str
    reward_id: str


class ExchangeStatusRequest(BaseModel):
    status: ExchangeStatus
    note: Optional[str] = None


@router.get("/rewards", response_model=List[RewardItem])
def list_rewards(core: CoreDep, include_hidden: bool = False, type: Optional[str] = None):
    return core.market.list_rewards(include_hidden=include_hidden, reward_type=type)


@router.put("/rewards/{reward_id}", response_model=RewardItem)
def save_reward(reward_id: str, reward: RewardItem, core: CoreDep):
    return core.market.save_reward(reward.model_copy(update={"id": reward_id}))


@router.post("/redeem", response_model=RedeemResult)
def redeem(body: RedeemRequest, core: CoreDep):
    """Refusals are returned with ok=false and HTTP 200."""
    return core.redeem(body.student_id, body.reward_id)


@router.get("/exchanges/{student_id}", response_model=List[StudentExchange])
def list_exchanges(student_id: str, core: CoreDep, limit: Optional[int] = None):
    return core.market.list_exchanges(student_id, limit)


@router.patch("/exchanges/{exchange_id}", response_model=StudentExchange)
def update_exchange_status(exchange_id: str, body: ExchangeStatusRequest, core: CoreDep):
    return core.market.update_exchange_status(exchange_id, body.status, body.note)
