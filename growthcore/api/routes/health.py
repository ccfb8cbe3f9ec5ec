"""
Health check endpoint.
"""

import time
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from growthcore.api.dependencies import CoreDep
from growthcore.shared.exceptions import GrowthCoreError
from growthcore.shared.logging import get_logger
from growthcore.store import base as tables

logger = get_logger(__name__)

router = APIRouter(tags=["health"])

# Track startup time for uptime
_start_time: Optional[float] = None


def set_start_time(t: float):
    """Set application start time."""
    global _start_time
    _start_time = t


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str
    store_ok: bool
    students: int
    uptime_seconds: float


@router.get("/health", response_model=HealthResponse)
def health_check(core: CoreDep):
    """
    Service health check.
    Returns status, store reachability, student count and uptime.
    """
    store_ok = False
    students = 0
    try:
        students = len(core.store.all(tables.STUDENTS))
        store_ok = True
    except GrowthCoreError as e:
        logger.warning(f"Health check store read failed: {e}")

    uptime_seconds = 0.0
    if _start_time:
        uptime_seconds = round(time.time() - _start_time, 2)

    return HealthResponse(
        status="healthy" if store_ok else "degraded",
        store_ok=store_ok,
        students=students,
        uptime_seconds=uptime_seconds,
    )
