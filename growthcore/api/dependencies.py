"""
FastAPI dependency injection for growthcore services.
"""

from typing import Annotated

from fastapi import Depends, Request

from growthcore.core import GrowthCore


def get_core(request: Request) -> GrowthCore:
    """Get GrowthCore singleton from lifespan state."""
    return request.app.state.core


CoreDep = Annotated[GrowthCore, Depends(get_core)]
