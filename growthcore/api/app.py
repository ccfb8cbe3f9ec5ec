"""
growthcore FastAPI application.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from growthcore.api.routes import assessment, health, ledger, market, squads
from growthcore.core import GrowthCore
from growthcore.shared.config import settings
from growthcore.shared.exceptions import (
    ConcurrencyConflictError,
    GrowthCoreError,
    NotFoundError,
    ValidationError,
)
from growthcore.shared.logging import get_logger

logger = get_logger(__name__)


def _lifespan(core: Optional[GrowthCore]):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: startup and shutdown."""
        logger.info("Starting growthcore API")
        app.state.core = core or GrowthCore()
        health.set_start_time(time.time())
        logger.info("growthcore API ready")
        yield
        logger.info("growthcore API stopped")

    return lifespan


def _register_error_handlers(app: FastAPI):
    @app.exception_handler(NotFoundError)
    async def not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def invalid(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ConcurrencyConflictError)
    async def conflict(request: Request, exc: ConcurrencyConflictError):
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(GrowthCoreError)
    async def failure(request: Request, exc: GrowthCoreError):
        logger.error(f"Unhandled growthcore error on {request.url.path}: {exc}")
        return JSONResponse(status_code=500, content={"detail": "Internal error"})


def create_app(core: Optional[GrowthCore] = None) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        core: Prebuilt GrowthCore (tests pass one over a temporary store);
            built from settings at startup when omitted
    """
    app = FastAPI(
        title="growthcore",
        description="Points, energy, squad challenges, rewards market and fitness scoring",
        version="0.1.0",
        lifespan=_lifespan(core),
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_error_handlers(app)

    app.include_router(health.router)
    app.include_router(ledger.router)
    app.include_router(squads.router)
    app.include_router(market.router)
    app.include_router(assessment.router)

    @app.get("/")
    async def root():
        return {"service": "growthcore", "status": "running"}

    return app


app = create_app()


def main():
    """CLI entry point for uvicorn."""
    import uvicorn

    uvicorn.run(
        "growthcore.api.app:app",
        host=settings.api.host,
        port=settings.api.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
