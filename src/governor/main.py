"""
FastAPI application entry point.
"""

from __future__ import annotations

import asyncio
import hashlib
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

from governor import __version__
from governor.billing.ledger import SqlLedgerReader
from governor.campaigns.repository import CampaignConfigRepository, CampaignRunRepository
from governor.config import get_settings
from governor.dialer.router import router as dialer_router
from governor.launch.executor import get_run_executor
from governor.launch.sequencer import LaunchSequencer
from governor.leads.repository import LeadRepository
from governor.scheduling.trigger import AutoScheduleTrigger
from governor.shared.database import get_database_manager
from governor.shared.exceptions import (
    ConcurrentLaunchError,
    GovernorError,
    NotFoundError,
    TransientFault,
)
from governor.shared.logging import get_logger, setup_logging

logger = get_logger(__name__)


def _advisory_lock_id(key: str) -> int:
    """Derive a stable signed bigint lock id from an arbitrary string key."""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=False) & 0x7FFF_FFFF_FFFF_FFFF


async def _auto_schedule_tick() -> None:
    settings = get_settings()
    async with get_database_manager().session() as session:
        configs = CampaignConfigRepository(session, settings.default_timezone)
        runs = CampaignRunRepository(session)
        sequencer = LaunchSequencer(
            configs=configs,
            runs=runs,
            ledger=SqlLedgerReader(session),
            leads=LeadRepository(session),
            executor=get_run_executor(),
            settings=settings,
        )
        trigger = AutoScheduleTrigger(
            configs=configs,
            runs=runs,
            sequencer=sequencer,
        )
        await trigger.run_once()


async def _leader_loop(interval: int) -> None:
    while True:
        try:
            await _auto_schedule_tick()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Auto-schedule tick failed")
        await asyncio.sleep(interval)


async def _auto_schedule_supervisor(app: FastAPI) -> None:
    """Run the auto-schedule loop only on the process holding the DB lock.

    Keeps the trigger single-fire under ``uvicorn --workers N`` and multiple
    replicas. Non-Postgres databases (local dev) run the loop unlocked.
    """
    settings = get_settings()
    db_manager = get_database_manager()

    lock_id = _advisory_lock_id(settings.auto_schedule_lock_key)
    interval = settings.auto_schedule_interval_seconds
    retry_sleep = 5

    logger.info(
        "Auto-schedule supervisor starting",
        extra={"interval_seconds": interval, "lock_id": lock_id},
    )

    if not db_manager.supports_advisory_locks:
        logger.info("Advisory locks unavailable; running auto-schedule unlocked")
        await _leader_loop(interval)
        return

    while True:
        try:
            # Dedicated connection used to hold the advisory lock.
            async with db_manager.engine.connect() as conn:
                res = await conn.execute(
                    text("SELECT pg_try_advisory_lock(:lock_id)"),
                    {"lock_id": lock_id},
                )
                if not bool(res.scalar()):
                    logger.info(
                        "Auto-schedule leader lock busy; standby",
                        extra={"lock_id": lock_id, "sleep_seconds": retry_sleep},
                    )
                    await asyncio.sleep(retry_sleep)
                    continue

                logger.info("Auto-schedule leader lock acquired", extra={"lock_id": lock_id})
                await _leader_loop(interval)

        except asyncio.CancelledError:
            logger.info("Auto-schedule supervisor cancelled; stopping")
            raise
        except Exception:
            logger.exception(
                "Auto-schedule supervisor error; retrying",
                extra={"sleep_seconds": retry_sleep},
            )
            await asyncio.sleep(retry_sleep)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    settings = get_settings()

    logger.info("Application starting", extra={"env": settings.app_env})

    app.state.auto_schedule_task = None
    if settings.auto_schedule_enabled:
        app.state.auto_schedule_task = asyncio.create_task(_auto_schedule_supervisor(app))
        logger.info("Auto-schedule enabled; background task created")

    yield

    logger.info("Shutting down application")

    task = app.state.auto_schedule_task
    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Auto-schedule background task stopped")

    await get_run_executor().close()
    await get_database_manager().close()
    logger.info("Application shutdown complete")


def _status_for(exc: GovernorError) -> int:
    if isinstance(exc, TransientFault):
        return status.HTTP_503_SERVICE_UNAVAILABLE
    if isinstance(exc, ConcurrentLaunchError):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Autodialer Governor API",
        description="Decides whether an account's autodialer campaign may run",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Map domain exceptions to HTTP responses
    @app.exception_handler(GovernorError)
    async def _governor_error(request: Request, exc: GovernorError) -> JSONResponse:
        logger.info(
            "Governor request refused",
            extra={"endpoint": str(request.url.path), "kind": exc.kind},
        )
        return JSONResponse(status_code=_status_for(exc), content=exc.to_payload())

    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=422,
            content={
                "error": "validation",
                "message": "Request validation failed",
                "remedy": "/dashboard/settings/dialer-automation",
                "errors": errors,
            },
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(dialer_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/api/dialer/health")
    async def dialer_health_check() -> dict[str, str]:
        return {"status": "healthy", "version": __version__}

    return app


app = create_app()
