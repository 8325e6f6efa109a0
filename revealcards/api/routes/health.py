from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from redis.asyncio import Redis
from sqlalchemy import text

from revealcards.core.config import get_settings
from revealcards.db.session import SessionLocal
from revealcards.workers.celery_app import celery_app

router = APIRouter(tags=["health"])
logger = structlog.get_logger(__name__)

CheckResult = dict[str, Any]

CELERY_PING_TIMEOUT_SECONDS = 1.0


def _failed(dependency: str, error: str, exc: Exception | None = None) -> CheckResult:
    # Driver and broker messages can embed credentials; only the exception type is logged.
    logger.warning(
        "health_check_failed",
        dependency=dependency,
        error=error,
        error_type=type(exc).__name__ if exc is not None else None,
    )
    return {"status": "failed", "error": error}


async def _check_database() -> CheckResult:
    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:
        return _failed("database", "database_unavailable", exc)
    return {"status": "ok"}


async def _check_redis() -> CheckResult:
    try:
        async with Redis.from_url(get_settings().redis_url) as client:
            pong = await client.ping()
    except Exception as exc:
        return _failed("redis", "redis_unavailable", exc)
    if pong is not True:
        return _failed("redis", "redis_unexpected_response")
    return {"status": "ok"}


def _check_celery_worker_sync() -> CheckResult:
    try:
        inspector = celery_app.control.inspect(timeout=CELERY_PING_TIMEOUT_SECONDS)
        replies = inspector.ping() if inspector is not None else None
    except Exception as exc:
        return _failed("celery", "celery_unavailable", exc)
    if not replies:
        return _failed("celery", "celery_no_workers")
    return {"status": "ok", "workers": len(replies)}


async def _check_celery_worker() -> CheckResult:
    return await asyncio.to_thread(_check_celery_worker_sync)


async def _run_checks(
    checks: dict[str, Callable[[], Awaitable[CheckResult]]],
) -> tuple[bool, dict[str, CheckResult]]:
    names = list(checks)
    results = await asyncio.gather(*(checks[name]() for name in names))
    by_name = dict(zip(names, results, strict=True))
    return all(result.get("status") == "ok" for result in results), by_name


@router.get("/health")
async def health() -> JSONResponse:
    healthy, checks = await _run_checks(
        {
            "database": _check_database,
            "redis": _check_redis,
            "celery": _check_celery_worker,
        }
    )
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ok" if healthy else "degraded", "checks": checks},
    )


@router.get("/ready")
async def ready() -> JSONResponse:
    # Payments are also reconciled on the redirect path, so a missing worker does not block traffic.
    is_ready, checks = await _run_checks({"database": _check_database, "redis": _check_redis})
    return JSONResponse(
        status_code=status.HTTP_200_OK if is_ready else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "ready" if is_ready else "not_ready", "checks": checks},
    )


@router.get("/live")
async def live() -> dict[str, str]:
    return {"status": "live"}
