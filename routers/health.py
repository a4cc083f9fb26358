"""
Operational checks: database reachability, plan catalog, Gemini configuration
and process resources. The plain ``/health`` answer lives in app.py.
"""
import time

import psutil
import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, get_clock
from core.config import settings
from db_config import get_async_db
from models.models import SubscriptionPlan, SubscriptionStatusEnum, User, UserSubscription

router = APIRouter(prefix="/health", tags=["Health"])
logger = structlog.get_logger("health")

MEMORY_WARNING_PERCENT = 90


async def database_status(db: AsyncSession) -> dict:
    started = time.perf_counter()
    try:
        user_count = await db.scalar(select(func.count(User.id)))
        plan_count = await db.scalar(
            select(func.count(SubscriptionPlan.id)).where(SubscriptionPlan.is_active.is_(True))
        )
        active_subscriptions = await db.scalar(
            select(func.count(UserSubscription.id))
            .where(UserSubscription.status == SubscriptionStatusEnum.active)
        )
    except SQLAlchemyError as e:
        logger.error("Database check failed", error=str(e))
        return {"status": "unhealthy", "error": str(e)}

    return {
        "status": "healthy",
        "latency_ms": round((time.perf_counter() - started) * 1000, 2),
        "user_count": user_count,
        "active_subscriptions": active_subscriptions,
        # An empty plan table is served from the built-in catalog
        "plan_source": "table" if plan_count else "built_in_catalog",
    }


def process_status() -> dict:
    try:
        memory = psutil.virtual_memory()
        process = psutil.Process()
        return {
            "status": "degraded" if memory.percent > MEMORY_WARNING_PERCENT else "healthy",
            "memory_percent_used": memory.percent,
            "process_rss_mb": round(process.memory_info().rss / (1024 ** 2), 1),
        }
    except (OSError, psutil.Error) as e:
        logger.error("Resource check failed", error=str(e))
        return {"status": "unknown", "error": str(e)}


@router.get("/detailed", summary="Dependency status")
async def detailed_health_check(
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
):
    database = await database_status(db)
    resources = process_status()

    if database["status"] != "healthy":
        overall = "unhealthy"
    elif resources["status"] == "degraded":
        overall = "degraded"
    else:
        overall = "healthy"

    report = {
        "overall_status": overall,
        "timestamp": clock().isoformat(),
        "version": settings.app_version,
        "database": database,
        "gemini": {"configured": bool(settings.gemini_api_key), "model": settings.gemini_model},
        "resources": resources,
    }
    logger.info("Detailed health check", status=overall)
    if overall == "unhealthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=report)
    return report


@router.get("/database", summary="Database status")
async def database_health_check(db: AsyncSession = Depends(get_async_db)):
    result = await database_status(db)
    if result["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result)
    return result


@router.get("/readiness", summary="Ready to serve traffic")
async def readiness_check(db: AsyncSession = Depends(get_async_db)):
    if (await database_status(db))["status"] != "healthy":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service not ready")
    return {"status": "ready"}


@router.get("/liveness", summary="Process is up")
async def liveness_check(clock: Clock = Depends(get_clock)):
    return {"status": "alive", "timestamp": clock().isoformat()}
