"""
Admin router for plan management, subscription assignment and overview stats.
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, Path
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, get_clock
from core.exceptions import ResourceNotFoundException
from core.logging import get_logger
from core.security import get_current_admin_user
from db_config import get_async_db
from models.models import SubscriptionStatusEnum, User, UserSubscription, VocabularyItem
from schemas.subscription import PlanRead, PlanUpsert, SubscriptionAssign, SubscriptionInfo, SubscriptionRead
from services.subscription_service import SubscriptionService

router = APIRouter(prefix="/admin", tags=["Admin"], dependencies=[Depends(get_current_admin_user)])

logger = get_logger("admin")


def get_subscription_service(
    db: AsyncSession = Depends(get_async_db), clock: Clock = Depends(get_clock)
) -> SubscriptionService:
    return SubscriptionService(db, clock)


@router.put("/plans/{plan_id}", response_model=PlanRead)
async def upsert_plan(
    data: PlanUpsert,
    plan_id: str = Path(..., min_length=1, max_length=50),
    service: SubscriptionService = Depends(get_subscription_service),
):
    """Create or replace a subscription plan."""
    return await service.upsert_plan(plan_id, data)


@router.put("/users/{user_id}/subscription", response_model=SubscriptionRead)
async def assign_subscription(
    user_id: int,
    data: SubscriptionAssign,
    service: SubscriptionService = Depends(get_subscription_service),
):
    return await service.assign_subscription(user_id, data.plan_id, data.status, data.period_days)


@router.get("/users/{user_id}/entitlements", response_model=SubscriptionInfo)
async def get_user_entitlements(
    user_id: int,
    service: SubscriptionService = Depends(get_subscription_service),
):
    """What the resolver grants this user right now."""
    info = await service.get_user_subscription_info(user_id)
    if info.reason == "USER_NOT_FOUND":
        raise ResourceNotFoundException("User not found")
    return info


@router.get("/analytics/overview")
async def analytics_overview(
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
) -> Dict[str, Any]:
    """Headline counts for the admin dashboard."""
    now = clock()

    total_users = await db.scalar(select(func.count(User.id))) or 0
    active_users = await db.scalar(select(func.count(User.id)).where(User.is_active.is_(True))) or 0
    trials_used = await db.scalar(select(func.count(User.id)).where(User.has_used_trial.is_(True))) or 0
    active_trials = await db.scalar(
        select(func.count(User.id)).where(User.trial_expires_at > now)
    ) or 0
    active_subscriptions = await db.scalar(
        select(func.count(UserSubscription.id)).where(
            UserSubscription.status == SubscriptionStatusEnum.active,
            or_(UserSubscription.current_period_end.is_(None), UserSubscription.current_period_end >= now),
        )
    ) or 0
    vocabulary = (await db.execute(
        select(
            func.count(VocabularyItem.id),
            func.count(VocabularyItem.id).filter(VocabularyItem.mastered.is_(True)),
            func.coalesce(func.sum(VocabularyItem.review_count), 0),
        )
    )).one()

    logger.debug("Analytics overview computed", total_users=total_users)
    return {
        "users": {"total": total_users, "active": active_users},
        "trials": {"used": trials_used, "active": active_trials},
        "subscriptions": {"active": active_subscriptions},
        "vocabulary": {
            "total_words": vocabulary[0],
            "mastered_words": vocabulary[1],
            "total_reviews": int(vocabulary[2]),
        },
        "generated_at": now,
    }
