"""
Feature and quota gates for routes.

Each ``require_*_access`` dependency resolves the caller's entitlements,
rejects the request with 403 when the feature is not included or today's
quota is used up, and otherwise hands the route an AccessContext. Routes call
``AccessContext.record_usage()`` only after their action has succeeded, so
failed actions are never counted.
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, day_bounds, get_clock
from core.config import settings
from core.exceptions import EntitlementDeniedException, QuotaExceededException
from core.logging import get_logger
from core.security import get_current_active_user
from db_config import get_async_db
from models.models import User
from schemas.subscription import QuotaStatus, SubscriptionInfo
from services.quota_service import QuotaService
from services.subscription_service import SubscriptionService
from services.trial_service import TrialService

logger = get_logger("access_control")

FEATURE_MESSAGES = {
    "ai_practice": "AI practice generation requires a premium subscription or an active trial",
    "ai_chat": "AI chat requires a premium subscription or an active trial",
    "export_data": "Data export requires a premium subscription or an active trial",
    "vocabulary": "Your plan does not include the vocabulary notebook",
    "view_mistakes": "Your plan does not include the mistake review",
}

QUOTA_MESSAGES = {
    "daily_practice": "You have reached today's practice limit",
    "daily_ai_chat": "You have reached today's AI chat limit",
    "vocabulary_words": "You have reached the vocabulary word limit for your plan",
}


@dataclass
class AccessContext:
    """What a gate decided, and the handle for counting usage afterwards."""
    user: User
    info: SubscriptionInfo
    quota: Optional[QuotaStatus]
    resource_type: Optional[str]
    quota_service: QuotaService

    async def record_usage(self, amount: int = 1) -> None:
        if self.resource_type:
            await self.quota_service.increment_usage(self.user.id, self.resource_type, amount)


async def _trial_chat_quota(db: AsyncSession, clock: Clock, user_id: int) -> QuotaStatus:
    """Trial chat allowance reported in the same shape as a quota check."""
    usage = await TrialService(db, clock).check_ai_chat_usage(user_id)
    _, reset_at = day_bounds(clock())
    if usage.remaining == -1:
        return QuotaStatus(can_use=True, used=0, limit=None, remaining=None, reset_at=reset_at)

    limit = settings.trial_daily_ai_chat_limit
    return QuotaStatus(
        can_use=usage.can_use,
        used=max(0, limit - usage.remaining),
        limit=limit,
        remaining=usage.remaining,
        reset_at=reset_at,
    )


async def check_access(
    user: User,
    db: AsyncSession,
    clock: Clock,
    feature: str,
    resource_type: Optional[str] = None,
) -> AccessContext:
    """
    Resolve entitlements and quota for ``feature``.

    Raises:
        EntitlementDeniedException: the feature is not in the permission set
        QuotaExceededException: the counter for ``resource_type`` is at its limit
    """
    info = await SubscriptionService(db, clock).get_user_subscription_info(user.id)

    if not getattr(info.permissions, feature):
        error_code = "TRIAL_EXPIRED" if info.reason == "TRIAL_EXPIRED" else "SUBSCRIPTION_REQUIRED"
        logger.info("Feature access denied", user_id=user.id, feature=feature,
                    reason=info.reason, error_code=error_code)
        raise EntitlementDeniedException(
            detail=FEATURE_MESSAGES.get(feature, "This feature requires a premium subscription"),
            error_code=error_code,
            trial_available=info.trial_available,
            upgrade_url=settings.upgrade_url,
        )

    quota_service = QuotaService(db, clock)
    quota = None
    if resource_type:
        if resource_type == "daily_ai_chat" and info.trial is not None and info.trial.is_active:
            quota = await _trial_chat_quota(db, clock, user.id)
        else:
            quota = await quota_service.check_usage_quota(user.id, resource_type, info)

        if not quota.can_use:
            logger.info("Usage limit reached", user_id=user.id, resource_type=resource_type,
                        used=quota.used, limit=quota.limit)
            raise QuotaExceededException(
                detail=QUOTA_MESSAGES.get(resource_type, "Usage limit reached"),
                used=quota.used,
                limit=quota.limit,
                remaining=quota.remaining,
                reset_at=quota.reset_at,
                upgrade_url=settings.upgrade_url,
            )

    return AccessContext(
        user=user,
        info=info,
        quota=quota,
        resource_type=resource_type,
        quota_service=quota_service,
    )


async def require_practice_access(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
) -> AccessContext:
    return await check_access(current_user, db, clock, "ai_practice", "daily_practice")


async def require_ai_chat_access(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
) -> AccessContext:
    return await check_access(current_user, db, clock, "ai_chat", "daily_ai_chat")


async def require_export_access(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
) -> AccessContext:
    return await check_access(current_user, db, clock, "export_data")


async def require_vocabulary_access(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
) -> AccessContext:
    return await check_access(current_user, db, clock, "vocabulary", "vocabulary_words")


async def require_mistakes_access(
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_async_db),
    clock: Clock = Depends(get_clock),
) -> AccessContext:
    return await check_access(current_user, db, clock, "view_mistakes")
