"""
Usage quota checks and counters.

Daily counters (``daily_*``) get one row per user per quota day, created
lazily on first check. Other counters (``vocabulary_words``) keep a single
row with no period that only tracks usage: their limit is always taken from
the trial or plan currently in force, so a cap never outlives the plan that
set it.
"""
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, day_bounds, utcnow
from core.logging import get_logger
from models.models import User
from schemas.subscription import QuotaStatus, SubscriptionInfo
from services import quota_store
from services.quota_store import COUNTER_LIMIT_FIELDS, DAILY_LIMIT_FIELDS
from services.subscription_service import SubscriptionService
from services.trial_service import AI_CHAT_RESOURCE, TrialService

logger = get_logger("quota")


def derive_daily_limit(info: SubscriptionInfo, resource_type: str) -> Optional[int]:
    """
    Limit for a new daily row: the trial's limits while trialing, else the
    subscription plan's, else unlimited.
    """
    field = DAILY_LIMIT_FIELDS.get(resource_type)
    if field is None:
        return None
    if info.trial is not None and info.trial.is_active:
        return getattr(TrialService.get_trial_permissions(), field)
    if info.subscription is not None and info.subscription.plan is not None:
        return getattr(info.subscription.plan, field)
    return None


def derive_counter_limit(info: SubscriptionInfo, resource_type: str) -> Optional[int]:
    """Limit of a non-daily counter under the resolved permission set."""
    field = COUNTER_LIMIT_FIELDS.get(resource_type)
    if field is None:
        return None
    return getattr(info.permissions, field)


def _status(used: int, limit: Optional[int], reset_at=None) -> QuotaStatus:
    if limit is None:
        return QuotaStatus(can_use=True, used=used, limit=None, remaining=None, reset_at=reset_at)
    return QuotaStatus(
        can_use=used < limit,
        used=used,
        limit=limit,
        remaining=max(0, limit - used),
        reset_at=reset_at,
    )


class QuotaService:
    """Reads and advances per-user usage counters."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock
        self.subscriptions = SubscriptionService(db, clock)
        self.trials = TrialService(db, clock)

    async def check_usage_quota(self, user_id: int, resource_type: str,
                                info: Optional[SubscriptionInfo] = None) -> QuotaStatus:
        """
        Current usage of ``resource_type``.

        ``info`` is the caller's already resolved entitlement, if it has one;
        otherwise it is resolved here when needed.
        """
        try:
            if quota_store.is_daily(resource_type):
                return await self._check_daily(user_id, resource_type, info)
            return await self._check_counter(user_id, resource_type, info)
        except SQLAlchemyError as e:
            logger.error("Failed to check usage quota",
                         user_id=user_id, resource_type=resource_type, error=str(e))
            await self.db.rollback()
            return QuotaStatus(can_use=False, used=0, limit=0, remaining=0)

    async def _check_counter(self, user_id: int, resource_type: str,
                             info: Optional[SubscriptionInfo]) -> QuotaStatus:
        info = info or await self.subscriptions.get_user_subscription_info(user_id)
        limit = derive_counter_limit(info, resource_type)
        row = await quota_store.get_latest_row(self.db, user_id, resource_type)

        if row is None:
            if limit is None or info.reason == "USER_NOT_FOUND":
                return _status(0, limit)
            used = 0
            if resource_type == "vocabulary_words":
                used = await quota_store.count_vocabulary_words(self.db, user_id)
            await quota_store.save_counter(self.db, user_id, resource_type, used, limit)
            await self.db.commit()
            logger.debug("Created usage counter", user_id=user_id,
                         resource_type=resource_type, used=used, limit=limit)
            return _status(used, limit)

        used = row.used_count
        if row.limit_count != limit:
            # The plan in force changed since the row was written
            await quota_store.set_row_limit(self.db, row.id, limit)
            await self.db.commit()
        return _status(used, limit)

    async def _check_daily(self, user_id: int, resource_type: str,
                           info: Optional[SubscriptionInfo]) -> QuotaStatus:
        period_start, period_end = day_bounds(self.clock())
        row = await quota_store.get_daily_row(self.db, user_id, resource_type, period_start)

        if row is None:
            info = info or await self.subscriptions.get_user_subscription_info(user_id)
            limit = derive_daily_limit(info, resource_type)
            if limit is None:
                return _status(0, None, reset_at=period_end)

            await quota_store.create_daily_row_if_absent(
                self.db, user_id, resource_type, period_start, period_end, limit
            )
            await self.db.commit()
            # Another request may have created it first; read whichever won
            row = await quota_store.get_daily_row(self.db, user_id, resource_type, period_start)
            if row is None:
                return _status(0, limit, reset_at=period_end)
            logger.debug("Created daily usage row", user_id=user_id,
                         resource_type=resource_type, limit=row.limit_count)

        return _status(row.used_count, row.limit_count, reset_at=period_end)

    async def _user_in_trial(self, user_id: int) -> bool:
        user = await self.db.get(User, user_id)
        return user is not None and TrialService.is_in_trial(user, self.clock())

    async def increment_usage(self, user_id: int, resource_type: str, amount: int = 1) -> None:
        """Record usage after a successful action. Failures are logged, never raised."""
        try:
            if resource_type == AI_CHAT_RESOURCE and await self._user_in_trial(user_id):
                await self.trials.increment_ai_chat_usage(user_id)
                return

            row = await self._current_row(user_id, resource_type)
            if row is None:
                logger.warning("No usage row to increment",
                               user_id=user_id, resource_type=resource_type)
                return

            await quota_store.increment_row(self.db, row.id, amount)
            await self.db.commit()
            logger.debug("Usage incremented", user_id=user_id,
                         resource_type=resource_type, amount=amount)
        except SQLAlchemyError as e:
            logger.error("Failed to increment usage",
                         user_id=user_id, resource_type=resource_type, error=str(e))
            await self.db.rollback()

    async def consume_usage(self, user_id: int, resource_type: str, amount: int = 1) -> bool:
        """
        Check and count in one statement.

        Returns False when the counter would exceed its limit. Without a row
        the check's verdict stands: unlimited, or denied if storage failed.
        """
        status = await self.check_usage_quota(user_id, resource_type)
        try:
            row = await self._current_row(user_id, resource_type)
            if row is None:
                return status.can_use
            consumed = await quota_store.consume_row(self.db, row.id, amount)
            await self.db.commit()
            return consumed
        except SQLAlchemyError as e:
            logger.error("Failed to consume usage",
                         user_id=user_id, resource_type=resource_type, error=str(e))
            await self.db.rollback()
            return False

    async def _current_row(self, user_id: int, resource_type: str):
        if quota_store.is_daily(resource_type):
            period_start, _ = day_bounds(self.clock())
            return await quota_store.get_daily_row(self.db, user_id, resource_type, period_start)
        return await quota_store.get_latest_row(self.db, user_id, resource_type)
