"""
Subscription entitlement resolver and plan/subscription management.

Resolution precedence for a user:
    1. an active standalone trial
    2. no subscription row (free tier)
    3. the subscription row and its plan
The resolver never raises for storage problems; it returns a denied result
with ``reason="INTERNAL_ERROR"`` instead.
"""
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, day_bounds, ensure_aware, utcnow
from core.exceptions import ResourceNotFoundException, ValidationException
from core.logging import get_logger
from models.models import (
    SubscriptionPlan, SubscriptionStatusEnum, User, UserSubscription
)
from schemas.subscription import (
    PlanRead, PlanUpsert, SubscriptionInfo, SubscriptionRead, TrialInfo
)
from services import plan_registry, quota_store
from services.trial_service import TrialService

logger = get_logger("subscription")


class SubscriptionService:
    """Resolves what a user may do, and manages plans and subscriptions."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def get_plan(self, plan_id: str) -> Optional[PlanRead]:
        """Plan from the table, else from the well-known registry."""
        plan = await self.db.get(SubscriptionPlan, plan_id)
        if plan:
            return PlanRead.model_validate(plan)
        return plan_registry.get_well_known_plan(plan_id)

    async def get_user_subscription_info(self, user_id: int) -> SubscriptionInfo:
        try:
            return await self._resolve(user_id)
        except SQLAlchemyError as e:
            logger.error("Failed to resolve subscription info", user_id=user_id, error=str(e))
            await self.db.rollback()
            return SubscriptionInfo(
                has_permission=False,
                permissions=plan_registry.denied_permissions(),
                trial_available=False,
                reason="INTERNAL_ERROR",
            )

    async def _resolve(self, user_id: int) -> SubscriptionInfo:
        now = self.clock()
        user = await self.db.get(User, user_id, populate_existing=True)
        if not user:
            return SubscriptionInfo(
                has_permission=False,
                permissions=plan_registry.denied_permissions(),
                trial_available=False,
                reason="USER_NOT_FOUND",
            )

        if TrialService.is_in_trial(user, now):
            return SubscriptionInfo(
                has_permission=True,
                permissions=TrialService.get_trial_permissions(),
                trial_available=False,
                trial=TrialInfo(
                    is_active=True,
                    started_at=ensure_aware(user.trial_started_at),
                    expires_at=ensure_aware(user.trial_expires_at),
                ),
            )

        trial_available = not user.has_used_trial
        trial = TrialInfo(
            is_active=False,
            started_at=ensure_aware(user.trial_started_at),
            expires_at=ensure_aware(user.trial_expires_at),
        )

        result = await self.db.execute(
            select(UserSubscription)
            .where(UserSubscription.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        subscription = result.scalar_one_or_none()

        if subscription is None:
            # The trial ran out and nothing replaced it
            reason = "TRIAL_EXPIRED" if user.trial_expires_at is not None else "NO_SUBSCRIPTION"
            return SubscriptionInfo(
                has_permission=False,
                permissions=plan_registry.free_tier_permissions(),
                trial_available=trial_available,
                trial=trial,
                reason=reason,
            )

        plan = await self.get_plan(subscription.plan_id)
        if plan is None:
            logger.error("Subscription references an unknown plan",
                         user_id=user_id, plan_id=subscription.plan_id)
            return SubscriptionInfo(
                has_permission=False,
                permissions=plan_registry.free_tier_permissions(),
                trial_available=False,
                trial=trial,
                reason="UNKNOWN_PLAN",
            )

        subscription_read = SubscriptionRead.model_validate(subscription).model_copy(update={"plan": plan})
        is_active = subscription.status == SubscriptionStatusEnum.active
        period_end = ensure_aware(subscription.current_period_end)
        is_expired = period_end is not None and period_end < now

        if not is_active or is_expired:
            return SubscriptionInfo(
                has_permission=False,
                permissions=plan_registry.free_tier_permissions(),
                trial_available=trial_available,
                subscription=subscription_read,
                trial=trial,
                reason="SUBSCRIPTION_EXPIRED" if is_expired else "SUBSCRIPTION_INACTIVE",
            )

        return SubscriptionInfo(
            has_permission=True,
            permissions=plan_registry.plan_permissions(plan),
            trial_available=False,
            subscription=subscription_read,
            trial=trial,
        )

    async def list_plans(self) -> List[PlanRead]:
        """Active plans by sort order; the built-in catalog when the table has none."""
        try:
            result = await self.db.execute(
                select(SubscriptionPlan)
                .where(SubscriptionPlan.is_active.is_(True))
                .order_by(SubscriptionPlan.sort_order, SubscriptionPlan.id)
            )
            plans = [PlanRead.model_validate(p) for p in result.scalars().all()]
        except SQLAlchemyError as e:
            logger.error("Failed to load plans, serving built-in catalog", error=str(e))
            return list(plan_registry.DEFAULT_PLANS)

        if not plans:
            logger.warning("Plan table is empty, serving built-in catalog")
            return list(plan_registry.DEFAULT_PLANS)
        return plans

    async def upsert_plan(self, plan_id: str, data: PlanUpsert) -> PlanRead:
        plan = await self.db.get(SubscriptionPlan, plan_id)
        if plan is None:
            plan = SubscriptionPlan(id=plan_id)
            self.db.add(plan)
        for field, value in data.model_dump().items():
            setattr(plan, field, value)
        await self.db.commit()
        await self.db.refresh(plan)

        logger.info("Subscription plan saved", plan_id=plan_id)
        return PlanRead.model_validate(plan)

    async def seed_default_plans(self) -> int:
        """Insert catalog plans missing from the table. Returns how many were added."""
        added = 0
        for default in plan_registry.DEFAULT_PLANS:
            if await self.db.get(SubscriptionPlan, default.id) is None:
                self.db.add(SubscriptionPlan(**default.model_dump()))
                added += 1
        await self.db.commit()
        if added:
            logger.info("Seeded subscription plans", count=added)
        return added

    async def _get_subscription(self, user_id: int) -> UserSubscription:
        result = await self.db.execute(
            select(UserSubscription)
            .where(UserSubscription.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        subscription = result.scalar_one_or_none()
        if not subscription:
            raise ResourceNotFoundException("No subscription found")
        return subscription

    async def _to_read(self, subscription: UserSubscription) -> SubscriptionRead:
        plan = await self.get_plan(subscription.plan_id)
        return SubscriptionRead.model_validate(subscription).model_copy(update={"plan": plan})

    async def assign_subscription(
        self,
        user_id: int,
        plan_id: str,
        status: SubscriptionStatusEnum = SubscriptionStatusEnum.active,
        period_days: Optional[int] = 30,
    ) -> SubscriptionRead:
        """
        Create or replace a user's subscription (admin operation).

        The word cap counter restarts from the words the user has now, and
        unless a trial is running, today's daily rows take the new plan's
        limits straight away.
        """
        user = await self.db.get(User, user_id, populate_existing=True)
        if not user:
            raise ResourceNotFoundException("User not found")
        plan = await self.get_plan(plan_id)
        if plan is None:
            raise ResourceNotFoundException(f"Plan '{plan_id}' not found")

        now = self.clock()
        result = await self.db.execute(
            select(UserSubscription).where(UserSubscription.user_id == user_id)
        )
        subscription = result.scalar_one_or_none()
        if subscription is None:
            subscription = UserSubscription(user_id=user_id)
            self.db.add(subscription)

        subscription.plan_id = plan_id
        subscription.status = status
        subscription.current_period_start = now
        subscription.current_period_end = now + timedelta(days=period_days) if period_days else None
        subscription.cancel_at_period_end = False
        subscription.canceled_at = None

        word_count = await quota_store.count_vocabulary_words(self.db, user_id)
        await quota_store.save_counter(self.db, user_id, "vocabulary_words",
                                       word_count, plan.max_vocabulary_words)

        if status == SubscriptionStatusEnum.active and not TrialService.is_in_trial(user, now):
            period_start, _ = day_bounds(now)
            for resource_type, field in quota_store.DAILY_LIMIT_FIELDS.items():
                await quota_store.update_daily_limit(self.db, user_id, resource_type,
                                                     period_start, getattr(plan, field))

        await self.db.commit()
        await self.db.refresh(subscription)

        logger.info("Subscription assigned", user_id=user_id, plan_id=plan_id, status=status.value)
        return await self._to_read(subscription)

    async def cancel_subscription(self, user_id: int) -> SubscriptionRead:
        """Cancel at the end of the current period; access continues until then."""
        subscription = await self._get_subscription(user_id)
        if subscription.status == SubscriptionStatusEnum.canceled:
            raise ValidationException("Subscription is already canceled")

        subscription.cancel_at_period_end = True
        subscription.canceled_at = self.clock()
        await self.db.commit()
        await self.db.refresh(subscription)

        logger.info("Subscription set to cancel at period end", user_id=user_id)
        return await self._to_read(subscription)

    async def reactivate_subscription(self, user_id: int) -> SubscriptionRead:
        subscription = await self._get_subscription(user_id)
        if not subscription.cancel_at_period_end:
            raise ValidationException("Subscription is not scheduled for cancellation")

        period_end = ensure_aware(subscription.current_period_end)
        if subscription.status == SubscriptionStatusEnum.canceled or (
            period_end is not None and period_end < self.clock()
        ):
            raise ValidationException("Subscription period has ended, please subscribe again")

        subscription.cancel_at_period_end = False
        subscription.canceled_at = None
        await self.db.commit()
        await self.db.refresh(subscription)

        logger.info("Subscription reactivated", user_id=user_id)
        return await self._to_read(subscription)
