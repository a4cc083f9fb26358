"""
Standalone free-trial engine.

A user can run exactly one trial. Starting it is a single conditional UPDATE
on ``has_used_trial``, so two concurrent starts cannot both succeed.
"""
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, day_bounds, ensure_aware, utcnow
from core.config import settings
from core.exceptions import ResourceNotFoundException, TrialNotAllowedException
from core.logging import get_logger
from models.models import User
from schemas.subscription import AiChatUsage, PermissionSet, TrialRecord, TrialStatus
from services import quota_store

logger = get_logger("trial")

AI_CHAT_RESOURCE = "daily_ai_chat"
PRACTICE_RESOURCE = "daily_practice"


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class TrialService:
    """Trial eligibility, activation and the trial's own AI chat counter."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def _get_user(self, user_id: int) -> User:
        user = await self.db.get(User, user_id, populate_existing=True)
        if not user:
            raise ResourceNotFoundException("User not found")
        return user

    async def can_start_trial(self, user_id: int, email: str, ip_address: str) -> None:
        """
        Raise TrialNotAllowedException unless this user may start a trial now.

        Checks, in order: the user's own flag, the email having been used
        for another trial, and the number of trials started from the same
        IP address inside the abuse window.
        """
        email = normalize_email(email)
        user = await self._get_user(user_id)
        if user.has_used_trial:
            raise TrialNotAllowedException("already_used")

        result = await self.db.execute(
            select(User.id).where(
                func.lower(User.trial_email) == email,
                User.has_used_trial.is_(True),
                User.id != user_id,
            ).limit(1)
        )
        if result.scalar_one_or_none() is not None:
            logger.warning("Trial refused, email already used", user_id=user_id)
            raise TrialNotAllowedException("email_reused")

        window_start = self.clock() - timedelta(days=settings.trial_ip_window_days)
        result = await self.db.execute(
            select(func.count(User.id)).where(
                User.trial_ip_address == ip_address,
                User.trial_started_at >= window_start,
            )
        )
        recent_trials = result.scalar_one()
        if recent_trials >= settings.trial_ip_max_starts:
            logger.warning("Trial refused, too many trials from network",
                           user_id=user_id, ip_address=ip_address, recent_trials=recent_trials)
            raise TrialNotAllowedException("ip_abuse")

    async def start_trial(self, user_id: int, email: str, ip_address: str) -> TrialRecord:
        email = normalize_email(email)
        await self.can_start_trial(user_id, email, ip_address)

        now = self.clock()
        expires_at = now + timedelta(days=settings.trial_duration_days)

        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.has_used_trial.is_(False))
            .values(
                has_used_trial=True,
                trial_started_at=now,
                trial_expires_at=expires_at,
                trial_email=email,
                trial_ip_address=ip_address,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            logger.warning("Trial start lost a concurrent race", user_id=user_id)
            raise TrialNotAllowedException("already_used")

        await self._initialize_trial_quotas(user_id, now)
        await self.db.commit()
        await self._get_user(user_id)

        logger.info("Trial started successfully", user_id=user_id,
                    trial_started_at=now.isoformat(), trial_expires_at=expires_at.isoformat())
        return TrialRecord(
            user_id=user_id,
            trial_started_at=now,
            trial_expires_at=expires_at,
            status="active",
        )

    async def _initialize_trial_quotas(self, user_id: int, now: datetime) -> None:
        period_start, period_end = day_bounds(now)
        await quota_store.set_daily_limit(self.db, user_id, AI_CHAT_RESOURCE,
                                          period_start, period_end, settings.trial_daily_ai_chat_limit)
        await quota_store.set_daily_limit(self.db, user_id, PRACTICE_RESOURCE,
                                          period_start, period_end, None)

    @staticmethod
    def is_in_trial(user: User, now: Optional[datetime] = None) -> bool:
        expires_at = ensure_aware(getattr(user, "trial_expires_at", None))
        if expires_at is None:
            return False
        return expires_at > (ensure_aware(now) if now is not None else utcnow())

    @staticmethod
    def get_trial_permissions() -> PermissionSet:
        return PermissionSet(
            ai_practice=True,
            ai_chat=True,
            vocabulary=True,
            export_data=True,
            view_mistakes=True,
            daily_ai_chat_limit=settings.trial_daily_ai_chat_limit,
            daily_practice_limit=None,
            max_vocabulary_words=None,
        )

    async def get_trial_status(self, user_id: int) -> TrialStatus:
        user = await self._get_user(user_id)
        now = self.clock()
        expires_at = ensure_aware(user.trial_expires_at)
        in_trial = expires_at is not None and expires_at > now

        days_remaining = 0
        if in_trial:
            days_remaining = math.ceil((expires_at - now).total_seconds() / 86400)

        return TrialStatus(
            has_used_trial=bool(user.has_used_trial),
            is_in_trial=in_trial,
            is_expired=expires_at is not None and expires_at <= now,
            trial_started_at=ensure_aware(user.trial_started_at),
            trial_expires_at=expires_at,
            days_remaining=days_remaining,
        )

    async def check_ai_chat_usage(self, user_id: int) -> AiChatUsage:
        """Today's trial chat allowance. ``remaining == -1`` means no limit applies."""
        period_start, _ = day_bounds(self.clock())
        row = await quota_store.get_daily_row(self.db, user_id, AI_CHAT_RESOURCE, period_start)
        if row is None or row.limit_count is None:
            return AiChatUsage(can_use=True, remaining=-1)

        remaining = row.limit_count - row.used_count
        return AiChatUsage(can_use=remaining > 0, remaining=max(0, remaining))

    async def increment_ai_chat_usage(self, user_id: int) -> None:
        period_start, period_end = day_bounds(self.clock())
        await quota_store.upsert_increment(
            self.db, user_id, AI_CHAT_RESOURCE, period_start, period_end,
            amount=1, limit_if_new=settings.trial_daily_ai_chat_limit,
        )
        await self.db.commit()
        logger.debug("Trial AI chat usage incremented", user_id=user_id)
