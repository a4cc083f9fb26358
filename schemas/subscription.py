"""
Pydantic schemas for plans, subscriptions, trials and usage quotas.
"""
from datetime import datetime
from typing import Dict, List, Optional
from pydantic import BaseModel, Field
from models.models import SubscriptionStatusEnum


# Permission Schemas
class PermissionSet(BaseModel):
    """Resolved feature flags and daily limits for one user. ``None`` limit = unlimited."""
    ai_practice: bool = False
    ai_chat: bool = False
    vocabulary: bool = True
    export_data: bool = False
    view_mistakes: bool = True
    daily_practice_limit: Optional[int] = None
    daily_ai_chat_limit: Optional[int] = None
    max_vocabulary_words: Optional[int] = None


class PlanFeatures(BaseModel):
    """
    Feature flags as stored on a plan.

    ``vocabulary`` and ``view_mistakes`` default to ``None`` ("not set") and
    only an explicit ``False`` turns them off.
    """
    ai_practice: bool = False
    ai_chat: bool = False
    export_data: bool = False
    vocabulary: Optional[bool] = None
    view_mistakes: Optional[bool] = None

    def to_permissions(self, daily_practice_limit: Optional[int] = None,
                       daily_ai_chat_limit: Optional[int] = None,
                       max_vocabulary_words: Optional[int] = None) -> PermissionSet:
        return PermissionSet(
            ai_practice=self.ai_practice,
            ai_chat=self.ai_chat,
            vocabulary=self.vocabulary is not False,
            export_data=self.export_data,
            view_mistakes=self.view_mistakes is not False,
            daily_practice_limit=daily_practice_limit,
            daily_ai_chat_limit=daily_ai_chat_limit,
            max_vocabulary_words=max_vocabulary_words,
        )


# Plan Schemas
class PlanBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    name_jp: Optional[str] = Field(None, max_length=100)
    price_cents: int = Field(0, ge=0)
    currency: str = Field("jpy", max_length=10)
    interval: str = Field("month", max_length=20)
    ai_practice: bool = False
    ai_chat: bool = False
    export_data: bool = False
    vocabulary: Optional[bool] = None
    view_mistakes: Optional[bool] = None
    daily_practice_limit: Optional[int] = Field(None, ge=0)
    daily_ai_chat_limit: Optional[int] = Field(None, ge=0)
    max_vocabulary_words: Optional[int] = Field(None, ge=0)
    is_active: bool = True
    sort_order: int = 0


class PlanUpsert(PlanBase):
    pass


class PlanRead(PlanBase):
    id: str

    class Config:
        from_attributes = True


# Subscription Schemas
class SubscriptionRead(BaseModel):
    id: Optional[int] = None
    user_id: int
    plan_id: str
    status: SubscriptionStatusEnum
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    trial_start: Optional[datetime] = None
    trial_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    plan: Optional[PlanRead] = None

    class Config:
        from_attributes = True


class SubscriptionAssign(BaseModel):
    """Admin assignment of a plan to a user."""
    plan_id: str = Field(..., min_length=1, max_length=50)
    status: SubscriptionStatusEnum = SubscriptionStatusEnum.active
    period_days: Optional[int] = Field(30, ge=1, description="Length of the billing period; null = open ended")


# Trial Schemas
class TrialInfo(BaseModel):
    is_active: bool
    started_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_standalone: bool = True


class TrialRecord(BaseModel):
    user_id: int
    trial_started_at: datetime
    trial_expires_at: datetime
    status: str = "active"


class TrialStatus(BaseModel):
    has_used_trial: bool
    is_in_trial: bool
    is_expired: bool
    trial_started_at: Optional[datetime] = None
    trial_expires_at: Optional[datetime] = None
    days_remaining: int = 0


class StartTrialResponse(BaseModel):
    message: str
    trial: TrialRecord
    permissions: PermissionSet


class AiChatUsage(BaseModel):
    """``remaining == -1`` means unlimited."""
    can_use: bool
    remaining: int


# Resolver output
class SubscriptionInfo(BaseModel):
    has_permission: bool
    permissions: PermissionSet
    trial_available: bool = False
    subscription: Optional[SubscriptionRead] = None
    trial: Optional[TrialInfo] = None
    reason: Optional[str] = None


# Quota Schemas
class QuotaStatus(BaseModel):
    can_use: bool
    used: int = 0
    limit: Optional[int] = None
    remaining: Optional[int] = None
    reset_at: Optional[datetime] = None


class UserSubscriptionResponse(BaseModel):
    info: SubscriptionInfo
    usage: Dict[str, QuotaStatus]


class PlanListResponse(BaseModel):
    plans: List[PlanRead]
