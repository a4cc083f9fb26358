"""
Router for plans, subscriptions, the free trial and usage counters.
"""
from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, get_clock
from core.exceptions import ValidationException
from core.logging import billing_logger
from core.middleware import get_client_ip
from core.rate_limiting import rate_limit
from core.security import get_current_active_user
from db_config import get_async_db
from models.models import User
from schemas.subscription import (
    AiChatUsage, PlanListResponse, QuotaStatus, StartTrialResponse, SubscriptionRead,
    TrialStatus, UserSubscriptionResponse
)
from services.quota_service import QuotaService
from services.subscription_service import SubscriptionService
from services.trial_service import TrialService

router = APIRouter(prefix="/billing", tags=["Billing"])

logger = billing_logger

RESOURCE_TYPES = ("daily_practice", "daily_ai_chat", "vocabulary_words")


def get_subscription_service(
    db: AsyncSession = Depends(get_async_db), clock: Clock = Depends(get_clock)
) -> SubscriptionService:
    return SubscriptionService(db, clock)


def get_trial_service(
    db: AsyncSession = Depends(get_async_db), clock: Clock = Depends(get_clock)
) -> TrialService:
    return TrialService(db, clock)


def get_quota_service(
    db: AsyncSession = Depends(get_async_db), clock: Clock = Depends(get_clock)
) -> QuotaService:
    return QuotaService(db, clock)


@router.get("/plans", response_model=PlanListResponse)
async def list_plans(service: SubscriptionService = Depends(get_subscription_service)):
    """Public plan catalog."""
    return PlanListResponse(plans=await service.list_plans())


@router.get("/user/subscription", response_model=UserSubscriptionResponse)
async def get_user_subscription(
    current_user: User = Depends(get_current_active_user),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
    quotas: QuotaService = Depends(get_quota_service),
):
    """Resolved entitlements plus today's usage for every counter."""
    info = await subscriptions.get_user_subscription_info(current_user.id)
    usage = {}
    for resource_type in RESOURCE_TYPES:
        usage[resource_type] = await quotas.check_usage_quota(current_user.id, resource_type)
    return UserSubscriptionResponse(info=info, usage=usage)


@router.post("/user/subscription/start-trial", response_model=StartTrialResponse,
             dependencies=[Depends(rate_limit("trial"))])
async def start_trial(
    request: Request,
    current_user: User = Depends(get_current_active_user),
    trials: TrialService = Depends(get_trial_service),
):
    ip_address = get_client_ip(request)
    logger.info("Trial start requested", user_id=current_user.id, ip_address=ip_address)

    record = await trials.start_trial(current_user.id, current_user.email, ip_address)
    return StartTrialResponse(
        message="Free trial started",
        trial=record,
        permissions=TrialService.get_trial_permissions(),
    )


@router.get("/user/subscription/trial-status", response_model=TrialStatus)
async def get_trial_status(
    current_user: User = Depends(get_current_active_user),
    trials: TrialService = Depends(get_trial_service),
):
    return await trials.get_trial_status(current_user.id)


@router.post("/user/subscription/cancel", response_model=SubscriptionRead)
async def cancel_subscription(
    current_user: User = Depends(get_current_active_user),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    return await subscriptions.cancel_subscription(current_user.id)


@router.post("/user/subscription/reactivate", response_model=SubscriptionRead)
async def reactivate_subscription(
    current_user: User = Depends(get_current_active_user),
    subscriptions: SubscriptionService = Depends(get_subscription_service),
):
    return await subscriptions.reactivate_subscription(current_user.id)


@router.get("/user/usage/ai-chat-remaining", response_model=AiChatUsage)
async def get_ai_chat_remaining(
    current_user: User = Depends(get_current_active_user),
    trials: TrialService = Depends(get_trial_service),
):
    """Today's trial chat allowance; ``remaining == -1`` means unlimited."""
    return await trials.check_ai_chat_usage(current_user.id)


@router.get("/user/usage/check/{resource_type}", response_model=QuotaStatus)
async def check_usage(
    resource_type: str,
    current_user: User = Depends(get_current_active_user),
    quotas: QuotaService = Depends(get_quota_service),
):
    if resource_type not in RESOURCE_TYPES:
        raise ValidationException(
            f"Unknown resource type '{resource_type}'",
            errors=[{"field": "resource_type", "allowed": list(RESOURCE_TYPES)}]
        )
    return await quotas.check_usage_quota(current_user.id, resource_type)
