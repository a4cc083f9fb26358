"""
Tests for entitlement resolution and subscription management.
"""
import pytest
from sqlalchemy import select

from core.exceptions import ResourceNotFoundException, ValidationException
from models.models import SubscriptionStatusEnum, UsageQuota, UserSubscription, VocabularyItem
from schemas.subscription import PlanFeatures, PlanUpsert
from services import plan_registry
from services.subscription_service import SubscriptionService
from services.trial_service import TrialService


@pytest.fixture
def service(db, clock):
    return SubscriptionService(db, clock)


async def test_unknown_user_gets_nothing(service):
    info = await service.get_user_subscription_info(12345)
    assert info.reason == "USER_NOT_FOUND"
    assert info.has_permission is False
    assert info.permissions.vocabulary is False
    assert info.trial_available is False


async def test_new_user_is_on_free_tier(service, make_user):
    user = await make_user()
    info = await service.get_user_subscription_info(user.id)

    assert info.reason == "NO_SUBSCRIPTION"
    assert info.has_permission is False
    assert info.trial_available is True
    assert info.permissions.vocabulary is True
    assert info.permissions.view_mistakes is True
    assert info.permissions.ai_practice is False
    assert info.permissions.ai_chat is False


async def test_active_trial_grants_premium_features(service, db, clock, make_user):
    user = await make_user()
    await TrialService(db, clock).start_trial(user.id, user.email, "10.0.0.1")

    info = await service.get_user_subscription_info(user.id)
    assert info.has_permission is True
    assert info.trial.is_active is True
    assert info.trial_available is False
    assert info.permissions.ai_chat is True
    assert info.permissions.daily_ai_chat_limit == 20


async def test_expired_trial_without_subscription(service, db, clock, make_user):
    user = await make_user()
    await TrialService(db, clock).start_trial(user.id, user.email, "10.0.0.1")
    clock.advance(days=3)

    info = await service.get_user_subscription_info(user.id)
    assert info.reason == "TRIAL_EXPIRED"
    assert info.has_permission is False
    assert info.trial_available is False
    assert info.trial.is_active is False
    assert info.permissions.ai_practice is False


async def test_trial_takes_precedence_over_inactive_subscription(service, db, clock, make_user):
    user = await make_user()
    await service.seed_default_plans()
    await service.assign_subscription(user.id, "premium_monthly", SubscriptionStatusEnum.past_due)
    await TrialService(db, clock).start_trial(user.id, user.email, "10.0.0.1")

    info = await service.get_user_subscription_info(user.id)
    assert info.has_permission is True
    assert info.trial.is_active is True


async def test_trial_takes_precedence_over_active_subscription(service, db, clock, make_user):
    user = await make_user()
    await service.upsert_plan("metered", PlanUpsert(
        name="Metered", ai_practice=True, ai_chat=True,
        daily_practice_limit=2, daily_ai_chat_limit=5, max_vocabulary_words=50,
    ))
    await service.assign_subscription(user.id, "metered")
    assert (await service.get_user_subscription_info(user.id)).permissions.daily_ai_chat_limit == 5

    await TrialService(db, clock).start_trial(user.id, user.email, "10.0.0.1")

    info = await service.get_user_subscription_info(user.id)
    assert info.has_permission is True
    assert info.permissions == TrialService.get_trial_permissions()
    assert info.trial_available is False
    assert info.trial.is_active is True


async def test_active_premium_subscription(service, make_user):
    user = await make_user()
    assert await service.seed_default_plans() == 3

    subscription = await service.assign_subscription(user.id, "premium_monthly")
    assert subscription.status == SubscriptionStatusEnum.active
    assert subscription.plan.id == "premium_monthly"

    info = await service.get_user_subscription_info(user.id)
    assert info.has_permission is True
    assert info.reason is None
    assert info.permissions.ai_practice is True
    assert info.permissions.export_data is True
    assert info.subscription.plan_id == "premium_monthly"


async def test_subscription_past_period_end_is_expired(service, clock, make_user):
    user = await make_user()
    await service.seed_default_plans()
    await service.assign_subscription(user.id, "premium_monthly", period_days=30)

    clock.advance(days=31)
    info = await service.get_user_subscription_info(user.id)
    assert info.reason == "SUBSCRIPTION_EXPIRED"
    assert info.has_permission is False
    assert info.permissions.ai_practice is False
    assert info.trial_available is True


async def test_non_active_status_is_inactive(service, make_user):
    user = await make_user()
    await service.seed_default_plans()
    await service.assign_subscription(user.id, "premium_monthly", SubscriptionStatusEnum.unpaid)

    info = await service.get_user_subscription_info(user.id)
    assert info.reason == "SUBSCRIPTION_INACTIVE"
    assert info.permissions == plan_registry.free_tier_permissions()


async def test_unknown_plan_falls_back_to_free_tier(service, db, make_user):
    user = await make_user()
    db.add(UserSubscription(user_id=user.id, plan_id="ghost_plan", status=SubscriptionStatusEnum.active,
                            cancel_at_period_end=False))
    await db.commit()

    info = await service.get_user_subscription_info(user.id)
    assert info.reason == "UNKNOWN_PLAN"
    assert info.has_permission is False
    assert info.trial_available is False
    assert info.permissions.vocabulary is True
    assert info.permissions.ai_practice is False


@pytest.mark.parametrize("plan_id", ["free", "free_plan"])
async def test_well_known_free_plan_without_row(service, make_user, plan_id):
    user = await make_user()
    await service.assign_subscription(user.id, plan_id, period_days=None)

    info = await service.get_user_subscription_info(user.id)
    assert info.has_permission is True
    assert info.permissions.ai_practice is False
    assert info.permissions.vocabulary is True
    assert info.subscription.plan.id == "free"


async def test_unset_flags_default_to_enabled(service, make_user):
    user = await make_user()
    await service.upsert_plan("basic", PlanUpsert(name="Basic", ai_practice=True))
    await service.upsert_plan("locked", PlanUpsert(name="Locked", vocabulary=False, view_mistakes=False))

    await service.assign_subscription(user.id, "basic")
    info = await service.get_user_subscription_info(user.id)
    assert info.permissions.vocabulary is True
    assert info.permissions.view_mistakes is True

    await service.assign_subscription(user.id, "locked")
    info = await service.get_user_subscription_info(user.id)
    assert info.permissions.vocabulary is False
    assert info.permissions.view_mistakes is False


def test_plan_features_explicit_defaults():
    permissions = PlanFeatures().to_permissions()
    assert permissions.vocabulary is True
    assert permissions.view_mistakes is True
    assert permissions.ai_chat is False


async def test_list_plans_falls_back_to_catalog(service):
    plans = await service.list_plans()
    assert [p.id for p in plans] == ["free", "premium_monthly", "premium_yearly"]

    await service.upsert_plan("school", PlanUpsert(name="School", sort_order=5))
    plans = await service.list_plans()
    assert [p.id for p in plans] == ["school"]


async def test_seed_default_plans_is_idempotent(service):
    assert await service.seed_default_plans() == 3
    assert await service.seed_default_plans() == 0


async def test_assign_unknown_plan_or_user(service, make_user):
    user = await make_user()
    with pytest.raises(ResourceNotFoundException):
        await service.assign_subscription(user.id, "nope")
    with pytest.raises(ResourceNotFoundException):
        await service.assign_subscription(999, "free")


async def test_assign_plan_with_word_cap_counts_existing_words(service, db, clock, make_user):
    user = await make_user()
    for word in ("agenda", "invoice"):
        db.add(VocabularyItem(user_id=user.id, word=word, next_review_date=clock.now))
    await db.commit()

    await service.upsert_plan("starter", PlanUpsert(name="Starter", max_vocabulary_words=10))
    await service.assign_subscription(user.id, "starter")

    row = (await db.execute(
        select(UsageQuota).where(UsageQuota.user_id == user.id,
                                 UsageQuota.resource_type == "vocabulary_words")
    )).scalar_one()
    assert row.used_count == 2
    assert row.limit_count == 10
    assert row.period_start is None


async def test_cancel_and_reactivate(service, clock, make_user):
    user = await make_user()
    await service.seed_default_plans()

    with pytest.raises(ResourceNotFoundException):
        await service.cancel_subscription(user.id)

    await service.assign_subscription(user.id, "premium_monthly")
    with pytest.raises(ValidationException):
        await service.reactivate_subscription(user.id)

    canceled = await service.cancel_subscription(user.id)
    assert canceled.cancel_at_period_end is True
    assert canceled.canceled_at is not None

    # Access continues until the period ends
    info = await service.get_user_subscription_info(user.id)
    assert info.has_permission is True

    reactivated = await service.reactivate_subscription(user.id)
    assert reactivated.cancel_at_period_end is False
    assert reactivated.canceled_at is None


async def test_reactivate_after_period_end_is_refused(service, clock, make_user):
    user = await make_user()
    await service.seed_default_plans()
    await service.assign_subscription(user.id, "premium_monthly", period_days=30)
    await service.cancel_subscription(user.id)

    clock.advance(days=31)
    with pytest.raises(ValidationException):
        await service.reactivate_subscription(user.id)
