"""
Tests for usage counters: lazy daily rows, increments and atomic consumption.
"""
import pytest
from sqlalchemy import select

from core.clock import day_bounds
from models.models import UsageQuota, VocabularyItem
from schemas.subscription import PlanUpsert, SubscriptionInfo, TrialInfo
from services import plan_registry
from services.quota_service import QuotaService, derive_daily_limit
from services.subscription_service import SubscriptionService
from services.trial_service import TrialService


@pytest.fixture
def quotas(db, clock):
    return QuotaService(db, clock)


async def subscribe(db, clock, user_id, **limits):
    subscriptions = SubscriptionService(db, clock)
    await subscriptions.upsert_plan("metered", PlanUpsert(name="Metered", ai_practice=True, ai_chat=True, **limits))
    await subscriptions.assign_subscription(user_id, "metered")


async def test_no_limit_means_no_row(quotas, db, make_user):
    user = await make_user()
    status = await quotas.check_usage_quota(user.id, "daily_practice")

    assert status.can_use is True
    assert status.limit is None
    assert status.remaining is None
    rows = (await db.execute(select(UsageQuota))).scalars().all()
    assert rows == []


async def test_daily_row_created_from_plan_limit(quotas, db, clock, make_user):
    user = await make_user()
    await subscribe(db, clock, user.id, daily_practice_limit=2)

    status = await quotas.check_usage_quota(user.id, "daily_practice")
    assert status.can_use is True
    assert status.used == 0
    assert status.limit == 2
    assert status.remaining == 2
    _, day_end = day_bounds(clock.now)
    assert status.reset_at == day_end

    await quotas.increment_usage(user.id, "daily_practice")
    await quotas.increment_usage(user.id, "daily_practice")
    status = await quotas.check_usage_quota(user.id, "daily_practice")
    assert status.can_use is False
    assert status.used == 2
    assert status.remaining == 0


async def test_daily_counter_resets_next_day(quotas, db, clock, make_user):
    user = await make_user()
    await subscribe(db, clock, user.id, daily_practice_limit=1)

    await quotas.check_usage_quota(user.id, "daily_practice")
    await quotas.increment_usage(user.id, "daily_practice")
    assert (await quotas.check_usage_quota(user.id, "daily_practice")).can_use is False

    clock.advance(days=1)
    status = await quotas.check_usage_quota(user.id, "daily_practice")
    assert status.can_use is True
    assert status.used == 0

    rows = (await db.execute(
        select(UsageQuota).where(UsageQuota.resource_type == "daily_practice")
    )).scalars().all()
    assert len(rows) == 2


async def test_repeated_checks_reuse_one_row(quotas, db, clock, make_user):
    user = await make_user()
    await subscribe(db, clock, user.id, daily_ai_chat_limit=5)

    for _ in range(3):
        await quotas.check_usage_quota(user.id, "daily_ai_chat")

    rows = (await db.execute(
        select(UsageQuota).where(UsageQuota.resource_type == "daily_ai_chat")
    )).scalars().all()
    assert len(rows) == 1


async def test_consume_usage_never_passes_the_limit(quotas, db, clock, make_user):
    user = await make_user()
    await subscribe(db, clock, user.id, daily_practice_limit=2)

    assert await quotas.consume_usage(user.id, "daily_practice") is True
    assert await quotas.consume_usage(user.id, "daily_practice") is True
    assert await quotas.consume_usage(user.id, "daily_practice") is False
    assert await quotas.consume_usage(user.id, "daily_practice", amount=5) is False

    status = await quotas.check_usage_quota(user.id, "daily_practice")
    assert status.used == 2


async def test_consume_without_row_is_unlimited(quotas, make_user):
    user = await make_user()
    assert await quotas.consume_usage(user.id, "daily_practice") is True


async def test_increment_without_row_is_a_no_op(quotas, db, make_user):
    user = await make_user()
    await quotas.increment_usage(user.id, "daily_practice")
    assert (await db.execute(select(UsageQuota))).scalars().all() == []


async def test_word_cap_counter_has_no_period(quotas, db, clock, make_user):
    user = await make_user()
    assert (await quotas.check_usage_quota(user.id, "vocabulary_words")).limit is None

    await subscribe(db, clock, user.id, max_vocabulary_words=2)
    await quotas.increment_usage(user.id, "vocabulary_words")
    clock.advance(days=5)
    await quotas.increment_usage(user.id, "vocabulary_words")

    status = await quotas.check_usage_quota(user.id, "vocabulary_words")
    assert status.used == 2
    assert status.limit == 2
    assert status.can_use is False
    assert status.reset_at is None


async def test_word_cap_lifted_by_upgrade(quotas, db, clock, make_user):
    user = await make_user()
    subscriptions = SubscriptionService(db, clock)
    await subscriptions.seed_default_plans()
    await subscribe(db, clock, user.id, max_vocabulary_words=1)
    await quotas.increment_usage(user.id, "vocabulary_words")
    assert (await quotas.check_usage_quota(user.id, "vocabulary_words")).can_use is False

    await subscriptions.assign_subscription(user.id, "premium_monthly")
    status = await quotas.check_usage_quota(user.id, "vocabulary_words")
    assert status.can_use is True
    assert status.limit is None

    rows = (await db.execute(
        select(UsageQuota).where(UsageQuota.resource_type == "vocabulary_words")
    )).scalars().all()
    assert len(rows) == 1


async def test_word_cap_suspended_during_trial(quotas, db, clock, make_user):
    user = await make_user()
    await subscribe(db, clock, user.id, max_vocabulary_words=1)
    await quotas.increment_usage(user.id, "vocabulary_words")

    await TrialService(db, clock).start_trial(user.id, user.email, "10.0.0.1")
    status = await quotas.check_usage_quota(user.id, "vocabulary_words")
    assert status.can_use is True
    assert status.limit is None

    # Back on the capped plan once the trial is over
    clock.advance(days=3)
    status = await quotas.check_usage_quota(user.id, "vocabulary_words")
    assert status.can_use is False
    assert status.limit == 1


async def test_word_cap_ends_with_the_subscription(quotas, db, clock, make_user):
    user = await make_user()
    await subscribe(db, clock, user.id, max_vocabulary_words=1)
    await quotas.increment_usage(user.id, "vocabulary_words")

    clock.advance(days=31)
    status = await quotas.check_usage_quota(user.id, "vocabulary_words")
    assert status.can_use is True
    assert status.limit is None


async def test_cap_added_to_current_plan_applies(quotas, db, clock, make_user):
    user = await make_user()
    for word in ("agenda", "invoice"):
        db.add(VocabularyItem(user_id=user.id, word=word, next_review_date=clock.now))
    await db.commit()
    await subscribe(db, clock, user.id)
    assert (await quotas.check_usage_quota(user.id, "vocabulary_words")).limit is None

    await SubscriptionService(db, clock).upsert_plan(
        "metered", PlanUpsert(name="Metered", ai_practice=True, max_vocabulary_words=2)
    )
    status = await quotas.check_usage_quota(user.id, "vocabulary_words")
    assert status.used == 2
    assert status.limit == 2
    assert status.can_use is False
    assert await quotas.consume_usage(user.id, "vocabulary_words") is False


async def test_upgrade_applies_to_todays_daily_row(quotas, db, clock, make_user):
    user = await make_user()
    await subscribe(db, clock, user.id, daily_practice_limit=2)
    await quotas.check_usage_quota(user.id, "daily_practice")
    await quotas.increment_usage(user.id, "daily_practice")
    await quotas.increment_usage(user.id, "daily_practice")
    assert (await quotas.check_usage_quota(user.id, "daily_practice")).can_use is False

    subscriptions = SubscriptionService(db, clock)
    await subscriptions.upsert_plan("unlimited", PlanUpsert(name="Unlimited", ai_practice=True))
    await subscriptions.assign_subscription(user.id, "unlimited")

    status = await quotas.check_usage_quota(user.id, "daily_practice")
    assert status.can_use is True
    assert status.used == 2
    assert status.limit is None


async def test_assignment_keeps_trial_counters(quotas, db, clock, make_user):
    user = await make_user()
    await TrialService(db, clock).start_trial(user.id, user.email, "10.0.0.1")
    await subscribe(db, clock, user.id, daily_ai_chat_limit=3)

    assert (await TrialService(db, clock).check_ai_chat_usage(user.id)).remaining == 20


async def test_trial_limits_apply_while_trialing(quotas, db, clock, make_user):
    user = await make_user()
    await TrialService(db, clock).start_trial(user.id, user.email, "10.0.0.1")

    chat = await quotas.check_usage_quota(user.id, "daily_ai_chat")
    assert chat.limit == 20
    practice = await quotas.check_usage_quota(user.id, "daily_practice")
    assert practice.limit is None

    await quotas.increment_usage(user.id, "daily_ai_chat")
    assert (await TrialService(db, clock).check_ai_chat_usage(user.id)).remaining == 19

    # A later trial day gets its row on first use
    clock.advance(days=1)
    await quotas.increment_usage(user.id, "daily_ai_chat")
    assert (await TrialService(db, clock).check_ai_chat_usage(user.id)).remaining == 19


def test_derive_daily_limit_prefers_trial():
    trial_info = SubscriptionInfo(
        has_permission=True,
        permissions=TrialService.get_trial_permissions(),
        trial=TrialInfo(is_active=True),
    )
    assert derive_daily_limit(trial_info, "daily_ai_chat") == 20
    assert derive_daily_limit(trial_info, "daily_practice") is None

    free_info = SubscriptionInfo(has_permission=False, permissions=plan_registry.free_tier_permissions())
    assert derive_daily_limit(free_info, "daily_ai_chat") is None
    assert derive_daily_limit(free_info, "vocabulary_words") is None
