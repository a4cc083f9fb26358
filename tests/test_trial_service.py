"""
Tests for the standalone free trial.
"""
from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from core.exceptions import ResourceNotFoundException, TrialNotAllowedException
from models.models import UsageQuota, User
from services.trial_service import TrialService


async def test_start_trial_sets_trial_fields(db, clock, make_user):
    user = await make_user()
    service = TrialService(db, clock)

    record = await service.start_trial(user.id, user.email, "10.0.0.1")

    assert record.status == "active"
    assert record.trial_started_at == clock.now
    assert (record.trial_expires_at - record.trial_started_at).days == 3

    stored = await db.get(User, user.id, populate_existing=True)
    assert stored.has_used_trial is True
    assert stored.trial_email == user.email
    assert stored.trial_ip_address == "10.0.0.1"


async def test_start_trial_initialises_todays_counters(db, clock, make_user):
    user = await make_user()
    await TrialService(db, clock).start_trial(user.id, user.email, "10.0.0.1")

    rows = (await db.execute(
        select(UsageQuota).where(UsageQuota.user_id == user.id).order_by(UsageQuota.resource_type)
    )).scalars().all()
    limits = {row.resource_type: row.limit_count for row in rows}
    assert limits == {"daily_ai_chat": 20, "daily_practice": None}
    assert all(row.used_count == 0 for row in rows)


async def test_trial_can_only_be_used_once(db, clock, make_user):
    user = await make_user()
    service = TrialService(db, clock)
    await service.start_trial(user.id, user.email, "10.0.0.1")

    # Still refused long after the trial has ended
    clock.advance(days=30)
    with pytest.raises(TrialNotAllowedException) as exc:
        await service.start_trial(user.id, user.email, "10.0.0.1")
    assert exc.value.reason == "already_used"


async def test_conditional_update_refuses_a_lost_race(db, clock, make_user, session_factory):
    user = await make_user()
    service = TrialService(db, clock)
    service.can_start_trial = AsyncMock()

    async with session_factory() as other:
        await TrialService(other, clock).start_trial(user.id, user.email, "10.0.0.2")

    with pytest.raises(TrialNotAllowedException) as exc:
        await service.start_trial(user.id, user.email, "10.0.0.1")
    assert exc.value.reason == "already_used"

    stored = await db.get(User, user.id, populate_existing=True)
    assert stored.trial_ip_address == "10.0.0.2"


async def test_trial_email_cannot_be_reused(db, clock, make_user):
    first = await make_user()
    second = await make_user()
    service = TrialService(db, clock)
    await service.start_trial(first.id, "shared@example.com", "10.0.0.1")

    with pytest.raises(TrialNotAllowedException) as exc:
        await service.start_trial(second.id, "shared@example.com", "10.0.0.2")
    assert exc.value.reason == "email_reused"


async def test_trial_email_match_ignores_case_and_spaces(db, clock, make_user):
    first = await make_user()
    second = await make_user()
    service = TrialService(db, clock)
    await service.start_trial(first.id, " Shared@Example.com ", "10.0.0.1")

    stored = await db.get(User, first.id, populate_existing=True)
    assert stored.trial_email == "shared@example.com"

    with pytest.raises(TrialNotAllowedException) as exc:
        await service.start_trial(second.id, "SHARED@example.COM", "10.0.0.2")
    assert exc.value.reason == "email_reused"


async def test_mixed_case_email_stored_earlier_still_matches(db, clock, make_user):
    await make_user(has_used_trial=True, trial_email="Legacy@Example.com")
    late = await make_user()

    with pytest.raises(TrialNotAllowedException) as exc:
        await TrialService(db, clock).start_trial(late.id, "legacy@example.com", "10.0.0.3")
    assert exc.value.reason == "email_reused"


async def test_too_many_trials_from_one_address(db, clock, make_user):
    service = TrialService(db, clock)
    for _ in range(3):
        user = await make_user()
        await service.start_trial(user.id, user.email, "203.0.113.7")

    late = await make_user()
    with pytest.raises(TrialNotAllowedException) as exc:
        await service.start_trial(late.id, late.email, "203.0.113.7")
    assert exc.value.reason == "ip_abuse"

    # Another address is unaffected, and the window eventually passes
    await service.can_start_trial(late.id, late.email, "203.0.113.8")
    clock.advance(days=8)
    await service.can_start_trial(late.id, late.email, "203.0.113.7")


async def test_unknown_user(db, clock):
    with pytest.raises(ResourceNotFoundException):
        await TrialService(db, clock).start_trial(999, "ghost@example.com", "10.0.0.1")


async def test_trial_status_over_time(db, clock, make_user):
    user = await make_user()
    service = TrialService(db, clock)

    status = await service.get_trial_status(user.id)
    assert status.has_used_trial is False
    assert status.is_in_trial is False
    assert status.is_expired is False
    assert status.days_remaining == 0

    await service.start_trial(user.id, user.email, "10.0.0.1")
    status = await service.get_trial_status(user.id)
    assert status.is_in_trial is True
    assert status.days_remaining == 3

    clock.advance(days=1, hours=1)
    status = await service.get_trial_status(user.id)
    assert status.days_remaining == 2

    clock.advance(days=2)
    status = await service.get_trial_status(user.id)
    assert status.is_in_trial is False
    assert status.is_expired is True
    assert status.days_remaining == 0


async def test_is_in_trial_uses_expiry(clock):
    user = User(trial_expires_at=clock.now.replace(tzinfo=None))
    assert TrialService.is_in_trial(user, clock.now) is False
    clock.advance(seconds=-1)
    assert TrialService.is_in_trial(user, clock.now) is True
    assert TrialService.is_in_trial(User(), clock.now) is False


async def test_trial_chat_allowance(db, clock, make_user):
    user = await make_user()
    service = TrialService(db, clock)

    # No row for today: no limit applies
    usage = await service.check_ai_chat_usage(user.id)
    assert usage.can_use is True
    assert usage.remaining == -1

    await service.start_trial(user.id, user.email, "10.0.0.1")
    usage = await service.check_ai_chat_usage(user.id)
    assert usage.remaining == 20

    for _ in range(20):
        await service.increment_ai_chat_usage(user.id)
    usage = await service.check_ai_chat_usage(user.id)
    assert usage.can_use is False
    assert usage.remaining == 0

    clock.advance(days=1)
    usage = await service.check_ai_chat_usage(user.id)
    assert usage.remaining == -1

    await service.increment_ai_chat_usage(user.id)
    usage = await service.check_ai_chat_usage(user.id)
    assert usage.remaining == 19


def test_trial_permissions():
    permissions = TrialService.get_trial_permissions()
    assert permissions.ai_practice and permissions.ai_chat and permissions.export_data
    assert permissions.daily_ai_chat_limit == 20
    assert permissions.daily_practice_limit is None
