"""
Unit tests for trial provisioning
"""
from datetime import timedelta

import pytest

from crud.user import UserRepository
from services.trial_service import TrialService
from utils.shared_utils import utcnow


@pytest.mark.asyncio
async def test_new_user_gets_two_day_trial(test_db):
    before = utcnow()
    user = await TrialService(test_db).get_or_create_user("user_new")

    assert user.id is not None
    assert user.external_auth_id == "user_new"
    assert user.is_pro is False
    assert user.trial_start_date >= before - timedelta(seconds=1)
    assert user.trial_end_date - user.trial_start_date == timedelta(days=2)


@pytest.mark.asyncio
async def test_get_or_create_is_idempotent(test_db):
    """Calling twice for the same identity neither duplicates the user nor shifts the trial."""
    service = TrialService(test_db)
    first = await service.get_or_create_user("user_twice")
    first_end = first.trial_end_date

    second = await service.get_or_create_user("user_twice")

    assert second.id == first.id
    assert second.trial_end_date == first_end


@pytest.mark.asyncio
async def test_legacy_user_is_backfilled_once(test_db):
    repo = UserRepository(test_db)
    legacy = await repo.create_user({"external_auth_id": "user_legacy"})
    await test_db.commit()
    assert legacy.trial_end_date is None

    service = TrialService(test_db)
    backfilled = await service.get_or_create_user("user_legacy")
    assert backfilled.trial_start_date is not None
    assert backfilled.trial_end_date - backfilled.trial_start_date == timedelta(days=2)
    window = (backfilled.trial_start_date, backfilled.trial_end_date)

    again = await service.get_or_create_user("user_legacy")
    assert (again.trial_start_date, again.trial_end_date) == window


@pytest.mark.asyncio
async def test_legacy_pro_user_is_not_given_a_trial(test_db):
    repo = UserRepository(test_db)
    await repo.create_user({"external_auth_id": "user_legacy_pro", "is_pro": True})
    await test_db.commit()

    user = await TrialService(test_db).get_or_create_user("user_legacy_pro")

    assert user.trial_start_date is None
    assert user.trial_end_date is None


@pytest.mark.asyncio
async def test_expired_trial_is_not_restarted(test_db):
    now = utcnow()
    repo = UserRepository(test_db)
    await repo.create_user({
        "external_auth_id": "user_expired",
        "trial_start_date": now - timedelta(days=10),
        "trial_end_date": now - timedelta(days=8),
    })
    await test_db.commit()

    user = await TrialService(test_db).get_or_create_user("user_expired")

    assert user.trial_end_date < now
    assert user.trial_start_date == now - timedelta(days=10)
