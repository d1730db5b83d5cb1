"""
Unit tests for order creation
"""
import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from crud.order import OrderRepository
from database_models import Order, OrderStatus
from services.billing_service import BillingService, generate_order_id, parse_amount
from services.errors import GatewayError, InvalidInput, UserNotFound
from services.trial_service import TrialService


async def order_count(db):
    result = await db.execute(select(func.count()).select_from(Order))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_create_order_persists_pending_order(test_db, fake_gateway):
    user = await TrialService(test_db).get_or_create_user("user_buyer")

    result = await BillingService(test_db, fake_gateway).create_order(user.id, 50)

    assert result["order_id"].startswith("order_")
    assert result["payment_session_id"] == "session_1"
    assert fake_gateway.created == [
        {"amount": Decimal("50"), "user_id": user.id, "order_id": result["order_id"]}
    ]

    order = await OrderRepository(test_db).get_order_by_order_id(result["order_id"])
    assert order.status == OrderStatus.PENDING
    assert order.user_id == user.id
    assert order.amount == Decimal("50")
    assert order.payment_session_id == "session_1"


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [None, 0, -10, "abc", "NaN", "Infinity", True, [50]])
async def test_invalid_amount_rejected_before_gateway(test_db, fake_gateway, amount):
    user = await TrialService(test_db).get_or_create_user("user_bad_amount")

    with pytest.raises(InvalidInput):
        await BillingService(test_db, fake_gateway).create_order(user.id, amount)

    assert fake_gateway.created == []
    assert await order_count(test_db) == 0


@pytest.mark.asyncio
async def test_gateway_failure_leaves_no_order(test_db, fake_gateway):
    user = await TrialService(test_db).get_or_create_user("user_gateway_down")
    fake_gateway.fail_create = True

    with pytest.raises(GatewayError) as exc_info:
        await BillingService(test_db, fake_gateway).create_order(user.id, 50)

    assert exc_info.value.retryable is True
    assert await order_count(test_db) == 0


@pytest.mark.asyncio
async def test_unknown_user_rejected(test_db, fake_gateway):
    with pytest.raises(UserNotFound):
        await BillingService(test_db, fake_gateway).create_order("no-such-user", 50)
    assert fake_gateway.created == []


@pytest.mark.asyncio
async def test_repeated_orders_for_same_user_get_distinct_ids(test_db, fake_gateway):
    user = await TrialService(test_db).get_or_create_user("user_retry")
    service = BillingService(test_db, fake_gateway)

    ids = {(await service.create_order(user.id, 50))["order_id"] for _ in range(5)}

    assert len(ids) == 5
    assert await order_count(test_db) == 5


def test_generated_order_ids_are_unique_within_one_millisecond():
    user_id = "3f0c2b9a-0000-4000-8000-000000000000"
    ids = {generate_order_id(user_id) for _ in range(1000)}

    assert len(ids) == 1000
    assert all(order_id.split("_")[2] == user_id[:8] for order_id in ids)


def test_parse_amount_accepts_numeric_strings():
    assert parse_amount("499.00") == Decimal("499.00")
    assert parse_amount(50) == Decimal("50")


@pytest.mark.asyncio
async def test_concurrent_orders_for_same_user_get_distinct_ids(test_db, session_factory, fake_gateway):
    user = await TrialService(test_db).get_or_create_user("user_concurrent")

    async def attempt():
        async with session_factory() as session:
            return await BillingService(session, fake_gateway).create_order(user.id, 50)

    results = await asyncio.gather(*(attempt() for _ in range(5)))

    ids = {result["order_id"] for result in results}
    assert len(ids) == 5
    assert await order_count(test_db) == 5


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0.001", "49.999", "100000000", "1E+9"])
async def test_amount_outside_stored_precision_rejected_before_gateway(test_db, fake_gateway, amount):
    user = await TrialService(test_db).get_or_create_user("user_precision")

    with pytest.raises(InvalidInput):
        await BillingService(test_db, fake_gateway).create_order(user.id, amount)

    assert fake_gateway.created == []
    assert await order_count(test_db) == 0


def test_parse_amount_accepts_stored_precision_bounds():
    assert parse_amount("0.01") == Decimal("0.01")
    assert parse_amount("99999999.99") == Decimal("99999999.99")
    assert parse_amount("50.10") == Decimal("50.10")


@pytest.mark.asyncio
async def test_no_transaction_held_during_gateway_call(test_db, fake_gateway):
    user = await TrialService(test_db).get_or_create_user("user_gateway_wait")

    seen = []
    create_checkout_order = fake_gateway.create_checkout_order

    async def recording_create(amount, user_id, order_id):
        seen.append(test_db.in_transaction())
        return await create_checkout_order(amount, user_id, order_id)

    fake_gateway.create_checkout_order = recording_create
    await BillingService(test_db, fake_gateway).create_order(user.id, 50)

    assert seen == [False]
