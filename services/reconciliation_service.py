"""
Reconciliation Service - turns gateway payment notifications into Pro entitlement.

Two uncoordinated triggers feed ``PaymentReconciler.confirm_payment``: the
gateway webhook (at-least-once, unordered, possibly duplicated) and the
client's verify poll (which asks the gateway directly). Whichever caller
moves the order out of PENDING first applies the user update; every later
caller observes a terminal status and changes nothing.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from crud.order import OrderRepository
from crud.user import UserRepository
from database_models import OrderStatus, User
from services.cashfree_client import CashfreeClient
from services.errors import OrderNotFound, UserNotFound
from utils.shared_utils import utcnow

logger = logging.getLogger(__name__)


class PaymentStatus:
    """Payment statuses reported by the gateway (webhook or lookup)."""
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    PENDING = "PENDING"


def duration_for(amount: Any) -> relativedelta:
    """
    Pro time granted for a paid amount.

    Monthly price -> one calendar month, annual price -> one calendar year,
    anything else -> the fallback number of days.
    """
    try:
        value = Decimal(str(amount))
    except ArithmeticError:
        value = None

    if value is not None and value == settings.price_pro_monthly:
        return relativedelta(months=1)
    if value is not None and value == settings.price_pro_annual:
        return relativedelta(years=1)
    return relativedelta(days=settings.fallback_pro_days)


def compute_new_expiry(user: User, amount: Any, now: datetime) -> datetime:
    """Extend an active Pro window from its current end; otherwise start from now."""
    base = now
    if user.is_pro and user.pro_expires_at is not None and user.pro_expires_at > now:
        base = user.pro_expires_at
    return base + duration_for(amount)


class PaymentReconciler:
    """
    Idempotent PENDING -> terminal state machine for orders.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.user_repo = UserRepository(db)
        self.order_repo = OrderRepository(db)

    async def confirm_payment(
        self,
        order_id: str,
        reported_status: Optional[str],
        reported_amount: Optional[Any] = None,
    ) -> str:
        """
        Apply a reported payment status to an order.

        The order transition and the user's Pro window are committed together
        or not at all. Safe to call any number of times from any trigger.

        Args:
            order_id: External correlation id of the order
            reported_status: SUCCESS, FAILED or CANCELLED; anything else is a no-op
            reported_amount: Amount the gateway says was paid, if known

        Returns:
            The order's status after this call

        Raises:
            OrderNotFound: unknown order_id (nothing is created)
            UserNotFound: the order's owner is missing; nothing is committed
        """
        reported = (reported_status or "").strip().upper()
        try:
            status = await self._reconcile(order_id, reported, reported_amount)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return status

    async def _reconcile(self, order_id: str, reported: str, reported_amount: Optional[Any]) -> str:
        if reported == PaymentStatus.SUCCESS:
            won = await self.order_repo.transition_if_pending(order_id, OrderStatus.PAID)
        elif reported in (PaymentStatus.FAILED, PaymentStatus.CANCELLED):
            won = await self.order_repo.transition_if_pending(order_id, reported)
        else:
            won = False

        order = await self.order_repo.get_order_by_order_id(order_id)
        if order is None:
            logger.warning(f"Reconciliation for unknown order {order_id} (reported={reported or 'none'})")
            raise OrderNotFound(order_id)

        if not won:
            if order.status in OrderStatus.TERMINAL:
                logger.info(f"Order {order_id} already {order.status}; ignoring reported {reported or 'none'}")
            else:
                logger.info(f"Order {order_id} still PENDING; no transition for reported {reported or 'none'}")
            return order.status

        if reported != PaymentStatus.SUCCESS:
            logger.info(f"Order {order_id} marked {order.status}")
            return order.status

        user = await self.user_repo.get_user_by_id(order.user_id, for_update=True)
        if user is None:
            logger.error(f"Order {order_id} references missing user {order.user_id}; rolling back")
            raise UserNotFound(order.user_id)

        if reported_amount is not None:
            try:
                mismatch = Decimal(str(reported_amount)) != Decimal(str(order.amount))
            except ArithmeticError:
                mismatch = True
            if mismatch:
                logger.warning(
                    f"Order {order_id}: gateway amount {reported_amount} differs from stored {order.amount}; "
                    f"using stored amount"
                )

        now = utcnow()
        new_expiry = compute_new_expiry(user, order.amount, now)
        await self.user_repo.update_user(user, {
            "is_pro": True,
            "pro_expires_at": new_expiry,
            "subscription_start_date": now,
            "subscription_end_date": new_expiry,
        })

        logger.info(f"Order {order_id} PAID: user {user.id} upgraded to PRO until {new_expiry.isoformat()}")
        return OrderStatus.PAID

    async def verify_with_gateway(self, order_id: str, owner_id: str, gateway: CashfreeClient) -> str:
        """
        Client-initiated verification: look the order up at the gateway and
        reconcile with its answer.

        Orders that are already terminal are answered from the store without
        a gateway call.

        Raises:
            OrderNotFound: unknown order, or an order owned by someone else
            GatewayError: gateway lookup failed; the client should retry
        """
        order = await self.order_repo.get_order_by_order_id(order_id)
        if order is None or order.user_id != owner_id:
            logger.warning(f"Verify requested for unknown order {order_id} by user {owner_id}")
            raise OrderNotFound(order_id)

        if order.status in OrderStatus.TERMINAL:
            return order.status

        # Don't hold a transaction open across the gateway round trip
        await self.db.commit()

        lookup = await gateway.lookup_payment_status(order_id)
        logger.info(f"Verify: gateway reports {lookup.status} for order {order_id}")
        return await self.confirm_payment(order_id, lookup.status, lookup.amount)
