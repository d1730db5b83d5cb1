"""
Billing Service - creates Pro checkout orders against the payment gateway
"""

import logging
import time
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from crud.order import OrderRepository
from crud.user import UserRepository
from services.cashfree_client import CashfreeClient
from services.errors import InvalidInput, UserNotFound

logger = logging.getLogger(__name__)

# Order.amount is Numeric(10, 2)
MAX_AMOUNT = Decimal("99999999.99")
AMOUNT_QUANTUM = Decimal("0.01")


def parse_amount(raw: Any) -> Decimal:
    """
    Coerce a client-supplied amount into a strictly positive Decimal.

    Raises:
        InvalidInput: if the value is missing, non-numeric, not finite, <= 0,
            above MAX_AMOUNT or finer than two decimal places
    """
    if raw is None or isinstance(raw, bool):
        raise InvalidInput("Invalid amount")
    try:
        amount = Decimal(str(raw))
    except (InvalidOperation, ValueError):
        raise InvalidInput("Invalid amount")
    if not amount.is_finite() or amount <= 0 or amount > MAX_AMOUNT:
        raise InvalidInput("Invalid amount")
    if amount != amount.quantize(AMOUNT_QUANTUM):
        raise InvalidInput("Invalid amount")
    return amount


def generate_order_id(user_id: str) -> str:
    """
    Build a correlation id unique per attempt:
    order_<epoch ms>_<user fragment>_<random>.
    """
    return f"order_{int(time.time() * 1000)}_{user_id[:8]}_{uuid.uuid4().hex[:8]}"


class BillingService:
    """
    Service class for the order lifecycle: one PENDING order per checkout attempt.
    """

    def __init__(self, db: AsyncSession, gateway: CashfreeClient):
        """
        Initialize the billing service.

        Args:
            db: AsyncSession instance for database operations
            gateway: Payment gateway client
        """
        self.db = db
        self.gateway = gateway
        self.user_repo = UserRepository(db)
        self.order_repo = OrderRepository(db)

    async def create_order(self, user_id: str, amount: Any) -> Dict[str, str]:
        """
        Create a checkout order for a user and persist it as PENDING.

        Nothing is written unless the gateway returned a usable session.

        Args:
            user_id: Owning user's id
            amount: Price to charge (must be > 0)

        Returns:
            {"order_id": ..., "payment_session_id": ...}

        Raises:
            InvalidInput: amount is not a positive number (no gateway call made)
            UserNotFound: user_id does not resolve
            GatewayError: gateway unreachable or malformed response
        """
        amount = parse_amount(amount)

        user = await self.user_repo.get_user_by_id(user_id)
        if not user:
            raise UserNotFound(user_id)

        # Release the request transaction before the gateway round trip
        await self.db.commit()

        order_id = generate_order_id(user.id)
        payment_session_id = await self.gateway.create_checkout_order(amount, user.id, order_id)

        try:
            await self.order_repo.create_order({
                "order_id": order_id,
                "payment_session_id": payment_session_id,
                "amount": amount,
                "user_id": user.id,
            })
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(f"Order {order_id} created for user {user.id} (amount={amount})")
        return {"order_id": order_id, "payment_session_id": payment_session_id}
