"""
OrderRepository for database operations on Order model
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from database_models import Order, OrderStatus
from utils.shared_utils import utcnow


class OrderRepository:
    """
    Repository class for Order database operations.

    Orders are never deleted here. The only mutation after creation is the
    single PENDING -> terminal transition done by ``transition_if_pending``.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_order_by_order_id(self, order_id: str) -> Optional[Order]:
        """Retrieve an order by its external correlation id, always re-reading the row."""
        result = await self.db.execute(
            select(Order)
            .where(Order.order_id == order_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create_order(self, order_data: dict) -> Order:
        """
        Persist a new PENDING order.

        Args:
            order_data: Dictionary with order_id, payment_session_id, amount and user_id

        Returns:
            Created Order object
        """
        order = Order(
            order_id=order_data["order_id"],
            payment_session_id=order_data["payment_session_id"],
            amount=order_data["amount"],
            user_id=order_data["user_id"],
            status=OrderStatus.PENDING,
        )
        self.db.add(order)
        await self.db.flush()
        await self.db.refresh(order)
        return order

    async def transition_if_pending(self, order_id: str, new_status: str) -> bool:
        """
        Atomically move an order out of PENDING.

        Issues ``UPDATE ... WHERE order_id = :id AND status = 'PENDING'`` and
        checks the affected row count, so that of any number of concurrent
        callers exactly one wins.

        Returns:
            True if this call performed the transition, False otherwise
            (unknown order or already terminal)
        """
        if new_status not in OrderStatus.TERMINAL:
            raise ValueError(f"Not a terminal order status: {new_status}")

        result = await self.db.execute(
            update(Order)
            .where(Order.order_id == order_id, Order.status == OrderStatus.PENDING)
            .values(status=new_status, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
