import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, ForeignKey, Index

from database import Base
from utils.shared_utils import utcnow


class OrderStatus:
    """Order status values. Everything except PENDING is terminal."""
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"

    TERMINAL = frozenset({PAID, FAILED, CANCELLED})


def _new_user_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    """
    A user of the tracker, keyed by an opaque id and linked to exactly one
    identity-provider subject.

    All timestamps are naive UTC.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_user_id)
    external_auth_id = Column(String(255), unique=True, nullable=False, index=True)

    is_pro = Column(Boolean, default=False, nullable=False)
    pro_expires_at = Column(DateTime, nullable=True)

    # Activation window of the most recent confirmed payment (informational)
    subscription_start_date = Column(DateTime, nullable=True)
    subscription_end_date = Column(DateTime, nullable=True)

    trial_start_date = Column(DateTime, nullable=True)
    trial_end_date = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)


class Order(Base):
    """
    A payment attempt against the gateway. Kept forever as an audit trail;
    removed only when the owning user is deleted.
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(64), unique=True, nullable=False, index=True)
    payment_session_id = Column(String(512), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(16), default=OrderStatus.PENDING, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_orders_user_status", "user_id", "status"),
    )
