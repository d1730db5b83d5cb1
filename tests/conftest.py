"""
Pytest configuration and fixtures for testing
"""
import os

# Settings are read at import time; give the tests a signing secret and no gateway keys
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("ENV", "test")

from decimal import Decimal

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker

from database import Base, configure_sqlite_locking
from services.cashfree_client import PaymentLookup
from services.errors import GatewayError


@pytest.fixture
async def test_engine(tmp_path):
    """
    Engine on a throwaway SQLite file, so separate sessions really are
    separate connections (needed to exercise concurrent reconciliation).
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        future=True,
    )
    configure_sqlite_locking(engine)

    async with engine.begin() as conn:
        # Import models to ensure they're registered with Base
        from database_models import User, Order  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory):
    """
    Fixture that provides an isolated database session for each test.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


class FakeGateway:
    """In-process stand-in for the payment gateway client."""

    def __init__(self):
        self.created = []
        self.lookups = []
        self.order_statuses = {}
        self.fail_create = False
        self.fail_lookup = False
        self.session_counter = 0

    @property
    def is_configured(self):
        return True

    async def create_checkout_order(self, amount, user_id, order_id):
        if self.fail_create:
            raise GatewayError("Payment gateway unreachable")
        self.session_counter += 1
        self.created.append({"amount": amount, "user_id": user_id, "order_id": order_id})
        return f"session_{self.session_counter}"

    async def lookup_payment_status(self, order_id):
        self.lookups.append(order_id)
        if self.fail_lookup:
            raise GatewayError("Payment gateway timed out")
        status, amount = self.order_statuses.get(order_id, ("PENDING", None))
        return PaymentLookup(status=status, amount=Decimal(str(amount)) if amount is not None else None)


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
async def async_client(session_factory, fake_gateway):
    """
    Async HTTP client against the app, with the database and the payment
    gateway swapped for test doubles.
    """
    from main import app
    from database import get_db
    from services.cashfree_client import get_gateway_client

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise
            finally:
                await session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_client] = lambda: fake_gateway

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Build an Authorization header for an identity-provider subject."""
    from auth_utils import create_jwt

    def _headers(subject: str = "user_test_subject"):
        return {"Authorization": f"Bearer {create_jwt(subject)}"}

    return _headers
