"""
Cashfree Client - thin async wrapper over the Cashfree PG REST API
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional

import httpx

from config.settings import settings
from services.errors import GatewayError

logger = logging.getLogger(__name__)

CASHFREE_BASE_URLS = {
    "PROD": "https://api.cashfree.com/pg",
    "SANDBOX": "https://sandbox.cashfree.com/pg",
}

# Gateway order_status -> reported payment status understood by the reconciler
ORDER_STATUS_TO_PAYMENT_STATUS = {
    "PAID": "SUCCESS",
    "EXPIRED": "CANCELLED",
    "TERMINATED": "CANCELLED",
}


@dataclass(frozen=True)
class PaymentLookup:
    """Authoritative payment state of one order, as reported by the gateway."""
    status: str
    amount: Optional[Decimal]


class CashfreeClient:
    """
    Payment gateway collaborator.

    Every failure to reach the gateway, or any response that does not carry
    the fields we need, is raised as GatewayError so callers can treat it as
    retryable.
    """

    def __init__(
        self,
        app_id: Optional[str] = None,
        secret_key: Optional[str] = None,
        environment: Optional[str] = None,
        api_version: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.app_id = app_id if app_id is not None else settings.cashfree_app_id
        self.secret_key = secret_key if secret_key is not None else settings.cashfree_secret_key
        env = (environment or settings.cashfree_env or "SANDBOX").upper()
        self.base_url = CASHFREE_BASE_URLS.get(env, CASHFREE_BASE_URLS["SANDBOX"])
        self.api_version = api_version or settings.cashfree_api_version
        self.timeout = timeout if timeout is not None else settings.cashfree_timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.app_id and self.secret_key)

    def _headers(self) -> dict:
        return {
            "x-client-id": self.app_id or "",
            "x-client-secret": self.secret_key or "",
            "x-api-version": self.api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    async def _request(self, method: str, path: str, json: Optional[dict] = None) -> dict:
        if not self.is_configured:
            logger.error("CASHFREE_APP_ID / CASHFREE_SECRET_KEY are not set. Cannot reach payment gateway.")
            raise GatewayError("Payment gateway is not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json, headers=self._headers())
        except httpx.TimeoutException as e:
            logger.error(f"Cashfree request timed out: {method} {path}: {e}", exc_info=True)
            raise GatewayError("Payment gateway timed out") from e
        except httpx.RequestError as e:
            logger.error(f"Cashfree request error: {method} {path}: {e}", exc_info=True)
            raise GatewayError("Payment gateway unreachable") from e

        if response.status_code >= 400:
            logger.error(
                f"Cashfree returned HTTP {response.status_code} for {method} {path}: {response.text[:500]}"
            )
            raise GatewayError(f"Payment gateway returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Cashfree returned a non-JSON body for {method} {path}")
            raise GatewayError("Payment gateway returned malformed data") from e

        if not isinstance(data, dict):
            raise GatewayError("Payment gateway returned malformed data")
        return data

    async def create_checkout_order(self, amount: Decimal, user_id: str, order_id: str) -> str:
        """
        Create a checkout order at the gateway.

        Args:
            amount: Amount to charge, in major currency units
            user_id: Owning user, sent as the gateway customer id
            order_id: Our correlation id for this attempt

        Returns:
            The gateway-issued payment_session_id for the client checkout UI
        """
        request = {
            "order_amount": float(amount),
            "order_currency": settings.pay_currency,
            "order_id": order_id,
            "customer_details": {
                "customer_id": user_id,
                "customer_phone": "9999999999",
                "customer_email": "customer@example.com",
            },
            "order_meta": {
                "notify_url": f"{(settings.backend_url or '').rstrip('/')}/api/payments/webhook",
            },
        }

        data = await self._request("POST", "/orders", json=request)

        payment_session_id = data.get("payment_session_id")
        if not payment_session_id or data.get("order_id") != order_id:
            logger.error(f"Cashfree create-order response is missing fields for order {order_id}: keys={list(data.keys())}")
            raise GatewayError("Payment gateway returned malformed data")
        return payment_session_id

    async def lookup_payment_status(self, order_id: str) -> PaymentLookup:
        """
        Ask the gateway for the authoritative state of an order.

        Returns:
            PaymentLookup with status SUCCESS, CANCELLED or PENDING
        """
        data = await self._request("GET", f"/orders/{order_id}")

        order_status = data.get("order_status")
        if not isinstance(order_status, str):
            raise GatewayError("Payment gateway returned malformed data")

        amount = None
        if data.get("order_amount") is not None:
            try:
                amount = Decimal(str(data["order_amount"]))
            except InvalidOperation:
                logger.warning(f"Cashfree returned a non-numeric amount for order {order_id}")

        status = ORDER_STATUS_TO_PAYMENT_STATUS.get(order_status.upper(), "PENDING")
        return PaymentLookup(status=status, amount=amount)


_default_client: Optional[CashfreeClient] = None


def get_gateway_client() -> CashfreeClient:
    """FastAPI dependency returning the process-wide gateway client."""
    global _default_client
    if _default_client is None:
        _default_client = CashfreeClient()
        if not _default_client.is_configured:
            logger.warning("Cashfree credentials are not set. Payment functionality will be unavailable.")
    return _default_client
