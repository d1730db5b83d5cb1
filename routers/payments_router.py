"""
Payments Router - Pro subscription orders, gateway webhook, verification and status
Webhook is defined FIRST; it is the only unauthenticated endpoint
"""

import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, require_active_access
from config.settings import settings
from database import get_db
from database_models import OrderStatus, User
from services.billing_service import BillingService
from services.cashfree_client import CashfreeClient, get_gateway_client
from services.entitlement_service import access_status, entitlement_payload
from services.errors import EntitlementError, InvalidInput, OrderNotFound, UserNotFound
from services.reconciliation_service import PaymentReconciler, PaymentStatus
from services.webhook_signature import verify_signature
from utils.responses import success_response, error_response

logger = logging.getLogger(__name__)

payments_router = APIRouter(prefix="/api/payments", tags=["payments"])


class CreateOrderRequest(BaseModel):
    amount: Any = None


class VerifyRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId", min_length=1)


def _entitlement_error_response(e: EntitlementError) -> JSONResponse:
    data = {"retryable": True} if e.retryable else None
    return error_response(e.error_code, status=e.status_code, message=e.message, data=data)


def _webhook_ack(message: Optional[str] = None, ok: bool = True) -> JSONResponse:
    content = {"ok": ok, "status": "received"}
    if message:
        content["message"] = message
    return JSONResponse(status_code=200, content=content)


def extract_webhook_fields(event: Any):
    """
    Pull (order_id, payment_status, payment_amount) out of a gateway notification.

    Accepts the gateway envelope ``{"data": {"order": ..., "payment": ...}}``
    as well as the bare ``{"order": ..., "payment": ...}`` shape.

    Raises:
        InvalidInput: if either field is missing
    """
    if not isinstance(event, dict):
        raise InvalidInput("Webhook payload is not an object")
    data = event.get("data") if isinstance(event.get("data"), dict) else event

    order = data.get("order")
    payment = data.get("payment")
    if not isinstance(order, dict) or not isinstance(payment, dict):
        raise InvalidInput("Webhook payload is missing order or payment")

    order_id = order.get("order_id")
    payment_status = payment.get("payment_status")
    if not isinstance(order_id, str) or not order_id or not isinstance(payment_status, str):
        raise InvalidInput("Webhook payload is missing order_id or payment_status")

    payment_amount = payment.get("payment_amount")
    return order_id, payment_status, payment_amount


# WEBHOOK ENDPOINT - gateway-originated, no auth
@payments_router.post("/webhook")
async def payment_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """
    Handle gateway payment notifications.

    Deliveries are at-least-once and unordered; reconciliation is idempotent,
    so duplicates are harmless. Unparseable payloads, bad signatures and
    unknown orders are acknowledged with 200 and ignored so the gateway does
    not keep redelivering them. Unexpected failures return 500 so the
    gateway retries.
    """
    payload = await request.body()

    signature = request.headers.get("x-webhook-signature")
    timestamp = request.headers.get("x-webhook-timestamp")
    if settings.cashfree_secret_key and (signature or settings.webhook_signature_required):
        if not verify_signature(settings.cashfree_secret_key, payload, signature, timestamp):
            logger.error("[Webhook] Signature verification failed")
            return _webhook_ack("ignored_invalid_signature", ok=False)
    elif settings.webhook_signature_required:
        logger.error("[Webhook] Signature required but CASHFREE_SECRET_KEY is not set")
        return _webhook_ack("ignored_signature_unavailable", ok=False)
    else:
        logger.warning("[Webhook] Processing unsigned notification")

    try:
        event = json.loads(payload.decode("utf-8"))
        order_id, payment_status, payment_amount = extract_webhook_fields(event)
    except (ValueError, InvalidInput) as e:
        logger.warning(f"[Webhook] Invalid payload structure: {e}")
        return _webhook_ack("ignored_invalid_payload")

    logger.info(f"[Webhook] Order: {order_id}, Status: {payment_status}")

    try:
        status = await PaymentReconciler(db).confirm_payment(order_id, payment_status, payment_amount)
    except OrderNotFound:
        return _webhook_ack("ignored_unknown_order")
    except UserNotFound as e:
        logger.error(f"[Webhook] Order {order_id} has no owning user {e.user_id}")
        return _webhook_ack("ignored_internal_inconsistency", ok=False)
    except Exception as e:
        logger.error(f"[Webhook] Processing failed for order {order_id}: {e}", exc_info=True)
        return JSONResponse(status_code=500, content={"ok": False, "error": "Webhook processing failed"})

    return JSONResponse(status_code=200, content={"ok": True, "status": "received", "orderStatus": status})


@payments_router.post("/create-order")
async def create_order(
    body: CreateOrderRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: CashfreeClient = Depends(get_gateway_client),
):
    """
    Create a Pro checkout order for the caller.

    Returns:
        {"orderId": ..., "paymentSessionId": ...} for the client checkout UI
    """
    try:
        result = await BillingService(db, gateway).create_order(current_user.id, body.amount)
    except EntitlementError as e:
        return _entitlement_error_response(e)

    return success_response({
        "orderId": result["order_id"],
        "paymentSessionId": result["payment_session_id"],
    })


@payments_router.post("/verify")
async def verify_payment(
    body: VerifyRequest,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: CashfreeClient = Depends(get_gateway_client),
):
    """
    Called by the client after returning from checkout. Looks the order up at
    the gateway and runs the same reconciliation as the webhook.

    Returns:
        {"status": "SUCCESS" | "PENDING", "orderStatus": <stored status>}
    """
    try:
        order_status = await PaymentReconciler(db).verify_with_gateway(body.order_id, current_user.id, gateway)
    except UserNotFound as e:
        logger.error(f"Verify: order {body.order_id} has no owning user {e.user_id}")
        return error_response("internal_inconsistency", status=500, message="Order owner is missing")
    except EntitlementError as e:
        return _entitlement_error_response(e)

    status = PaymentStatus.SUCCESS if order_status == OrderStatus.PAID else PaymentStatus.PENDING
    return success_response({"status": status, "orderStatus": order_status})


@payments_router.get("/status")
async def get_payment_status(current_user: User = Depends(get_current_user)):
    """Entitlement summary for the caller (trial is provisioned on first contact)."""
    return success_response(entitlement_payload(current_user))


@payments_router.get("/access")
async def check_feature_access(current_user: User = Depends(require_active_access)):
    """Succeeds only for callers currently on Pro or trial."""
    return success_response({"accessStatus": access_status(current_user)})
