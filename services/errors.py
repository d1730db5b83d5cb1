"""
Error taxonomy for the subscription and entitlement services.

Reconciling an order that is already terminal is not an error: the existing
status is returned instead.
"""


class EntitlementError(Exception):
    """Base class for errors raised by the entitlement services."""
    error_code = "entitlement_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.error_code


class InvalidInput(EntitlementError):
    """Rejected before any state was touched (bad amount, malformed payload)."""
    error_code = "invalid_input"
    status_code = 400


class NotFound(EntitlementError):
    error_code = "not_found"
    status_code = 404


class OrderNotFound(NotFound):
    error_code = "order_not_found"

    def __init__(self, order_id: str):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class UserNotFound(NotFound):
    error_code = "user_not_found"

    def __init__(self, user_id: str):
        super().__init__(f"User {user_id} not found")
        self.user_id = user_id


class GatewayError(EntitlementError):
    """The payment gateway could not be reached or answered with garbage."""
    error_code = "gateway_unavailable"
    status_code = 502
    retryable = True
