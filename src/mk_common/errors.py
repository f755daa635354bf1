"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Auth
  2xxx: Checkout
  3xxx: Payment / webhook
  9xxx: System
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


# --- 1xxx: Auth ---

class InvalidCredentialsError(AppError):
    def __init__(self) -> None:
        super().__init__(1001, "Invalid or expired token", 401)


class BuyerAccountRequiredError(AppError):
    def __init__(self) -> None:
        super().__init__(1002, "Buyer account with an organization required", 403)


# --- 2xxx: Checkout ---

class EmptyCartError(AppError):
    def __init__(self, detail: str = "Cart has no items") -> None:
        super().__init__(2001, detail, 400)


class AddressNotFoundError(AppError):
    def __init__(self, address_id: str) -> None:
        super().__init__(2002, f"Address not found: {address_id}", 404)


class CheckoutValidationError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2003, f"Invalid checkout request: {detail}", 400)


# --- 3xxx: Payment / webhook ---

class SignatureVerificationError(AppError):
    def __init__(self, detail: str = "Webhook signature verification failed") -> None:
        super().__init__(3001, detail, 400)


class InvalidWebhookPayloadError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3002, f"Invalid webhook payload: {detail}", 400)


class DuplicateEventError(AppError):
    """Raised by the idempotency store; the webhook processor swallows it."""

    def __init__(self, event_id: str) -> None:
        self.event_id = event_id
        super().__init__(3003, f"Event already processed: {event_id}", 200)


class PaymentGatewayError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3004, f"Payment gateway error: {detail}", 502)


class PersistenceError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(3005, f"Settlement persistence failed: {detail}", 500)


# --- 9xxx: System ---

class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)


class BestEffortFailure(Exception):
    """Failure of a non-critical step (email, notification, cart clear).

    Never surfaced to the caller; caught and logged by BestEffortRunner.
    """
