"""StripeGatewayClient — owned Stripe client, one instance per application.

The API key is passed per request instead of being set on the global
``stripe.api_key``, so two clients (e.g. test + live) can coexist in one
process. The stripe SDK is synchronous; calls run in a worker thread.

Webhook verification uses ``stripe.WebhookSignature.verify_header`` over the
RAW body, then parses the JSON ourselves into plain GatewayEvent dataclasses
so nothing downstream depends on StripeObject.
"""

import asyncio
import json
import logging
from typing import Any

import stripe

from src.mk_common.errors import (
    InvalidWebhookPayloadError,
    PaymentGatewayError,
    SignatureVerificationError,
)
from src.mk_payment.domain.models import CreatedIntent, GatewayEvent, GatewayIntent

logger = logging.getLogger(__name__)

# Stripe metadata limits: 50 keys, 40-char keys, 500-char values
METADATA_VALUE_LIMIT = 500


class StripeGatewayClient:
    def __init__(
        self,
        api_key: str,
        webhook_secret: str,
        currency: str = "usd",
        tolerance_seconds: int = 300,
    ) -> None:
        if not api_key:
            raise ValueError("Stripe API key is required")
        if not webhook_secret:
            raise ValueError("Stripe webhook secret is required")
        self._api_key = api_key
        self._webhook_secret = webhook_secret
        self._currency = currency.lower()
        self._tolerance = tolerance_seconds

    @property
    def currency(self) -> str:
        return self._currency

    async def create_payment_intent(
        self,
        amount_minor: int,
        currency: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> CreatedIntent:
        try:
            intent = await asyncio.to_thread(
                stripe.PaymentIntent.create,
                api_key=self._api_key,
                idempotency_key=idempotency_key,
                amount=amount_minor,
                currency=currency.lower(),
                automatic_payment_methods={"enabled": True},
                metadata=metadata,
            )
        except stripe.StripeError as exc:
            logger.error(
                "Stripe PaymentIntent.create failed: amount=%d currency=%s key=%s: %s",
                amount_minor,
                currency,
                idempotency_key,
                exc.user_message or str(exc),
            )
            raise PaymentGatewayError(exc.user_message or "PaymentIntent creation failed") from exc

        return CreatedIntent(
            id=intent["id"],
            client_secret=intent["client_secret"],
            amount_minor=int(intent["amount"]),
            currency=str(intent["currency"]),
            status=str(intent["status"]),
        )

    def construct_event(self, raw_body: bytes, signature: str | None) -> GatewayEvent:
        """Verify the Stripe-Signature header and parse the event.

        Raises:
            SignatureVerificationError: header missing, malformed, stale or wrong.
            InvalidWebhookPayloadError: signature valid but body is not an event.
        """
        if not signature:
            raise SignatureVerificationError("Missing Stripe-Signature header")
        try:
            body = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            raise SignatureVerificationError("Webhook body is not valid UTF-8") from None
        try:
            stripe.WebhookSignature.verify_header(
                body, signature, self._webhook_secret, self._tolerance
            )
        except stripe.SignatureVerificationError:
            raise SignatureVerificationError() from None

        try:
            data = json.loads(body)
        except json.JSONDecodeError as exc:
            raise InvalidWebhookPayloadError(str(exc)) from None
        return parse_event(data)


def parse_event(data: Any) -> GatewayEvent:
    if not isinstance(data, dict) or not data.get("id") or not data.get("type"):
        raise InvalidWebhookPayloadError("event id/type missing")
    obj = (data.get("data") or {}).get("object") or {}
    intent = _parse_intent(obj) if obj.get("object") == "payment_intent" else None
    return GatewayEvent(
        id=str(data["id"]),
        type=str(data["type"]),
        created=int(data.get("created") or 0),
        intent=intent,
        payload=data,
    )


def _parse_intent(obj: dict[str, Any]) -> GatewayIntent:
    payment_method = obj.get("payment_method")
    if isinstance(payment_method, dict):
        payment_method = payment_method.get("id")
    error = obj.get("last_payment_error") or {}
    return GatewayIntent(
        id=str(obj["id"]),
        amount_minor=int(obj.get("amount") or 0),
        currency=str(obj.get("currency") or ""),
        status=str(obj.get("status") or ""),
        payment_method_id=payment_method,
        failure_code=error.get("decline_code") or error.get("code"),
        failure_message=error.get("message"),
        metadata={str(k): str(v) for k, v in (obj.get("metadata") or {}).items()},
    )


def build_metadata(values: dict[str, Any]) -> dict[str, str]:
    """Flatten values into Stripe metadata; JSON-encode lists/dicts.

    Values over the 500-char limit are dropped; the payment_intent_orders
    table is the source of truth and metadata is only a debugging hint.
    """
    metadata: dict[str, str] = {}
    for key, value in values.items():
        encoded = value if isinstance(value, str) else json.dumps(value, separators=(",", ":"))
        if len(encoded) > METADATA_VALUE_LIMIT:
            logger.info("Dropping metadata key %s: %d chars over limit", key, len(encoded))
            continue
        metadata[key] = encoded
    return metadata
