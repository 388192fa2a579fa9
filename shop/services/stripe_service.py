import json
import logging
from decimal import Decimal
from typing import Any

import stripe

from shop.config import settings
from shop.errors import InvalidSignatureError, ProviderUnavailableError
from shop.services.payment_provider import (
    EventKind,
    InitiateResult,
    PaymentEvent,
    ProviderName,
    RefundResult,
    SignedEventProvider,
    VerificationResult,
    from_minor_units,
    to_minor_units,
)

logger = logging.getLogger(__name__)

STRIPE_EVENT_KINDS = {
    "payment_intent.succeeded": EventKind.SUCCEEDED,
    "payment_intent.payment_failed": EventKind.FAILED,
    "payment_intent.canceled": EventKind.CANCELED,
}


class StripeProvider(SignedEventProvider):
    """PaymentIntent-based Stripe integration with signed webhooks."""

    name = ProviderName.STRIPE

    def __init__(self):
        if not settings.STRIPE_SECRET_KEY:
            raise ProviderUnavailableError("STRIPE_SECRET_KEY is not set")
        self.currency = settings.STRIPE_CURRENCY

    @staticmethod
    def _configure() -> None:
        stripe.api_key = settings.STRIPE_SECRET_KEY

    def initiate(
        self,
        order_id: int,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any] | None = None,
    ) -> InitiateResult:
        self._configure()
        intent_metadata = {"order_id": str(order_id)}
        intent_metadata.update({key: str(value) for key, value in (metadata or {}).items()})
        try:
            intent = stripe.PaymentIntent.create(
                amount=to_minor_units(amount),
                currency=currency.lower(),
                metadata=intent_metadata,
                automatic_payment_methods={"enabled": True},
            )
        except stripe.CardError as e:
            logger.warning("Stripe declined payment for order %s: %s", order_id, e)
            return InitiateResult(ok=False, error=e.user_message or str(e))
        except stripe.StripeError as e:
            logger.error("Stripe payment initiation failed for order %s: %s", order_id, e)
            raise ProviderUnavailableError(f"Failed to initiate Stripe payment: {e}") from e

        logger.info("Stripe payment intent created: %s", intent.id)
        return InitiateResult(
            ok=True,
            external_payment_id=intent.id,
            client_secret=intent.client_secret,
        )

    def verify(self, external_payment_id: str) -> VerificationResult:
        self._configure()
        try:
            intent = stripe.PaymentIntent.retrieve(external_payment_id)
        except stripe.StripeError as e:
            logger.error("Stripe verification failed for %s: %s", external_payment_id, e)
            raise ProviderUnavailableError(f"Failed to verify Stripe payment: {e}") from e

        logger.info("Stripe payment verified: %s - %s", external_payment_id, intent.status)
        return VerificationResult(
            verified=intent.status == "succeeded",
            status=intent.status,
            external_transaction_id=intent.id,
            amount=from_minor_units(intent.amount),
        )

    def refund(self, external_payment_id: str, amount: Decimal | None = None) -> RefundResult:
        self._configure()
        params: dict[str, Any] = {"payment_intent": external_payment_id}
        if amount is not None:
            params["amount"] = to_minor_units(amount)
        try:
            refund = stripe.Refund.create(**params)
        except stripe.InvalidRequestError as e:
            logger.warning("Stripe rejected refund for %s: %s", external_payment_id, e)
            return RefundResult(ok=False, error=e.user_message or str(e))
        except stripe.StripeError as e:
            logger.error("Stripe refund failed for %s: %s", external_payment_id, e)
            raise ProviderUnavailableError(f"Failed to process Stripe refund: {e}") from e

        logger.info("Stripe refund created: %s", refund.id)
        return RefundResult(ok=True, refund_id=refund.id)

    def construct_verified_event(self, raw_payload: bytes, signature_header: str) -> PaymentEvent:
        if not settings.STRIPE_WEBHOOK_SECRET:
            raise ProviderUnavailableError("STRIPE_WEBHOOK_SECRET is not set")

        try:
            payload_text = raw_payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidSignatureError("Webhook payload is not valid UTF-8") from e

        try:
            stripe.WebhookSignature.verify_header(
                payload_text,
                signature_header,
                settings.STRIPE_WEBHOOK_SECRET,
                settings.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
            )
        except stripe.SignatureVerificationError as e:
            logger.warning("Stripe webhook signature verification failed: %s", e)
            raise InvalidSignatureError() from e

        try:
            data = json.loads(payload_text)
        except ValueError as e:
            raise InvalidSignatureError("Invalid webhook payload") from e

        return parse_stripe_event(data)


def parse_stripe_event(data: dict[str, Any]) -> PaymentEvent:
    event_type = str(data.get("type", ""))
    intent = (data.get("data") or {}).get("object") or {}
    kind = STRIPE_EVENT_KINDS.get(event_type, EventKind.IGNORED)

    details: dict[str, Any] = {"eventId": data.get("id"), "status": intent.get("status")}
    last_error = intent.get("last_payment_error")
    if last_error:
        details["error"] = last_error.get("message") if isinstance(last_error, dict) else str(last_error)

    return PaymentEvent(
        kind=kind,
        external_id=intent.get("id"),
        event_type=event_type,
        amount=intent.get("amount"),
        details=details,
    )
