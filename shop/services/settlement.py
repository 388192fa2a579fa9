"""Settlement of provider outcomes against local payment, order and stock state.

Every attempt runs in one transaction on the caller's session. The transition
out of PENDING/FAILED is a conditional UPDATE guarded by the current status, so
concurrent or repeated deliveries of the same event settle at most once.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from sqlalchemy.orm import Session

from shop.errors import ValidationError
from shop.models import AuditKind, Order, OrderStatus, Payment, PaymentAuditEntry, PaymentStatus
from shop.services import payment_gateways
from shop.services.inventory import StockAlreadyDecremented, decrement_stock_for_order
from shop.services.payment_provider import EventKind, PaymentEvent, ProviderName, SignedEventProvider

logger = logging.getLogger(__name__)


class SettlementOutcome(str, Enum):
    SETTLED = "settled"
    ALREADY_SETTLED = "already_settled"
    FAILED = "failed"
    CANCELED = "canceled"
    PAYMENT_NOT_FOUND = "payment_not_found"
    IGNORED = "ignored"


@dataclass(frozen=True)
class SettlementResult:
    outcome: SettlementOutcome
    payment_id: int | None = None


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def ingest_notification(
    db: Session,
    provider: str | ProviderName,
    raw_payload: bytes,
    signature_header: str,
) -> SettlementResult:
    """Verify a signed provider notification and settle it.

    Raises InvalidSignatureError before anything is parsed or read from the
    database when the signature does not match the payload.
    """
    gateway = payment_gateways.resolve(provider)
    if not isinstance(gateway, SignedEventProvider):
        raise ValidationError(f"Provider {gateway.name.value} does not send signed notifications")

    event = gateway.construct_verified_event(raw_payload, signature_header)
    logger.info("%s webhook received: %s", gateway.name.value, event.event_type)
    return handle_event(db, gateway.name, event)


def handle_event(db: Session, provider: ProviderName, event: PaymentEvent) -> SettlementResult:
    if event.kind is EventKind.IGNORED:
        logger.info("Unhandled %s event type: %s", provider.value, event.event_type)
        return SettlementResult(SettlementOutcome.IGNORED)

    payment = None
    if event.external_id:
        payment = (
            db.query(Payment)
            .filter(Payment.transaction_id == event.external_id, Payment.provider == provider.value)
            .first()
        )
    if payment is None:
        logger.warning("Payment not found for %s transaction: %s", provider.value, event.external_id)
        return SettlementResult(SettlementOutcome.PAYMENT_NOT_FOUND)

    audit_payload = {
        "eventType": event.event_type,
        "amount": event.amount,
        "processedAt": utcnow_iso(),
        **event.details,
    }
    return apply_outcome(db, payment.id, event.kind, AuditKind.WEBHOOK, audit_payload)


def apply_outcome(
    db: Session,
    payment_id: int,
    kind: EventKind,
    audit_kind: AuditKind,
    audit_payload: dict[str, Any],
) -> SettlementResult:
    if kind is EventKind.SUCCEEDED:
        return _settle_success(db, payment_id, audit_kind, audit_payload)
    if kind is EventKind.FAILED:
        return _record_failure(db, payment_id, audit_kind, audit_payload, cancel_order=False)
    if kind is EventKind.CANCELED:
        return _record_failure(db, payment_id, audit_kind, audit_payload, cancel_order=True)
    if kind is EventKind.IGNORED:
        return SettlementResult(SettlementOutcome.IGNORED, payment_id)
    raise ValueError(f"Unhandled event kind: {kind!r}")


def _transition_unless_settled(db: Session, payment_id: int, new_status: PaymentStatus) -> bool:
    updated = (
        db.query(Payment)
        .filter(Payment.id == payment_id, Payment.status != PaymentStatus.SUCCESS.value)
        .update({Payment.status: new_status.value}, synchronize_session=False)
    )
    return updated == 1


def _settle_success(
    db: Session,
    payment_id: int,
    audit_kind: AuditKind,
    audit_payload: dict[str, Any],
) -> SettlementResult:
    try:
        if not _transition_unless_settled(db, payment_id, PaymentStatus.SUCCESS):
            db.rollback()
            logger.info("Payment already processed: %s", payment_id)
            return SettlementResult(SettlementOutcome.ALREADY_SETTLED, payment_id)

        payment = db.query(Payment).populate_existing().filter(Payment.id == payment_id).one()
        order = (
            db.query(Order)
            .populate_existing()
            .filter(Order.id == payment.order_id)
            .with_for_update()
            .one()
        )
        decrement_stock_for_order(db, order)
        order.status = OrderStatus.PAID.value
        db.add(PaymentAuditEntry(payment_id=payment_id, kind=audit_kind.value, payload=audit_payload))
        db.commit()
    except StockAlreadyDecremented as e:
        db.rollback()
        logger.warning("Duplicate settlement for payment %s rejected by stock ledger: %s", payment_id, e)
        return SettlementResult(SettlementOutcome.ALREADY_SETTLED, payment_id)
    except Exception:
        db.rollback()
        logger.warning("Settlement of payment %s rolled back", payment_id, exc_info=True)
        raise

    logger.info("Payment successful: %s, Order: %s, Stock reduced", payment_id, order.id)
    return SettlementResult(SettlementOutcome.SETTLED, payment_id)


def _record_failure(
    db: Session,
    payment_id: int,
    audit_kind: AuditKind,
    audit_payload: dict[str, Any],
    cancel_order: bool,
) -> SettlementResult:
    try:
        if not _transition_unless_settled(db, payment_id, PaymentStatus.FAILED):
            db.rollback()
            logger.info("Ignoring %s for already successful payment %s", audit_payload.get("eventType"), payment_id)
            return SettlementResult(SettlementOutcome.ALREADY_SETTLED, payment_id)

        if cancel_order:
            order_id = db.query(Payment.order_id).filter(Payment.id == payment_id).scalar()
            db.query(Order).filter(Order.id == order_id).update(
                {Order.status: OrderStatus.CANCELED.value}, synchronize_session=False
            )
        db.add(PaymentAuditEntry(payment_id=payment_id, kind=audit_kind.value, payload=audit_payload))
        db.commit()
    except Exception:
        db.rollback()
        raise

    if cancel_order:
        logger.info("Payment canceled: %s", payment_id)
        return SettlementResult(SettlementOutcome.CANCELED, payment_id)
    logger.info("Payment failed: %s", payment_id)
    return SettlementResult(SettlementOutcome.FAILED, payment_id)
