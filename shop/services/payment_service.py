import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shop.errors import NotFoundError, PaymentError, ValidationError
from shop.models import AuditKind, Order, OrderStatus, Payment, PaymentAuditEntry, PaymentStatus
from shop.services import payment_gateways
from shop.services.payment_provider import EventKind, ProviderName
from shop.services.settlement import SettlementResult, apply_outcome, utcnow_iso

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentInitiation:
    payment_id: int
    provider: ProviderName
    client_secret: str | None = None
    redirect_url: str | None = None


def get_payment(db: Session, payment_id: int) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if not payment:
        raise NotFoundError(f"Payment {payment_id} not found")
    return payment


def initiate_payment(db: Session, order_id: int, provider: str | ProviderName = ProviderName.STRIPE) -> PaymentInitiation:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")

    if db.query(Payment.id).filter(Payment.order_id == order_id).first() is not None:
        raise PaymentError("Payment already initiated for this order")

    if order.status != OrderStatus.PENDING.value:
        raise ValidationError(f"Cannot pay for order with status {order.status}")

    gateway = payment_gateways.resolve(provider)
    result = gateway.initiate(
        order_id=order.id,
        amount=Decimal(order.total_amount),
        currency=gateway.currency,
        metadata={"user_id": order.user_id},
    )
    if not result.ok:
        raise PaymentError(result.error or "Payment initiation failed")

    payment = Payment(
        order_id=order.id,
        provider=gateway.name.value,
        transaction_id=result.external_payment_id,
        status=PaymentStatus.PENDING.value,
    )
    payment.audit_entries.append(
        PaymentAuditEntry(
            kind=AuditKind.INITIATED.value,
            payload={
                "clientSecret": result.client_secret,
                "redirectUrl": result.redirect_url,
                "initiatedAt": utcnow_iso(),
            },
        )
    )
    db.add(payment)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise PaymentError("Payment already initiated for this order") from e

    logger.info("Payment initiated: %s for order %s", payment.id, order_id)
    return PaymentInitiation(
        payment_id=payment.id,
        provider=gateway.name,
        client_secret=result.client_secret,
        redirect_url=result.redirect_url,
    )


def verify_payment(db: Session, payment_id: int) -> tuple[Payment, SettlementResult]:
    """Poll the provider and settle the payment as if a notification arrived."""
    payment = get_payment(db, payment_id)
    if not payment.transaction_id:
        raise PaymentError("Transaction ID not found")

    gateway = payment_gateways.resolve(payment.provider)
    verification = gateway.verify(payment.transaction_id)

    kind = EventKind.SUCCEEDED if verification.verified else EventKind.FAILED
    audit_payload = {
        "verified": verification.verified,
        "status": verification.status,
        "transactionId": verification.external_transaction_id,
        "amount": str(verification.amount) if verification.amount is not None else None,
        "verifiedAt": utcnow_iso(),
    }
    result = apply_outcome(db, payment_id, kind, AuditKind.VERIFICATION, audit_payload)

    logger.info(
        "Payment verified: %s - %s (%s)",
        payment_id,
        "SUCCESS" if verification.verified else "FAILED",
        result.outcome.value,
    )
    return get_payment(db, payment_id), result


def refund_payment(db: Session, payment_id: int, amount: Decimal | None = None) -> Payment:
    payment = get_payment(db, payment_id)
    if payment.status != PaymentStatus.SUCCESS.value:
        raise PaymentError("Can only refund successful payments")
    if not payment.transaction_id:
        raise PaymentError("Transaction ID not found")

    order_total = Decimal(payment.order.total_amount)
    if amount is not None and (amount <= 0 or amount > order_total):
        raise ValidationError(f"Refund amount must be greater than 0 and at most {order_total}")

    gateway = payment_gateways.resolve(payment.provider)
    result = gateway.refund(payment.transaction_id, amount)
    if not result.ok:
        raise PaymentError(f"Refund processing failed: {result.error or 'unknown error'}")

    refund_amount = amount if amount is not None else order_total
    try:
        # The order keeps its status; a refunded order reads as PAID + FAILED payment.
        payment.status = PaymentStatus.FAILED.value
        db.add(
            PaymentAuditEntry(
                payment_id=payment.id,
                kind=AuditKind.REFUND.value,
                payload={
                    "refundId": result.refund_id,
                    "refundedAt": utcnow_iso(),
                    "refundAmount": str(refund_amount),
                },
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(payment)
    logger.info("Payment refunded: %s", payment_id)
    return payment
