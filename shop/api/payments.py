from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from shop.dependencies import ensure_order_access, get_current_user, require_admin
from shop.models import User, get_db
from shop.schemas.payments import (
    PaymentInitiateRequest,
    PaymentInitiateResponse,
    PaymentResponse,
    RefundRequest,
)
from shop.services import order_service, payment_service

router = APIRouter()


@router.post(
    "/initiate",
    response_model=PaymentInitiateResponse,
    summary="Initiate payment for an order",
)
def initiate_payment(
    body: PaymentInitiateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """
    Create the payment with the chosen provider (stripe or bkash).
    Returns a client secret (Stripe) or a redirect URL (bKash) to continue on the client.
    """
    order = order_service.get_order(db, body.order_id)
    ensure_order_access(order, current_user)
    initiation = payment_service.initiate_payment(db, order.id, body.provider)
    return PaymentInitiateResponse(
        payment_id=initiation.payment_id,
        provider=initiation.provider,
        client_secret=initiation.client_secret,
        redirect_url=initiation.redirect_url,
    )


@router.get(
    "/{payment_id}",
    response_model=PaymentResponse,
    summary="Get payment",
)
def get_payment(
    payment_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    payment = payment_service.get_payment(db, payment_id)
    ensure_order_access(payment.order, current_user)
    return payment


@router.post(
    "/{payment_id}/verify",
    response_model=PaymentResponse,
    summary="Verify payment with the provider",
)
def verify_payment(
    payment_id: int,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    """Poll the provider and settle the payment. Safe to call repeatedly."""
    payment = payment_service.get_payment(db, payment_id)
    ensure_order_access(payment.order, current_user)
    payment, _ = payment_service.verify_payment(db, payment_id)
    return payment


@router.post(
    "/{payment_id}/refund",
    response_model=PaymentResponse,
    summary="Refund payment (admin)",
)
def refund_payment(
    payment_id: int,
    _admin: Annotated[User, Depends(require_admin)],
    db: Annotated[Session, Depends(get_db)],
    body: RefundRequest | None = None,
):
    """Refund a successful payment; without an amount the full order total is refunded."""
    amount = body.amount if body else None
    return payment_service.refund_payment(db, payment_id, amount)
