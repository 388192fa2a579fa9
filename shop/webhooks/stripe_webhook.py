import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from shop.config import WEBHOOK_POLICY_ACKNOWLEDGE, settings
from shop.errors import AppError, InvalidSignatureError, ProviderUnavailableError
from shop.models import get_db
from shop.services import settlement
from shop.services.payment_provider import ProviderName

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/stripe",
    summary="Stripe webhook",
)
async def stripe_webhook(
    request: Request,
    db: Session = Depends(get_db),
):
    """
    Stripe sends payment_intent events here. The raw body is verified against the
    stripe-signature header before it is parsed.
    Idempotent: redelivered events never take stock twice.
    """
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")
    if not sig_header:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing stripe-signature header")

    try:
        result = settlement.ingest_notification(db, ProviderName.STRIPE, payload, sig_header)
    except InvalidSignatureError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.message)
    except ProviderUnavailableError:
        raise
    except AppError as e:
        if settings.WEBHOOK_SETTLEMENT_ERROR_POLICY == WEBHOOK_POLICY_ACKNOWLEDGE:
            logger.error("Stripe webhook settlement failed, acknowledging anyway: %s", e.message)
            return {"received": True}
        logger.error("Stripe webhook settlement failed: %s", e.message)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")

    logger.info("Stripe webhook processed: %s", result.outcome.value)
    return {"received": True}
