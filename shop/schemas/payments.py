from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from shop.models import PaymentStatus
from shop.schemas.orders import OrderResponse
from shop.services.payment_provider import ProviderName


class PaymentInitiateRequest(BaseModel):
    order_id: int
    provider: str = ProviderName.STRIPE.value

    model_config = {
        "json_schema_extra": {"examples": [{"order_id": 1, "provider": "stripe"}]}
    }


class PaymentInitiateResponse(BaseModel):
    payment_id: int
    provider: ProviderName
    client_secret: str | None = None
    redirect_url: str | None = None


class RefundRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)


class PaymentAuditEntryResponse(BaseModel):
    id: int
    kind: str
    payload: dict[str, Any]
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class PaymentResponse(BaseModel):
    id: int
    order_id: int
    provider: ProviderName
    transaction_id: str | None = None
    status: PaymentStatus
    audit_log: list[PaymentAuditEntryResponse] = Field(
        default_factory=list, validation_alias="audit_entries"
    )
    order: OrderResponse
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True, "populate_by_name": True}
