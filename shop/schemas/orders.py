from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_serializer

from shop.models import OrderStatus


class _MoneyModel(BaseModel):
    @field_serializer("price", "subtotal", "total_amount", check_fields=False)
    def serialize_money(self, value: Decimal) -> str:
        return format(Decimal(value).quantize(Decimal("0.01")), "f")


class OrderItemRequest(BaseModel):
    product_id: int
    quantity: int = Field(ge=1)


class OrderCreateRequest(BaseModel):
    items: list[OrderItemRequest] = Field(min_length=1)

    model_config = {
        "json_schema_extra": {
            "examples": [{"items": [{"product_id": 1, "quantity": 2}]}]
        }
    }


class OrderItemResponse(_MoneyModel):
    id: int
    product_id: int
    quantity: int
    price: Decimal
    subtotal: Decimal

    model_config = {"from_attributes": True}


class OrderResponse(_MoneyModel):
    id: int
    user_id: int
    status: OrderStatus
    total_amount: Decimal
    items: list[OrderItemResponse]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class OrderStatusUpdateRequest(BaseModel):
    status: OrderStatus
