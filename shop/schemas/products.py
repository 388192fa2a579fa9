from decimal import Decimal

from pydantic import BaseModel, field_serializer


class ProductResponse(BaseModel):
    id: int
    name: str
    slug: str
    description: str | None = None
    price: Decimal
    stock: int
    is_active: bool

    model_config = {"from_attributes": True}

    @field_serializer("price")
    def serialize_price(self, value: Decimal) -> str:
        return format(Decimal(value).quantize(Decimal("0.01")), "f")
