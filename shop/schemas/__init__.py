from shop.schemas.orders import (
    OrderCreateRequest,
    OrderItemRequest,
    OrderItemResponse,
    OrderResponse,
    OrderStatusUpdateRequest,
)
from shop.schemas.payments import (
    PaymentInitiateRequest,
    PaymentInitiateResponse,
    PaymentResponse,
    RefundRequest,
)
from shop.schemas.products import ProductResponse

__all__ = [
    "OrderCreateRequest",
    "OrderItemRequest",
    "OrderItemResponse",
    "OrderResponse",
    "OrderStatusUpdateRequest",
    "PaymentInitiateRequest",
    "PaymentInitiateResponse",
    "PaymentResponse",
    "RefundRequest",
    "ProductResponse",
]
