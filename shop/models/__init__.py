from shop.models.database import Base, get_db
from shop.models.user import User, UserRole
from shop.models.product import Product
from shop.models.order import Order, OrderItem, OrderStatus
from shop.models.payment import AuditKind, Payment, PaymentAuditEntry, PaymentStatus, StockDecrement

__all__ = [
    "Base",
    "get_db",
    "User",
    "UserRole",
    "Product",
    "Order",
    "OrderItem",
    "OrderStatus",
    "Payment",
    "PaymentAuditEntry",
    "PaymentStatus",
    "AuditKind",
    "StockDecrement",
]
