import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from shop.errors import InsufficientStockError, NotFoundError, ValidationError
from shop.models import Order, OrderItem, OrderStatus, Product

logger = logging.getLogger(__name__)

ALLOWED_STATUS_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.PENDING: {OrderStatus.PAID, OrderStatus.CANCELED},
    OrderStatus.PAID: {OrderStatus.PENDING, OrderStatus.CANCELED},
    OrderStatus.CANCELED: set(),
}


def create_order(db: Session, user_id: int, items: list[tuple[int, int]]) -> Order:
    """Create an order from ``(product_id, quantity)`` pairs.

    Prices are copied onto the items and the total is fixed here. Stock is only
    checked, it is taken when the payment settles.
    """
    if not items:
        raise ValidationError("Order must contain at least one item")

    quantities: dict[int, int] = {}
    for product_id, quantity in items:
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")
        quantities[product_id] = quantities.get(product_id, 0) + quantity

    try:
        products = {
            product.id: product
            for product in db.query(Product).filter(Product.id.in_(quantities)).all()
        }
        missing = [str(product_id) for product_id in quantities if product_id not in products]
        if missing:
            raise NotFoundError(f"Product(s) not found: {', '.join(missing)}")

        order = Order(user_id=user_id, status=OrderStatus.PENDING.value, total_amount=Decimal("0"))
        total = Decimal("0")
        for product_id, quantity in quantities.items():
            product = products[product_id]
            if not product.is_active:
                raise ValidationError(f'Product "{product.name}" is not available')
            if product.stock < quantity:
                raise InsufficientStockError(product.name, product.stock, quantity)

            price = Decimal(product.price)
            subtotal = price * quantity
            total += subtotal
            order.items.append(
                OrderItem(product_id=product.id, quantity=quantity, price=price, subtotal=subtotal)
            )

        order.total_amount = total
        db.add(order)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("Order created: %s for user %s - Total: %s", order.id, user_id, order.total_amount)
    return order


def get_order(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def list_user_orders(db: Session, user_id: int) -> list[Order]:
    return (
        db.query(Order)
        .filter(Order.user_id == user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )


def update_order_status(db: Session, order_id: int, new_status: OrderStatus) -> Order:
    """Admin status change, restricted to ALLOWED_STATUS_TRANSITIONS."""
    order = get_order(db, order_id)
    current = OrderStatus(order.status)
    if new_status not in ALLOWED_STATUS_TRANSITIONS[current]:
        raise ValidationError(f"Cannot transition order from {current.value} to {new_status.value}")

    order.status = new_status.value
    db.commit()
    db.refresh(order)
    logger.info("Order %s status updated to %s", order_id, new_status.value)
    return order


def cancel_order(db: Session, order_id: int) -> Order:
    order = get_order(db, order_id)
    if order.status != OrderStatus.PENDING.value:
        raise ValidationError(
            f"Cannot cancel order with status {order.status}. Only PENDING orders can be cancelled."
        )

    order.status = OrderStatus.CANCELED.value
    db.commit()
    db.refresh(order)
    logger.info("Order %s cancelled", order_id)
    return order
