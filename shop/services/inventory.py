import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from shop.errors import InsufficientStockError, NotFoundError
from shop.models import Order, Product, StockDecrement

logger = logging.getLogger(__name__)


class StockAlreadyDecremented(Exception):
    """The stock ledger already holds a row for this order and product."""

    def __init__(self, order_id: int, product_id: int):
        self.order_id = order_id
        self.product_id = product_id
        super().__init__(f"Stock for product {product_id} already taken for order {order_id}")


def decrement_stock_for_order(db: Session, order: Order) -> None:
    """Take stock for every item of ``order`` inside the caller's transaction.

    Does not commit. Any raised error must be followed by a rollback of the
    whole transaction, which also undoes decrements of earlier items.
    """
    taken = db.query(StockDecrement.product_id).filter(StockDecrement.order_id == order.id).first()
    if taken is not None:
        raise StockAlreadyDecremented(order.id, taken.product_id)

    # Product rows are always locked in product id order.
    for item in sorted(order.items, key=lambda item: item.product_id):
        product = (
            db.query(Product)
            .populate_existing()
            .filter(Product.id == item.product_id)
            .with_for_update()
            .first()
        )
        if product is None:
            raise NotFoundError(f"Product {item.product_id} not found")

        if product.stock < item.quantity:
            raise InsufficientStockError(product.name, product.stock, item.quantity)

        updated = (
            db.query(Product)
            .filter(Product.id == product.id, Product.stock >= item.quantity)
            .update({Product.stock: Product.stock - item.quantity}, synchronize_session=False)
        )
        if updated != 1:
            current = db.query(Product.stock).filter(Product.id == product.id).scalar()
            raise InsufficientStockError(product.name, current or 0, item.quantity)

        db.add(StockDecrement(order_id=order.id, product_id=product.id, quantity=item.quantity))
        try:
            db.flush()
        except IntegrityError as e:
            raise StockAlreadyDecremented(order.id, product.id) from e

        logger.info("Stock reduced for product %s: %s units", product.name, item.quantity)
