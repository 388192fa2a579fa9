from enum import Enum

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from shop.models.database import Base


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class AuditKind(str, Enum):
    INITIATED = "INITIATED"
    WEBHOOK = "WEBHOOK"
    VERIFICATION = "VERIFICATION"
    REFUND = "REFUND"


class Payment(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), unique=True, nullable=False)
    provider = Column(String(20), nullable=False)  # stripe | bkash
    transaction_id = Column(String(255), unique=True, nullable=True, index=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    order = relationship("Order", back_populates="payment")
    audit_entries = relationship(
        "PaymentAuditEntry",
        back_populates="payment",
        order_by="PaymentAuditEntry.id",
    )


class PaymentAuditEntry(Base):
    """One provider interaction recorded against a payment. Rows are insert-only."""

    __tablename__ = "payment_audit_entries"

    id = Column(Integer, primary_key=True, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    kind = Column(String(32), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    payment = relationship("Payment", back_populates="audit_entries")


class StockDecrement(Base):
    """Ledger of stock taken for an order; at most one row per (order, product)."""

    __tablename__ = "stock_decrements"
    __table_args__ = (UniqueConstraint("order_id", "product_id", name="uq_stock_decrements_order_product"),)

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


@event.listens_for(PaymentAuditEntry, "before_update")
def _reject_audit_update(mapper, connection, target):
    raise RuntimeError(f"Payment audit entry {target.id} is append-only and cannot be modified")


@event.listens_for(PaymentAuditEntry, "before_delete")
def _reject_audit_delete(mapper, connection, target):
    raise RuntimeError(f"Payment audit entry {target.id} is append-only and cannot be deleted")
