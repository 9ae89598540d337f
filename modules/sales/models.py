"""
Sales Module - Models
======================
SalesOrder with one line per physical unit and a frozen price snapshot
per line, plus the payments recorded against the order.
"""

import enum
from sqlalchemy import (
    Column, Integer, String, Numeric, Text, ForeignKey, DateTime, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from config.database import Base
from common.helpers import now_utc


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"      # units reserved, not yet handed over
    COMPLETED = "COMPLETED"  # units sold
    CANCELLED = "CANCELLED"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    PAID = "PAID"


class PaymentMethod(str, enum.Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"
    CHEQUE = "CHEQUE"
    EMI = "EMI"


class OrderType(str, enum.Enum):
    RETAIL = "RETAIL"
    WHOLESALE = "WHOLESALE"


class SalesOrder(Base):
    __tablename__ = "sales_orders"
    __table_args__ = (
        CheckConstraint("final_amount >= 0", name="ck_order_final_amount"),
        CheckConstraint("discount_amount >= 0", name="ck_order_discount"),
        CheckConstraint("paid_amount >= 0", name="ck_order_paid"),
    )

    id = Column(Integer, primary_key=True, index=True)
    invoice_number = Column(String(30), unique=True, nullable=False, index=True)
    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False, index=True)
    order_date = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    order_type = Column(String(20), default=OrderType.RETAIL.value, nullable=False)

    order_total = Column(Numeric(14, 2), nullable=False)
    discount_amount = Column(Numeric(14, 2), default=0, nullable=False)
    final_amount = Column(Numeric(14, 2), nullable=False)
    paid_amount = Column(Numeric(14, 2), default=0, nullable=False)

    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), default=PaymentStatus.PENDING.value, nullable=False)
    status = Column(String(20), default=OrderStatus.PENDING.value, nullable=False, index=True)
    notes = Column(Text, nullable=True)

    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(String(255), nullable=True)

    created_by = Column(String(100), nullable=False, default="system")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    customer = relationship("Customer", foreign_keys=[customer_id])
    lines = relationship("SalesOrderLine", back_populates="order", cascade="all, delete-orphan",
                         order_by="SalesOrderLine.id")
    payments = relationship("SalesPayment", back_populates="order", cascade="all, delete-orphan",
                            order_by="SalesPayment.id")

    @property
    def balance_due(self):
        return self.final_amount - self.paid_amount

    @property
    def status_label(self) -> str:
        labels = {
            OrderStatus.PENDING.value: "Pending",
            OrderStatus.COMPLETED.value: "Completed",
            OrderStatus.CANCELLED.value: "Cancelled",
        }
        return labels.get(self.status, self.status)

    def to_dict(self, with_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "order_date": self.order_date,
            "order_type": self.order_type,
            "order_total": self.order_total,
            "discount_amount": self.discount_amount,
            "final_amount": self.final_amount,
            "paid_amount": self.paid_amount,
            "balance_due": self.balance_due,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "status": self.status,
            "status_label": self.status_label,
            "notes": self.notes,
            "completed_at": self.completed_at,
            "cancelled_at": self.cancelled_at,
            "cancellation_reason": self.cancellation_reason,
            "created_by": self.created_by,
        }
        if with_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data

    def __repr__(self):
        return f"<SalesOrder {self.invoice_number} [{self.status}] {self.final_amount}>"


class SalesOrderLine(Base):
    __tablename__ = "sales_order_lines"

    id = Column(Integer, primary_key=True, index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    stock_item_id = Column(Integer, ForeignKey("stock_items.id", ondelete="RESTRICT"), nullable=False, index=True)
    quantity = Column(Integer, default=1, nullable=False)
    unit_price = Column(Numeric(14, 2), nullable=False)
    line_total = Column(Numeric(14, 2), nullable=False)

    # Price snapshot (frozen at sale time)
    price_source = Column(String(20), nullable=False)
    applied_rate_id = Column(Integer, ForeignKey("rate_master.id", ondelete="SET NULL"), nullable=True)
    applied_rate_per_gram = Column(Numeric(14, 4), nullable=True)
    applied_effective_weight = Column(Numeric(10, 3), nullable=True)

    # Relationships
    order = relationship("SalesOrder", back_populates="lines")
    stock_item = relationship("StockItem", foreign_keys=[stock_item_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_item_id": self.stock_item_id,
            "tag_id": self.stock_item.tag_id if self.stock_item else None,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "line_total": self.line_total,
            "price_source": self.price_source,
            "applied_rate_id": self.applied_rate_id,
            "applied_rate_per_gram": self.applied_rate_per_gram,
            "applied_effective_weight": self.applied_effective_weight,
        }


class SalesPayment(Base):
    __tablename__ = "sales_payments"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_payment_amount"),
    )

    id = Column(Integer, primary_key=True, index=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(14, 2), nullable=False)
    payment_date = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    payment_method = Column(String(20), nullable=False)
    reference_number = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=False, default="system")

    order = relationship("SalesOrder", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sales_order_id": self.sales_order_id,
            "amount": self.amount,
            "payment_date": self.payment_date,
            "payment_method": self.payment_method,
            "reference_number": self.reference_number,
            "notes": self.notes,
        }
