"""
Ledger Module - Models
=======================
LedgerTransaction: append-only income/expense record.
Rows are never updated or deleted; a cancelled sale keeps its income entry.
"""

import enum
import logging

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, ForeignKey, Text, CheckConstraint, event,
)
from sqlalchemy.sql import func

from config.database import Base
from common.exceptions import ImmutableRecordError
from common.helpers import now_utc

logger = logging.getLogger("jewelry.ledger")


class TransactionType(str, enum.Enum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class TransactionCategory(str, enum.Enum):
    SALES = "SALES"
    PURCHASE = "PURCHASE"
    OTHER = "OTHER"


class LedgerTransaction(Base):
    __tablename__ = "ledger_transactions"
    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_ledger_amount"),
    )

    id = Column(Integer, primary_key=True, index=True)
    transaction_date = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    transaction_type = Column(String(10), nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    payment_mode = Column(String(20), nullable=False)
    category = Column(String(20), nullable=False, default=TransactionCategory.OTHER.value)
    description = Column(Text, nullable=True)
    reference_number = Column(String(50), nullable=True, index=True)

    customer_id = Column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), nullable=True)
    sales_order_id = Column(Integer, ForeignKey("sales_orders.id", ondelete="SET NULL"), nullable=True, index=True)

    created_by = Column(String(100), nullable=False, default="system")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_date": self.transaction_date.isoformat() if self.transaction_date else None,
            "transaction_type": self.transaction_type,
            "amount": str(self.amount),
            "currency": self.currency,
            "payment_mode": self.payment_mode,
            "category": self.category,
            "description": self.description,
            "reference_number": self.reference_number,
            "sales_order_id": self.sales_order_id,
        }

    def __repr__(self):
        return f"<LedgerTransaction {self.id} {self.transaction_type} {self.amount}>"


# ==========================================
# Immutability
# ==========================================

@event.listens_for(LedgerTransaction, "before_update")
def _block_ledger_update(mapper, connection, target):
    logger.error(f"Blocked update of ledger transaction {target.id}")
    raise ImmutableRecordError(f"Ledger transaction {target.id} cannot be modified")


@event.listens_for(LedgerTransaction, "before_delete")
def _block_ledger_delete(mapper, connection, target):
    logger.error(f"Blocked delete of ledger transaction {target.id}")
    raise ImmutableRecordError(f"Ledger transaction {target.id} cannot be deleted")
