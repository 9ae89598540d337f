"""
Inventory Module - Models
==========================
StockItem: one physical unit of a product, tagged at receipt.
No selling price is stored here; it is computed on every read.
"""

import enum
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Numeric, Index, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from config.database import Base
from common.helpers import now_utc


# ==========================================
# Stock Status
# ==========================================

class StockStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"  # on the shelf
    RESERVED = "RESERVED"    # held for a pending order or by hand
    SOLD = "SOLD"


# ==========================================
# Stock Item
# ==========================================

class StockItem(Base):
    __tablename__ = "stock_items"
    __table_args__ = (
        CheckConstraint("purchase_cost >= 0", name="ck_stock_purchase_cost"),
        CheckConstraint(
            "price_override IS NULL OR price_override_reason IS NOT NULL",
            name="ck_stock_override_reason",
        ),
        Index("ix_stock_fifo", "product_id", "status", "purchase_date", "id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True)
    tag_id = Column(String(50), unique=True, nullable=False, index=True)
    barcode = Column(String(50), unique=True, nullable=False, index=True)
    huid = Column(String(20), nullable=True)  # hallmark unique id

    purchase_cost = Column(Numeric(14, 2), nullable=False)
    purchase_date = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    purchase_reference = Column(String(50), nullable=True)

    status = Column(String(20), default=StockStatus.AVAILABLE.value, nullable=False, index=True)
    sale_date = Column(DateTime(timezone=True), nullable=True)
    sales_order_line_id = Column(Integer, nullable=True, index=True)  # lines hold the FK to stock

    price_override = Column(Numeric(14, 2), nullable=True)
    price_override_reason = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    product = relationship("Product", back_populates="stock_items")

    @property
    def status_label(self) -> str:
        return {
            StockStatus.AVAILABLE.value: "Available",
            StockStatus.RESERVED.value: "Reserved",
            StockStatus.SOLD.value: "Sold",
        }.get(self.status, self.status)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "tag_id": self.tag_id,
            "barcode": self.barcode,
            "huid": self.huid,
            "status": self.status,
            "status_label": self.status_label,
            "purchase_cost": str(self.purchase_cost),
            "price_override": str(self.price_override) if self.price_override is not None else None,
            "price_override_reason": self.price_override_reason,
            "purchase_date": self.purchase_date.isoformat() if self.purchase_date else None,
            "sale_date": self.sale_date.isoformat() if self.sale_date else None,
        }

    def __repr__(self):
        return f"<StockItem {self.tag_id} [{self.status}]>"
