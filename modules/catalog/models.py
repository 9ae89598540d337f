"""
Catalog Module - Models
========================
Product: jewelry design with the weight and charge parameters used for pricing.
calculated_price is a persisted display value that goes stale when rates
move; it is always shown next to last_price_update and never used to sell.
"""

from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, DateTime, ForeignKey, Text, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from config.database import Base


class Product(Base):
    __tablename__ = "products"
    __table_args__ = (
        CheckConstraint("net_weight > 0", name="ck_product_net_weight"),
        CheckConstraint("wastage_percent >= 0 AND wastage_percent <= 100", name="ck_product_wastage"),
        CheckConstraint("making_charges >= 0", name="ck_product_making"),
        CheckConstraint(
            "price_override IS NULL OR price_override_reason IS NOT NULL",
            name="ck_product_override_reason",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    sku = Column(String(50), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    collection_name = Column(String(100), nullable=True, index=True)

    metal_type = Column(String(20), nullable=False)
    purity = Column(String(20), nullable=False)
    gross_weight = Column(Numeric(10, 3), nullable=True)                 # grams
    net_weight = Column(Numeric(10, 3), nullable=False)                  # grams
    wastage_percent = Column(Numeric(5, 2), default=0, nullable=False)
    making_charges = Column(Numeric(14, 2), default=0, nullable=False)  # fixed amount
    stone_weight = Column(Numeric(10, 3), nullable=True)                 # carats
    stone_value = Column(Numeric(14, 2), nullable=True)

    price_override = Column(Numeric(14, 2), nullable=True)
    price_override_reason = Column(String(255), nullable=True)

    calculated_price = Column(Numeric(14, 2), nullable=True)
    last_price_update = Column(DateTime(timezone=True), nullable=True)
    rate_used_id = Column(Integer, ForeignKey("rate_master.id", ondelete="SET NULL"), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    rate_used = relationship("RateMaster", foreign_keys=[rate_used_id])
    stock_items = relationship("StockItem", back_populates="product")

    @property
    def has_override(self) -> bool:
        return self.price_override is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "sku": self.sku,
            "collection_name": self.collection_name,
            "metal_type": self.metal_type,
            "purity": self.purity,
            "gross_weight": str(self.gross_weight) if self.gross_weight is not None else None,
            "net_weight": str(self.net_weight),
            "wastage_percent": str(self.wastage_percent),
            "making_charges": str(self.making_charges),
            "stone_weight": str(self.stone_weight) if self.stone_weight is not None else None,
            "stone_value": str(self.stone_value) if self.stone_value is not None else None,
            "price_override": str(self.price_override) if self.price_override is not None else None,
            "price_override_reason": self.price_override_reason,
            "is_active": self.is_active,
        }

    def __repr__(self):
        return f"<Product {self.sku} {self.metal_type}/{self.purity} ({self.net_weight}g)>"
