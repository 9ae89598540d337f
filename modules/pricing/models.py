"""
Pricing Module - Models
========================
RateMaster: versioned, append-only metal rate per (metal type, purity).
Old rows are deactivated, never deleted, so full history is retained.
"""

import enum

from sqlalchemy import (
    Column, Integer, String, Numeric, Boolean, DateTime, Text, Index, CheckConstraint,
)
from sqlalchemy.sql import func

from config.database import Base
from common.helpers import now_utc, as_utc


class MetalType(str, enum.Enum):
    GOLD = "GOLD"
    SILVER = "SILVER"
    PLATINUM = "PLATINUM"


class RateSource(str, enum.Enum):
    MARKET = "MARKET"
    MANUAL = "MANUAL"
    API = "API"


class RateMaster(Base):
    __tablename__ = "rate_master"
    __table_args__ = (
        CheckConstraint("rate_per_gram > 0", name="ck_rate_positive"),
        CheckConstraint(
            "valid_until IS NULL OR valid_until > effective_date",
            name="ck_rate_window",
        ),
        Index("ix_rate_pair_active", "metal_type", "purity", "is_active"),
        Index("ix_rate_pair_effective", "metal_type", "purity", "effective_date"),
    )

    id = Column(Integer, primary_key=True)
    metal_type = Column(String(20), nullable=False)
    purity = Column(String(20), nullable=False)
    rate_per_gram = Column(Numeric(14, 4), nullable=False)
    effective_date = Column(DateTime(timezone=True), nullable=False, default=now_utc)
    valid_until = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    rate_source = Column(String(20), default=RateSource.MANUAL.value, nullable=False)
    notes = Column(Text, nullable=True)
    created_by = Column(String(100), nullable=False, default="system")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def is_currently_valid(self) -> bool:
        """Active and not past valid_until."""
        if not self.is_active:
            return False
        if self.valid_until is None:
            return True
        return now_utc() <= as_utc(self.valid_until)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "metal_type": self.metal_type,
            "purity": self.purity,
            "rate_per_gram": str(self.rate_per_gram),
            "effective_date": self.effective_date.isoformat() if self.effective_date else None,
            "valid_until": self.valid_until.isoformat() if self.valid_until else None,
            "is_active": self.is_active,
            "rate_source": self.rate_source,
            "created_by": self.created_by,
            "notes": self.notes,
        }

    def __repr__(self):
        return f"<RateMaster {self.metal_type}/{self.purity}={self.rate_per_gram} active={self.is_active}>"
