"""
Pricing Module - Rate Service
==============================
Current-rate lookup, rate activation with the one-active-per-pair rule,
rate history and statistics.

A rate is "current" for (metal_type, purity) when it is active, already
effective, and not past valid_until. Among several, the latest
effective_date wins. There is no fallback to an older or expired rate.
"""

import logging
import math
from datetime import timedelta
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy import or_, text
from sqlalchemy.orm import Session

from common.audit import audit_sink
from common.cache import cache_service, cache_key
from common.exceptions import (
    InvalidInputError, NoActiveRateError, NotFoundError, RateWindowInvalidError,
)
from common.helpers import now_utc, as_utc, to_decimal, money, rate_amount
from common.transaction import unit_of_work, lock_for_update
from config import settings
from config.database import is_postgres
from modules.pricing.models import RateMaster, MetalType, RateSource

logger = logging.getLogger("jewelry.pricing")


def normalize_metal(value) -> str:
    """Accept MetalType or its string form (any case); return the stored value."""
    raw = getattr(value, "value", value)
    try:
        return MetalType(str(raw).strip().upper()).value
    except ValueError:
        raise InvalidInputError(f"Metal type must be one of {', '.join(m.value for m in MetalType)}")


def normalize_purity(value) -> str:
    purity = (value or "").strip()
    if not purity or len(purity) > 20:
        raise InvalidInputError("Purity must be 1 to 20 characters")
    return purity


class RateService:

    def __init__(self, cache=None, audit=None):
        self.cache = cache or cache_service
        self.audit = audit or audit_sink

    # ==========================================
    # Current Rate
    # ==========================================

    def _current_query(self, db: Session, metal_type: str, purity: str, at):
        return db.query(RateMaster).filter(
            RateMaster.metal_type == metal_type,
            RateMaster.purity == purity,
            RateMaster.is_active == True,
            RateMaster.effective_date <= at,
            or_(RateMaster.valid_until == None, RateMaster.valid_until >= at),
        ).order_by(RateMaster.effective_date.desc(), RateMaster.id.desc())

    def get_current_rate(self, db: Session, metal_type, purity: str) -> RateMaster:
        """Current rate for the pair. Raises NoActiveRateError when none is valid now."""
        metal = normalize_metal(metal_type)
        purity = normalize_purity(purity)
        rate = self._current_query(db, metal, purity, now_utc()).first()
        if not rate:
            raise NoActiveRateError(metal, purity)
        return rate

    def find_current_rate(self, db: Session, metal_type, purity: str) -> Optional[RateMaster]:
        """Same as get_current_rate but returns None instead of raising."""
        try:
            return self.get_current_rate(db, metal_type, purity)
        except NoActiveRateError:
            return None

    def get_rate(self, db: Session, rate_id: int) -> RateMaster:
        rate = db.query(RateMaster).filter(RateMaster.id == rate_id).first()
        if not rate:
            raise NotFoundError(f"Rate {rate_id} not found")
        return rate

    def is_valid(self, db: Session, rate_id: int) -> bool:
        """Active and (no valid_until or now <= valid_until). Missing rate is not valid."""
        rate = db.query(RateMaster).filter(RateMaster.id == rate_id).first()
        return bool(rate and rate.is_currently_valid)

    # ==========================================
    # Activation
    # ==========================================

    def _lock_pair(self, db: Session, metal_type: str, purity: str) -> List[RateMaster]:
        """Serialize activations of one pair; returns the currently active siblings, locked."""
        if is_postgres(db):
            db.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
                {"key": f"rate:{metal_type}:{purity}"},
            )
        return lock_for_update(
            db.query(RateMaster).filter(
                RateMaster.metal_type == metal_type,
                RateMaster.purity == purity,
                RateMaster.is_active == True,
            )
        ).all()

    def _invalidate(self):
        self.cache.invalidate_prefix(cache_key(settings.SHOP_CODE, "rates", ""))

    def create_rate(
        self,
        db: Session,
        metal_type,
        purity: str,
        rate_per_gram,
        effective_date=None,
        valid_until=None,
        is_active: bool = True,
        rate_source: str = RateSource.MANUAL.value,
        notes: Optional[str] = None,
        actor: str = "system",
    ) -> RateMaster:
        """
        Insert a new rate. When it is active, every other active rate of the
        same pair is deactivated in the same transaction.
        """
        metal = normalize_metal(metal_type)
        purity = normalize_purity(purity)
        try:
            rate_value = to_decimal(rate_per_gram)
        except ValueError as e:
            raise InvalidInputError(str(e))
        if rate_value is None or not rate_value.is_finite() or rate_value <= 0:
            raise InvalidInputError("Rate per gram must be a positive number")
        if rate_value != rate_amount(rate_value):
            raise InvalidInputError("Rate per gram supports at most 4 decimal places")
        try:
            source = RateSource(str(getattr(rate_source, "value", rate_source)).upper()).value
        except ValueError:
            raise InvalidInputError("Rate source must be MARKET, MANUAL, or API")

        effective = as_utc(effective_date) or now_utc()
        valid_until = as_utc(valid_until)
        if valid_until is not None and valid_until <= effective:
            raise RateWindowInvalidError("valid_until must be after effective_date")

        with unit_of_work(db, label="rate activation"):
            deactivated = []
            if is_active:
                for sibling in self._lock_pair(db, metal, purity):
                    sibling.is_active = False
                    deactivated.append(sibling.id)
            rate = RateMaster(
                metal_type=metal,
                purity=purity,
                rate_per_gram=rate_amount(rate_value),
                effective_date=effective,
                valid_until=valid_until,
                is_active=is_active,
                rate_source=source,
                notes=notes,
                created_by=actor,
            )
            db.add(rate)
            db.flush()

        self._invalidate()
        self.audit.record(
            "CREATE", "RATE_MASTER", rate.id,
            before={"deactivated": deactivated} if deactivated else None,
            after=rate.to_dict(), actor=actor,
        )
        logger.info(f"Rate {rate.id} created: {metal}/{purity}={rate.rate_per_gram} by {actor}, deactivated {deactivated}")
        return rate

    def activate_existing(self, db: Session, rate_id: int, actor: str = "system") -> RateMaster:
        """Re-activate a historic rate; its active siblings are deactivated."""
        rate = self.get_rate(db, rate_id)
        if rate.valid_until is not None and as_utc(rate.valid_until) < now_utc():
            raise InvalidInputError(f"Rate {rate_id} expired and cannot be activated")

        with unit_of_work(db, label="rate activation"):
            deactivated = []
            for sibling in self._lock_pair(db, rate.metal_type, rate.purity):
                if sibling.id != rate.id:
                    sibling.is_active = False
                    deactivated.append(sibling.id)
            rate.is_active = True
            db.flush()

        self._invalidate()
        self.audit.record(
            "ACTIVATE", "RATE_MASTER", rate.id,
            before={"deactivated": deactivated}, after=rate.to_dict(), actor=actor,
        )
        logger.info(f"Rate {rate.id} activated by {actor}, deactivated {deactivated}")
        return rate

    def deactivate(self, db: Session, rate_id: int, actor: str = "system") -> RateMaster:
        rate = self.get_rate(db, rate_id)
        with unit_of_work(db, label="rate deactivation"):
            rate.is_active = False
            db.flush()

        self._invalidate()
        self.audit.record("DEACTIVATE", "RATE_MASTER", rate.id, after=rate.to_dict(), actor=actor)
        logger.info(f"Rate {rate.id} deactivated by {actor}")
        return rate

    # ==========================================
    # History & Reporting
    # ==========================================

    def get_history(
        self, db: Session, metal_type, purity: str, page: int = 1, per_page: int = 50,
    ) -> Tuple[List[RateMaster], int, int]:
        """Paginated rate history, newest effective_date first. Returns (rows, total, total_pages)."""
        metal = normalize_metal(metal_type)
        purity = normalize_purity(purity)
        page = max(page, 1)
        per_page = min(max(per_page, 1), 200)
        q = db.query(RateMaster).filter(
            RateMaster.metal_type == metal,
            RateMaster.purity == purity,
        )
        total = q.count()
        rows = q.order_by(RateMaster.effective_date.desc(), RateMaster.id.desc()) \
            .offset((page - 1) * per_page).limit(per_page).all()
        return rows, total, math.ceil(total / per_page) if total else 0

    def get_all_current_rates(self, db: Session) -> List[dict]:
        """Rate board: the current rate of every pair that has one. Cached."""
        key = cache_key(settings.SHOP_CODE, "rates", "current")
        return self.cache.get_or_set(
            key, lambda: self._load_current_board(db), ttl=settings.RATE_CACHE_SECONDS,
        )

    def _load_current_board(self, db: Session) -> List[dict]:
        at = now_utc()
        pairs = db.query(RateMaster.metal_type, RateMaster.purity).filter(
            RateMaster.is_active == True,
        ).distinct().order_by(RateMaster.metal_type, RateMaster.purity).all()
        board = []
        for metal, purity in pairs:
            rate = self._current_query(db, metal, purity, at).first()
            if rate:
                board.append(rate.to_dict())
        return board

    def get_rate_statistics(self, db: Session, metal_type, purity: str, start=None, end=None) -> Optional[dict]:
        """Min/max/avg and first-to-last change over a date range. None if no rates."""
        metal = normalize_metal(metal_type)
        purity = normalize_purity(purity)
        q = db.query(RateMaster).filter(
            RateMaster.metal_type == metal,
            RateMaster.purity == purity,
        )
        if start:
            q = q.filter(RateMaster.effective_date >= as_utc(start))
        if end:
            q = q.filter(RateMaster.effective_date <= as_utc(end))
        rows = q.order_by(RateMaster.effective_date.asc(), RateMaster.id.asc()).all()
        if not rows:
            return None

        values = [Decimal(r.rate_per_gram) for r in rows]
        first, last = values[0], values[-1]
        change = last - first
        return {
            "metal_type": metal,
            "purity": purity,
            "count": len(values),
            "min_rate": rate_amount(min(values)),
            "max_rate": rate_amount(max(values)),
            "avg_rate": rate_amount(sum(values) / len(values)),
            "first_rate": rate_amount(first),
            "last_rate": rate_amount(last),
            "change": rate_amount(change),
            "change_percent": money(change / first * 100) if first else Decimal("0.00"),
        }

    def get_expiring_rates(self, db: Session, days: Optional[int] = None) -> List[RateMaster]:
        """Active rates whose valid_until falls within the next `days` days."""
        days = settings.RATE_EXPIRY_WARNING_DAYS if days is None else days
        at = now_utc()
        return db.query(RateMaster).filter(
            RateMaster.is_active == True,
            RateMaster.valid_until != None,
            RateMaster.valid_until >= at,
            RateMaster.valid_until <= at + timedelta(days=days),
        ).order_by(RateMaster.valid_until.asc()).all()


# Singleton
rate_service = RateService()
