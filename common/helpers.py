"""
Jewelry Back-Office - Shared Helpers
=====================================
Pure utility functions with NO database or module dependencies,
plus the collision-checked identifier generators.
"""

import secrets
import string
import time
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional

MONEY = Decimal("0.01")
RATE = Decimal("0.0001")


def now_utc() -> datetime:
    """Returns current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def jsonable(value):
    """Recursively convert Decimals to strings and datetimes to ISO text for JSON responses."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {k: jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [jsonable(v) for v in value]
    return value


def to_decimal(value, default: Optional[Decimal] = None) -> Optional[Decimal]:
    """Coerce int/float/str/Decimal to Decimal via str() so floats never leak in."""
    if value is None:
        return default
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValueError(f"Not a number: {value!r}")


def money(value) -> Decimal:
    """Round a currency amount to 2 places, half-up."""
    return to_decimal(value, Decimal("0")).quantize(MONEY, rounding=ROUND_HALF_UP)


def rate_amount(value) -> Decimal:
    """Round a per-gram metal rate to the stored 4 places, half-up."""
    return to_decimal(value, Decimal("0")).quantize(RATE, rounding=ROUND_HALF_UP)


# ==========================================
# Identifier Generators
# ==========================================

_METAL_CODES = {"GOLD": "G", "SILVER": "S", "PLATINUM": "P"}
_TAG_ALPHABET = string.ascii_uppercase + string.digits


def generate_invoice_number(when: Optional[datetime] = None) -> str:
    """Invoice number: INV-YYYYMMDD-XXXX."""
    when = when or now_utc()
    return f"INV-{when:%Y%m%d}-{secrets.randbelow(10000):04d}"


def generate_tag_id(metal_type, purity: str) -> str:
    """Stock tag: [MetalCode][PurityDigits]-[Timestamp]-[Random], e.g. G22-61234567-K3ZQ."""
    metal = getattr(metal_type, "value", metal_type)
    metal_code = _METAL_CODES.get(str(metal), "X")
    purity_code = "".join(ch for ch in str(purity) if ch.isdigit())
    timestamp = str(int(time.time() * 1000))[-8:]
    suffix = "".join(secrets.choice(_TAG_ALPHABET) for _ in range(4))
    return f"{metal_code}{purity_code}-{timestamp}-{suffix}"


def generate_barcode(prefix: str, product_id: int) -> str:
    """Barcode: [Prefix]-[ProductId]-[Random8]."""
    return f"{prefix}-{product_id:08d}-{secrets.randbelow(10 ** 8):08d}"


def generate_unique(db, column, factory, max_retries: int = 10, taken: Optional[set] = None) -> str:
    """Call factory() until it yields a value absent from column (and from taken)."""
    for _ in range(max_retries):
        value = factory()
        if taken is not None and value in taken:
            continue
        exists = db.query(column).filter(column == value).first()
        if not exists:
            if taken is not None:
                taken.add(value)
            return value
    raise RuntimeError(f"Failed to generate unique {column.key} after retries")
