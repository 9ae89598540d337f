"""
Pricing Module - External Rate Feed Service
=============================================
Fetches metal rates from a configured JSON feed and activates them as
API-sourced rates. The feed is expected to return:

    {"success": true, "data": [{"metal_type": "GOLD", "purity": "22K", "rate_per_gram": 6500.00}, ...]}
"""

import logging
from typing import List, Optional

import httpx
from sqlalchemy.orm import Session

from common.helpers import to_decimal, rate_amount
from common.transaction import run_with_retry
from config import settings
from modules.pricing.models import RateSource
from modules.pricing.service import rate_service, normalize_metal, normalize_purity

logger = logging.getLogger("jewelry.pricing.feed")

FEED_USER_AGENT = "jewelry-backoffice/1.0"


def fetch_feed_rates(url: Optional[str] = None, client: Optional[httpx.Client] = None) -> List[dict]:
    """
    Fetch all quotes from the rate feed in one HTTP call.

    Returns:
        list of {"metal_type", "purity", "rate_per_gram"} with Decimal rates
        rounded to the stored 4 places

    Raises:
        ValueError: If response is invalid.
        httpx.HTTPError: On network/HTTP errors.
    """
    url = url or settings.RATE_FEED_URL
    if not url:
        raise ValueError("RATE_FEED_URL is not configured")

    get = client.get if client is not None else httpx.get
    resp = get(url, headers={"User-Agent": FEED_USER_AGENT}, timeout=settings.RATE_FEED_TIMEOUT)
    resp.raise_for_status()

    data = resp.json()
    if not data.get("success"):
        raise ValueError(f"Rate feed returned success=false: {data}")
    if not isinstance(data.get("data"), list):
        raise ValueError(f"Rate feed missing 'data' list: {data}")

    quotes = []
    for item in data["data"]:
        rate = to_decimal(item.get("rate_per_gram"))
        if rate is None or not rate.is_finite() or rate <= 0:
            raise ValueError(f"Invalid rate in feed: {item}")
        quotes.append({
            "metal_type": normalize_metal(item.get("metal_type")),
            "purity": normalize_purity(item.get("purity")),
            "rate_per_gram": rate_amount(rate),
        })
    return quotes


def apply_feed_rates(db: Session, quotes: List[dict]) -> int:
    """Activate each quote that differs from the current rate. Returns how many were activated."""
    activated = 0
    for quote in quotes:
        value = rate_amount(quote["rate_per_gram"])
        current = rate_service.find_current_rate(db, quote["metal_type"], quote["purity"])
        if current is not None and rate_amount(current.rate_per_gram) == value:
            continue
        run_with_retry(db, lambda q=quote, v=value: rate_service.create_rate(
            db,
            metal_type=q["metal_type"],
            purity=q["purity"],
            rate_per_gram=v,
            rate_source=RateSource.API.value,
            notes="Rate feed",
            actor="system:feed",
        ))
        activated += 1
        logger.info(f"Feed rate {quote['metal_type']}/{quote['purity']}={value}")
    return activated
