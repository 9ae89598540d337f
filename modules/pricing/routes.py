"""
Pricing Module - API Routes
============================
Rate master, price calculator, and bulk repricing endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.exceptions import NotFoundError
from common.helpers import jsonable
from modules.auth.deps import get_current_actor
from modules.pricing.calculator import calculate_item_price
from modules.pricing.models import MetalType, RateSource
from modules.pricing.repricer import bulk_repricer, RepriceFilter
from modules.pricing.service import rate_service

router = APIRouter(prefix="/api", tags=["Pricing"])


# ==========================================
# Schemas
# ==========================================

class RateCreateRequest(BaseModel):
    metal_type: MetalType
    purity: str = Field(..., min_length=1, max_length=20)
    rate_per_gram: Decimal = Field(..., gt=0)
    effective_date: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    is_active: bool = True
    rate_source: RateSource = RateSource.MANUAL
    notes: Optional[str] = Field(None, max_length=500)


class CalculateRequest(BaseModel):
    net_weight: Decimal = Field(..., gt=0)
    wastage_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    metal_rate_per_gram: Decimal = Field(..., gt=0)
    making_charges: Decimal = Field(Decimal("0"), ge=0)
    stone_value: Decimal = Field(Decimal("0"), ge=0)


class ProductFilter(BaseModel):
    metal_type: Optional[MetalType] = None
    purity: Optional[str] = Field(None, max_length=20)
    collection_name: Optional[str] = Field(None, max_length=100)
    product_ids: Optional[List[int]] = None


class BulkRepriceRequest(BaseModel):
    rate_id: int = Field(..., gt=0)
    product_filters: Optional[ProductFilter] = None
    skip_custom_prices: bool = True


def _filter(body: BulkRepriceRequest) -> RepriceFilter:
    f = body.product_filters
    if not f:
        return RepriceFilter()
    return RepriceFilter(
        metal_type=f.metal_type.value if f.metal_type else None,
        purity=f.purity,
        collection_name=f.collection_name,
        product_ids=f.product_ids,
    )


# ==========================================
# Rates
# ==========================================

@router.get("/rates/current")
def current_rate(
    metal_type: str = Query(...),
    purity: str = Query(...),
    db: Session = Depends(get_db),
):
    """Current rate for one (metal type, purity) pair."""
    rate = rate_service.find_current_rate(db, metal_type, purity)
    if rate is None:
        raise NotFoundError(f"No current rate for {metal_type} {purity}")
    return {"success": True, "rate": rate.to_dict()}


@router.get("/rates/current/all")
def current_rates_board(db: Session = Depends(get_db)):
    return {"success": True, "rates": rate_service.get_all_current_rates(db)}


@router.get("/rates/expiring")
def expiring_rates(days: Optional[int] = Query(None, ge=0, le=365), db: Session = Depends(get_db)):
    rows = rate_service.get_expiring_rates(db, days)
    return {"success": True, "rates": [r.to_dict() for r in rows]}


@router.post("/rates", status_code=201)
def create_rate(
    body: RateCreateRequest,
    actor: str = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Create a rate; an active one replaces the pair's current active rate."""
    rate = rate_service.create_rate(
        db,
        metal_type=body.metal_type,
        purity=body.purity,
        rate_per_gram=body.rate_per_gram,
        effective_date=body.effective_date,
        valid_until=body.valid_until,
        is_active=body.is_active,
        rate_source=body.rate_source,
        notes=body.notes,
        actor=actor,
    )
    return {"success": True, "rate": rate.to_dict()}


@router.get("/rates/history/{metal_type}/{purity}")
def rate_history(
    metal_type: str,
    purity: str,
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    db: Session = Depends(get_db),
):
    rows, total, total_pages = rate_service.get_history(db, metal_type, purity, page, per_page)
    return {
        "success": True,
        "rates": [r.to_dict() for r in rows],
        "pagination": {"page": page, "per_page": per_page, "total": total, "total_pages": total_pages},
    }


@router.get("/rates/statistics/{metal_type}/{purity}")
def rate_statistics(
    metal_type: str,
    purity: str,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
):
    stats = rate_service.get_rate_statistics(db, metal_type, purity, start, end)
    if stats is None:
        raise NotFoundError(f"No rates recorded for {metal_type} {purity}")
    return {"success": True, "statistics": jsonable(stats)}


@router.get("/rates/{rate_id}")
def get_rate(rate_id: int, db: Session = Depends(get_db)):
    return {"success": True, "rate": rate_service.get_rate(db, rate_id).to_dict()}


@router.get("/rates/{rate_id}/validity")
def rate_validity(rate_id: int, db: Session = Depends(get_db)):
    return {"success": True, "rate_id": rate_id, "is_valid": rate_service.is_valid(db, rate_id)}


@router.post("/rates/{rate_id}/activate")
def activate_rate(rate_id: int, actor: str = Depends(get_current_actor), db: Session = Depends(get_db)):
    rate = rate_service.activate_existing(db, rate_id, actor=actor)
    return {"success": True, "rate": rate.to_dict()}


@router.post("/rates/{rate_id}/deactivate")
def deactivate_rate(rate_id: int, actor: str = Depends(get_current_actor), db: Session = Depends(get_db)):
    rate = rate_service.deactivate(db, rate_id, actor=actor)
    return {"success": True, "rate": rate.to_dict()}


# ==========================================
# Calculator
# ==========================================

@router.post("/pricing/calculate")
def calculate(body: CalculateRequest):
    """Stateless price breakdown for arbitrary inputs."""
    result = calculate_item_price(
        net_weight=body.net_weight,
        wastage_percent=body.wastage_percent,
        metal_rate_per_gram=body.metal_rate_per_gram,
        making_charges=body.making_charges,
        stone_value=body.stone_value,
    )
    return {"success": True, "breakdown": jsonable(result)}


# ==========================================
# Bulk Repricing
# ==========================================

@router.post("/rates/bulk-reprice/preview")
def bulk_reprice_preview(body: BulkRepriceRequest, db: Session = Depends(get_db)):
    result = bulk_repricer.preview(db, body.rate_id, _filter(body), body.skip_custom_prices)
    return {"success": True, "preview": True, **jsonable(result)}


@router.post("/rates/bulk-reprice/commit")
def bulk_reprice_commit(
    body: BulkRepriceRequest,
    actor: str = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    result = bulk_repricer.commit(db, body.rate_id, _filter(body), body.skip_custom_prices, actor=actor)
    return {"success": True, "preview": False, **jsonable(result)}
