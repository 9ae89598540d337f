"""
Catalog Module - API Routes
============================
Product registration, price overrides, and live price breakdown.
"""

from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.helpers import jsonable
from modules.auth.deps import get_current_actor
from modules.catalog.service import catalog_service
from modules.pricing.models import MetalType

router = APIRouter(prefix="/api/products", tags=["Catalog"])


class ProductCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    sku: str = Field(..., min_length=1, max_length=50)
    metal_type: MetalType
    purity: str = Field(..., min_length=1, max_length=20)
    net_weight: Decimal = Field(..., gt=0)
    gross_weight: Optional[Decimal] = Field(None, ge=0)
    wastage_percent: Decimal = Field(Decimal("0"), ge=0, le=100)
    making_charges: Decimal = Field(Decimal("0"), ge=0)
    stone_weight: Optional[Decimal] = Field(None, ge=0)
    stone_value: Optional[Decimal] = Field(None, ge=0)
    collection_name: Optional[str] = Field(None, max_length=100)
    price_override: Optional[Decimal] = Field(None, ge=0)
    price_override_reason: Optional[str] = Field(None, max_length=255)


class PriceOverrideRequest(BaseModel):
    price_override: Optional[Decimal] = Field(None, ge=0)
    reason: Optional[str] = Field(None, max_length=255)


@router.get("")
def list_products(
    metal_type: Optional[str] = Query(None),
    purity: Optional[str] = Query(None),
    collection_name: Optional[str] = Query(None),
    db: Session = Depends(get_db),
):
    products = catalog_service.list_products(db, metal_type, purity, collection_name)
    return {"success": True, "products": [p.to_dict() for p in products]}


@router.post("", status_code=201)
def create_product(
    body: ProductCreateRequest,
    actor: str = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    product = catalog_service.create_product(db, actor=actor, **body.model_dump())
    return {"success": True, "product": product.to_dict()}


@router.get("/{product_id}/price-breakdown")
def price_breakdown(product_id: int, db: Session = Depends(get_db)):
    """Live price with the stored (possibly outdated) price alongside."""
    return {"success": True, **jsonable(catalog_service.price_product(db, product_id))}


@router.put("/{product_id}/price-override")
def set_price_override(
    product_id: int,
    body: PriceOverrideRequest,
    actor: str = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    product = catalog_service.set_price_override(db, product_id, body.price_override, body.reason, actor=actor)
    return {"success": True, "product": product.to_dict()}
