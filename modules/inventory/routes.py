"""
Inventory Module - API Routes
==============================
FIFO lookup, stock pricing, reservations, receipt, and summaries.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.helpers import jsonable
from modules.auth.deps import get_current_actor
from modules.inventory.service import inventory_service
from modules.sales.models import PaymentMethod

router = APIRouter(prefix="/api/stock", tags=["Inventory"])


class StockIdsRequest(BaseModel):
    stock_item_ids: List[int] = Field(..., min_length=1)


class PriceOverrideRequest(BaseModel):
    price_override: Optional[Decimal] = Field(None, ge=0)
    reason: Optional[str] = Field(None, max_length=255)


class ReceiveStockRequest(BaseModel):
    product_id: int = Field(..., gt=0)
    purchase_costs: List[Optional[Decimal]] = Field(..., min_length=1)
    purchase_date: Optional[datetime] = None
    purchase_reference: Optional[str] = Field(None, max_length=50)
    huids: Optional[List[Optional[str]]] = None
    record_expense: bool = False
    payment_mode: PaymentMethod = PaymentMethod.CASH


@router.get("/fifo")
def fifo(
    product_id: int = Query(..., gt=0),
    quantity: int = Query(1),
    db: Session = Depends(get_db),
):
    """Oldest available units with live selling prices."""
    return {"success": True, **jsonable(inventory_service.fifo_quote(db, product_id, quantity))}


@router.get("/summary")
def stock_summary(db: Session = Depends(get_db)):
    return {"success": True, "summary": jsonable(inventory_service.get_stock_summary(db))}


@router.get("/availability/{product_id}")
def availability(product_id: int, db: Session = Depends(get_db)):
    return {"success": True, **inventory_service.get_availability(db, product_id)}


@router.get("/{item_id}/price")
def stock_item_price(item_id: int, db: Session = Depends(get_db)):
    """Selling price of one unit, computed now."""
    item = inventory_service.get_item(db, item_id)
    priced = inventory_service.price_of(db, item)
    return {
        "success": True,
        "stock_item": item.to_dict(),
        "selling_price": str(priced["selling_price"]),
        "price_source": priced["price_source"],
        "reason": priced["reason"],
        "breakdown": jsonable(priced["breakdown"]),
        "rate": priced["rate"].to_dict() if priced["rate"] is not None else None,
    }


@router.put("/{item_id}/price-override")
def set_price_override(
    item_id: int,
    body: PriceOverrideRequest,
    actor: str = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    item = inventory_service.set_item_price_override(db, item_id, body.price_override, body.reason, actor=actor)
    return {"success": True, "stock_item": item.to_dict()}


@router.post("/reserve")
def reserve(
    body: StockIdsRequest,
    actor: str = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    items = inventory_service.reserve_stock(db, body.stock_item_ids, actor=actor)
    return {"success": True, "stock_items": [i.to_dict() for i in items]}


@router.post("/release")
def release(
    body: StockIdsRequest,
    actor: str = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    items = inventory_service.release_stock(db, body.stock_item_ids, actor=actor)
    return {"success": True, "stock_items": [i.to_dict() for i in items]}


@router.post("/receive", status_code=201)
def receive(
    body: ReceiveStockRequest,
    actor: str = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    items = inventory_service.receive_stock(
        db,
        product_id=body.product_id,
        purchase_costs=body.purchase_costs,
        purchase_date=body.purchase_date,
        purchase_reference=body.purchase_reference,
        huids=body.huids,
        record_expense=body.record_expense,
        payment_mode=body.payment_mode.value,
        actor=actor,
    )
    return {"success": True, "stock_items": [i.to_dict() for i in items]}
