"""
Sales Module - API Routes
==========================
Sales orders: create, read, complete, cancel, and payments.
"""

from decimal import Decimal
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.helpers import jsonable
from modules.auth.deps import get_current_actor
from modules.sales.models import PaymentMethod, OrderType
from modules.sales.service import sales_service

router = APIRouter(prefix="/api/sales-orders", tags=["Sales"])


class SaleLineRequest(BaseModel):
    stock_item_id: Optional[int] = Field(None, gt=0)
    tag_id: Optional[str] = Field(None, max_length=50)
    quantity: int = Field(1, ge=1)


class SaleCreateRequest(BaseModel):
    customer_id: int = Field(..., gt=0)
    lines: List[SaleLineRequest] = Field(..., min_length=1)
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    payment_method: PaymentMethod
    payment_amount: Decimal = Field(Decimal("0"), ge=0)
    create_as_pending: bool = False
    order_type: OrderType = OrderType.RETAIL
    notes: Optional[str] = Field(None, max_length=1000)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=255)


class PaymentRequest(BaseModel):
    amount: Decimal = Field(..., gt=0)
    payment_method: PaymentMethod
    reference_number: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=500)


@router.get("")
def list_orders(
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=200),
    status: Optional[str] = Query(None),
    customer_id: Optional[int] = Query(None),
    db: Session = Depends(get_db),
):
    orders, total = sales_service.list_orders(db, page, per_page, status, customer_id)
    return {
        "success": True,
        "orders": jsonable([o.to_dict(with_lines=False) for o in orders]),
        "pagination": {"page": page, "per_page": per_page, "total": total},
    }


@router.post("", status_code=201)
def create_order(
    body: SaleCreateRequest,
    actor: str = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    """Sell specific units. create_as_pending reserves them instead."""
    order = sales_service.create_sale(
        db,
        customer_id=body.customer_id,
        lines=[line.model_dump() for line in body.lines],
        payment_method=body.payment_method.value,
        discount_amount=body.discount_amount,
        paid_amount=body.payment_amount,
        as_pending=body.create_as_pending,
        order_type=body.order_type.value,
        notes=body.notes,
        actor=actor,
    )
    return {"success": True, "order": jsonable(order.to_dict())}


@router.get("/{order_id}")
def get_order(order_id: int, db: Session = Depends(get_db)):
    return {"success": True, "order": jsonable(sales_service.get_order(db, order_id).to_dict())}


@router.post("/{order_id}/complete")
def complete_order(order_id: int, actor: str = Depends(get_current_actor), db: Session = Depends(get_db)):
    order = sales_service.complete_sale(db, order_id, actor=actor)
    return {"success": True, "order": jsonable(order.to_dict())}


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: int,
    body: Optional[CancelRequest] = None,
    actor: str = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    order = sales_service.cancel_sale(db, order_id, reason=body.reason if body else None, actor=actor)
    return {"success": True, "order": jsonable(order.to_dict())}


@router.get("/{order_id}/payments")
def list_payments(order_id: int, db: Session = Depends(get_db)):
    payments = sales_service.list_payments(db, order_id)
    return {"success": True, "payments": jsonable([p.to_dict() for p in payments])}


@router.post("/{order_id}/payments", status_code=201)
def record_payment(
    order_id: int,
    body: PaymentRequest,
    actor: str = Depends(get_current_actor),
    db: Session = Depends(get_db),
):
    payment = sales_service.record_payment(
        db, order_id,
        amount=body.amount,
        payment_method=body.payment_method.value,
        reference_number=body.reference_number,
        notes=body.notes,
        actor=actor,
    )
    return {"success": True, "payment": jsonable(payment.to_dict())}
