"""
Ledger Module - API Routes
===========================
Read-only views of income/expense transactions.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from config.database import get_db
from common.helpers import jsonable
from modules.ledger.service import ledger_service

router = APIRouter(prefix="/api/ledger", tags=["Ledger"])


@router.get("/summary")
def ledger_summary(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
):
    return {"success": True, "summary": jsonable(ledger_service.get_summary(db, start, end))}


@router.get("/sales-orders/{order_id}")
def order_transactions(order_id: int, db: Session = Depends(get_db)):
    rows = ledger_service.list_for_order(db, order_id)
    return {"success": True, "transactions": [t.to_dict() for t in rows]}
