"""
Ledger Module - Service
========================
Writes income/expense transactions. Callers own the transaction:
these helpers add and flush, they never commit.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from common.exceptions import InvalidInputError
from common.helpers import money, as_utc
from config import settings
from modules.ledger.models import LedgerTransaction, TransactionType, TransactionCategory


class LedgerService:

    # ------------------------------------------
    # Core writer
    # ------------------------------------------

    def _write(
        self,
        db: Session,
        txn_type: str,
        amount,
        payment_mode: str,
        category: str,
        description: Optional[str] = None,
        reference_number: Optional[str] = None,
        customer_id: Optional[int] = None,
        sales_order_id: Optional[int] = None,
        actor: str = "system",
    ) -> LedgerTransaction:
        """Create an immutable ledger row inside the caller's transaction."""
        amount = money(amount)
        if amount < 0:
            raise InvalidInputError("Ledger amount cannot be negative")

        txn = LedgerTransaction(
            transaction_type=txn_type,
            amount=amount,
            currency=settings.CURRENCY,
            payment_mode=payment_mode,
            category=category,
            description=description,
            reference_number=reference_number,
            customer_id=customer_id,
            sales_order_id=sales_order_id,
            created_by=actor,
        )
        db.add(txn)
        db.flush()
        return txn

    def record_income(self, db: Session, amount, payment_mode: str, **kwargs) -> LedgerTransaction:
        kwargs.setdefault("category", TransactionCategory.SALES.value)
        return self._write(db, TransactionType.INCOME.value, amount, payment_mode, **kwargs)

    def record_expense(self, db: Session, amount, payment_mode: str, **kwargs) -> LedgerTransaction:
        kwargs.setdefault("category", TransactionCategory.PURCHASE.value)
        return self._write(db, TransactionType.EXPENSE.value, amount, payment_mode, **kwargs)

    # ------------------------------------------
    # Queries
    # ------------------------------------------

    def list_for_order(self, db: Session, sales_order_id: int) -> List[LedgerTransaction]:
        return db.query(LedgerTransaction).filter(
            LedgerTransaction.sales_order_id == sales_order_id,
        ).order_by(LedgerTransaction.id.asc()).all()

    def get_summary(self, db: Session, start=None, end=None) -> dict:
        """Income, expense, and net over an optional date range."""
        q = db.query(
            LedgerTransaction.transaction_type,
            func.coalesce(func.sum(LedgerTransaction.amount), 0),
            func.count(LedgerTransaction.id),
        )
        if start:
            q = q.filter(LedgerTransaction.transaction_date >= as_utc(start))
        if end:
            q = q.filter(LedgerTransaction.transaction_date <= as_utc(end))
        totals = {t: (money(s), c) for t, s, c in q.group_by(LedgerTransaction.transaction_type).all()}

        income, income_count = totals.get(TransactionType.INCOME.value, (Decimal("0.00"), 0))
        expense, expense_count = totals.get(TransactionType.EXPENSE.value, (Decimal("0.00"), 0))
        return {
            "income": income,
            "expense": expense,
            "net": money(income - expense),
            "income_count": income_count,
            "expense_count": expense_count,
            "currency": settings.CURRENCY,
        }


# Singleton
ledger_service = LedgerService()
