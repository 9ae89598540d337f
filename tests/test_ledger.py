from decimal import Decimal

import pytest

from common.exceptions import ImmutableRecordError, InvalidInputError
from modules.ledger.models import LedgerTransaction
from modules.ledger.service import ledger_service


def test_income_and_expense_summary(db):
    ledger_service.record_income(db, "1000", "CASH", description="Sale")
    ledger_service.record_income(db, "500.50", "UPI")
    ledger_service.record_expense(db, "300", "BANK_TRANSFER")
    db.commit()

    summary = ledger_service.get_summary(db)
    assert summary["income"] == Decimal("1500.50")
    assert summary["expense"] == Decimal("300.00")
    assert summary["net"] == Decimal("1200.50")
    assert summary["income_count"] == 2
    assert summary["currency"] == "INR"


def test_negative_amount_rejected(db):
    with pytest.raises(InvalidInputError):
        ledger_service.record_income(db, "-1", "CASH")


def test_rows_cannot_be_updated(db):
    txn = ledger_service.record_income(db, "1000", "CASH")
    db.commit()

    txn.amount = Decimal("1.00")
    with pytest.raises(ImmutableRecordError):
        db.flush()
    db.rollback()
    assert db.get(LedgerTransaction, txn.id).amount == Decimal("1000.00")


def test_rows_cannot_be_deleted(db):
    txn = ledger_service.record_expense(db, "250", "CASH")
    db.commit()

    db.delete(txn)
    with pytest.raises(ImmutableRecordError):
        db.flush()
    db.rollback()
    assert db.query(LedgerTransaction).count() == 1
