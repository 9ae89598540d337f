from decimal import Decimal

import pytest
from sqlalchemy import update

from common.exceptions import InvalidInputError, NoActiveRateError, NotAvailableError, NotFoundError
from modules.inventory.models import StockItem, StockStatus
from modules.inventory.service import inventory_service
from modules.ledger.models import LedgerTransaction
from modules.sales.service import sales_service


# ==========================================
# Reserve / Release
# ==========================================

def test_reserve_and_release(db, make_product, add_stock, audit):
    product = make_product()
    units = add_stock(product, count=2)
    ids = [u.id for u in units]

    inventory_service.reserve_stock(db, ids)
    assert {db.get(StockItem, i).status for i in ids} == {StockStatus.RESERVED.value}

    inventory_service.release_stock(db, ids)
    assert {db.get(StockItem, i).status for i in ids} == {StockStatus.AVAILABLE.value}
    assert audit.actions() == ["CREATE", "RESERVE", "RELEASE"]


def test_reserve_is_all_or_nothing(db, make_product, add_stock):
    product = make_product()
    free = add_stock(product)[0]
    sold = add_stock(product, status=StockStatus.SOLD.value)[0]

    with pytest.raises(NotAvailableError) as exc:
        inventory_service.reserve_stock(db, [free.id, sold.id])
    assert exc.value.item == sold.tag_id
    db.refresh(free)
    assert free.status == StockStatus.AVAILABLE.value


def test_reserve_fails_when_unit_moves_after_lookup(db, make_product, add_stock, monkeypatch):
    product = make_product()
    first, second = add_stock(product, count=2)
    load = inventory_service._load_for_transition

    def load_then_sell_second(session, item_ids, expected):
        items = load(session, item_ids, expected)
        session.execute(
            update(StockItem).where(StockItem.id == second.id).values(status=StockStatus.SOLD.value),
            execution_options={"synchronize_session": False},
        )
        return items

    monkeypatch.setattr(inventory_service, "_load_for_transition", load_then_sell_second)

    with pytest.raises(NotAvailableError) as exc:
        inventory_service.reserve_stock(db, [first.id, second.id])
    assert exc.value.item == second.tag_id
    for unit in (first, second):
        db.refresh(unit)
        assert unit.status == StockStatus.AVAILABLE.value


def test_reserve_missing_unit(db):
    with pytest.raises(NotFoundError):
        inventory_service.reserve_stock(db, [123])
    with pytest.raises(InvalidInputError):
        inventory_service.reserve_stock(db, [])


def test_release_requires_reserved(db, make_product, add_stock):
    product = make_product()
    unit = add_stock(product)[0]
    with pytest.raises(NotAvailableError):
        inventory_service.release_stock(db, [unit.id])


def test_release_refuses_units_held_by_order(db, make_rate, make_customer, make_product, add_stock):
    make_rate()
    customer = make_customer()
    unit = add_stock(make_product())[0]
    sales_service.create_sale(db, customer.id, [{"stock_item_id": unit.id}], "CASH", as_pending=True)

    with pytest.raises(NotAvailableError):
        inventory_service.release_stock(db, [unit.id])
    db.refresh(unit)
    assert unit.status == StockStatus.RESERVED.value


# ==========================================
# Receive
# ==========================================

def test_receive_creates_tagged_units(db, make_product):
    product = make_product()
    units = inventory_service.receive_stock(
        db, product.id, ["150000", "152000.50"], purchase_reference="PO-001",
        huids=["AB12CD", None],
    )
    assert len(units) == 2
    assert all(u.status == StockStatus.AVAILABLE.value for u in units)
    assert len({u.tag_id for u in units}) == 2
    assert len({u.barcode for u in units}) == 2
    assert all(u.tag_id.startswith("G22-") for u in units)
    assert units[1].purchase_cost == Decimal("152000.50")
    assert units[0].huid == "AB12CD"
    assert db.query(LedgerTransaction).count() == 0


def test_receive_can_post_expense(db, make_product):
    product = make_product()
    inventory_service.receive_stock(
        db, product.id, ["100", "200"], purchase_reference="PO-002", record_expense=True,
    )
    txn = db.query(LedgerTransaction).one()
    assert txn.transaction_type == "EXPENSE"
    assert txn.amount == Decimal("300.00")
    assert txn.reference_number == "PO-002"


def test_receive_without_cost_uses_current_rate(db, make_rate, make_product):
    make_rate(rate_per_gram="6500")
    product = make_product()
    units = inventory_service.receive_stock(db, product.id, [None, "150000"])
    # 24 g * 6500 + 8000 making + 5000 stone, no wastage
    assert units[0].purchase_cost == Decimal("169000.00")
    assert units[1].purchase_cost == Decimal("150000.00")


def test_receive_without_cost_needs_a_rate(db, make_product):
    product = make_product()
    with pytest.raises(NoActiveRateError):
        inventory_service.receive_stock(db, product.id, [None])
    assert db.query(StockItem).count() == 0


@pytest.mark.parametrize("costs", [[], ["-1"], ["abc"]])
def test_receive_rejects_bad_costs(db, make_product, costs):
    product = make_product()
    with pytest.raises(InvalidInputError):
        inventory_service.receive_stock(db, product.id, costs)
    assert db.query(StockItem).count() == 0


def test_receive_unknown_product(db):
    with pytest.raises(NotFoundError):
        inventory_service.receive_stock(db, 77, ["100"])


# ==========================================
# Summary / Availability
# ==========================================

def test_availability_counts(db, make_product, add_stock):
    product = make_product()
    add_stock(product, count=3)
    add_stock(product, status=StockStatus.SOLD.value)
    add_stock(product, status=StockStatus.RESERVED.value)

    result = inventory_service.get_availability(db, product.id)
    assert result["AVAILABLE"] == 3
    assert result["SOLD"] == 1
    assert result["RESERVED"] == 1
    assert result["total"] == 5


def test_summary_by_status_and_metal(db, make_product, add_stock):
    gold = make_product()
    silver = make_product(metal_type="SILVER", purity="925", net_weight="42")
    add_stock(gold, count=2, cost="100.00")
    add_stock(silver, count=1, cost="50.00", status=StockStatus.SOLD.value)

    summary = inventory_service.get_stock_summary(db)
    assert summary["total_items"] == 3
    assert summary["by_status"]["AVAILABLE"]["count"] == 2
    assert summary["by_status"]["AVAILABLE"]["purchase_value"] == Decimal("200.00")
    assert summary["by_metal_type"]["SILVER"] == {
        "count": 1, "available": 0, "purchase_value": Decimal("50.00"),
    }


def test_summary_refreshes_after_stock_moves(db, make_product, add_stock):
    product = make_product()
    units = add_stock(product, count=2)
    assert inventory_service.get_stock_summary(db)["by_status"]["AVAILABLE"]["count"] == 2

    # direct inserts bypass the service, so the cached value stays
    add_stock(product)
    assert inventory_service.get_stock_summary(db)["by_status"]["AVAILABLE"]["count"] == 2

    inventory_service.reserve_stock(db, [units[0].id])
    summary = inventory_service.get_stock_summary(db)
    assert summary["by_status"]["AVAILABLE"]["count"] == 2
    assert summary["by_status"]["RESERVED"]["count"] == 1
