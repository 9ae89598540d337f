from datetime import timedelta
from decimal import Decimal

import pytest

from common.exceptions import InvalidInputError, NoActiveRateError, NotAvailableError
from common.helpers import now_utc
from modules.catalog.service import catalog_service
from modules.inventory.models import StockStatus
from modules.inventory.service import inventory_service, PriceSource
from modules.pricing.repricer import bulk_repricer


def test_calculated_from_current_rate(db, make_rate, make_product, add_stock):
    rate = make_rate(rate_per_gram="6500")
    product = make_product()
    unit = add_stock(product)[0]

    priced = inventory_service.price_of(db, unit)
    assert priced["selling_price"] == Decimal("178360.00")
    assert priced["price_source"] == PriceSource.CALCULATED
    assert priced["rate"].id == rate.id
    assert priced["breakdown"]["effective_weight"] == Decimal("25.440")


def test_price_follows_new_rate_without_repricing(db, make_rate, make_product, add_stock):
    make_rate(rate_per_gram="6500")
    product = make_product()
    unit = add_stock(product)[0]
    assert inventory_service.price_of(db, unit)["selling_price"] == Decimal("178360.00")

    make_rate(rate_per_gram="6600")
    # 25.44 * 6600 + 8000 + 5000
    assert inventory_service.price_of(db, unit)["selling_price"] == Decimal("180904.00")


def test_unit_override_wins(db, make_rate, make_product, add_stock, audit):
    make_rate()
    product = make_product(price_override="170000", price_override_reason="Festival offer")
    unit = add_stock(product)[0]
    inventory_service.set_item_price_override(db, unit.id, "165000", " Minor scratch ", actor="manager")

    priced = inventory_service.price_of(db, unit)
    assert priced["selling_price"] == Decimal("165000.00")
    assert priced["price_source"] == PriceSource.ITEM_OVERRIDE
    assert priced["reason"] == "Minor scratch"
    assert audit.records[-1]["action"] == "PRICE_OVERRIDE"


def test_clearing_unit_override_falls_back(db, make_rate, make_product, add_stock):
    make_rate()
    unit = add_stock(make_product())[0]
    inventory_service.set_item_price_override(db, unit.id, "165000", "Minor scratch")
    inventory_service.set_item_price_override(db, unit.id, None, None)

    db.refresh(unit)
    assert unit.price_override is None
    assert unit.price_override_reason is None
    assert inventory_service.price_of(db, unit)["price_source"] == PriceSource.CALCULATED


@pytest.mark.parametrize("amount, reason", [("165000", None), ("165000", "  "), ("-1", "Damaged"), ("abc", "Damaged")])
def test_unit_override_validation(db, make_product, add_stock, amount, reason):
    unit = add_stock(make_product())[0]
    with pytest.raises(InvalidInputError):
        inventory_service.set_item_price_override(db, unit.id, amount, reason)
    db.refresh(unit)
    assert unit.price_override is None


def test_unit_override_refused_once_sold(db, make_product, add_stock):
    unit = add_stock(make_product(), status=StockStatus.SOLD.value)[0]
    with pytest.raises(NotAvailableError):
        inventory_service.set_item_price_override(db, unit.id, "1000", "Late markdown")


def test_product_override_beats_calculation(db, make_rate, make_product, add_stock):
    make_rate()
    product = make_product(price_override="170000", price_override_reason="Festival offer")
    unit = add_stock(product)[0]

    priced = inventory_service.price_of(db, unit)
    assert priced["selling_price"] == Decimal("170000.00")
    assert priced["price_source"] == PriceSource.PRODUCT_OVERRIDE


def test_override_needs_no_rate(db, make_product, add_stock):
    product = make_product(price_override="170000", price_override_reason="Festival offer")
    unit = add_stock(product)[0]
    assert inventory_service.price_of(db, unit)["selling_price"] == Decimal("170000.00")


def test_no_rate_is_an_error(db, make_product, add_stock):
    product = make_product()
    unit = add_stock(product)[0]
    with pytest.raises(NoActiveRateError):
        inventory_service.price_of(db, unit)


def test_no_fallback_to_stored_price_after_expiry(db, make_rate, make_product, add_stock):
    rate = make_rate(
        effective_date=now_utc() - timedelta(days=3),
        valid_until=now_utc() + timedelta(days=3),
    )
    product = make_product()
    unit = add_stock(product)[0]
    bulk_repricer.commit(db, rate.id)
    db.refresh(product)
    assert product.calculated_price == Decimal("178360.00")

    rate.valid_until = now_utc() - timedelta(seconds=1)
    db.commit()
    with pytest.raises(NoActiveRateError):
        inventory_service.price_of(db, unit)


def test_price_product_reports_outdated_stored_price(db, make_rate, make_product):
    first = make_rate(rate_per_gram="6500")
    product = make_product()
    bulk_repricer.commit(db, first.id)

    make_rate(rate_per_gram="6600")
    result = catalog_service.price_product(db, product.id)
    assert result["final_price"] == Decimal("180904.00")
    assert result["stored_price"]["calculated_price"] == Decimal("178360.00")
    assert result["price_status"]["is_outdated"] is True
    assert result["price_status"]["price_difference"] == Decimal("2544.00")


def test_price_product_with_override(db, make_rate, make_product):
    make_rate()
    product = make_product()
    catalog_service.set_price_override(db, product.id, "175000", "Negotiated")

    result = catalog_service.price_product(db, product.id)
    assert result["final_price"] == Decimal("175000.00")
    assert result["price_status"]["is_overridden"] is True
    assert result["price_status"]["override_reason"] == "Negotiated"
    assert result["current_calculation"]["total_price"] == Decimal("178360.00")
