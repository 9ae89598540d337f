import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta
from decimal import Decimal

import pytest

from common.exceptions import (
    InvalidInputError, NoActiveRateError, NotFoundError, RateWindowInvalidError,
)
from common.helpers import now_utc
from modules.pricing.models import RateMaster
from modules.pricing.service import rate_service


def _active_count(db, metal="GOLD", purity="22K"):
    return db.query(RateMaster).filter(
        RateMaster.metal_type == metal,
        RateMaster.purity == purity,
        RateMaster.is_active == True,
    ).count()


def test_activation_deactivates_siblings(db, make_rate):
    first = make_rate(rate_per_gram="6400")
    second = make_rate(rate_per_gram="6500")
    third = make_rate(rate_per_gram="6550")

    assert _active_count(db) == 1
    assert rate_service.get_current_rate(db, "GOLD", "22K").id == third.id
    db.refresh(first)
    db.refresh(second)
    assert not first.is_active and not second.is_active
    # history retained
    assert db.query(RateMaster).count() == 3


def test_pairs_are_independent(db, make_rate):
    gold22 = make_rate("GOLD", "22K", "6500")
    gold18 = make_rate("GOLD", "18K", "5200")
    silver = make_rate("SILVER", "925", "85")

    assert rate_service.get_current_rate(db, "GOLD", "22K").id == gold22.id
    assert rate_service.get_current_rate(db, "gold", "18K").id == gold18.id
    assert rate_service.get_current_rate(db, "SILVER", "925").id == silver.id


def test_inactive_rate_does_not_touch_active_one(db, make_rate):
    active = make_rate(rate_per_gram="6500")
    make_rate(rate_per_gram="7000", is_active=False)
    assert rate_service.get_current_rate(db, "GOLD", "22K").id == active.id


def test_no_rate_raises(db):
    with pytest.raises(NoActiveRateError) as exc:
        rate_service.get_current_rate(db, "PLATINUM", "950")
    assert exc.value.metal_type == "PLATINUM"
    assert rate_service.find_current_rate(db, "PLATINUM", "950") is None


def test_expired_rate_is_not_current(db, make_rate):
    rate = make_rate(
        effective_date=now_utc() - timedelta(days=10),
        valid_until=now_utc() - timedelta(days=1),
    )
    assert rate.is_active
    with pytest.raises(NoActiveRateError):
        rate_service.get_current_rate(db, "GOLD", "22K")
    assert rate_service.is_valid(db, rate.id) is False


def test_future_rate_is_not_yet_current(db, make_rate):
    make_rate(effective_date=now_utc() + timedelta(days=1))
    with pytest.raises(NoActiveRateError):
        rate_service.get_current_rate(db, "GOLD", "22K")


def test_window_must_be_positive(db):
    start = now_utc()
    with pytest.raises(RateWindowInvalidError):
        rate_service.create_rate(db, "GOLD", "22K", "6500", effective_date=start, valid_until=start)
    assert db.query(RateMaster).count() == 0


@pytest.mark.parametrize("value", ["0", "-1", "abc"])
def test_rate_must_be_positive(db, value):
    with pytest.raises(InvalidInputError):
        rate_service.create_rate(db, "GOLD", "22K", value)


def test_fractional_rate_kept_exactly(db):
    rate = rate_service.create_rate(db, "SILVER", "925", "86.125")
    db.expire_all()
    assert db.get(RateMaster, rate.id).rate_per_gram == Decimal("86.125")


def test_rate_finer_than_four_places_rejected(db):
    with pytest.raises(InvalidInputError):
        rate_service.create_rate(db, "SILVER", "925", "86.12345")
    assert db.query(RateMaster).count() == 0


def test_unknown_metal_rejected(db):
    with pytest.raises(InvalidInputError):
        rate_service.create_rate(db, "COPPER", "99", "10")


def test_is_valid(db, make_rate):
    rate = make_rate(valid_until=now_utc() + timedelta(days=3))
    assert rate_service.is_valid(db, rate.id) is True
    rate_service.deactivate(db, rate.id)
    assert rate_service.is_valid(db, rate.id) is False
    assert rate_service.is_valid(db, 999) is False


def test_activate_existing(db, make_rate):
    old = make_rate(rate_per_gram="6400")
    new = make_rate(rate_per_gram="6500")
    rate_service.activate_existing(db, old.id)

    assert _active_count(db) == 1
    db.refresh(new)
    assert not new.is_active
    assert rate_service.get_current_rate(db, "GOLD", "22K").id == old.id


def test_activate_missing_rate(db):
    with pytest.raises(NotFoundError):
        rate_service.activate_existing(db, 12345)


def test_history_is_newest_first_and_paginated(db, make_rate):
    base = now_utc() - timedelta(days=10)
    for i in range(5):
        make_rate(rate_per_gram=str(6000 + i * 100), effective_date=base + timedelta(days=i))

    rows, total, pages = rate_service.get_history(db, "GOLD", "22K", page=1, per_page=2)
    assert total == 5
    assert pages == 3
    assert [r.rate_per_gram for r in rows] == [Decimal("6400.00"), Decimal("6300.00")]


def test_statistics(db, make_rate):
    base = now_utc() - timedelta(days=10)
    make_rate(rate_per_gram="6000", effective_date=base)
    make_rate(rate_per_gram="6600", effective_date=base + timedelta(days=1))

    stats = rate_service.get_rate_statistics(db, "GOLD", "22K")
    assert stats["count"] == 2
    assert stats["min_rate"] == Decimal("6000.00")
    assert stats["change"] == Decimal("600.00")
    assert stats["change_percent"] == Decimal("10.00")
    assert rate_service.get_rate_statistics(db, "SILVER", "925") is None


def test_expiring_rates(db, make_rate):
    soon = make_rate("GOLD", "22K", "6500", valid_until=now_utc() + timedelta(days=2))
    make_rate("GOLD", "18K", "5200", valid_until=now_utc() + timedelta(days=30))
    make_rate("SILVER", "925", "85")
    assert [r.id for r in rate_service.get_expiring_rates(db, days=7)] == [soon.id]


def test_rate_board_is_cached_and_invalidated(db, make_rate):
    make_rate(rate_per_gram="6500")
    board = rate_service.get_all_current_rates(db)
    assert [r["rate_per_gram"] for r in board] == ["6500.0000"]

    make_rate(rate_per_gram="6600")
    board = rate_service.get_all_current_rates(db)
    assert [r["rate_per_gram"] for r in board] == ["6600.0000"]


def test_concurrent_activations_leave_one_active(session_factory):
    barrier = threading.Barrier(4)

    def activate(value):
        session = session_factory()
        try:
            barrier.wait()
            return rate_service.create_rate(session, "GOLD", "22K", value).id
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=4) as pool:
        ids = list(pool.map(activate, ["6500", "6510", "6520", "6530"]))

    session = session_factory()
    try:
        assert len(set(ids)) == 4
        assert _active_count(session) == 1
    finally:
        session.close()
