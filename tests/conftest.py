"""
Pytest fixtures for the jewelry back-office tests.

Each test gets its own SQLite file database so several sessions (and
threads) can share it the way request sessions share PostgreSQL.
"""

import itertools
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from config.database import Base, make_engine
from common.audit import MemoryAuditSink
from common.cache import cache_service
from common.helpers import now_utc
from modules.customer.models import Customer
from modules.pricing.models import RateMaster  # noqa: F401
from modules.catalog.models import Product  # noqa: F401
from modules.inventory.models import StockItem, StockStatus
from modules.sales.models import SalesOrder, SalesOrderLine, SalesPayment  # noqa: F401
from modules.ledger.models import LedgerTransaction  # noqa: F401
from modules.catalog.service import catalog_service
from modules.inventory.service import inventory_service
from modules.pricing.repricer import bulk_repricer
from modules.pricing.service import rate_service
from modules.sales.service import sales_service


@pytest.fixture
def engine(tmp_path):
    eng = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


@pytest.fixture(autouse=True)
def fresh_cache():
    cache_service.clear()
    yield
    cache_service.clear()


@pytest.fixture(autouse=True)
def audit(monkeypatch):
    """Route every service's audit records into one in-memory sink."""
    sink = MemoryAuditSink()
    for service in (rate_service, inventory_service, catalog_service, sales_service, bulk_repricer):
        monkeypatch.setattr(service, "audit", sink)
    return sink


# ==========================================
# Factories
# ==========================================

@pytest.fixture
def make_rate(db):
    def _make(metal_type="GOLD", purity="22K", rate_per_gram="6500.00", **kwargs):
        return rate_service.create_rate(db, metal_type, purity, rate_per_gram, **kwargs)
    return _make


@pytest.fixture
def make_customer(db):
    def _make(name="Amit Patel"):
        customer = Customer(name=name, phone="9876543210")
        db.add(customer)
        db.commit()
        return customer
    return _make


@pytest.fixture
def make_product(db):
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        data = {
            "name": f"Gold Necklace {counter['n']}",
            "sku": f"GN-{counter['n']:04d}",
            "metal_type": "GOLD",
            "purity": "22K",
            "net_weight": "24.000",
            "wastage_percent": "6",
            "making_charges": "8000",
            "stone_value": "5000",
            "collection_name": "Wedding Collection",
        }
        data.update(overrides)
        return catalog_service.create_product(db, **data)
    return _make


@pytest.fixture
def add_stock(db):
    """Insert units directly with explicit purchase dates (oldest first by default)."""
    serial = itertools.count(1)

    def _add(product, count=1, cost="150000.00", start=None, status=StockStatus.AVAILABLE.value):
        start = start or now_utc() - timedelta(days=30)
        items = []
        for i in range(count):
            n = next(serial)
            item = StockItem(
                product_id=product.id,
                tag_id=f"G22-T{product.id:03d}-{n:04d}",
                barcode=f"STK-{product.id:08d}-{n:08d}",
                purchase_cost=Decimal(cost),
                purchase_date=start + timedelta(days=i),
                status=status,
            )
            db.add(item)
            items.append(item)
        db.commit()
        return items
    return _add
