"""
Jewelry Back-Office - Demo Data Seeder
=======================================
Seeds rates, customers, products, and stock through the services,
so every row goes through the same validation as the API.

Usage:
    python scripts/seed.py
    python scripts/seed.py --reset  # Drop all tables and reseed

Seeded:
  1. Rates (GOLD 22K / 18K, SILVER 925)
  2. Customers
  3. Products (with one price override)
  4. Stock items with staggered purchase dates
  5. Initial bulk reprice per rate
"""

import sys
import os
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.database import SessionLocal, Base, engine
from common.helpers import now_utc
from modules.customer.models import Customer
from modules.pricing.models import RateMaster  # noqa: F401
from modules.inventory.models import StockItem  # noqa: F401
from modules.sales.models import SalesOrder, SalesOrderLine, SalesPayment  # noqa: F401
from modules.ledger.models import LedgerTransaction  # noqa: F401
from modules.catalog.service import catalog_service
from modules.inventory.service import inventory_service
from modules.pricing.repricer import bulk_repricer
from modules.pricing.service import rate_service

RATES = [
    ("GOLD", "22K", "6500.00"),
    ("GOLD", "18K", "5200.00"),
    ("SILVER", "925", "85.00"),
]

CUSTOMERS = [
    ("Amit Patel", "9876543210", "amit@example.com"),
    ("Sunita Reddy", "9876501234", "sunita@example.com"),
    ("Vikram Wholesale", "9811122233", None),
]

PRODUCTS = [
    {
        "name": "Gold Necklace - Traditional Design", "sku": "GN-22K-001",
        "metal_type": "GOLD", "purity": "22K", "gross_weight": "25.500", "net_weight": "24.000",
        "wastage_percent": "6.0", "making_charges": "8000.00",
        "stone_weight": "2.5", "stone_value": "5000.00", "collection_name": "Wedding Collection",
        "units": ["150000.00"] * 3,
    },
    {
        "name": "Gold Ring - Solitaire", "sku": "GR-18K-002",
        "metal_type": "GOLD", "purity": "18K", "gross_weight": "5.200", "net_weight": "4.800",
        "wastage_percent": "8.0", "making_charges": "3500.00",
        "stone_weight": "0.5", "stone_value": "15000.00", "collection_name": "Engagement Collection",
        "units": ["40000.00"] * 5,
    },
    {
        "name": "Silver Anklet - Pair", "sku": "SA-925-003",
        "metal_type": "SILVER", "purity": "925", "gross_weight": "45.000", "net_weight": "42.000",
        "wastage_percent": "10.0", "making_charges": "800.00", "collection_name": "Silver Collection",
        "units": ["3500.00"] * 10,
    },
    {
        "name": "Gold Earrings - Drop Design", "sku": "GE-22K-004",
        "metal_type": "GOLD", "purity": "22K", "gross_weight": "8.500", "net_weight": "7.800",
        "wastage_percent": "5.0", "making_charges": "2500.00",
        "stone_weight": "1.0", "stone_value": "3000.00", "collection_name": "Daily Wear",
        "price_override": "62000.00", "price_override_reason": "Festival offer",
        "units": ["50000.00"] * 4,
    },
]


def seed():
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        print("[1/5] Rates")
        rates = [
            rate_service.create_rate(db, metal, purity, value, actor="seed")
            for metal, purity, value in RATES
        ]

        print("[2/5] Customers")
        for name, phone, email in CUSTOMERS:
            db.add(Customer(name=name, phone=phone, email=email))
        db.commit()

        print("[3/5] Products")
        print("[4/5] Stock items")
        for row in PRODUCTS:
            data = dict(row)
            units = data.pop("units")
            product = catalog_service.create_product(db, actor="seed", **data)
            for days_ago, cost in enumerate(units, start=1):
                inventory_service.receive_stock(
                    db, product.id, [cost],
                    purchase_date=now_utc() - timedelta(days=len(units) - days_ago + 1),
                    purchase_reference=f"PO-SEED-{product.id:04d}",
                    actor="seed",
                )

        print("[5/5] Initial pricing")
        for rate in rates:
            result = bulk_repricer.commit(db, rate.id, actor="seed")
            print(f"  {rate.metal_type}/{rate.purity}: {len(result['updated'])} updated, {len(result['skipped'])} skipped")

        print("\nSeed complete.")
    finally:
        db.close()


if __name__ == "__main__":
    if "--reset" in sys.argv:
        confirm = input("This will DROP all tables. Type 'yes': ")
        if confirm.strip().lower() != "yes":
            print("Aborted.")
            sys.exit(0)
        Base.metadata.drop_all(bind=engine)
    seed()
