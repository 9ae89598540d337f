"""
Jewelry Back-Office - Database Initialization
==============================================
Creates all tables if they don't exist.
Safe to run multiple times (CREATE IF NOT EXISTS).

Usage:
    python scripts/init_db.py
    python scripts/init_db.py --drop   # Drop and recreate all tables
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config.database import Base, engine

# Import ALL models so Base.metadata knows about them
from modules.customer.models import Customer  # noqa
from modules.pricing.models import RateMaster  # noqa
from modules.catalog.models import Product  # noqa
from modules.inventory.models import StockItem  # noqa
from modules.sales.models import SalesOrder, SalesOrderLine, SalesPayment  # noqa
from modules.ledger.models import LedgerTransaction  # noqa


def init_db(drop_first=False):
    if drop_first:
        print("Dropping all tables...")
        Base.metadata.drop_all(bind=engine)
        print("Done.")

    print("Creating all tables...")
    Base.metadata.create_all(bind=engine)

    # List created tables
    from sqlalchemy import inspect
    inspector = inspect(engine)
    tables = inspector.get_table_names()
    print(f"\nTables in database ({len(tables)}):")
    for t in sorted(tables):
        print(f"  - {t}")
    print("\nDatabase initialized successfully!")


if __name__ == "__main__":
    drop = "--drop" in sys.argv
    if drop:
        confirm = input("This will DROP all tables. Type 'yes': ")
        if confirm.strip().lower() != "yes":
            print("Aborted.")
            sys.exit(0)
    init_db(drop_first=drop)
