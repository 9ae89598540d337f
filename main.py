"""
Jewelry Back-Office - Application Entry Point
==============================================
FastAPI app initialization, error mapping, scheduler, and router registration.
"""

import logging
import time as _time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from apscheduler.schedulers.background import BackgroundScheduler

from config import settings
from config.database import SessionLocal, Base, engine
from common.exceptions import JewelryError

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
scheduler_logger = logging.getLogger("jewelry.scheduler")
http_logger = logging.getLogger("jewelry.http")


# ==========================================
# Import ALL models so Alembic/Base can see them
# ==========================================
from modules.customer.models import Customer  # noqa: F401
from modules.pricing.models import RateMaster  # noqa: F401
from modules.catalog.models import Product  # noqa: F401
from modules.inventory.models import StockItem  # noqa: F401
from modules.sales.models import SalesOrder, SalesOrderLine, SalesPayment  # noqa: F401
from modules.ledger.models import LedgerTransaction  # noqa: F401

# ==========================================
# Import routers
# ==========================================
from modules.pricing.routes import router as pricing_router
from modules.catalog.routes import router as catalog_router
from modules.inventory.routes import router as inventory_router
from modules.sales.routes import router as sales_router
from modules.ledger.routes import router as ledger_router


# ==========================================
# Exception handler: business errors → JSON
# ==========================================
async def jewelry_exception_handler(request: Request, exc: JewelryError):
    return JSONResponse(
        {"success": False, "error": exc.kind, "detail": exc.message, **exc.context()},
        status_code=exc.status_code,
    )


# ==========================================
# Background Scheduler
# ==========================================
def _sync_feed_rates():
    """Background job: pull rates from the configured feed and activate changes."""
    from modules.pricing.feed_service import fetch_feed_rates, apply_feed_rates

    db = SessionLocal()
    try:
        quotes = fetch_feed_rates()
        count = apply_feed_rates(db, quotes)
        if count:
            scheduler_logger.info(f"Activated {count} feed rates")
    except Exception as e:
        db.rollback()
        scheduler_logger.error(f"Rate feed error: {e}")
    finally:
        db.close()


def _warn_expiring_rates():
    """Background job: log active rates that expire soon."""
    from modules.pricing.service import rate_service

    db = SessionLocal()
    try:
        for rate in rate_service.get_expiring_rates(db):
            scheduler_logger.warning(
                f"Rate {rate.id} {rate.metal_type}/{rate.purity} expires at {rate.valid_until}"
            )
    except Exception as e:
        scheduler_logger.error(f"Rate expiry check error: {e}")
    finally:
        db.close()


scheduler = BackgroundScheduler()


@asynccontextmanager
async def lifespan(app):
    # Auto-create any missing tables (safe for existing tables)
    Base.metadata.create_all(bind=engine)

    if settings.RATE_FEED_URL:
        scheduler.add_job(_sync_feed_rates, 'interval', minutes=settings.RATE_FEED_INTERVAL_MINUTES, id='rate_feed')
    scheduler.add_job(_warn_expiring_rates, 'interval', hours=6, id='rate_expiry')
    scheduler.start()
    scheduler_logger.info(f"Background scheduler started (feed: {'on' if settings.RATE_FEED_URL else 'off'}, expiry: 6h)")
    yield
    scheduler.shutdown()
    scheduler_logger.info("Background scheduler stopped")


# ==========================================
# Create App
# ==========================================
app = FastAPI(
    title="Jewelry Back-Office",
    description="Inventory allocation and dynamic pricing",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.add_exception_handler(JewelryError, jewelry_exception_handler)


# ==========================================
# Middleware: Request Log
# ==========================================
_SKIP_PATHS = ("/health", "/favicon.ico")


@app.middleware("http")
async def request_logger(request: Request, call_next):
    """Log method, path, status, and timing of every API request."""
    path = request.url.path
    if any(path.startswith(p) for p in _SKIP_PATHS):
        return await call_next(request)

    start = _time.time()
    response = await call_next(request)
    elapsed_ms = int((_time.time() - start) * 1000)
    http_logger.info(
        f"{request.method} {path} {response.status_code} {elapsed_ms}ms "
        f"actor={request.headers.get('x-actor') or 'system'}"
    )
    return response


# ==========================================
# Register Routers
# ==========================================
app.include_router(pricing_router)
app.include_router(catalog_router)
app.include_router(inventory_router)
app.include_router(sales_router)
app.include_router(ledger_router)


# ==========================================
# Health check
# ==========================================
@app.get("/health")
async def health():
    return {"status": "ok", "version": "1.0.0"}
