"""
Jewelry Back-Office - Centralized Configuration
================================================
All environment variables and constants are loaded here.
No other module should call os.getenv() directly.
"""

import os
import sys
from dotenv import load_dotenv

load_dotenv()


# ==========================================
# 🗄️ Database
# ==========================================
DATABASE_URL = os.getenv("DATABASE_URL", "")

if not DATABASE_URL:
    DB_USER = os.getenv("DB_USER")
    DB_PASSWORD = os.getenv("DB_PASSWORD")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME")

    if not all([DB_USER, DB_PASSWORD, DB_HOST, DB_NAME]):
        print("[ERROR] Critical: Database config missing in .env (DATABASE_URL or DB_USER, DB_PASSWORD, DB_HOST, DB_NAME)")
        sys.exit(1)

    DATABASE_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"


# ==========================================
# 🏪 Shop
# ==========================================
SHOP_CODE = os.getenv("SHOP_CODE", "main")
CURRENCY = os.getenv("CURRENCY", "INR")


# ==========================================
# 🧾 Sales
# ==========================================
SALE_TRANSACTION_TIMEOUT_SECONDS = float(os.getenv("SALE_TRANSACTION_TIMEOUT_SECONDS", "15"))


# ==========================================
# ⚡ Cache
# ==========================================
STOCK_SUMMARY_CACHE_SECONDS = int(os.getenv("STOCK_SUMMARY_CACHE_SECONDS", "300"))  # 5 minutes
RATE_CACHE_SECONDS = int(os.getenv("RATE_CACHE_SECONDS", "300"))


# ==========================================
# 📈 Rate Feed
# ==========================================
RATE_FEED_URL = os.getenv("RATE_FEED_URL", "")
RATE_FEED_TIMEOUT = float(os.getenv("RATE_FEED_TIMEOUT", "10"))
RATE_FEED_INTERVAL_MINUTES = int(os.getenv("RATE_FEED_INTERVAL_MINUTES", "15"))
RATE_EXPIRY_WARNING_DAYS = int(os.getenv("RATE_EXPIRY_WARNING_DAYS", "7"))


# ==========================================
# 🔧 App
# ==========================================
DEBUG = os.getenv("DEBUG", "false").lower() == "true"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
