"""
Runtime settings for the crawler, enhancer, store and API server.

All values come from the environment (optionally a local .env file).
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Target site
SITE_ORIGIN = os.getenv("SITE_ORIGIN", "https://www.trendyol.com").rstrip("/")
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0 Safari/537.36",
)
FETCH_TIMEOUT_SECONDS = float(os.getenv("FETCH_TIMEOUT_SECONDS", "15"))

# LLM description rewrite
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "20"))

# Store
STORE_BACKEND = os.getenv("STORE_BACKEND", "memory").lower()  # "memory" or "file"
PRODUCTS_FILE = Path(os.getenv("PRODUCTS_FILE", str(Path(__file__).parent / "products.json")))
TRANSIENT_TTL_SECONDS = float(os.getenv("TRANSIENT_TTL_SECONDS", "1800"))
CLEANUP_INTERVAL_SECONDS = float(os.getenv("CLEANUP_INTERVAL_SECONDS", "300"))

# Enhancement defaults (score is on a 0-5 scale)
DEFAULT_SCORE = float(os.getenv("DEFAULT_SCORE", "4.5"))
RATING_COUNT_FLOOR = int(os.getenv("RATING_COUNT_FLOOR", "5"))
FAVORITE_COUNT_FLOOR = int(os.getenv("FAVORITE_COUNT_FLOOR", "10"))
DEFAULT_SHIPPING_INFO = os.getenv("DEFAULT_SHIPPING_INFO", "24 saatte kargoda")
DEFAULT_PAYMENT_OPTIONS = [
    p.strip() for p in os.getenv("DEFAULT_PAYMENT_OPTIONS", "Kredi Kartı,Havale/EFT").split(",") if p.strip()
]
DEFAULT_STOCK_STATUS = os.getenv("DEFAULT_STOCK_STATUS", "Stokta")
DEFAULT_SELLER_NAME = os.getenv("DEFAULT_SELLER_NAME", "TrendyolExpress")

# API server
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",") if o.strip()]
SERVER_HOST = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("SERVER_PORT", os.getenv("PORT", "5121")))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
