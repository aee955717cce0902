"""
Central configuration. Loads ``.env`` and exposes typed constants that
``create_app`` copies into ``app.config``.
"""

import os
from urllib.parse import quote_plus

from dotenv import load_dotenv

load_dotenv(dotenv_path=".env")


# ── PostgreSQL ────────────────────────────────────────────
DATABASE_URL: str = os.getenv("DATABASE_URL", "")
DB_HOST: str = os.getenv("DB_HOST", "127.0.0.1")
DB_PORT: str = os.getenv("DB_PORT", "65432")
DB_NAME: str = os.getenv("DB_NAME", "donations_dev")
DB_USER: str = os.getenv("DB_USER", "dev")
DB_PASSWORD: str = os.getenv("DB_PASSWORD", "dev")
DB_POOL_MIN: int = int(os.getenv("DB_POOL_MIN", "0"))
DB_POOL_MAX: int = int(os.getenv("DB_POOL_MAX", "10"))

# ── Auth (tokens are issued elsewhere, only verified here) ─
JWT_SECRET: str = os.getenv("JWT_SECRET", "dev-secret")
CRON_SECRET: str = os.getenv("CRON_SECRET", "").strip()

# ── Redis / RQ ────────────────────────────────────────────
REDIS_URL: str = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")
USE_NOTIFY_QUEUE: bool = os.getenv("USE_NOTIFY_QUEUE", "0") == "1"

# ── Recurring settlement ──────────────────────────────────
RECURRING_MAX_WORKERS: int = int(os.getenv("RECURRING_MAX_WORKERS", "4"))
SETTLEMENT_LOCK_TIMEOUT_MS: int = int(os.getenv("SETTLEMENT_LOCK_TIMEOUT_MS", "5000"))
FAILURE_RETRY_HOURS: int = int(os.getenv("FAILURE_RETRY_HOURS", "24"))
CURRENCY_SYMBOL: str = os.getenv("CURRENCY_SYMBOL", "Rp")

# ── Socket.IO ─────────────────────────────────────────────
SOCKETIO_CORS_ORIGINS: str = os.getenv("SOCKETIO_CORS_ORIGINS", "*").strip()
SOCKETIO_ASYNC_MODE: str = os.getenv("SOCKETIO_ASYNC_MODE", "threading")


def as_flask_config() -> dict:
    return {
        "DATABASE_URL": DATABASE_URL,
        "DB_SETTINGS": {
            "host": DB_HOST,
            "database": DB_NAME,
            "user": DB_USER,
            "password": DB_PASSWORD,
            "port": DB_PORT,
        },
        "DB_POOL_MIN": DB_POOL_MIN,
        "DB_POOL_MAX": DB_POOL_MAX,
        "JWT_SECRET_KEY": JWT_SECRET,
        "CRON_SECRET": CRON_SECRET,
        "REDIS_URL": REDIS_URL,
        "USE_NOTIFY_QUEUE": USE_NOTIFY_QUEUE,
        "RECURRING_MAX_WORKERS": RECURRING_MAX_WORKERS,
        "SETTLEMENT_LOCK_TIMEOUT_MS": SETTLEMENT_LOCK_TIMEOUT_MS,
        "FAILURE_RETRY_HOURS": FAILURE_RETRY_HOURS,
        "CURRENCY_SYMBOL": CURRENCY_SYMBOL,
    }


def sqlalchemy_url() -> str:
    """DATABASE_URL (or the DB_* parts) in the form alembic's engine expects."""
    if DATABASE_URL:
        scheme, sep, rest = DATABASE_URL.partition("://")
        if scheme in ("postgres", "postgresql"):
            return f"postgresql+psycopg2{sep}{rest}"
        return DATABASE_URL
    return (
        f"postgresql+psycopg2://{DB_USER}:{quote_plus(DB_PASSWORD)}"
        f"@{DB_HOST}:{DB_PORT}/{DB_NAME}"
    )
