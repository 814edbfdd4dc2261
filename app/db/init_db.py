"""
Database bootstrap: create the schema and the OTP secret if absent.

Safe to run repeatedly; an existing secret is never overwritten. Run with:

    python -m app.db.init_db
"""
import secrets
import sys
from typing import Any, Dict, Optional

from app.core.config import settings
from app.core.constants import OTP_SECRET_KEY
from app.core.exceptions import AppError
from app.core.logging_config import get_logger, setup_logging
from app.db.store import CheckInStore

logger = get_logger(__name__)


def generate_secret() -> str:
    """32 random bytes, hex encoded."""
    return secrets.token_hex(32)


def initialize_database(store: CheckInStore, secret: Optional[str] = None) -> Dict[str, Any]:
    """
    Create tables and persist the OTP secret unless one already exists.

    Args:
        store: A connected store
        secret: Seed for a fresh install; random when omitted

    Returns:
        Dictionary with ``created_secret`` and ``secret_length``
    """
    store.create_schema()

    existing = store.get_config(OTP_SECRET_KEY)
    if existing:
        logger.info("otp_secret_exists", secret_length=len(existing))
        return {"created_secret": False, "secret_length": len(existing)}

    candidate = secret or generate_secret()
    stored = store.ensure_config(OTP_SECRET_KEY, candidate)
    # A concurrent bootstrap may have won the insert
    created = stored == candidate

    if created:
        logger.info("otp_secret_created", secret_length=len(stored))
    else:
        logger.info("otp_secret_exists", secret_length=len(stored))

    return {"created_secret": created, "secret_length": len(stored)}


def main() -> int:
    setup_logging(level=settings.LOG_LEVEL)
    store = CheckInStore(
        database_url=settings.get_database_url(),
        max_retries=settings.DB_CONNECT_RETRIES,
        retry_delay=settings.DB_RETRY_DELAY_SECONDS,
    )
    try:
        store.connect()
        result = initialize_database(store, settings.OTP_SECRET)
    except AppError as exc:
        logger.error("database_initialization_failed", error=exc.message, code=exc.code)
        return 1
    finally:
        store.close()

    logger.info("database_initialized", **result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
