"""
Entry point for the bank ledger analyzer server.

Reads .env, creates the report directory, loads the merchant database
once and hands the FastAPI app to uvicorn.
"""
import sys
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

# Settings are cached on first read, so .env must be loaded before core imports
ENV_FILE = Path(__file__).parent / ".env"
if ENV_FILE.exists():
    load_dotenv(ENV_FILE)

from core.config import get_settings
from core.exceptions import LedgerAnalyzerException
from core.logger import setup_logger
from core.merchants import get_merchant_database

logger = setup_logger(__name__)


def main() -> int:
    """Start the HTTP server; returns a process exit code."""
    try:
        settings = get_settings()
        settings.ensure_directories()
        merchants = get_merchant_database()
    except LedgerAnalyzerException as e:
        logger.error(f"Startup failed: {e.message}")
        if e.details:
            logger.error(f"Details: {e.details}")
        return 1
    except Exception as e:
        logger.error(f"Invalid configuration: {e}", exc_info=True)
        return 1

    logger.info(f"{settings.app_name} starting with {len(merchants)} known merchants")
    logger.info(
        f"Subscriptions: {settings.subscription_min_interval_days}-"
        f"{settings.subscription_max_interval_days} day interval, "
        f"min {settings.subscription_min_payments} payments, "
        f"active within {settings.subscription_active_days} days"
    )
    logger.info(f"Mappings in {settings.database_path}, reports in {settings.storage_path}")

    from app.api import app

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
