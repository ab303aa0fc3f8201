"""
Define application startup and shutdown procedures
"""

import re
from contextlib import asynccontextmanager
from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from core.config import get_settings
from core.db import Database
from core.logger import logger
from api.uploads.analysis import LoggingAnalysisService
from api.uploads.storage import build_file_store


def _log_setting(key: str, value):
    """Log a setting, masking sensitive values like passwords and secrets"""
    if ("PASSWORD" in key or "SECRET" in key) and value is not None:
        logger.info("  %s: %s", key, "*****")
    elif "SQLALCHEMY_DATABASE_URI" in key and value is not None:
        # Mask password in database URI if present
        masked_value = re.sub(r"://(.*?):(.*?)@", r"://\1:*****@", value)
        logger.info("  %s: %s", key, masked_value)
    else:
        logger.info("  %s: %s", key, value)


# Handle startup/shutdown tasks
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("In lifespan...starting up")

    settings = get_settings()

    logger.info("Configuration Settings:")
    # Computed fields don't appear in vars()
    _log_setting("SQLALCHEMY_DATABASE_URI", settings.SQLALCHEMY_DATABASE_URI)
    _log_setting("JWT_SECRET_KEY", settings.JWT_SECRET_KEY)
    for key, value in vars(settings).items():
        _log_setting(key, value)

    db = Database(settings.SQLALCHEMY_DATABASE_URI)
    await run_in_threadpool(
        db.connect, settings.DB_CONNECT_RETRIES, settings.DB_CONNECT_RETRY_DELAY
    )
    db.create_tables()

    app.state.db = db
    app.state.file_store = build_file_store(settings)
    app.state.analysis_service = LoggingAnalysisService()

    logger.info("In lifespan...yield")
    try:
        yield
    finally:
        # Shutdown
        logger.info("In lifespan...shutting down")
        db.disconnect()
