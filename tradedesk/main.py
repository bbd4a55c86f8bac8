# tradedesk/main.py

# --- Environment Variable Loading ---
# This must be at the very top, before any other tradedesk modules are imported.
from dotenv import load_dotenv
load_dotenv()

from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# --- APScheduler Imports ---
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

import logging

from tradedesk.core.config import get_settings
from tradedesk.core.exceptions import TradeDeskError, tradedesk_error_handler
from tradedesk.core.logging_config import app_logger, settlement_logger
from tradedesk.core.security import connect_to_redis, close_redis_connection
from tradedesk.database.session import create_all_tables
from tradedesk.api.v1.api import api_router
from tradedesk.dependencies import redis_client
from tradedesk.dependencies.services import (
    build_settlement_engine,
    close_price_oracle,
    get_event_publisher,
    get_price_oracle,
    get_session_factory,
    get_settings_cache,
)

logging.getLogger('sqlalchemy.engine').setLevel(logging.ERROR)

logger = app_logger

settings = get_settings()
app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

# --- CORS Settings ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

app.add_exception_handler(TradeDeskError, tradedesk_error_handler)

scheduler: Optional[AsyncIOScheduler] = None


async def settle_expired_trades_job():
    """
    Scheduled sweep. Each tick settles whatever has expired; a trade that
    fails (price feed down) stays active and is retried on the next tick.
    """
    engine = build_settlement_engine(
        get_session_factory(),
        get_price_oracle(),
        get_event_publisher(),
        get_settings_cache(),
    )
    try:
        report = await engine.settle_expired()
        if report.found:
            settlement_logger.info(
                f"APScheduler: sweep found {report.found}, settled {report.settled}, "
                f"skipped {report.already_processed}, price unavailable {report.price_unavailable}, failed {report.failed}"
            )
    except Exception as e:
        settlement_logger.error(f"APScheduler: settlement sweep failed: {e}", exc_info=True)


@app.on_event("startup")
async def startup_event():
    global scheduler
    logger.info("Application startup initiated")

    if settings.AUTO_CREATE_TABLES:
        try:
            await create_all_tables()
        except Exception:
            logger.error("Table creation failed", exc_info=True)

    # Initialize Redis connection pool
    try:
        client = await connect_to_redis()
        if client:
            redis_client.global_redis_client_instance = client
            logger.info("Redis initialized")
    except Exception:
        logger.warning("Redis initialization failed")

    # Initialize APScheduler
    if settings.SETTLEMENT_ENABLED:
        try:
            scheduler = AsyncIOScheduler()
            scheduler.add_job(
                settle_expired_trades_job,
                IntervalTrigger(seconds=settings.SETTLEMENT_INTERVAL_SECONDS),
                id="settle_expired_trades",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            scheduler.start()
            logger.info("Scheduler initialized")
        except Exception:
            logger.error("Scheduler initialization error", exc_info=True)

    logger.info("Application startup completed")


@app.on_event("shutdown")
async def shutdown_event():
    global scheduler
    logger.info("Application shutdown initiated")

    if scheduler and scheduler.running:
        try:
            scheduler.shutdown(wait=True)
            logger.info("Scheduler shutdown completed")
        except Exception:
            logger.error("Scheduler shutdown error")

    await close_price_oracle()

    if redis_client.global_redis_client_instance:
        await close_redis_connection(redis_client.global_redis_client_instance)
        redis_client.global_redis_client_instance = None
        logger.info("Redis connection closed")

    logger.info("Application shutdown completed")


app.include_router(api_router, prefix=settings.API_V1_STR)


@app.get("/")
async def read_root():
    return {"message": "Trade Desk API"}
