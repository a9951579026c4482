import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import models  # noqa: F401 - registers tables on Base
from .bot.router import router as telegram_router
from .config import (
    TELEGRAM_DJ_BOT_TOKEN,
    TELEGRAM_USER_BOT_TOKEN,
    YOOKASSA_SECRET_KEY,
    YOOKASSA_SHOP_ID,
)
from .database import Base, engine
from .domain.catalog.router import router as catalog_router
from .domain.orders.router import router as orders_router
from .domain.payments.router import router as payments_router
from .domain.payouts.router import router as payouts_router
from .errors import register_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


def warn_missing_credentials() -> None:
    if not (TELEGRAM_USER_BOT_TOKEN and TELEGRAM_DJ_BOT_TOKEN):
        logger.warning("⚠️ Telegram bot tokens missing - chat notifications will not be delivered")
    if not (YOOKASSA_SHOP_ID and YOOKASSA_SECRET_KEY):
        logger.warning("⚠️ YooKassa credentials missing - accepting orders will fail")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    warn_missing_credentials()

    try:
        from .redis_client import get_redis_client

        get_redis_client()  # Connection test
        logger.info("Redis connection established")
    except Exception as e:
        logger.warning(f"Redis connection failed - bot sessions and events are degraded: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="DJ Connect API", version="1.0.0", lifespan=lifespan)

register_exception_handlers(app)

# CORS Configuration
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(orders_router)
app.include_router(payments_router)
app.include_router(catalog_router)
app.include_router(payouts_router)
app.include_router(telegram_router)


@app.get("/")
async def root():
    return {"message": "DJ Connect API"}


@app.get("/health")
async def health():
    return {"status": "healthy"}
