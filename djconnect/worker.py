"""
ARQ Background Worker
Runs the order reconciliation sweep on a short cron interval
Start with: arq djconnect.worker.WorkerSettings
"""

import logging
import os

from arq.connections import RedisSettings
from arq.cron import cron

from . import models  # noqa: F401 - registers tables on Base
from .config import RECONCILE_INTERVAL_SECONDS
from .services.reconciliation import reconcile_orders

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    """
    arq connection settings from the same variables the app's Redis client reads:
    REDIS_URL (redis:// or rediss://, db in the path) or REDIS_HOST/PORT/PASSWORD/DB/SSL.
    """
    redis_url = os.getenv("REDIS_URL")
    if redis_url:
        settings = RedisSettings.from_dsn(redis_url)
    else:
        settings = RedisSettings(
            host=os.getenv("REDIS_HOST", "localhost"),
            port=int(os.getenv("REDIS_PORT", "6379")),
            password=os.getenv("REDIS_PASSWORD"),
            database=int(os.getenv("REDIS_DB", "0")),
            ssl=os.getenv("REDIS_SSL", "false").lower() == "true",
        )
    settings.conn_timeout = 15
    settings.conn_retry_delay = 1
    logger.info(f"📡 Reconcile worker Redis: {settings.host}:{settings.port}/{settings.database}")
    return settings


def sweep_schedule(interval_seconds: int) -> dict:
    """cron() keyword arguments that fire every interval_seconds"""
    if interval_seconds < 60:
        return {"second": set(range(0, 60, max(interval_seconds, 1)))}
    return {"minute": set(range(0, 60, max(interval_seconds // 60, 1))), "second": 0}


async def reconcile_orders_task(ctx):
    """Cron job: one reconciliation sweep over paid, scheduled orders"""
    try:
        return await reconcile_orders()
    except Exception as e:
        logger.error(f"❌ Reconciliation sweep failed: {str(e)}")
        raise


class WorkerSettings:
    """ARQ Worker Settings"""

    functions = [reconcile_orders_task]
    redis_settings = get_redis_settings()

    max_jobs = int(os.getenv("ARQ_MAX_JOBS", "20"))
    job_timeout = int(os.getenv("ARQ_JOB_TIMEOUT", "600"))
    keep_result = int(os.getenv("ARQ_KEEP_RESULT", "3600"))
    health_check_interval = 60

    # Sweeps never overlap; a missed tick is picked up by the next one
    cron_jobs = [
        cron(
            reconcile_orders_task,
            unique=True,
            run_at_startup=True,
            **sweep_schedule(RECONCILE_INTERVAL_SECONDS),
        ),
    ]

    logger.info(f"🔧 ARQ Worker configured: max_jobs={max_jobs}, sweep every {RECONCILE_INTERVAL_SECONDS}s")
