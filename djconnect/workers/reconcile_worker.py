"""
Order reconciliation loop
Plain asyncio alternative to the ARQ cron job
"""

import asyncio
import logging

from ..config import RECONCILE_INTERVAL_SECONDS
from ..services.reconciliation import OrderReconciler

logger = logging.getLogger(__name__)


async def run_reconcile_worker(interval: int = RECONCILE_INTERVAL_SECONDS):
    """
    Main worker loop - one sweep every `interval` seconds
    """
    logger.info(f"🚀 Starting order reconciliation worker (every {interval}s)...")
    reconciler = OrderReconciler()

    while True:
        try:
            await reconciler.run()
        except Exception as e:
            logger.error(f"❌ Error in reconciliation loop: {e}")
        await asyncio.sleep(interval)


if __name__ == "__main__":
    asyncio.run(run_reconcile_worker())
