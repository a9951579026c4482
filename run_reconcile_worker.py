"""
Order Reconciliation Worker Runner
Run this as a separate process: python run_reconcile_worker.py
"""

import asyncio
import logging
import sys

from djconnect.workers.reconcile_worker import run_reconcile_worker

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)

if __name__ == "__main__":
    logger.info("🚀 Starting Order Reconciliation Worker...")
    try:
        asyncio.run(run_reconcile_worker())
    except KeyboardInterrupt:
        logger.info("👋 Reconciliation worker stopped by user")
    except Exception as e:
        logger.error(f"❌ Reconciliation worker crashed: {e}")
        sys.exit(1)
