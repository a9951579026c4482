"""
Shared Redis connection
Used for bot conversation state, payment-id lookups and order event fan-out
"""

import logging
import os
from typing import Optional

import redis

logger = logging.getLogger(__name__)

redis_client: Optional[redis.Redis] = None


def _mask_url(redis_url: str) -> str:
    if "@" not in redis_url:
        return "****"
    url_parts = redis_url.split("@")
    protocol = url_parts[0].split(":")[0]
    return f"{protocol}:****@{url_parts[1]}"


def get_redis_client() -> redis.Redis:
    """
    Get or create the Redis client
    Supports both a REDIS_URL and individual host/port settings
    """
    global redis_client

    if redis_client is None:
        logger.info("🔄 Initializing Redis connection...")
        redis_url = os.getenv("REDIS_URL")

        if redis_url:
            logger.info(f"📡 Using Redis URL connection: {_mask_url(redis_url)}")
            try:
                redis_client = redis.from_url(
                    redis_url,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30,
                    max_connections=20,
                )
                redis_client.ping()
                logger.info("Redis connected successfully via URL")
            except Exception as e:
                logger.error(f"❌ Failed to connect to Redis via URL: {str(e)}")
                redis_client = None
                raise
        else:
            redis_host = os.getenv("REDIS_HOST", "localhost")
            redis_port = int(os.getenv("REDIS_PORT", "6379"))
            redis_password = os.getenv("REDIS_PASSWORD", None)
            redis_db = int(os.getenv("REDIS_DB", "0"))
            redis_ssl = os.getenv("REDIS_SSL", "false").lower() == "true"

            logger.info(f"📡 Using Redis at {redis_host}:{redis_port} (db={redis_db})")

            try:
                redis_client = redis.Redis(
                    host=redis_host,
                    port=redis_port,
                    password=redis_password,
                    db=redis_db,
                    ssl=redis_ssl,
                    decode_responses=True,
                    socket_connect_timeout=5,
                    socket_timeout=5,
                    retry_on_timeout=True,
                    health_check_interval=30,
                    max_connections=20,
                )
                redis_client.ping()
                ssl_status = "with SSL" if redis_ssl else "without SSL"
                logger.info(
                    f"Redis connected successfully at {redis_host}:{redis_port} ({ssl_status})"
                )
            except Exception as e:
                logger.error(f"❌ Failed to connect to Redis: {str(e)}")
                redis_client = None
                raise

    return redis_client
