"""
Redis key-value store with JSON serialization and TTLs
Backs the chat-bot conversation state and the order → gateway payment id lookup
"""

import json
import logging
from typing import Any, Callable, Optional

import redis

from .config import PAYMENT_ID_TTL_SECONDS
from .redis_client import get_redis_client

logger = logging.getLogger(__name__)


class Cache:
    """
    JSON values under string keys, each written with a TTL.

    Redis being down never fails the caller: reads come back as None and writes
    as False, and the error is logged.
    """

    def __init__(self, client=None):
        self.redis_client = client

    def _get_client(self):
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except (redis.RedisError, ValueError) as e:
                logger.warning(f"⚠️ Key-value store offline: {e}")
                return None
        return self.redis_client

    def _run(self, action: str, key: str, operation: Callable[[Any], Any], default: Any) -> Any:
        client = self._get_client()
        if client is None:
            return default
        try:
            return operation(client)
        except (redis.RedisError, TypeError, ValueError) as e:
            logger.error(f"❌ Key-value {action} of {key} failed: {e}")
            return default

    def get(self, key: str) -> Optional[Any]:
        raw = self._run("read", key, lambda client: client.get(key), None)
        if raw is None:
            logger.debug(f"🔍 {key} not stored")
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.error(f"❌ Stored value of {key} is not JSON, dropping it")
            self.delete(key)
            return None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        def write(client) -> bool:
            client.setex(key, ttl, json.dumps(value))
            return True

        stored = self._run("write", key, write, False)
        if stored:
            logger.debug(f"💾 {key} stored for {ttl}s")
        return stored

    def delete(self, key: str) -> bool:
        def remove(client) -> bool:
            client.delete(key)
            return True

        return self._run("delete", key, remove, False)


# Process-wide store on the shared Redis client
cache = Cache()


def get_cache() -> Cache:
    return cache


def payment_id_key(order_id: int) -> str:
    return f"payment_id_{order_id}"


def remember_payment_id(store: Cache, order_id: int, payment_id: str) -> bool:
    """Remember the gateway payment created for an order (read back on payment return)"""
    return store.set(payment_id_key(order_id), payment_id, PAYMENT_ID_TTL_SECONDS)


def recall_payment_id(store: Cache, order_id: int) -> Optional[str]:
    return store.get(payment_id_key(order_id))
