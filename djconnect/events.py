"""
Order event fan-out
Publishes OrderCreated / OrderUpdated to Redis pub/sub so the socket bridge can
push them to connected web clients.
"""

import json
import logging

from .config import EVENT_CHANNEL_PREFIX
from .domain.orders.schemas import serialize_order
from .redis_client import get_redis_client

logger = logging.getLogger(__name__)

ORDER_CREATED = "OrderCreated"
ORDER_UPDATED = "OrderUpdated"


def channel_for(event: str, order_id: int) -> str:
    if event == ORDER_CREATED:
        return f"{EVENT_CHANNEL_PREFIX}order-created-{order_id}"
    return f"{EVENT_CHANNEL_PREFIX}order-update-{order_id}"


class EventPublisher:
    """Publishes order events; failures are logged and never break the caller"""

    def __init__(self, client=None):
        self.redis_client = client

    def _get_client(self):
        if self.redis_client is None:
            try:
                self.redis_client = get_redis_client()
            except Exception as e:
                logger.warning(f"⚠️ Event bus unavailable: {e}")
                return None
        return self.redis_client

    def publish(self, event: str, order_payload: dict) -> bool:
        client = self._get_client()
        if not client:
            return False

        order_id = order_payload.get("id")
        message = json.dumps({"event": event, "data": {"order": order_payload}})
        try:
            client.publish(channel_for(event, order_id), message)
            logger.debug(f"📣 {event} published for order {order_id}")
            return True
        except Exception as e:
            logger.error(f"❌ Failed to publish {event} for order {order_id}: {e}")
            return False

    def order_created(self, order) -> bool:
        return self.publish(ORDER_CREATED, serialize_order(order))

    def order_updated(self, order) -> bool:
        return self.publish(ORDER_UPDATED, serialize_order(order))


# Global publisher instance
publisher = EventPublisher()


def get_publisher() -> EventPublisher:
    return publisher
