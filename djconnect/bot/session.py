"""
Per-chat conversation state for multi-step bot input

A chat is in at most one step at a time. Steps live in Redis under
bot_session:{chat_id} and expire after BOT_SESSION_TTL_SECONDS.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional, Union

from ..cache import Cache, get_cache
from ..config import BOT_SESSION_TTL_SECONDS

logger = logging.getLogger(__name__)


@dataclass
class AwaitingPrice:
    """DJ pressed "change price"; next text is the new price"""

    order_id: int


@dataclass
class AwaitingMessage:
    """DJ is accepting; next text is the message for the requester"""

    order_id: int
    price: Optional[str] = None  # Decimal as text; None keeps the order's price


@dataclass
class AwaitingTimeslot:
    order_id: int


@dataclass
class AwaitingDeclineMessage:
    order_id: int


@dataclass
class ChoosingTrack:
    """Requester listed a DJ's tracks with /tracks"""

    dj_id: int


Step = Union[AwaitingPrice, AwaitingMessage, AwaitingTimeslot, AwaitingDeclineMessage, ChoosingTrack]

STEP_TYPES = {
    cls.__name__: cls
    for cls in (AwaitingPrice, AwaitingMessage, AwaitingTimeslot, AwaitingDeclineMessage, ChoosingTrack)
}


def session_key(chat_id) -> str:
    return f"bot_session:{chat_id}"


class ConversationStore:
    def __init__(self, store: Optional[Cache] = None, ttl: int = BOT_SESSION_TTL_SECONDS):
        self.store = store or get_cache()
        self.ttl = ttl

    def get(self, chat_id) -> Optional[Step]:
        data = self.store.get(session_key(chat_id))
        if not data:
            return None

        step_type = STEP_TYPES.get(data.pop("step", None))
        if step_type is None:
            logger.warning(f"⚠️ Unknown bot session step for chat {chat_id}: {data}")
            self.clear(chat_id)
            return None
        try:
            return step_type(**data)
        except TypeError:
            logger.warning(f"⚠️ Malformed bot session for chat {chat_id}: {data}")
            self.clear(chat_id)
            return None

    def save(self, chat_id, step: Step) -> bool:
        return self.store.set(
            session_key(chat_id), {"step": type(step).__name__, **asdict(step)}, self.ttl
        )

    def clear(self, chat_id) -> bool:
        return self.store.delete(session_key(chat_id))
