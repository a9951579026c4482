"""Telegram webhook endpoints, one per bot"""

import hmac
import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header
from sqlalchemy.orm import Session

from ..config import TELEGRAM_WEBHOOK_SECRET
from ..database import get_db
from ..errors import NotFound, PermissionDenied
from ..services.telegram_service import TelegramBot, dj_bot, user_bot
from .handlers import BotHandlers
from .session import ConversationStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/telegram", tags=["Telegram"])


def get_bots() -> dict[str, TelegramBot]:
    return {"user": user_bot, "dj": dj_bot}


def get_conversation_store() -> ConversationStore:
    return ConversationStore()


def get_webhook_secret() -> Optional[str]:
    return TELEGRAM_WEBHOOK_SECRET


@router.post("/webhook/{audience}")
async def telegram_webhook(
    audience: str,
    update: dict[str, Any] = Body(...),
    secret_token: Optional[str] = Header(None, alias="X-Telegram-Bot-Api-Secret-Token"),
    db: Session = Depends(get_db),
    bots: dict[str, TelegramBot] = Depends(get_bots),
    sessions: ConversationStore = Depends(get_conversation_store),
    expected_secret: Optional[str] = Depends(get_webhook_secret),
):
    """Receive an update for the requester bot (user) or the DJ bot (dj)"""
    bot = bots.get(audience)
    if bot is None:
        raise NotFound("Unknown bot")

    if expected_secret and not hmac.compare_digest(secret_token or "", expected_secret):
        logger.warning(f"⚠️ Telegram webhook for {audience} with invalid secret token")
        raise PermissionDenied("Invalid secret token")

    try:
        await BotHandlers(db, bot, sessions).process_update(update)
    except Exception as e:
        # Always acknowledged; Telegram redelivers on non-2xx
        logger.exception(f"❌ Failed to process Telegram update {update.get('update_id')}: {e}")
    return {"ok": True}
