"""
Telegram Web App authentication

The web front end forwards Telegram's signed init data in the
`Telegram-Init-Data` header. The payload is verified against either bot token
and the user is looked up (or created) by telegram id.
"""

import hashlib
import hmac
import json
import logging
from typing import Optional
from urllib.parse import parse_qsl

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .config import PAYOUT_OPERATOR_TOKEN, TELEGRAM_DJ_BOT_TOKEN, TELEGRAM_USER_BOT_TOKEN
from .database import get_db
from .errors import PermissionDenied, Unauthorized
from .models import User

logger = logging.getLogger(__name__)


def parse_init_data(init_data: str) -> dict[str, str]:
    return dict(parse_qsl(init_data, keep_blank_values=True))


def calculate_hash(data: dict[str, str], bot_token: str) -> str:
    check_string = "\n".join(f"{key}={data[key]}" for key in sorted(data) if key != "hash")
    secret_key = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    return hmac.new(secret_key, check_string.encode(), hashlib.sha256).hexdigest()


def verify_init_data(init_data: str, bot_tokens: Optional[list[str]] = None) -> Optional[dict]:
    """
    Validate the init data signature.

    Returns:
        The Telegram user object from the payload, or None when the hash does not
        match any configured bot token or the payload has no user.
    """
    data = parse_init_data(init_data)
    received_hash = data.get("hash")
    if not received_hash:
        return None

    tokens = bot_tokens if bot_tokens is not None else [TELEGRAM_USER_BOT_TOKEN, TELEGRAM_DJ_BOT_TOKEN]
    for token in filter(None, tokens):
        if hmac.compare_digest(calculate_hash(data, token), received_hash):
            try:
                telegram_user = json.loads(data.get("user") or "null")
            except ValueError:
                return None
            return telegram_user if isinstance(telegram_user, dict) and "id" in telegram_user else None
    return None


def get_or_create_telegram_user(
    db: Session,
    telegram_id,
    first_name: Optional[str] = None,
    username: Optional[str] = None,
) -> User:
    """Look a user up by telegram id, creating the row on first contact"""
    telegram_id = str(telegram_id)
    user = db.query(User).filter(User.telegram_id == telegram_id).first()
    if user:
        return user

    user = User(
        telegram_id=telegram_id,
        name=first_name or username or telegram_id,
        phone_number=username,
        email=f"{username}@telegram.com" if username else None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info(f"✅ New user {user.id} registered from telegram id {telegram_id}")
    return user


async def get_current_user(
    telegram_init_data: Optional[str] = Header(None, alias="Telegram-Init-Data"),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from Telegram Web App init data"""
    if not telegram_init_data:
        raise Unauthorized("Unauthorized")

    telegram_user = verify_init_data(telegram_init_data)
    if not telegram_user:
        logger.warning("⚠️ Telegram init data failed validation")
        raise PermissionDenied("Invalid Telegram data")

    return get_or_create_telegram_user(
        db,
        telegram_user["id"],
        telegram_user.get("first_name"),
        telegram_user.get("username"),
    )


def get_operator_token() -> Optional[str]:
    return PAYOUT_OPERATOR_TOKEN


async def require_operator(
    operator_token: Optional[str] = Header(None, alias="X-Operator-Token"),
    expected_token: Optional[str] = Depends(get_operator_token),
) -> None:
    """Back-office access, checked against the configured operator token"""
    if not expected_token:
        logger.warning("⚠️ Operator request rejected: PAYOUT_OPERATOR_TOKEN is not configured")
        raise PermissionDenied("Operator access is not configured")
    if not hmac.compare_digest(operator_token or "", expected_token):
        logger.warning("⚠️ Operator request with invalid token")
        raise PermissionDenied("Invalid operator token")
