import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./djconnect.db")

# Telegram Configuration
# Two separately credentialed bots: one talks to requesters, the other to DJs
TELEGRAM_USER_BOT_TOKEN = os.getenv("TELEGRAM_USER_BOT_TOKEN")
TELEGRAM_DJ_BOT_TOKEN = os.getenv("TELEGRAM_DJ_BOT_TOKEN")
# Sent back by Telegram in X-Telegram-Bot-Api-Secret-Token (set via setWebhook)
TELEGRAM_WEBHOOK_SECRET = os.getenv("TELEGRAM_WEBHOOK_SECRET")
TELEGRAM_API_URL = os.getenv("TELEGRAM_API_URL", "https://api.telegram.org")

# Telegram Web App deep links (t.me/<bot>/<app>)
WEBAPP_DIRECT_URL = os.getenv("WEBAPP_DIRECT_URL", "https://t.me/djconnect_bot/app")
WEBAPP_DIRECT_URL_DJ = os.getenv("WEBAPP_DIRECT_URL_DJ", "https://t.me/djconnect_dj_bot/app")

# YooKassa Configuration
YOOKASSA_SHOP_ID = os.getenv("YOOKASSA_SHOP_ID")
YOOKASSA_SECRET_KEY = os.getenv("YOOKASSA_SECRET_KEY")
YOOKASSA_API_URL = os.getenv("YOOKASSA_API_URL", "https://api.yookassa.ru/v3")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "RUB")

# Shared secret for back-office payout status changes (X-Operator-Token header).
# Unset disables the operator endpoints.
PAYOUT_OPERATOR_TOKEN = os.getenv("PAYOUT_OPERATOR_TOKEN")

# Public base URL of this API, used for the payment return redirect
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")

# Timeouts for every outbound call (Telegram, YooKassa)
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

# Order reconciliation
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE", "Europe/Moscow")
RECONCILE_INTERVAL_SECONDS = int(os.getenv("RECONCILE_INTERVAL_SECONDS", "5"))
ORDER_PROCESSING_TIMEOUT_SECONDS = float(os.getenv("ORDER_PROCESSING_TIMEOUT_SECONDS", "30"))
NOTIFY_BEFORE_MINUTES = int(os.getenv("NOTIFY_BEFORE_MINUTES", "5"))
REMIND_AFTER_MINUTES = int(os.getenv("REMIND_AFTER_MINUTES", "10"))

# Redis-backed short-lived state
BOT_SESSION_TTL_SECONDS = int(os.getenv("BOT_SESSION_TTL_SECONDS", "300"))
PAYMENT_ID_TTL_SECONDS = int(os.getenv("PAYMENT_ID_TTL_SECONDS", "3600"))

# Pub/sub channel prefix the socket bridge subscribes to
EVENT_CHANNEL_PREFIX = os.getenv("EVENT_CHANNEL_PREFIX", "djconnect_database_")
