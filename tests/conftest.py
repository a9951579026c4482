"""Test environment: in-memory SQLite, fixed bot tokens and gateway credentials"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["DB_LOG_SLOW_QUERIES"] = "false"
os.environ["TELEGRAM_USER_BOT_TOKEN"] = "111:user-bot-token"
os.environ["TELEGRAM_DJ_BOT_TOKEN"] = "222:dj-bot-token"
os.environ["TELEGRAM_WEBHOOK_SECRET"] = "webhook-secret"
os.environ["YOOKASSA_SHOP_ID"] = "shop"
os.environ["YOOKASSA_SECRET_KEY"] = "secret"
os.environ["DEFAULT_TIMEZONE"] = "Europe/Moscow"
os.environ["PAYOUT_OPERATOR_TOKEN"] = "operator-token"
