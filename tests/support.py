"""Fakes and seed helpers shared by the test modules"""

import asyncio
import hashlib
import hmac
import json
from decimal import Decimal
from typing import Optional
from urllib.parse import urlencode

from djconnect.cache import Cache
from djconnect.database import Base, SessionLocal, engine
from djconnect.domain.payments.yookassa_service import PaymentLink
from djconnect.errors import DeliveryFailure, GatewayError
from djconnect.events import EventPublisher
from djconnect.models import DJ, DJTrack, Order, Track, Transaction, TransactionStatus, User
from djconnect.services.notification_service import NotificationDispatcher


class FakeRedis:
    def __init__(self):
        self.data = {}
        self.published = []

    def get(self, key):
        return self.data.get(key)

    def setex(self, key, ttl, value):
        self.data[key] = value

    def delete(self, key):
        self.data.pop(key, None)

    def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        return 1


class FakeBot:
    """Records outgoing Bot API calls; chats in fail_for raise DeliveryFailure"""

    def __init__(self, name: str):
        self.name = name
        self.sent = []
        self.deleted = []
        self.answered = []
        self.fail_for = set()
        self.slow_for = set()
        self.delay = 1.0
        self.on_send = None

    async def send_message(self, chat_id, text, reply_markup=None):
        if self.on_send:
            self.on_send(str(chat_id))
        if str(chat_id) in self.slow_for:
            await asyncio.sleep(self.delay)
        if str(chat_id) in self.fail_for:
            raise DeliveryFailure(f"{self.name} cannot reach {chat_id}", blocked=True)
        self.sent.append({"chat_id": str(chat_id), "text": text, "reply_markup": reply_markup})
        return {"message_id": len(self.sent)}

    async def delete_message(self, chat_id, message_id):
        self.deleted.append((str(chat_id), message_id))
        return True

    async def answer_callback_query(self, callback_query_id, text=None):
        self.answered.append(callback_query_id)
        return True

    def texts_to(self, chat_id) -> list[str]:
        return [m["text"] for m in self.sent if m["chat_id"] == str(chat_id)]


class FakeGateway:
    def __init__(self):
        self.links = []
        self.fail = False
        self.payments = {}
        self.payouts = []
        self.payout_status = "succeeded"

    async def create_payment_link(self, amount, order_id, description):
        if self.fail:
            raise GatewayError("Payment gateway is unavailable")
        n = len(self.links) + 1
        link = PaymentLink(url=f"https://pay.test/{n}", payment_id=f"pay_{n}")
        self.links.append((Decimal(str(amount)), order_id, link))
        self.payments[link.payment_id] = {
            "id": link.payment_id,
            "status": "pending",
            "amount": f"{Decimal(str(amount)):.2f}",
            "metadata": {"order_id": order_id},
        }
        return link

    async def retrieve_payment(self, payment_id):
        if payment_id not in self.payments:
            raise GatewayError("Payment gateway error (404)")
        return dict(self.payments[payment_id])

    async def create_payout(self, amount, destination, description):
        if self.fail:
            raise GatewayError("Payment gateway is unavailable")
        self.payouts.append((amount, destination, description))
        return {"id": f"po_{len(self.payouts)}", "status": self.payout_status}

    def succeed(self, payment_id):
        self.payments[payment_id]["status"] = "succeeded"


class FakeWorld:
    """A fresh schema plus fakes for every outside collaborator"""

    def __init__(self):
        Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        self.db = SessionLocal()
        self.redis = FakeRedis()
        self.cache = Cache(client=self.redis)
        self.publisher = EventPublisher(client=self.redis)
        self.user_bot = FakeBot("user_bot")
        self.dj_bot = FakeBot("dj_bot")
        self.dispatcher = NotificationDispatcher(self.user_bot, self.dj_bot)
        self.gateway = FakeGateway()

    def close(self):
        self.db.close()
        Base.metadata.drop_all(bind=engine)

    def events(self, event: Optional[str] = None) -> list[dict]:
        return [m for _, m in self.redis.published if event is None or m["event"] == event]

    # Seed data

    def add_user(self, telegram_id="1001", name="Listener") -> User:
        user = User(telegram_id=telegram_id, name=name)
        self.db.add(user)
        self.db.commit()
        return user

    def add_dj(self, telegram_id="2001", price="500.00", stage_name="DJ Test") -> DJ:
        user = self.add_user(telegram_id=telegram_id, name=stage_name)
        dj = DJ(user_id=user.id, stage_name=stage_name, price=Decimal(price))
        self.db.add(dj)
        self.db.commit()
        return dj

    def add_track(self, dj: DJ, name="Sandstorm", price: Optional[str] = None) -> Track:
        track = Track(name=name)
        self.db.add(track)
        self.db.flush()
        self.db.add(DJTrack(dj_id=dj.id, track_id=track.id, price=Decimal(price) if price else None))
        self.db.commit()
        return track

    def add_order(self, user: User, dj: DJ, track: Track, status="pending", price="500.00", **fields) -> Order:
        order = Order(
            user_id=user.id,
            dj_id=dj.id,
            track_id=track.id,
            price=Decimal(price),
            status=status,
            **fields,
        )
        self.db.add(order)
        self.db.commit()
        return order

    def add_transaction(self, order: Order, status=TransactionStatus.PENDING, amount=None, payment_id=None):
        transaction = Transaction(
            order_id=order.id,
            amount=Decimal(amount) if amount else order.price,
            payment_url="https://pay.test/seed",
            gateway_payment_id=payment_id,
            status=status,
        )
        self.db.add(transaction)
        self.db.commit()
        return transaction

    def reload(self, model, pk):
        self.db.expire_all()
        return self.db.get(model, pk)


def sign_init_data(telegram_id, bot_token="111:user-bot-token", first_name="Listener", username=None) -> str:
    """Build Telegram Web App init data signed the way Telegram signs it"""
    user = {"id": int(telegram_id), "first_name": first_name}
    if username:
        user["username"] = username
    fields = {"auth_date": "1760000000", "query_id": "AAHtest", "user": json.dumps(user)}
    check_string = "\n".join(f"{k}={fields[k]}" for k in sorted(fields))
    secret = hmac.new(b"WebAppData", bot_token.encode(), hashlib.sha256).digest()
    fields["hash"] = hmac.new(secret, check_string.encode(), hashlib.sha256).hexdigest()
    return urlencode(fields)
