import unittest

from djconnect.bot.handlers import BotHandlers
from djconnect.bot.session import (
    AwaitingMessage,
    AwaitingPrice,
    AwaitingTimeslot,
    ChoosingTrack,
    ConversationStore,
)
from djconnect.domain.orders.service import OrderService
from djconnect.domain.payments.ledger import TransactionLedger
from djconnect.models import Order, OrderStatus, TransactionStatus

from tests.support import FakeWorld

_update_ids = iter(range(1, 10_000))


def text_update(chat_id, text):
    return {
        "update_id": next(_update_ids),
        "message": {
            "message_id": 10,
            "chat": {"id": chat_id},
            "from": {"id": chat_id, "first_name": "Tester"},
            "text": text,
        },
    }


def callback_update(chat_id, data, message_id=77):
    return {
        "update_id": next(_update_ids),
        "callback_query": {
            "id": f"cb-{data}",
            "from": {"id": chat_id, "first_name": "Tester"},
            "message": {"message_id": message_id, "chat": {"id": chat_id}},
            "data": data,
        },
    }


class BotTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.world = FakeWorld()
        self.sessions = ConversationStore(self.world.cache)
        self.orders = OrderService(
            self.world.db,
            ledger=TransactionLedger(self.world.db, self.world.gateway),
            dispatcher=self.world.dispatcher,
            publisher=self.world.publisher,
        )
        self.user = self.world.add_user(telegram_id="1001")
        self.dj = self.world.add_dj(telegram_id="2001", price="500.00")
        self.track = self.world.add_track(self.dj, name="Sandstorm")

    def tearDown(self):
        self.world.close()

    def handlers(self, bot):
        return BotHandlers(self.world.db, bot, self.sessions, orders=self.orders)

    async def dj_says(self, update):
        await self.handlers(self.world.dj_bot).process_update(update)

    async def user_says(self, update):
        await self.handlers(self.world.user_bot).process_update(update)

    def last_reply(self, bot, chat_id):
        return bot.texts_to(chat_id)[-1]


class CommandTest(BotTestCase):
    async def test_ping(self):
        await self.user_says(text_update(1001, "/ping"))

        self.assertEqual(self.last_reply(self.world.user_bot, 1001), "pong!")

    async def test_tracks_lists_buttons_with_prices(self):
        self.world.add_track(self.dj, name="Around the World", price="800.00")

        await self.user_says(text_update(1001, f"/tracks {self.dj.id}"))

        message = self.world.user_bot.sent[-1]
        labels = [row[0]["text"] for row in message["reply_markup"]["inline_keyboard"]]
        self.assertEqual(labels, ["Around the World | 800.00", "Sandstorm | 500.00"])
        self.assertIsInstance(self.sessions.get(1001), ChoosingTrack)

    async def test_tracks_without_dj_id(self):
        await self.user_says(text_update(1001, "/tracks"))

        self.assertIn("DJ id", self.last_reply(self.world.user_bot, 1001))

    async def test_tracks_for_unknown_dj(self):
        await self.user_says(text_update(1001, "/tracks 999"))

        self.assertEqual(self.last_reply(self.world.user_bot, 1001), "❌ DJ not found.")

    async def test_choose_track_creates_order(self):
        await self.user_says(text_update(1001, f"/tracks {self.dj.id}"))
        await self.user_says(callback_update(1001, f"choose_track_{self.track.id}"))

        order = self.world.db.query(Order).one()
        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.user_id, self.user.id)
        self.assertIsNone(self.sessions.get(1001))
        self.assertIn(f"cb-choose_track_{self.track.id}", self.world.user_bot.answered)
        self.assertTrue(any("new order" in t for t in self.world.dj_bot.texts_to(2001)))

    async def test_choose_track_without_list_expires(self):
        await self.user_says(callback_update(1001, f"choose_track_{self.track.id}"))

        self.assertEqual(self.world.db.query(Order).count(), 0)
        self.assertIn("expired", self.last_reply(self.world.user_bot, 1001))


class DJFlowTest(BotTestCase):
    def setUp(self):
        super().setUp()
        self.order = self.world.add_order(self.user, self.dj, self.track, price="500.00")

    async def test_accept_with_message_keeps_price(self):
        await self.dj_says(callback_update(2001, f"accept_{self.order.id}"))
        self.assertIsInstance(self.sessions.get(2001), AwaitingMessage)

        await self.dj_says(text_update(2001, "See you on the floor"))

        order = self.world.reload(Order, self.order.id)
        self.assertEqual(order.status, OrderStatus.ACCEPTED)
        self.assertEqual(order.message, "See you on the floor")
        self.assertEqual(order.transactions[-1].status, TransactionStatus.PENDING)
        self.assertIsNone(self.sessions.get(2001))
        self.assertIn("Order accepted", self.last_reply(self.world.dj_bot, 2001))
        self.assertIn("accepted", self.last_reply(self.world.user_bot, 1001))

    async def test_change_price_flow(self):
        await self.dj_says(callback_update(2001, f"change_price_{self.order.id}"))
        await self.dj_says(text_update(2001, "cheap"))

        self.assertIsInstance(self.sessions.get(2001), AwaitingPrice)
        self.assertTrue(self.last_reply(self.world.dj_bot, 2001).startswith("⛔️"))

        await self.dj_says(text_update(2001, "450,50"))
        step = self.sessions.get(2001)
        self.assertIsInstance(step, AwaitingMessage)
        self.assertEqual(step.price, "450.50")

        await self.dj_says(text_update(2001, "Special price"))

        order = self.world.reload(Order, self.order.id)
        self.assertEqual(order.status, OrderStatus.PRICE_CHANGED)
        self.assertEqual(str(order.price), "450.50")
        self.assertIn("Price changed", self.last_reply(self.world.dj_bot, 2001))

    async def test_decline_with_message(self):
        await self.dj_says(callback_update(2001, f"decline_{self.order.id}"))
        await self.dj_says(text_update(2001, "Not tonight"))

        order = self.world.reload(Order, self.order.id)
        self.assertEqual(order.status, OrderStatus.DECLINED)
        self.assertEqual(order.message, "Not tonight")
        self.assertIn("Not tonight", self.last_reply(self.world.dj_bot, 2001))

    async def test_decline_twice_replies_with_error(self):
        await self.dj_says(callback_update(2001, f"decline_{self.order.id}"))
        await self.dj_says(text_update(2001, "No"))
        await self.dj_says(callback_update(2001, f"decline_{self.order.id}"))
        await self.dj_says(text_update(2001, "No again"))

        self.assertIn("can't be changed", self.last_reply(self.world.dj_bot, 2001))

    async def test_invalid_timeslot_keeps_conversation(self):
        self.order.status = OrderStatus.ACCEPTED
        self.world.db.commit()

        await self.dj_says(callback_update(2001, f"enter_timeslot_{self.order.id}"))
        await self.dj_says(text_update(2001, "late tonight"))

        self.assertIn("Invalid time format", self.last_reply(self.world.dj_bot, 2001))
        self.assertIsInstance(self.sessions.get(2001), AwaitingTimeslot)

        await self.dj_says(text_update(2001, "21:00"))

        order = self.world.reload(Order, self.order.id)
        self.assertEqual((order.time_slot.hour, order.time_slot.minute), (21, 0))
        self.assertIsNone(self.sessions.get(2001))
        self.assertIn("21:00", self.last_reply(self.world.dj_bot, 2001))

    async def test_finish_completes_order(self):
        self.order.status = OrderStatus.ACCEPTED
        self.world.db.commit()

        await self.dj_says(callback_update(2001, f"finish_{self.order.id}"))

        order = self.world.reload(Order, self.order.id)
        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertTrue(order.track_played)

    async def test_requester_cancel_deletes_order_message(self):
        pending = self.world.add_transaction(self.order)

        await self.user_says(callback_update(1001, f"cancel_{self.order.id}", message_id=55))

        self.assertEqual(self.world.reload(Order, self.order.id).status, OrderStatus.CANCELLED)
        self.assertEqual(self.world.user_bot.deleted, [("1001", 55)])
        self.assertEqual(pending.status, TransactionStatus.CANCELLED)

    async def test_other_user_cannot_accept(self):
        await self.user_says(callback_update(1001, f"accept_{self.order.id}"))
        await self.user_says(text_update(1001, "I accept my own order"))

        self.assertEqual(self.world.reload(Order, self.order.id).status, OrderStatus.PENDING)
        self.assertIn("can't do that", self.last_reply(self.world.user_bot, 1001))

    async def test_text_without_conversation_is_ignored(self):
        await self.dj_says(text_update(2001, "hello?"))

        self.assertEqual(self.world.dj_bot.sent, [])


if __name__ == "__main__":
    unittest.main()
