import unittest
from datetime import datetime, timezone

from djconnect.models import Order, OrderStatus, TransactionStatus
from djconnect.services.reconciliation import OrderReconciler

from tests.support import FakeWorld


def utc(hour, minute, day=19):
    return datetime(2026, 10, day, hour, minute, tzinfo=timezone.utc)


class OrderReconcilerTest(unittest.IsolatedAsyncioTestCase):
    """Play time 21:00 in Moscow (UTC+3) is 18:00 UTC"""

    def setUp(self):
        self.world = FakeWorld()
        self.user = self.world.add_user(telegram_id="1001")
        self.dj = self.world.add_dj(telegram_id="2001")
        self.track = self.world.add_track(self.dj)
        self.order = self.paid_order()
        self.reconciler = OrderReconciler(
            dispatcher=self.world.dispatcher, publisher=self.world.publisher
        )

    def tearDown(self):
        self.world.close()

    def paid_order(self, **fields):
        fields.setdefault("time_slot", datetime(2026, 10, 19, 21, 0))
        fields.setdefault("timezone", "Europe/Moscow")
        order = self.world.add_order(
            self.user, self.dj, self.track, status=OrderStatus.ACCEPTED, **fields
        )
        self.world.add_transaction(order, status=TransactionStatus.PAID)
        return order

    def reload(self, order=None):
        return self.world.reload(Order, (order or self.order).id)

    async def test_too_early_does_nothing(self):
        summary = await self.reconciler.run(now=utc(17, 50))

        self.assertEqual(summary["checked"], 1)
        self.assertEqual(summary["notified"], 0)
        self.assertFalse(self.reload().notification_sent)
        self.assertEqual(self.world.user_bot.sent, [])

    async def test_coming_up_then_escalation(self):
        summary = await self.reconciler.run(now=utc(17, 56))

        self.assertEqual(summary["notified"], 1)
        order = self.reload()
        self.assertTrue(order.notification_sent)
        self.assertFalse(order.reminder_sent)
        self.assertEqual(len(self.world.user_bot.texts_to("1001")), 1)
        self.assertEqual(len(self.world.dj_bot.texts_to("2001")), 1)

        # Same sweep again sends nothing new
        await self.reconciler.run(now=utc(17, 58))
        self.assertEqual(len(self.world.user_bot.texts_to("1001")), 1)

        summary = await self.reconciler.run(now=utc(18, 11))

        self.assertEqual(summary["reminded"], 1)
        order = self.reload()
        self.assertTrue(order.reminder_sent)
        self.assertEqual(order.status, OrderStatus.ACCEPTED)
        dj_texts = self.world.dj_bot.texts_to("2001")
        self.assertEqual(len(dj_texts), 2)
        self.assertIn("overdue", dj_texts[-1])

        summary = await self.reconciler.run(now=utc(18, 30))
        self.assertEqual(summary["reminded"], 0)
        self.assertEqual(len(self.world.dj_bot.texts_to("2001")), 2)

    async def test_late_first_sweep_sends_coming_up_before_escalating(self):
        await self.reconciler.run(now=utc(18, 20))

        order = self.reload()
        self.assertTrue(order.notification_sent)
        self.assertFalse(order.reminder_sent)

        await self.reconciler.run(now=utc(18, 20))

        self.assertTrue(self.reload().reminder_sent)

    async def test_played_track_completes_with_thank_you(self):
        await self.reconciler.run(now=utc(17, 56))
        order = self.reload()
        order.track_played = True
        self.world.db.commit()

        summary = await self.reconciler.run(now=utc(18, 11))

        self.assertEqual(summary["completed"], 1)
        order = self.reload()
        self.assertEqual(order.status, OrderStatus.COMPLETED)
        self.assertFalse(order.reminder_sent)
        self.assertFalse(any("overdue" in t for t in self.world.dj_bot.texts_to("2001")))
        self.assertTrue(any("Thank you" in t for t in self.world.user_bot.texts_to("1001")))
        self.assertEqual(self.world.events("OrderUpdated")[-1]["data"]["order"]["status"], "completed")

        # Completed orders drop out of the sweep
        summary = await self.reconciler.run(now=utc(18, 30))
        self.assertEqual(summary["checked"], 0)

    async def test_failed_delivery_is_retried(self):
        self.world.user_bot.fail_for.add("1001")
        self.world.dj_bot.fail_for.add("2001")

        summary = await self.reconciler.run(now=utc(17, 56))

        self.assertEqual(summary["failed"], 1)
        self.assertFalse(self.reload().notification_sent)

        self.world.user_bot.fail_for.clear()
        self.world.dj_bot.fail_for.clear()
        summary = await self.reconciler.run(now=utc(17, 57))

        self.assertEqual(summary["notified"], 1)
        self.assertTrue(self.reload().notification_sent)

    async def test_one_party_delivered_counts_as_sent(self):
        self.world.user_bot.fail_for.add("1001")

        summary = await self.reconciler.run(now=utc(17, 56))

        self.assertEqual(summary["notified"], 1)
        self.assertTrue(self.reload().notification_sent)

    async def test_flag_is_committed_before_the_message_goes_out(self):
        seen = []
        self.world.user_bot.on_send = lambda chat_id: seen.append(self.reload().notification_sent)

        await self.reconciler.run(now=utc(17, 56))

        self.assertEqual(seen, [True])
        self.assertTrue(self.reload().notification_sent)

    async def test_failed_escalation_releases_the_claim(self):
        order = self.reload()
        order.notification_sent = True
        self.world.db.commit()
        seen = []
        self.world.dj_bot.on_send = lambda chat_id: seen.append(self.reload().reminder_sent)
        self.world.dj_bot.fail_for.add("2001")

        summary = await self.reconciler.run(now=utc(18, 11))

        self.assertEqual(summary["failed"], 1)
        self.assertEqual(seen, [True])
        self.assertFalse(self.reload().reminder_sent)

        self.world.dj_bot.fail_for.clear()
        summary = await self.reconciler.run(now=utc(18, 12))

        self.assertEqual(summary["reminded"], 1)
        self.assertTrue(self.reload().reminder_sent)
        self.assertEqual(len(self.world.dj_bot.texts_to("2001")), 1)

    async def test_slow_order_does_not_block_others(self):
        other_user = self.world.add_user(telegram_id="1002")
        other = self.world.add_order(
            other_user,
            self.dj,
            self.track,
            status=OrderStatus.ACCEPTED,
            time_slot=datetime(2026, 10, 19, 21, 30),
            timezone="Europe/Moscow",
        )
        self.world.add_transaction(other, status=TransactionStatus.PAID)
        self.world.user_bot.slow_for.add("1001")
        self.reconciler.timeout = 0.05

        summary = await self.reconciler.run(now=utc(18, 26))

        self.assertEqual(summary["checked"], 2)
        self.assertEqual(summary["failed"], 1)
        self.assertEqual(summary["notified"], 1)
        self.assertFalse(self.reload().notification_sent)
        self.assertTrue(self.reload(other).notification_sent)

    async def test_unpaid_or_unscheduled_orders_are_skipped(self):
        self.world.add_order(
            self.user,
            self.dj,
            self.track,
            status=OrderStatus.ACCEPTED,
            time_slot=datetime(2026, 10, 19, 21, 0),
        )
        unscheduled = self.world.add_order(self.user, self.dj, self.track, status=OrderStatus.ACCEPTED)
        self.world.add_transaction(unscheduled, status=TransactionStatus.PAID)

        summary = await self.reconciler.run(now=utc(17, 56))

        self.assertEqual(summary["checked"], 1)

    async def test_missing_chat_ids_set_flag_without_sending(self):
        self.user.telegram_id = None
        self.dj.user.telegram_id = None
        self.world.db.commit()

        summary = await self.reconciler.run(now=utc(17, 56))

        self.assertEqual(summary["notified"], 1)
        self.assertTrue(self.reload().notification_sent)
        self.assertEqual(self.world.user_bot.sent, [])
        self.assertEqual(self.world.dj_bot.sent, [])

    async def test_order_timezone_is_used(self):
        # 21:00 in New York is 01:00 UTC the next day
        order = self.paid_order(timezone="America/New_York")

        await self.reconciler.run(now=utc(18, 11))

        self.assertFalse(self.reload(order).notification_sent)

        await self.reconciler.run(now=utc(0, 56, day=20))

        self.assertTrue(self.reload(order).notification_sent)

    async def test_missing_timezone_falls_back_to_moscow(self):
        order = self.paid_order(timezone=None)

        await self.reconciler.run(now=utc(17, 50))
        self.assertFalse(self.reload(order).notification_sent)

        await self.reconciler.run(now=utc(17, 56))
        self.assertTrue(self.reload(order).notification_sent)

    async def test_unknown_stored_timezone_falls_back_to_moscow(self):
        order = self.paid_order(timezone="Mars/Olympus")

        summary = await self.reconciler.run(now=utc(17, 50))
        self.assertEqual(summary["failed"], 0)
        self.assertFalse(self.reload(order).notification_sent)

        await self.reconciler.run(now=utc(17, 56))
        self.assertTrue(self.reload(order).notification_sent)


if __name__ == "__main__":
    unittest.main()
