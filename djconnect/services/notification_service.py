"""
Notification Dispatcher
Tells the requester or the DJ about order events through their own Telegram bot.
Sends are fire-and-forget: delivery failures are logged and reported as False,
never raised to the caller.
"""

import logging
from typing import Optional

from ..config import WEBAPP_DIRECT_URL, WEBAPP_DIRECT_URL_DJ
from ..errors import DeliveryFailure
from .telegram_service import (
    TelegramBot,
    callback_button,
    dj_bot,
    inline_keyboard,
    url_button,
    user_bot,
)

logger = logging.getLogger(__name__)

REQUESTER = "requester"
PERFORMER = "performer"


def order_webapp_url(order_id: int, for_dj: bool = False) -> str:
    base = WEBAPP_DIRECT_URL_DJ if for_dj else WEBAPP_DIRECT_URL
    return f"{base}?startapp=order_{order_id}"


def dj_webapp_url(dj_id: int) -> str:
    return f"{WEBAPP_DIRECT_URL}?startapp=dj_{dj_id}"


def format_price(amount) -> str:
    return f"{float(amount):.2f}"


def order_summary(order) -> str:
    dj_name = order.dj.stage_name if order.dj else "—"
    lines = [
        f"DJ: {dj_name}",
        f"Track: {order.track_name}",
        f"Price: {format_price(order.price)}",
    ]
    if order.message:
        lines.append(f"Message: {order.message}")
    if order.time_slot:
        lines.append(f"Play time: {order.time_slot.strftime('%H:%M')}")
    return "\n".join(lines)


class NotificationDispatcher:
    """
    Two capability variants backed by distinct bot credentials:
    notify_requester goes through the user bot, notify_performer through the DJ bot.
    """

    def __init__(self, requester_bot: TelegramBot, performer_bot: TelegramBot):
        self.requester_bot = requester_bot
        self.performer_bot = performer_bot

    async def _deliver(
        self,
        bot: TelegramBot,
        audience: str,
        chat_id: Optional[str],
        text: str,
        keyboard: Optional[dict] = None,
    ) -> bool:
        if not chat_id:
            logger.debug(f"⚠️ No chat id for {audience}, message skipped")
            return False

        try:
            await bot.send_message(chat_id, text, reply_markup=keyboard)
            logger.info(f"✅ Message delivered to {audience} {chat_id}")
            return True
        except DeliveryFailure as e:
            if e.blocked:
                logger.warning(f"⚠️ {audience} {chat_id} has blocked the bot: {e}")
            else:
                logger.error(f"❌ Failed to deliver message to {audience} {chat_id}: {e}")
            return False

    async def notify_requester(
        self, chat_id: Optional[str], text: str, keyboard: Optional[dict] = None
    ) -> bool:
        return await self._deliver(self.requester_bot, REQUESTER, chat_id, text, keyboard)

    async def notify_performer(
        self, chat_id: Optional[str], text: str, keyboard: Optional[dict] = None
    ) -> bool:
        return await self._deliver(self.performer_bot, PERFORMER, chat_id, text, keyboard)

    # ------------------------------------------------------------------
    # Order messages
    # ------------------------------------------------------------------

    async def order_created(self, order) -> None:
        summary = order_summary(order)
        await self.notify_requester(
            order.user.telegram_id if order.user else None,
            f"🎉 Order #{order.id} sent:\n{summary}",
            inline_keyboard(
                url_button("❇️ Open order", order_webapp_url(order.id)),
                callback_button("🙅‍♂️ Cancel", f"cancel_{order.id}"),
            ),
        )
        await self.notify_performer(
            order.dj.telegram_id if order.dj else None,
            f"🎧 You have a new order #{order.id}!\n{summary}",
            inline_keyboard(
                url_button("❇️ Open order", order_webapp_url(order.id, for_dj=True)),
                callback_button("✅ Accept", f"accept_{order.id}"),
                callback_button("💰 Change price", f"change_price_{order.id}"),
                callback_button("💩 Decline", f"decline_{order.id}"),
            ),
        )

    async def order_accepted(self, order, payment_url: Optional[str]) -> None:
        rows = []
        if payment_url:
            rows.append(url_button("💳 Pay", payment_url))
        rows.append(callback_button("🙅‍♂️ Cancel", f"cancel_{order.id}"))
        await self.notify_requester(
            order.user.telegram_id if order.user else None,
            f"🎉 Order #{order.id} accepted:\n{order_summary(order)}",
            inline_keyboard(*rows),
        )

    async def order_declined(self, order) -> None:
        await self.notify_requester(
            order.user.telegram_id if order.user else None,
            f"😔 Order #{order.id} was declined:\n{order_summary(order)}",
            inline_keyboard(url_button("🔁 Order another track", dj_webapp_url(order.dj_id))),
        )

    async def order_cancelled(self, order) -> None:
        await self.notify_performer(
            order.dj.telegram_id if order.dj else None,
            f"🙅‍♂️ Order #{order.id} was cancelled by the requester.\n{order_summary(order)}",
        )

    async def order_paid(self, order) -> None:
        summary = order_summary(order)
        await self.notify_requester(
            order.user.telegram_id if order.user else None,
            f"💸 Order #{order.id} is paid. The DJ will pick a time to play it.\n{summary}",
            inline_keyboard(url_button("❇️ Open order", order_webapp_url(order.id))),
        )
        await self.notify_performer(
            order.dj.telegram_id if order.dj else None,
            f"💸 Order #{order.id} has been paid!\n{summary}",
            inline_keyboard(
                callback_button("🕒 Enter play time", f"enter_timeslot_{order.id}"),
                callback_button("🏁 Track played", f"finish_{order.id}"),
            ),
        )

    async def time_slot_set(self, order) -> None:
        await self.notify_requester(
            order.user.telegram_id if order.user else None,
            f"🕒 Order #{order.id} will be played at {order.time_slot.strftime('%H:%M')}.\n"
            f"{order_summary(order)}",
        )

    async def track_coming_up(self, order) -> tuple[bool, bool]:
        """Returns (requester delivered, performer delivered)"""
        summary = order_summary(order)
        requester_ok = await self.notify_requester(
            order.user.telegram_id if order.user else None,
            f"🔜 Your track from order #{order.id} is coming up soon!\n{summary}",
        )
        performer_ok = await self.notify_performer(
            order.dj.telegram_id if order.dj else None,
            f"🔜 Time to play order #{order.id} in a few minutes.\n{summary}",
            inline_keyboard(callback_button("🏁 Track played", f"finish_{order.id}")),
        )
        return requester_ok, performer_ok

    async def play_now_escalation(self, order) -> bool:
        return await self.notify_performer(
            order.dj.telegram_id if order.dj else None,
            f"🚨 Order #{order.id} is overdue! Please play the track now.\n{order_summary(order)}",
            inline_keyboard(callback_button("🏁 Track played", f"finish_{order.id}")),
        )

    async def thank_you(self, order) -> bool:
        return await self.notify_requester(
            order.user.telegram_id if order.user else None,
            f"🙏 Your track from order #{order.id} has been played. Thank you!\n"
            f"{order_summary(order)}",
            inline_keyboard(url_button("🔁 Order again", dj_webapp_url(order.dj_id))),
        )


dispatcher = NotificationDispatcher(user_bot, dj_bot)


def get_dispatcher() -> NotificationDispatcher:
    return dispatcher
