"""
Telegram update handling

Maps commands, inline-button callbacks and free-text replies onto order
operations. Domain errors are turned into short human-readable replies.
"""

import logging
import re
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from ..auth import get_or_create_telegram_user
from ..domain.catalog.repository import CatalogRepository
from ..domain.orders.schemas import OrderCreate
from ..domain.orders.service import OrderService
from ..errors import (
    DeliveryFailure,
    DomainError,
    GatewayError,
    InvalidState,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from ..models import OrderStatus, User
from ..services.notification_service import format_price
from ..services.telegram_service import TelegramBot, callback_button, inline_keyboard
from ..shared.validators import parse_price
from .session import (
    AwaitingDeclineMessage,
    AwaitingMessage,
    AwaitingPrice,
    AwaitingTimeslot,
    ChoosingTrack,
    ConversationStore,
)

logger = logging.getLogger(__name__)

CALLBACK_RE = re.compile(
    r"^(choose_track|accept|decline|cancel|change_price|enter_timeslot|finish)_(\d+)$"
)

ERROR_REPLIES = {
    NotFound: "❌ Order not found.",
    InvalidState: "⛔️ This order can't be changed like that anymore.",
    PermissionDenied: "⛔️ You can't do that with this order.",
    GatewayError: "❌ Payment service is unavailable, please try again later.",
}


def error_reply(error: DomainError) -> str:
    if isinstance(error, ValidationError):
        return f"⛔️ {error.message}"
    for error_type, reply in ERROR_REPLIES.items():
        if isinstance(error, error_type):
            return reply
    return "❌ Something went wrong, please try again."


class BotHandlers:
    """Handles one Telegram update; replies go back through the bot it arrived on"""

    def __init__(
        self,
        db: Session,
        bot: TelegramBot,
        sessions: ConversationStore,
        orders: Optional[OrderService] = None,
    ):
        self.db = db
        self.bot = bot
        self.sessions = sessions
        self.orders = orders or OrderService(db)
        self.catalog = CatalogRepository()

    async def reply(self, chat_id, text: str, keyboard: Optional[dict] = None) -> None:
        try:
            await self.bot.send_message(chat_id, text, reply_markup=keyboard)
        except DeliveryFailure as e:
            logger.error(f"❌ Bot reply to {chat_id} failed: {e}")

    def _actor(self, sender: dict[str, Any]) -> User:
        return get_or_create_telegram_user(
            self.db, sender["id"], sender.get("first_name"), sender.get("username")
        )

    async def process_update(self, update: dict[str, Any]) -> None:
        message = update.get("message")
        callback = update.get("callback_query")

        if message and message.get("chat"):
            chat_id = message["chat"]["id"]
            text = (message.get("text") or "").strip()
            sender = message.get("from") or {"id": chat_id}
            if text.startswith("/"):
                await self.handle_command(chat_id, text, sender)
            else:
                await self.handle_text(chat_id, text, sender)
        elif callback and callback.get("message"):
            chat_id = callback["message"]["chat"]["id"]
            sender = callback.get("from") or {"id": chat_id}
            await self.handle_callback(chat_id, callback.get("data") or "", sender, callback)
            try:
                await self.bot.answer_callback_query(callback["id"])
            except (DeliveryFailure, KeyError) as e:
                logger.debug(f"Callback query not answered: {e}")
        else:
            logger.warning(f"⚠️ Update {update.get('update_id')} has no message or callback query")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def handle_command(self, chat_id, text: str, sender: dict[str, Any]) -> None:
        parts = text.split()
        command = parts[0].split("@")[0].lower()

        if command == "/ping":
            await self.reply(chat_id, "pong!")
        elif command == "/tracks":
            await self.list_tracks(chat_id, parts[1:])
        elif command == "/start":
            await self.reply(chat_id, "👋 Hi! Send /tracks <DJ id> to see what a DJ can play for you.")
        else:
            await self.reply(chat_id, "🤷 Unknown command.")

    async def list_tracks(self, chat_id, args: list[str]) -> None:
        if not args:
            await self.reply(chat_id, "❌ Add the DJ id to the command, e.g. /tracks 1")
            return
        if not args[0].isdigit():
            await self.reply(chat_id, "❌ Invalid DJ id.")
            return

        dj = self.catalog.get_dj(self.db, int(args[0]))
        if not dj:
            await self.reply(chat_id, "❌ DJ not found.")
            return

        links = self.catalog.get_dj_tracks(self.db, dj.id)
        if not links:
            await self.reply(chat_id, "❌ This DJ has no tracks yet.")
            return

        self.sessions.save(chat_id, ChoosingTrack(dj_id=dj.id))
        rows = [
            callback_button(
                f"{link.track.name} | {format_price(self.catalog.effective_price(dj, link))}",
                f"choose_track_{link.track.id}",
            )
            for link in links
        ]
        await self.reply(chat_id, "🎵 Choose a track:", inline_keyboard(*rows))

    # ------------------------------------------------------------------
    # Inline buttons
    # ------------------------------------------------------------------

    async def handle_callback(
        self, chat_id, data: str, sender: dict[str, Any], callback: dict[str, Any]
    ) -> None:
        match = CALLBACK_RE.match(data)
        if not match:
            logger.warning(f"⚠️ Unknown callback data from {chat_id}: {data}")
            return

        action, target_id = match.group(1), int(match.group(2))
        logger.info(f"🔘 Callback {action} for {target_id} from chat {chat_id}")

        if action == "accept":
            self.sessions.save(chat_id, AwaitingMessage(order_id=target_id))
            await self.reply(chat_id, "📨 Add a message for the requester")
        elif action == "change_price":
            self.sessions.save(chat_id, AwaitingPrice(order_id=target_id))
            await self.reply(chat_id, "🤑 Enter the new price (numbers only)")
        elif action == "decline":
            self.sessions.save(chat_id, AwaitingDeclineMessage(order_id=target_id))
            await self.reply(chat_id, "📨 Add a message explaining the decline")
        elif action == "enter_timeslot":
            self.sessions.save(chat_id, AwaitingTimeslot(order_id=target_id))
            await self.reply(chat_id, "🕒 Enter the time to play the track (e.g. 21:00)")
        elif action == "finish":
            await self.finish(chat_id, target_id, sender)
        elif action == "cancel":
            await self.cancel(chat_id, target_id, sender, callback)
        elif action == "choose_track":
            await self.choose_track(chat_id, target_id, sender)

    async def choose_track(self, chat_id, track_id: int, sender: dict[str, Any]) -> None:
        step = self.sessions.get(chat_id)
        if not isinstance(step, ChoosingTrack):
            await self.reply(chat_id, "⌛️ The track list has expired, send /tracks <DJ id> again.")
            return

        try:
            await self.orders.create_order(
                self._actor(sender), OrderCreate(dj_id=step.dj_id, track_id=track_id, message="")
            )
        except DomainError as e:
            logger.warning(f"⚠️ Order from chat {chat_id} failed: {e}")
            await self.reply(chat_id, "❌ Could not create the order, please try again.")
            return
        self.sessions.clear(chat_id)

    async def finish(self, chat_id, order_id: int, sender: dict[str, Any]) -> None:
        try:
            await self.orders.mark_played(order_id, actor=self._actor(sender))
        except DomainError as e:
            await self.reply(chat_id, error_reply(e))
            return
        await self.reply(chat_id, f"🏁 Order #{order_id} completed. Thank you!")

    async def cancel(
        self, chat_id, order_id: int, sender: dict[str, Any], callback: dict[str, Any]
    ) -> None:
        try:
            await self.orders.cancel_order(order_id, actor=self._actor(sender))
        except DomainError as e:
            await self.reply(chat_id, error_reply(e))
            return

        await self.reply(chat_id, f"🙅‍♂️ Order #{order_id} cancelled.")
        message_id = callback["message"].get("message_id")
        if message_id:
            try:
                await self.bot.delete_message(chat_id, message_id)
            except DeliveryFailure as e:
                logger.warning(f"⚠️ Could not delete order message in chat {chat_id}: {e}")

    # ------------------------------------------------------------------
    # Free text (multi-step input)
    # ------------------------------------------------------------------

    async def handle_text(self, chat_id, text: str, sender: dict[str, Any]) -> None:
        step = self.sessions.get(chat_id)
        if step is None or isinstance(step, ChoosingTrack):
            logger.debug(f"No active conversation step for chat {chat_id}")
            return

        if isinstance(step, AwaitingPrice):
            await self.collect_price(chat_id, text, step)
        elif isinstance(step, AwaitingMessage):
            await self.collect_accept_message(chat_id, text, step, sender)
        elif isinstance(step, AwaitingDeclineMessage):
            await self.collect_decline_message(chat_id, text, step, sender)
        elif isinstance(step, AwaitingTimeslot):
            await self.collect_timeslot(chat_id, text, step, sender)

    async def collect_price(self, chat_id, text: str, step: AwaitingPrice) -> None:
        try:
            price = parse_price(text)
        except ValueError as e:
            await self.reply(chat_id, f"⛔️ {e}. Enter the price again (numbers only)")
            return

        self.sessions.save(chat_id, AwaitingMessage(order_id=step.order_id, price=str(price)))
        await self.reply(chat_id, "📨 Add a message for the requester")

    async def collect_accept_message(
        self, chat_id, text: str, step: AwaitingMessage, sender: dict[str, Any]
    ) -> None:
        self.sessions.clear(chat_id)
        try:
            if step.price is not None:
                price = Decimal(step.price)
            else:
                price = self.orders.get_order(step.order_id).price
            order, _ = await self.orders.accept_order(
                step.order_id, price, text or None, actor=self._actor(sender)
            )
        except DomainError as e:
            await self.reply(chat_id, error_reply(e))
            return

        title = "💰 Price changed" if order.status == OrderStatus.PRICE_CHANGED else "🎉 Order accepted"
        await self.reply(
            chat_id,
            f"{title}\nOrder #{order.id} accepted at {format_price(order.price)}\nMessage: {order.message}",
        )

    async def collect_decline_message(
        self, chat_id, text: str, step: AwaitingDeclineMessage, sender: dict[str, Any]
    ) -> None:
        self.sessions.clear(chat_id)
        try:
            order = await self.orders.decline_order(
                step.order_id, text or None, actor=self._actor(sender)
            )
        except DomainError as e:
            await self.reply(chat_id, error_reply(e))
            return
        await self.reply(chat_id, f"🚫 Order #{order.id} declined with message: {order.message}")

    async def collect_timeslot(
        self, chat_id, text: str, step: AwaitingTimeslot, sender: dict[str, Any]
    ) -> None:
        try:
            order = await self.orders.set_play_time(step.order_id, text, actor=self._actor(sender))
        except ValidationError:
            await self.reply(
                chat_id, "⛔️ Invalid time format. Enter the time as HH:MM (for example, 21:00)."
            )
            return
        except DomainError as e:
            self.sessions.clear(chat_id)
            await self.reply(chat_id, error_reply(e))
            return

        self.sessions.clear(chat_id)
        await self.reply(
            chat_id, f"🕒 Time {order.time_slot.strftime('%H:%M')} saved for order #{order.id}."
        )
