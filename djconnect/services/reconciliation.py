"""
Order reconciliation sweep

Advances paid, scheduled orders against the wall clock:
  1. "coming up" notice to both parties from NOTIFY_BEFORE_MINUTES before the slot
  2. otherwise, from REMIND_AFTER_MINUTES after the slot: complete the order if
     the track was played, else escalate to the DJ

Each boolean flag gates exactly one send, so repeated sweeps never duplicate a
message. A flag is claimed (committed) before its message is sent and cleared
again when delivery fails, so a failed delivery is retried on the next sweep.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ..clock import now_in_zone, utc_now
from ..config import (
    NOTIFY_BEFORE_MINUTES,
    ORDER_PROCESSING_TIMEOUT_SECONDS,
    REMIND_AFTER_MINUTES,
)
from ..database import SessionLocal
from ..domain.orders.repository import OrderRepository
from ..events import EventPublisher, get_publisher
from ..models import Order, OrderStatus
from .notification_service import NotificationDispatcher, get_dispatcher

logger = logging.getLogger(__name__)

NOTIFIED = "notified"
REMINDED = "reminded"
COMPLETED = "completed"
FAILED = "failed"
IDLE = "idle"


class OrderReconciler:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        dispatcher: Optional[NotificationDispatcher] = None,
        publisher: Optional[EventPublisher] = None,
        timeout: float = ORDER_PROCESSING_TIMEOUT_SECONDS,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher or get_dispatcher()
        self.publisher = publisher or get_publisher()
        self.timeout = timeout

    def candidate_ids(self) -> list[int]:
        db = self.session_factory()
        try:
            return OrderRepository.get_reconciliation_candidate_ids(db)
        finally:
            db.close()

    async def process_order(self, order_id: int, now: datetime) -> str:
        """
        Run one reconciliation step for one order in its own session.

        The step is claimed under the row lock and committed before anything is
        sent; the lock is not held across Telegram calls. A failed or interrupted
        send clears the flag again and the next sweep retries.
        """
        db = self.session_factory()
        try:
            step, order = self._claim(db, order_id, now)
            if step == IDLE:
                return IDLE

            if step == COMPLETED:
                self.publisher.order_updated(order)
                logger.info(f"🏁 Order {order.id} completed by reconciliation")
                await self.dispatcher.thank_you(order)
                return COMPLETED

            try:
                delivered = await self._send(step, order)
            except (Exception, asyncio.CancelledError):
                self._release(db, order_id, step)
                raise
            if not delivered:
                self._release(db, order_id, step)
                return FAILED

            self.publisher.order_updated(order)
            return step
        finally:
            db.close()

    def _claim(self, db: Session, order_id: int, now: datetime) -> tuple[str, Optional[Order]]:
        """Pick the due step and commit its flag while holding the row lock"""
        order = OrderRepository.lock_order(db, order_id)
        if (
            not order
            or order.status in OrderStatus.TERMINAL
            or order.time_slot is None
            or not order.is_paid
        ):
            db.rollback()
            return IDLE, None

        local_now = now_in_zone(order.timezone, now)
        slot = order.time_slot

        if not order.notification_sent and local_now >= slot - timedelta(minutes=NOTIFY_BEFORE_MINUTES):
            order.notification_sent = True
            step = NOTIFIED
        elif not order.reminder_sent and local_now >= slot + timedelta(minutes=REMIND_AFTER_MINUTES):
            if order.track_played:
                order.status = OrderStatus.COMPLETED
                step = COMPLETED
            else:
                order.reminder_sent = True
                step = REMINDED
        else:
            db.rollback()
            return IDLE, None

        db.commit()
        db.refresh(order)
        return step, order

    def _release(self, db: Session, order_id: int, step: str):
        """Clear a claimed flag after a failed send, under a short lock"""
        db.rollback()
        order = OrderRepository.lock_order(db, order_id)
        if order is None:
            db.rollback()
            return
        if step == NOTIFIED:
            order.notification_sent = False
        elif step == REMINDED:
            order.reminder_sent = False
        db.commit()
        logger.warning(f"↩️ Order {order_id}: {step} step released for the next sweep")

    async def _send(self, step: str, order: Order) -> bool:
        if step == NOTIFIED:
            return await self._notify_coming_up(order)
        return await self._escalate(order)

    async def _notify_coming_up(self, order: Order) -> bool:
        requester_chat = order.user.telegram_id if order.user else None
        performer_chat = order.dj.telegram_id if order.dj else None

        if not requester_chat and not performer_chat:
            logger.warning(f"⚠️ Order {order.id}: no chat ids, coming-up notice skipped")
            return True

        requester_ok, performer_ok = await self.dispatcher.track_coming_up(order)
        if not (requester_ok or performer_ok):
            logger.error(f"❌ Order {order.id}: coming-up notice not delivered, will retry")
            return False

        logger.info(f"🔜 Order {order.id}: coming-up notice sent")
        return True

    async def _escalate(self, order: Order) -> bool:
        performer_chat = order.dj.telegram_id if order.dj else None

        if not performer_chat:
            logger.warning(f"⚠️ Order {order.id}: DJ has no chat id, escalation skipped")
            return True
        if not await self.dispatcher.play_now_escalation(order):
            logger.error(f"❌ Order {order.id}: escalation not delivered, will retry")
            return False

        logger.info(f"🚨 Order {order.id}: DJ reminded to play the track")
        return True

    async def run(self, now: Optional[datetime] = None) -> dict[str, int]:
        """One sweep. "now" is read once and shared by every order in the sweep."""
        now = now or utc_now()
        summary = {"checked": 0, NOTIFIED: 0, REMINDED: 0, COMPLETED: 0, FAILED: 0}

        order_ids = self.candidate_ids()
        logger.debug(f"🔄 Reconciliation sweep at {now.isoformat()}: {len(order_ids)} candidate(s)")
        for order_id in order_ids:
            summary["checked"] += 1
            try:
                outcome = await asyncio.wait_for(self.process_order(order_id, now), self.timeout)
            except asyncio.TimeoutError:
                logger.error(f"⏱️ Order {order_id}: processing timed out after {self.timeout}s")
                outcome = FAILED
            except Exception as e:
                logger.exception(f"❌ Order {order_id}: reconciliation error: {e}")
                outcome = FAILED

            if outcome in summary:
                summary[outcome] += 1

        if summary["checked"]:
            logger.info(f"📊 Reconciliation sweep: {summary}")
        return summary


async def reconcile_orders(now: Optional[datetime] = None) -> dict[str, int]:
    """Run one sweep with the default session factory, dispatcher and publisher"""
    return await OrderReconciler().run(now)
