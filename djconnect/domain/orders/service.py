"""Order service - the order state machine"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...clock import is_valid_zone
from ...errors import InvalidState, NotFound, PermissionDenied, ValidationError
from ...events import EventPublisher, get_publisher
from ...models import Order, OrderStatus, Transaction, User
from ...services.notification_service import NotificationDispatcher, get_dispatcher
from ...shared.validators import parse_time_slot
from ..catalog.repository import CatalogRepository
from ..payments.ledger import TransactionLedger
from .repository import OrderRepository
from .schemas import OrderCreate

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")

# Legal status changes; anything else raises InvalidState
TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.ACCEPTED,
        OrderStatus.PRICE_CHANGED,
        OrderStatus.DECLINED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.ACCEPTED: {
        OrderStatus.ACCEPTED,
        OrderStatus.PRICE_CHANGED,
        OrderStatus.DECLINED,
        OrderStatus.CANCELLED,
        OrderStatus.COMPLETED,
    },
    OrderStatus.PRICE_CHANGED: {
        OrderStatus.ACCEPTED,
        OrderStatus.PRICE_CHANGED,
        OrderStatus.DECLINED,
        OrderStatus.CANCELLED,
        OrderStatus.COMPLETED,
    },
    OrderStatus.DECLINED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.COMPLETED: set(),
}


def can_transition(current: str, target: str) -> bool:
    return target in TRANSITIONS.get(current, set())


def ensure_transition(order: Order, target: str, action: str) -> None:
    if not can_transition(order.status, target):
        raise InvalidState(f"Cannot {action} an order that is {order.status}")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT)


class OrderService:
    """
    Service layer for the order lifecycle.

    Every mutation re-reads the order under a row lock, checks the transition,
    commits, and only then publishes the event and sends notifications.
    """

    def __init__(
        self,
        db: Session,
        ledger: Optional[TransactionLedger] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        self.db = db
        self.repo = OrderRepository()
        self.catalog = CatalogRepository()
        self.ledger = ledger or TransactionLedger(db)
        self.dispatcher = dispatcher or get_dispatcher()
        self.publisher = publisher or get_publisher()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: int) -> Order:
        order = self.repo.get_order(self.db, order_id)
        if not order:
            raise NotFound("Order not found")
        return order

    def get_order_for(self, order_id: int, user: User) -> Order:
        """Get an order the user is a party to (requester or the DJ)"""
        order = self.get_order(order_id)
        if order.user_id != user.id and not self._is_performer(order, user):
            raise PermissionDenied("You are not a party to this order")
        return order

    def get_orders_for_dj(self, dj_id: int, user: Optional[User] = None) -> list[Order]:
        dj = self.catalog.get_dj(self.db, dj_id)
        if not dj:
            raise NotFound("DJ not found")
        if user is not None and dj.user_id != user.id:
            raise PermissionDenied("Only the DJ can see their orders")
        return self.repo.get_orders_for_dj(self.db, dj_id)

    def get_orders_for_user(self, user: User) -> list[Order]:
        return self.repo.get_orders_for_user(self.db, user.id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _is_performer(order: Order, user: User) -> bool:
        return order.dj is not None and order.dj.user_id == user.id

    def _authorize_performer(self, order: Order, actor: Optional[User]) -> None:
        if actor is not None and not self._is_performer(order, actor):
            raise PermissionDenied("Only the DJ of this order can do this")

    @staticmethod
    def _authorize_requester(order: Order, actor: Optional[User]) -> None:
        if actor is not None and order.user_id != actor.id:
            raise PermissionDenied("Only the requester of this order can do this")

    @staticmethod
    def _validate_zone(timezone: Optional[str]) -> Optional[str]:
        if timezone is None:
            return None
        if not is_valid_zone(timezone):
            raise ValidationError(f"Unknown timezone: {timezone}")
        return timezone

    @contextmanager
    def _locked(self, order_id: int):
        """Row-locked order for one mutation; commits on success, rolls back on error"""
        order = self.repo.lock_order(self.db, order_id)
        if not order:
            self.db.rollback()
            raise NotFound("Order not found")
        try:
            yield order
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(order)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def create_order(self, requester: User, data: OrderCreate) -> Order:
        """Create a pending order for a catalog track or a custom track name"""
        dj = self.catalog.get_dj(self.db, data.dj_id)
        if not dj:
            raise NotFound("DJ not found")
        timezone = self._validate_zone(data.timezone)

        if data.track_id is not None:
            track = self.catalog.get_track(self.db, data.track_id)
            if not track:
                raise NotFound("Track not found")
            link = self.catalog.get_dj_track(self.db, dj.id, track.id)
        else:
            track = self.catalog.find_track_by_name(self.db, data.track_name)
            if not track:
                track = self.catalog.create_track(self.db, data.track_name)
                logger.info(f"🎵 New track '{track.name}' added to the catalog")
            link = self.catalog.get_dj_track(self.db, dj.id, track.id)
            if not link:
                link = self.catalog.link_track(self.db, dj, track, dj.price)

        price = to_money(data.price) if data.price is not None else self.catalog.effective_price(dj, link)

        order = self.repo.create_order(
            self.db,
            user_id=requester.id,
            dj_id=dj.id,
            track_id=track.id,
            price=price,
            message=data.message or "",
            status=OrderStatus.PENDING,
            timezone=timezone,
        )
        self.db.commit()
        self.db.refresh(order)
        logger.info(f"✅ Order {order.id} created by user {requester.id} for DJ {dj.id} ({price})")

        self.publisher.order_created(order)
        await self.dispatcher.order_created(order)
        return order

    def _check_acceptable(self, order: Order, actor: Optional[User]) -> None:
        self._authorize_performer(order, actor)
        ensure_transition(order, OrderStatus.ACCEPTED, "accept")
        if order.is_paid:
            raise InvalidState("Order is already paid")

    async def accept_order(
        self,
        order_id: int,
        price,
        message: Optional[str] = None,
        timezone: Optional[str] = None,
        actor: Optional[User] = None,
    ) -> tuple[Order, Transaction]:
        """
        Accept (or re-accept with a new price) and open a fresh payment attempt.

        The payment link is requested before anything is written, so a gateway
        failure leaves the order exactly as it was.
        """
        order = self.get_order(order_id)
        self._check_acceptable(order, actor)
        timezone = self._validate_zone(timezone)
        price = to_money(price)

        link = await self.ledger.request_link(order, price)

        with self._locked(order_id) as order:
            self._check_acceptable(order, actor)
            price_changed = to_money(order.price) != price
            order.status = OrderStatus.PRICE_CHANGED if price_changed else OrderStatus.ACCEPTED
            order.price = price
            order.message = message or "Order accepted"
            if timezone:
                order.timezone = timezone
            transaction = self.ledger.record_pending(order, price, link)

        self.db.refresh(transaction)
        logger.info(f"✅ Order {order.id} {order.status} at {price}, transaction {transaction.id}")

        self.publisher.order_updated(order)
        await self.dispatcher.order_accepted(order, transaction.payment_url)
        return order, transaction

    async def decline_order(
        self, order_id: int, message: Optional[str] = None, actor: Optional[User] = None
    ) -> Order:
        with self._locked(order_id) as order:
            self._authorize_performer(order, actor)
            ensure_transition(order, OrderStatus.DECLINED, "decline")
            if order.is_paid:
                raise InvalidState("A paid order cannot be declined")
            order.status = OrderStatus.DECLINED
            order.message = message or "Order declined"
            self.ledger.cancel_pending(order.id)

        logger.info(f"🚫 Order {order.id} declined")
        self.publisher.order_updated(order)
        await self.dispatcher.order_declined(order)
        return order

    async def cancel_order(self, order_id: int, actor: Optional[User] = None) -> Order:
        """Cancel the order and every pending payment attempt; paid ones are untouched"""
        with self._locked(order_id) as order:
            self._authorize_requester(order, actor)
            ensure_transition(order, OrderStatus.CANCELLED, "cancel")
            order.status = OrderStatus.CANCELLED
            self.ledger.cancel_pending(order.id)

        logger.info(f"🙅 Order {order.id} cancelled")
        self.publisher.order_updated(order)
        await self.dispatcher.order_cancelled(order)
        return order

    async def set_play_time(
        self,
        order_id: int,
        time_slot: str,
        actor: Optional[User] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """Store the play time as local wall-clock time in the order's timezone"""
        with self._locked(order_id) as order:
            self._authorize_performer(order, actor)
            if order.status in OrderStatus.TERMINAL:
                raise InvalidState(f"Cannot set play time on an order that is {order.status}")
            try:
                order.time_slot = parse_time_slot(time_slot, order.timezone, now)
            except ValueError as e:
                raise ValidationError(str(e))

        logger.info(f"🕒 Order {order.id} play time set to {order.time_slot}")
        self.publisher.order_updated(order)
        await self.dispatcher.time_slot_set(order)
        return order

    async def mark_played(self, order_id: int, actor: Optional[User] = None) -> Order:
        with self._locked(order_id) as order:
            self._authorize_performer(order, actor)
            ensure_transition(order, OrderStatus.COMPLETED, "complete")
            order.track_played = True
            order.status = OrderStatus.COMPLETED

        logger.info(f"🏁 Order {order.id} played and completed")
        self.publisher.order_updated(order)
        await self.dispatcher.thank_you(order)
        return order
