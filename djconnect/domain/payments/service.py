"""Payment service - gateway callbacks and transaction queries"""

import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from ...cache import Cache, get_cache, recall_payment_id
from ...errors import InvalidState, NotFound, PermissionDenied
from ...events import EventPublisher, get_publisher
from ...models import Transaction, TransactionStatus, User
from ...services.notification_service import NotificationDispatcher, get_dispatcher
from ..orders.repository import OrderRepository
from .ledger import TransactionLedger
from .repository import TransactionRepository
from .yookassa_service import PAYMENT_SUCCEEDED, YooKassaGateway, format_amount, get_gateway

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED_EVENT = "payment.succeeded"


class PaymentService:
    """Resolves gateway confirmations into ledger updates"""

    def __init__(
        self,
        db: Session,
        gateway: Optional[YooKassaGateway] = None,
        store: Optional[Cache] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        publisher: Optional[EventPublisher] = None,
    ):
        self.db = db
        self.gateway = gateway or get_gateway()
        self.store = store or get_cache()
        self.ledger = TransactionLedger(db, self.gateway)
        self.dispatcher = dispatcher or get_dispatcher()
        self.publisher = publisher or get_publisher()
        self.repo = TransactionRepository()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _authorize_party(self, order_id: int, user: User):
        order = OrderRepository.get_order(self.db, order_id)
        if not order:
            raise NotFound("Order not found")
        is_performer = order.dj is not None and order.dj.user_id == user.id
        if order.user_id != user.id and not is_performer:
            raise PermissionDenied("You are not a party to this order")
        return order

    def get_transactions(self, order_id: int, user: User) -> list[Transaction]:
        self._authorize_party(order_id, user)
        return self.repo.get_transactions_for_order(self.db, order_id)

    def cancel_transaction(self, transaction_id: int, user: User) -> Transaction:
        transaction = self.repo.get_transaction(self.db, transaction_id)
        if not transaction:
            raise NotFound("Transaction not found")
        self._authorize_party(transaction.order_id, user)
        return self.ledger.cancel(transaction_id)

    # ------------------------------------------------------------------
    # Gateway callbacks
    # ------------------------------------------------------------------

    def _resolve_payment_id(self, order_id: int) -> str:
        payment_id = recall_payment_id(self.store, order_id)
        if payment_id:
            return payment_id

        for transaction in reversed(self.repo.get_transactions_for_order(self.db, order_id)):
            if transaction.gateway_payment_id:
                return transaction.gateway_payment_id
        raise NotFound("Payment not found for this order")

    async def handle_return(self, order_id: int) -> dict[str, Any]:
        """Browser came back from the payment page"""
        if not OrderRepository.get_order(self.db, order_id):
            raise NotFound("Order not found")

        payment_id = self._resolve_payment_id(order_id)
        payment = await self.gateway.retrieve_payment(payment_id)
        return await self.apply_payment(order_id, payment)

    async def handle_webhook(self, event: str, payment_id: str) -> dict[str, Any]:
        """Gateway notification; the payment is re-fetched rather than trusted"""
        if event != PAYMENT_SUCCEEDED_EVENT:
            logger.info(f"ℹ️ Ignoring gateway event {event} for payment {payment_id}")
            return {"message": "Event ignored", "status": None, "orderId": None}

        payment = await self.gateway.retrieve_payment(payment_id)
        order_id = payment["metadata"].get("order_id")
        if order_id is None:
            logger.error(f"❌ Payment {payment_id} carries no order id: {payment}")
            raise NotFound("Payment is not linked to an order")
        return await self.apply_payment(int(order_id), payment)

    async def apply_payment(self, order_id: int, payment: dict[str, Any]) -> dict[str, Any]:
        """
        Mark the attempt the gateway payment belongs to as paid.

        A payment for a superseded or cancelled attempt is never moved onto
        another attempt; it is logged for a refund and rejected.
        """
        status = payment.get("status")
        payment_id = payment.get("id")
        if status != PAYMENT_SUCCEEDED:
            logger.info(f"⏳ Payment {payment_id} for order {order_id} is {status}")
            return {"message": "Payment not completed", "status": status, "orderId": order_id}

        order = OrderRepository.lock_order(self.db, order_id)
        if not order:
            self.db.rollback()
            raise NotFound("Order not found")

        if payment_id:
            transaction = self.repo.get_by_gateway_payment_id(self.db, order_id, payment_id)
            if transaction is None:
                self.db.rollback()
                logger.error(f"❌ Payment {payment_id} succeeded but is unknown for order {order_id}")
                raise InvalidState("Payment does not belong to this order")
            if transaction.status == TransactionStatus.PAID:
                self.db.rollback()
                logger.info(f"ℹ️ Payment {payment_id} for order {order_id} already applied")
                return {"message": "Payment already processed", "status": status, "orderId": order_id}
            if transaction.status != TransactionStatus.PENDING:
                self.db.rollback()
                logger.error(
                    f"❌ REFUND REQUIRED: payment {payment_id} ({payment.get('amount')}) succeeded "
                    f"for {transaction.status} transaction {transaction.id} of order {order_id}"
                )
                raise InvalidState("Payment was made for a cancelled payment attempt")
        else:
            if order.is_paid:
                self.db.rollback()
                logger.info(f"ℹ️ Order {order_id} already paid, callback acknowledged")
                return {"message": "Payment already processed", "status": status, "orderId": order_id}
            transaction = self.ledger.find_payable(order_id)
            if not transaction:
                self.db.rollback()
                logger.error(f"❌ Payment succeeded but order {order_id} has no pending transaction")
                raise InvalidState("Order has no pending transaction")

        paid_amount = payment.get("amount")
        if paid_amount is not None and format_amount(paid_amount) != format_amount(transaction.amount):
            self.db.rollback()
            logger.error(
                f"❌ REFUND REQUIRED: payment {payment_id} paid {paid_amount} but transaction "
                f"{transaction.id} of order {order_id} is for {transaction.amount}"
            )
            raise InvalidState("Paid amount does not match the payment attempt")

        self.ledger.mark_paid(transaction.id)
        self.db.refresh(order)
        logger.info(f"💸 Order {order_id} paid with transaction {transaction.id}")

        self.publisher.order_updated(order)
        await self.dispatcher.order_paid(order)
        return {"message": "Payment successful", "status": status, "orderId": order_id}
