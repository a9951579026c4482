"""
Transaction ledger

One payment attempt per Transaction row. At most one transaction per order is
pending after every ledger operation: opening a new attempt cancels the
previous pending one in the same database transaction.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import GatewayError, InvalidState, NotFound
from ...models import Order, Transaction, TransactionStatus
from ..orders.repository import OrderRepository
from .repository import TransactionRepository
from .yookassa_service import PaymentLink, YooKassaGateway, get_gateway

logger = logging.getLogger(__name__)


def payment_description(order: Order) -> str:
    return f"Order #{order.id}: {order.track_name}"


class TransactionLedger:
    def __init__(self, db: Session, gateway: Optional[YooKassaGateway] = None):
        self.db = db
        self.gateway = gateway or get_gateway()
        self.repo = TransactionRepository()

    def cancel_pending(self, order_id: int) -> int:
        """Cancel every pending attempt for the order. Does not commit."""
        pending = self.repo.get_pending_for_order(self.db, order_id)
        for transaction in pending:
            transaction.status = TransactionStatus.CANCELLED
        if pending:
            self.db.flush()
            logger.info(f"🚫 Cancelled {len(pending)} pending transaction(s) for order {order_id}")
        return len(pending)

    def record_pending(self, order: Order, amount: Decimal, link: PaymentLink) -> Transaction:
        """Replace the order's pending attempt with a new one. Does not commit."""
        self.cancel_pending(order.id)
        transaction = Transaction(
            amount=amount,
            payment_url=link.url,
            gateway_payment_id=link.payment_id,
            status=TransactionStatus.PENDING,
        )
        order.transactions.append(transaction)
        self.db.flush()
        return transaction

    async def request_link(self, order: Order, amount: Decimal) -> PaymentLink:
        """Ask the gateway for a payment link; raises GatewayError"""
        try:
            return await self.gateway.create_payment_link(
                amount, order.id, payment_description(order)
            )
        except GatewayError:
            logger.error(f"❌ Payment link failed for order {order.id}, amount {amount}")
            raise

    async def create_transaction(self, order: Order, amount: Decimal) -> Transaction:
        """Request a payment link and persist it as the order's only pending attempt"""
        link = await self.request_link(order, amount)
        locked = OrderRepository.lock_order(self.db, order.id)
        if not locked:
            raise NotFound("Order not found")

        transaction = self.record_pending(locked, amount, link)
        self.db.commit()
        self.db.refresh(transaction)
        logger.info(f"✅ Transaction {transaction.id} opened for order {order.id} ({amount})")
        return transaction

    def _get_for_update(self, transaction_id: int) -> Transaction:
        transaction = self.repo.get_transaction(self.db, transaction_id)
        if not transaction:
            raise NotFound("Transaction not found")
        # Lock the owning order so ledger and order changes serialize per order
        OrderRepository.lock_order(self.db, transaction.order_id)
        self.db.refresh(transaction)
        return transaction

    def mark_paid(self, transaction_id: int, commit: bool = True) -> Transaction:
        transaction = self._get_for_update(transaction_id)
        if transaction.status != TransactionStatus.PENDING:
            raise InvalidState(f"Transaction is {transaction.status}, only pending can be paid")

        transaction.status = TransactionStatus.PAID
        if commit:
            self.db.commit()
            self.db.refresh(transaction)
        else:
            self.db.flush()
        logger.info(f"💸 Transaction {transaction.id} paid for order {transaction.order_id}")
        return transaction

    def cancel(self, transaction_id: int) -> Transaction:
        transaction = self._get_for_update(transaction_id)
        if transaction.status != TransactionStatus.PENDING:
            raise InvalidState(
                f"Transaction is {transaction.status}, only pending transactions can be cancelled"
            )

        transaction.status = TransactionStatus.CANCELLED
        self.db.commit()
        self.db.refresh(transaction)
        logger.info(f"🚫 Transaction {transaction.id} cancelled")
        return transaction

    def find_payable(self, order_id: int, gateway_payment_id: Optional[str] = None) -> Optional[Transaction]:
        """
        The pending attempt a gateway confirmation applies to.

        With a gateway payment id only the attempt carrying that id qualifies;
        without one, the latest pending attempt.
        """
        if gateway_payment_id:
            transaction = self.repo.get_by_gateway_payment_id(self.db, order_id, gateway_payment_id)
            if transaction and transaction.status == TransactionStatus.PENDING:
                return transaction
            return None
        pending = self.repo.get_pending_for_order(self.db, order_id)
        return pending[-1] if pending else None
