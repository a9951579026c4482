"""Transaction repository - Database operations for payment attempts"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Transaction, TransactionStatus


class TransactionRepository:
    """Repository for transaction database operations"""

    @staticmethod
    def get_transaction(db: Session, transaction_id: int) -> Optional[Transaction]:
        return db.query(Transaction).filter(Transaction.id == transaction_id).first()

    @staticmethod
    def get_transactions_for_order(db: Session, order_id: int) -> list[Transaction]:
        return (
            db.query(Transaction)
            .filter(Transaction.order_id == order_id)
            .order_by(Transaction.id)
            .all()
        )

    @staticmethod
    def get_pending_for_order(db: Session, order_id: int) -> list[Transaction]:
        return (
            db.query(Transaction)
            .filter(
                Transaction.order_id == order_id,
                Transaction.status == TransactionStatus.PENDING,
            )
            .order_by(Transaction.id)
            .populate_existing()
            .with_for_update()
            .all()
        )

    @staticmethod
    def count_pending(db: Session, order_id: int) -> int:
        return (
            db.query(Transaction)
            .filter(
                Transaction.order_id == order_id,
                Transaction.status == TransactionStatus.PENDING,
            )
            .count()
        )

    @staticmethod
    def get_by_gateway_payment_id(db: Session, order_id: int, payment_id: str) -> Optional[Transaction]:
        return (
            db.query(Transaction)
            .filter(
                Transaction.order_id == order_id,
                Transaction.gateway_payment_id == payment_id,
            )
            .populate_existing()
            .with_for_update()
            .first()
        )
