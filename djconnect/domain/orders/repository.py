"""Order repository - Database operations for orders"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import Order, OrderStatus, Transaction, TransactionStatus


class OrderRepository:
    """Repository for order database operations"""

    @staticmethod
    def get_order(db: Session, order_id: int) -> Optional[Order]:
        return db.query(Order).filter(Order.id == order_id).first()

    @staticmethod
    def lock_order(db: Session, order_id: int) -> Optional[Order]:
        """
        Re-read the order under a row lock (SELECT ... FOR UPDATE).
        The lock is held until the caller commits or rolls back.
        """
        return (
            db.query(Order)
            .filter(Order.id == order_id)
            .populate_existing()
            .with_for_update()
            .first()
        )

    @staticmethod
    def get_orders_for_dj(db: Session, dj_id: int) -> list[Order]:
        return db.query(Order).filter(Order.dj_id == dj_id).order_by(Order.id.desc()).all()

    @staticmethod
    def get_orders_for_user(db: Session, user_id: int) -> list[Order]:
        return db.query(Order).filter(Order.user_id == user_id).order_by(Order.id.desc()).all()

    @staticmethod
    def create_order(db: Session, **order_data) -> Order:
        order = Order(**order_data)
        db.add(order)
        db.flush()
        return order

    @staticmethod
    def get_reconciliation_candidate_ids(db: Session) -> list[int]:
        """Paid, scheduled, still-open orders"""
        paid_order_ids = db.query(Transaction.order_id).filter(
            Transaction.status == TransactionStatus.PAID
        )
        rows = (
            db.query(Order.id)
            .filter(
                Order.id.in_(paid_order_ids),
                Order.time_slot.isnot(None),
                Order.status.notin_(OrderStatus.TERMINAL),
            )
            .order_by(Order.time_slot, Order.id)
            .all()
        )
        return [row[0] for row in rows]
