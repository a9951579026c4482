"""Payout service - DJ withdrawals through the payment gateway"""

import logging
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...clock import utc_now
from ...errors import GatewayError, NotFound, PermissionDenied, ValidationError
from ...models import DJ, Order, Payout, PayoutStatus, Transaction, TransactionStatus, User
from ..payments.yookassa_service import (
    PAYOUT_CANCELED,
    PAYOUT_SUCCEEDED,
    YooKassaGateway,
    get_gateway,
)
from .schemas import PayoutCreate

logger = logging.getLogger(__name__)


def payout_destination(payout_type: str, details: str, bank_id: Optional[str] = None) -> dict[str, Any]:
    """Gateway destination block for a payout method"""
    if payout_type == "bank_card":
        return {"type": "bank_card", "card": {"number": details}}
    if payout_type == "yoo_money":
        return {"type": "yoo_money", "account_number": details}
    return {"type": "sbp", "phone": details, "bank_id": bank_id}


class PayoutService:
    def __init__(self, db: Session, gateway: Optional[YooKassaGateway] = None):
        self.db = db
        self.gateway = gateway or get_gateway()

    def _lock_own_dj(self, dj_id: int, user: User) -> DJ:
        dj = self.db.query(DJ).filter(DJ.id == dj_id).populate_existing().with_for_update().first()
        if not dj:
            raise NotFound("DJ not found")
        if dj.user_id != user.id:
            raise PermissionDenied("Only the DJ can manage their payouts")
        return dj

    def available_balance(self, dj_id: int) -> Decimal:
        """Paid transactions on the DJ's orders minus every payout that has not failed"""
        earned = (
            self.db.query(func.coalesce(func.sum(Transaction.amount), 0))
            .join(Order, Transaction.order_id == Order.id)
            .filter(Order.dj_id == dj_id, Transaction.status == TransactionStatus.PAID)
            .scalar()
        )
        withdrawn = (
            self.db.query(func.coalesce(func.sum(Payout.amount), 0))
            .filter(Payout.dj_id == dj_id, Payout.status != PayoutStatus.FAILED)
            .scalar()
        )
        return Decimal(str(earned)) - Decimal(str(withdrawn))

    def _get_payout(self, payout_id: int) -> Payout:
        payout = self.db.query(Payout).filter(Payout.id == payout_id).first()
        if not payout:
            raise NotFound("Payout not found")
        return payout

    async def create_payout(self, data: PayoutCreate, user: User) -> Payout:
        """Record a pending payout, then ask the gateway to send it"""
        # DJ row lock serializes concurrent withdrawals against the same balance
        dj = self._lock_own_dj(data.dj_id, user)

        balance = self.available_balance(dj.id)
        if data.amount > balance:
            logger.warning(f"⚠️ Payout of {data.amount} for DJ {dj.id} exceeds balance {balance}")
            self.db.rollback()
            raise ValidationError(f"Amount exceeds available balance ({balance:.2f})")

        payout = Payout(
            dj_id=dj.id,
            amount=data.amount,
            status=PayoutStatus.PENDING,
            payout_type=data.payout_type,
            payout_details=data.payout_details,
        )
        self.db.add(payout)
        self.db.commit()
        self.db.refresh(payout)

        try:
            result = await self.gateway.create_payout(
                data.amount,
                payout_destination(data.payout_type, data.payout_details, data.bank_id),
                f"Payout #{payout.id} for DJ {dj.stage_name}",
            )
        except GatewayError:
            payout.status = PayoutStatus.FAILED
            self.db.commit()
            logger.error(f"❌ Payout {payout.id} for DJ {dj.id} failed ({data.amount})")
            raise

        payout.yookassa_payout_id = result.get("id")
        if result.get("status") == PAYOUT_SUCCEEDED:
            payout.status = PayoutStatus.PROCESSED
            payout.processed_at = utc_now().replace(tzinfo=None)
        elif result.get("status") == PAYOUT_CANCELED:
            payout.status = PayoutStatus.FAILED
        self.db.commit()
        self.db.refresh(payout)
        logger.info(f"✅ Payout {payout.id} for DJ {dj.id}: {payout.status}")
        return payout

    def update_status(self, payout_id: int, status: str) -> Payout:
        """Operator override after a manual check with the gateway"""
        payout = self._get_payout(payout_id)

        payout.status = status
        if status == PayoutStatus.PROCESSED and payout.processed_at is None:
            payout.processed_at = utc_now().replace(tzinfo=None)
        self.db.commit()
        self.db.refresh(payout)
        logger.info(f"📝 Payout {payout.id} status set to {status}")
        return payout
