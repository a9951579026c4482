"""Payment router - gateway callbacks and transaction endpoints"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import PaymentResultResponse, PaymentWebhook, TransactionResponse
from .service import PaymentService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Payments"])


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    """Dependency injection for PaymentService"""
    return PaymentService(db)


@router.get("/payment/return", response_model=PaymentResultResponse)
async def payment_return(
    order_id: int = Query(..., alias="orderId"),
    service: PaymentService = Depends(get_payment_service),
):
    """Landing endpoint after the payment page; confirms the payment with the gateway"""
    return await service.handle_return(order_id)


@router.post("/payment/webhook", response_model=PaymentResultResponse)
async def payment_webhook(
    body: PaymentWebhook,
    service: PaymentService = Depends(get_payment_service),
):
    """Gateway notification endpoint"""
    logger.info(f"📥 Gateway event {body.event} for payment {body.object.id}")
    return await service.handle_webhook(body.event, body.object.id)


@router.get("/orders/{order_id}/transactions", response_model=list[TransactionResponse])
async def get_order_transactions(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """List the payment attempts of an order"""
    return service.get_transactions(order_id, current_user)


@router.patch("/transactions/{transaction_id}/cancel", response_model=TransactionResponse)
async def cancel_transaction(
    transaction_id: int,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    """Cancel a pending payment attempt"""
    return service.cancel_transaction(transaction_id, current_user)
