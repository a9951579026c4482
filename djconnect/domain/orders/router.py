"""Order router - FastAPI endpoints for the order lifecycle"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user
from ...database import get_db
from ...models import User
from .schemas import (
    OrderAccept,
    OrderAcceptResponse,
    OrderActionResponse,
    OrderCreate,
    OrderDecline,
    OrderResponse,
    OrderStatusResponse,
    OrderTimeSlot,
)
from .service import OrderService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Orders"])


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    """Dependency injection for OrderService"""
    return OrderService(db)


@router.post("/orders", response_model=OrderResponse)
async def create_order(
    data: OrderCreate,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Request a track from a DJ"""
    return await service.create_order(current_user, data)


@router.get("/orders/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return service.get_order_for(order_id, current_user)


@router.get("/orders/{order_id}/status", response_model=OrderStatusResponse)
async def get_order_status(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    order = service.get_order_for(order_id, current_user)
    return OrderStatusResponse(
        id=order.id,
        status=order.status,
        is_paid=order.is_paid,
        track_played=order.track_played,
        time_slot=order.time_slot,
    )


@router.patch("/orders/{order_id}/accept", response_model=OrderAcceptResponse)
async def accept_order(
    order_id: int,
    data: OrderAccept,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Accept an order (a different price marks it price_changed) and issue a payment link"""
    order, transaction = await service.accept_order(
        order_id, data.price, data.message, data.timezone, actor=current_user
    )
    return {"order": order, "transaction": transaction}


@router.patch("/orders/{order_id}/decline", response_model=OrderActionResponse)
async def decline_order(
    order_id: int,
    data: OrderDecline,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    order = await service.decline_order(order_id, data.message, actor=current_user)
    return OrderActionResponse(success=True, message=order.message)


@router.patch("/orders/{order_id}/cancel", response_model=OrderActionResponse)
async def cancel_order(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    await service.cancel_order(order_id, actor=current_user)
    return OrderActionResponse(
        success=True, message="Order and associated transactions cancelled"
    )


@router.patch("/orders/{order_id}/time", response_model=OrderResponse)
async def set_order_time(
    order_id: int,
    data: OrderTimeSlot,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """Set the local play time ("HH:MM" or ISO-8601)"""
    return await service.set_play_time(order_id, data.time_slot, actor=current_user)


@router.patch("/orders/{order_id}/played", response_model=OrderResponse)
async def mark_order_played(
    order_id: int,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    """DJ confirms the track was played; completes the order"""
    return await service.mark_played(order_id, actor=current_user)


@router.get("/dj/{dj_id}/orders", response_model=list[OrderResponse])
async def get_orders_for_dj(
    dj_id: int,
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return service.get_orders_for_dj(dj_id, current_user)


@router.get("/user/orders", response_model=list[OrderResponse])
async def get_orders_for_user(
    current_user: User = Depends(get_current_user),
    service: OrderService = Depends(get_order_service),
):
    return service.get_orders_for_user(current_user)
