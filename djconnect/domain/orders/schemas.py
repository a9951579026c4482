"""Order domain schemas - Pydantic models for validation"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from ..catalog.schemas import DJBrief, TrackBrief
from ..payments.schemas import TransactionResponse


class OrderCreate(BaseModel):
    """Schema for creating an order; either track_id or track_name is required"""

    dj_id: int
    track_id: Optional[int] = None
    track_name: Optional[str] = Field(None, max_length=255)
    message: Optional[str] = Field(None, max_length=255)
    price: Optional[Decimal] = Field(None, ge=0, max_digits=8, decimal_places=2)
    timezone: Optional[str] = Field(None, max_length=64)

    @model_validator(mode="after")
    def check_track_reference(self):
        if self.track_id is None and not (self.track_name and self.track_name.strip()):
            raise ValueError("track_id or track_name is required")
        return self


class OrderAccept(BaseModel):
    price: Decimal = Field(..., ge=0, max_digits=8, decimal_places=2)
    message: Optional[str] = Field(None, max_length=255)
    timezone: Optional[str] = Field(None, max_length=64)


class OrderDecline(BaseModel):
    message: Optional[str] = Field(None, max_length=255)


class OrderTimeSlot(BaseModel):
    time_slot: str  # "HH:MM" or ISO-8601 local datetime


class OrderResponse(BaseModel):
    """Schema for order response"""

    id: int
    user_id: int
    dj_id: int
    track_id: Optional[int] = None
    track: Optional[TrackBrief] = None
    dj: Optional[DJBrief] = None
    price: float
    message: Optional[str] = None
    status: str
    timezone: Optional[str] = None
    time_slot: Optional[datetime] = None
    reminder_sent: bool
    notification_sent: bool
    track_played: bool
    is_paid: bool
    transactions: list[TransactionResponse] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class OrderAcceptResponse(BaseModel):
    order: OrderResponse
    transaction: TransactionResponse


class OrderStatusResponse(BaseModel):
    id: int
    status: str
    is_paid: bool
    track_played: bool
    time_slot: Optional[datetime] = None


class OrderActionResponse(BaseModel):
    success: bool
    message: str


def serialize_order(order) -> dict:
    """JSON-ready order payload (API responses and published events)"""
    return OrderResponse.model_validate(order).model_dump(mode="json")
