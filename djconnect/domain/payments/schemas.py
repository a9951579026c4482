"""Payment domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class TransactionResponse(BaseModel):
    """Schema for transaction response"""

    id: int
    order_id: int
    amount: float
    payment_url: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class PaymentWebhookObject(BaseModel):
    id: str
    status: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class PaymentWebhook(BaseModel):
    """Gateway notification body (only the fields we read)"""

    type: Optional[str] = None
    event: str
    object: PaymentWebhookObject


class PaymentResultResponse(BaseModel):
    message: str
    orderId: Optional[int] = None
    status: Optional[str] = None
