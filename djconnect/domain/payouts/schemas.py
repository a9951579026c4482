"""Payout schemas"""

from datetime import datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class PayoutCreate(BaseModel):
    dj_id: int
    amount: Decimal = Field(..., gt=0, max_digits=8, decimal_places=2)
    payout_type: Literal["bank_card", "yoo_money", "sbp"]
    payout_details: str = Field(..., min_length=1, max_length=255)  # Card number / wallet / phone
    bank_id: Optional[str] = Field(None, max_length=64)  # SBP only

    @model_validator(mode="after")
    def check_sbp_bank(self):
        if self.payout_type == "sbp" and not self.bank_id:
            raise ValueError("bank_id is required for sbp payouts")
        return self


class PayoutStatusUpdate(BaseModel):
    status: Literal["pending", "processed", "failed"]


class PayoutResponse(BaseModel):
    id: int
    dj_id: int
    amount: float
    status: str
    payout_type: Optional[str] = None
    yookassa_payout_id: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
