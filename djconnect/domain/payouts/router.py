"""Payout router"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_operator
from ...database import get_db
from ...models import User
from .schemas import PayoutCreate, PayoutResponse, PayoutStatusUpdate
from .service import PayoutService

router = APIRouter(prefix="/payouts", tags=["Payouts"])


def get_payout_service(db: Session = Depends(get_db)) -> PayoutService:
    return PayoutService(db)


@router.post("", response_model=PayoutResponse)
async def create_payout(
    data: PayoutCreate,
    current_user: User = Depends(get_current_user),
    service: PayoutService = Depends(get_payout_service),
):
    """Withdraw DJ earnings through the gateway"""
    return await service.create_payout(data, current_user)


@router.patch(
    "/{payout_id}/status",
    response_model=PayoutResponse,
    dependencies=[Depends(require_operator)],
)
async def update_payout_status(
    payout_id: int,
    data: PayoutStatusUpdate,
    service: PayoutService = Depends(get_payout_service),
):
    """Back-office status change; requires the X-Operator-Token header"""
    return service.update_status(payout_id, data.status)
