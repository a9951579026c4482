"""Catalog router - public DJ profile and track listing"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...errors import NotFound
from .repository import CatalogRepository
from .schemas import CatalogTrackResponse, DJProfileResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dj", tags=["Catalog"])


@router.get("/{dj_id}", response_model=DJProfileResponse)
async def get_dj(dj_id: int, db: Session = Depends(get_db)):
    """Get a DJ's public profile"""
    dj = CatalogRepository.get_dj(db, dj_id)
    if not dj:
        raise NotFound("DJ not found")
    return dj


@router.get("/{dj_id}/tracks", response_model=list[CatalogTrackResponse])
async def get_dj_tracks(dj_id: int, db: Session = Depends(get_db)):
    """List the tracks a DJ offers with the price a request would cost"""
    dj = CatalogRepository.get_dj(db, dj_id)
    if not dj:
        raise NotFound("DJ not found")

    return [
        CatalogTrackResponse(
            id=link.track.id,
            name=link.track.name,
            price=float(CatalogRepository.effective_price(dj, link)),
        )
        for link in CatalogRepository.get_dj_tracks(db, dj_id)
    ]
