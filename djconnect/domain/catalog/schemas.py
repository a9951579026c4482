"""Catalog schemas"""

from typing import Optional

from pydantic import BaseModel


class TrackBrief(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class DJBrief(BaseModel):
    id: int
    user_id: int
    stage_name: str
    city: Optional[str] = None
    price: float

    class Config:
        from_attributes = True


class DJProfileResponse(DJBrief):
    payment_details: Optional[str] = None
    sex: Optional[str] = None
    website: Optional[str] = None
    photo: Optional[str] = None
    description: Optional[str] = None
    views: int = 0


class CatalogTrackResponse(BaseModel):
    """A track as offered by one DJ, with the price a request would cost"""

    id: int
    name: str
    price: float
