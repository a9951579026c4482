"""Catalog repository - DJ and track lookups"""

from decimal import Decimal
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import DJ, DJTrack, Track


class CatalogRepository:
    """Repository for DJ / track database operations"""

    @staticmethod
    def get_dj(db: Session, dj_id: int) -> Optional[DJ]:
        return db.query(DJ).filter(DJ.id == dj_id).first()

    @staticmethod
    def get_track(db: Session, track_id: int) -> Optional[Track]:
        return db.query(Track).filter(Track.id == track_id).first()

    @staticmethod
    def find_track_by_name(db: Session, name: str) -> Optional[Track]:
        """Case-insensitive exact match on the track name"""
        return (
            db.query(Track)
            .filter(func.lower(Track.name) == name.strip().lower())
            .order_by(Track.id)
            .first()
        )

    @staticmethod
    def create_track(db: Session, name: str) -> Track:
        track = Track(name=name.strip())
        db.add(track)
        db.flush()
        return track

    @staticmethod
    def get_dj_track(db: Session, dj_id: int, track_id: int) -> Optional[DJTrack]:
        return (
            db.query(DJTrack)
            .filter(DJTrack.dj_id == dj_id, DJTrack.track_id == track_id)
            .first()
        )

    @staticmethod
    def link_track(db: Session, dj: DJ, track: Track, price: Optional[Decimal] = None) -> DJTrack:
        link = DJTrack(dj_id=dj.id, track_id=track.id, price=price)
        db.add(link)
        db.flush()
        return link

    @staticmethod
    def get_dj_tracks(db: Session, dj_id: int) -> list[DJTrack]:
        return (
            db.query(DJTrack)
            .filter(DJTrack.dj_id == dj_id)
            .join(Track, DJTrack.track_id == Track.id)
            .order_by(Track.name)
            .all()
        )

    @staticmethod
    def effective_price(dj: DJ, link: Optional[DJTrack]) -> Decimal:
        """Per-track override when set, otherwise the DJ's default price"""
        if link is not None and link.price is not None:
            return Decimal(link.price)
        return Decimal(dj.price or 0)
