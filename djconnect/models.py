from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


class OrderStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    PRICE_CHANGED = "price_changed"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    TERMINAL = (DECLINED, CANCELLED, COMPLETED)
    ACCEPTED_STATES = (ACCEPTED, PRICE_CHANGED)


class TransactionStatus:
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class PayoutStatus:
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    telegram_id = Column(String(64), unique=True, index=True, nullable=True)
    name = Column(String(255), nullable=True)
    phone_number = Column(String(50), nullable=True)  # Telegram username when no phone is shared
    email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    dj = relationship("DJ", back_populates="user", uselist=False)
    orders = relationship("Order", back_populates="user", order_by="Order.id")


class DJ(Base):
    __tablename__ = "djs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    stage_name = Column(String(255), nullable=False)
    city = Column(String(255), nullable=True)
    payment_details = Column(Text, nullable=True)
    # Default price for any track this DJ plays
    price = Column(Numeric(8, 2), nullable=False, default=0)
    sex = Column(String(20), nullable=True)
    phone = Column(String(50), nullable=True)
    email = Column(String(255), nullable=True)
    website = Column(String(500), nullable=True)
    photo = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    views = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="dj")
    track_links = relationship("DJTrack", back_populates="dj", cascade="all, delete-orphan")
    orders = relationship("Order", back_populates="dj")
    payouts = relationship("Payout", back_populates="dj")

    @property
    def telegram_id(self):
        return self.user.telegram_id if self.user else None


class Track(Base):
    __tablename__ = "tracks"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    dj_links = relationship("DJTrack", back_populates="track", cascade="all, delete-orphan")


class DJTrack(Base):
    """Catalog entry: a track offered by a DJ, optionally at its own price"""

    __tablename__ = "dj_track"

    id = Column(Integer, primary_key=True, index=True)
    dj_id = Column(Integer, ForeignKey("djs.id", ondelete="CASCADE"), nullable=False, index=True)
    track_id = Column(
        Integer, ForeignKey("tracks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    price = Column(Numeric(8, 2), nullable=True)  # Overrides DJ.price when set
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    dj = relationship("DJ", back_populates="track_links")
    track = relationship("Track", back_populates="dj_links")


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    dj_id = Column(Integer, ForeignKey("djs.id", ondelete="CASCADE"), nullable=False, index=True)
    track_id = Column(Integer, ForeignKey("tracks.id", ondelete="SET NULL"), nullable=True)
    price = Column(Numeric(8, 2), nullable=False)
    message = Column(String(255), nullable=True)
    # Status workflow: pending → accepted/price_changed/declined/cancelled → completed
    status = Column(String(50), default=OrderStatus.PENDING, nullable=False, index=True)
    timezone = Column(String(64), nullable=True)  # IANA name, e.g. Europe/Moscow
    # Wall-clock play time, naive and local to `timezone`
    time_slot = Column(DateTime, nullable=True)
    reminder_sent = Column(Boolean, default=False, nullable=False)  # Escalation sent to DJ
    notification_sent = Column(Boolean, default=False, nullable=False)  # "Coming up" sent
    track_played = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    user = relationship("User", back_populates="orders")
    dj = relationship("DJ", back_populates="orders")
    track = relationship("Track")
    transactions = relationship(
        "Transaction", back_populates="order", order_by="Transaction.id", cascade="all"
    )

    @property
    def is_paid(self) -> bool:
        return any(t.status == TransactionStatus.PAID for t in self.transactions)

    @property
    def track_name(self) -> str:
        return self.track.name if self.track else "—"


class Transaction(Base):
    """One payment attempt against an order"""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(
        Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount = Column(Numeric(8, 2), nullable=False)
    payment_url = Column(Text, nullable=True)
    gateway_payment_id = Column(String(255), nullable=True, index=True)
    # pending → paid (gateway confirmed) or pending → cancelled
    status = Column(String(50), default=TransactionStatus.PENDING, nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    order = relationship("Order", back_populates="transactions")

class Payout(Base):
    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, index=True)
    dj_id = Column(Integer, ForeignKey("djs.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(8, 2), nullable=False)
    status = Column(String(50), default=PayoutStatus.PENDING, nullable=False)
    payout_type = Column(String(50), nullable=True)  # bank_card, sbp, yoo_money
    payout_details = Column(Text, nullable=True)  # Card number / phone / wallet id
    yookassa_payout_id = Column(String(255), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    dj = relationship("DJ", back_populates="payouts")
