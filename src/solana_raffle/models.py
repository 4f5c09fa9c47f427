from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import (
    BigInteger,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from .project_constants import DEFAULT_CHANNEL, RAFFLE_ACTIVE


def utcnow() -> datetime:
    # Naive UTC; SQLite drops tzinfo anyway.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class Raffle(Base):
    __tablename__ = "raffles"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    prize_name: Mapped[str] = mapped_column(String(200))
    prize_image_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    prize_type: Mapped[str] = mapped_column(String(16), default="sol")
    prize_amount: Mapped[Decimal] = mapped_column(Numeric(30, 9), default=Decimal(0))
    ticket_price_lamports: Mapped[int] = mapped_column(BigInteger)
    end_time: Mapped[datetime] = mapped_column(DateTime, index=True)
    status: Mapped[str] = mapped_column(String(16), default=RAFFLE_ACTIVE, index=True)
    total_tickets: Mapped[int] = mapped_column(BigInteger, default=0)
    winner_wallet: Mapped[str | None] = mapped_column(String(64), nullable=True)
    winner_discord_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    drawn_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    @property
    def has_winner(self) -> bool:
        return self.winner_wallet is not None or self.winner_discord_id is not None


class Entry(Base):
    __tablename__ = "entries"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    raffle_id: Mapped[int] = mapped_column(ForeignKey("raffles.id"), index=True)
    buyer_discord_id: Mapped[int] = mapped_column(BigInteger, index=True)
    buyer_wallet: Mapped[str] = mapped_column(String(64))
    quantity: Mapped[int] = mapped_column(Integer)
    payment_reference: Mapped[str] = mapped_column(String(128))
    amount_paid_lamports: Mapped[int] = mapped_column(BigInteger)
    purchased_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    channel: Mapped[str] = mapped_column(String(32), default=DEFAULT_CHANNEL)

    # The only guard against crediting one payment twice.
    __table_args__ = (UniqueConstraint("payment_reference", name="uq_entry_payment_reference"),)


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_address: Mapped[str] = mapped_column(String(64))
    discord_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(64), nullable=True)
    avatar_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    registered_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    linked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    linked_via: Mapped[str | None] = mapped_column(String(32), nullable=True)

    __table_args__ = (
        UniqueConstraint("wallet_address", name="uq_user_wallet"),
        UniqueConstraint("discord_id", name="uq_user_discord"),
        UniqueConstraint("display_name", name="uq_user_display_name"),
    )
