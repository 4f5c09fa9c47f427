"""Ledger store for raffles, entries and users.

One ``Store`` per process, built by the entry point and handed to every
component that needs it. The store exposes the three primitives the raffle
core depends on:

- unique-constrained insert of an entry (``insert_entry``)
- atomic increment of a raffle's ticket counter (``increment_ticket_count``)
- compare-and-set of the winner fields (``set_winner``)

Everything else is plain reads and conditional updates.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import create_engine, func, select, update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from .errors import DuplicatePayment, StoreUnavailable
from .models import Base, Entry, Raffle, User, utcnow
from .project_constants import (
    HISTORY_PERIODS,
    RAFFLE_ACTIVE,
    RAFFLE_ENDED,
    RECENT_ENTRIES_LIMIT,
)

logger = logging.getLogger(__name__)


def _violates(exc: IntegrityError, column: str) -> bool:
    # SQLite: "UNIQUE constraint failed: entries.payment_reference"
    # Postgres: 'duplicate key value violates unique constraint "uq_entry_payment_reference"'
    return column in str(exc.orig)


class Store:
    def __init__(self, database_url: str, echo: bool = False) -> None:
        connect_args: Dict[str, Any] = {}
        if database_url.startswith("sqlite"):
            # Concurrent writers wait on the file lock instead of failing fast.
            connect_args = {"check_same_thread": False, "timeout": 30}
        self.engine = create_engine(database_url, connect_args=connect_args, echo=echo)
        self._sessions = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    def close(self) -> None:
        self.engine.dispose()

    def create_all(self) -> None:
        try:
            Base.metadata.create_all(self.engine)
        except OperationalError as e:
            raise StoreUnavailable(f"Database unavailable: {e.orig}") from e

    @contextmanager
    def session(self) -> Iterator[Session]:
        """One transaction: commit on success, roll back on any exception."""
        try:
            with self._sessions.begin() as session:
                yield session
        except OperationalError as e:
            raise StoreUnavailable(f"Database unavailable: {e.orig}") from e

    # ---------- Raffles ----------
    def insert_raffle(self, raffle: Raffle) -> Raffle:
        with self.session() as s:
            s.add(raffle)
            s.flush()
        return raffle

    def get_raffle(self, raffle_id: int) -> Optional[Raffle]:
        with self.session() as s:
            return s.get(Raffle, raffle_id)

    def list_raffles(self, status: str | None = None) -> List[Raffle]:
        stmt = select(Raffle).order_by(Raffle.end_time.asc(), Raffle.id.asc())
        if status is not None:
            stmt = stmt.where(Raffle.status == status)
        with self.session() as s:
            return list(s.execute(stmt).scalars().all())

    def list_winners(self, limit: int) -> List[Raffle]:
        stmt = (
            select(Raffle)
            .where(Raffle.winner_wallet.is_not(None))
            .order_by(Raffle.end_time.desc())
            .limit(limit)
        )
        with self.session() as s:
            return list(s.execute(stmt).scalars().all())

    def close_expired(self, now: datetime) -> int:
        stmt = (
            update(Raffle)
            .where(Raffle.status == RAFFLE_ACTIVE, Raffle.end_time <= now)
            .values(status=RAFFLE_ENDED)
        )
        with self.session() as s:
            return s.execute(stmt).rowcount

    def force_end(self, raffle_id: int) -> bool:
        stmt = (
            update(Raffle)
            .where(Raffle.id == raffle_id, Raffle.status == RAFFLE_ACTIVE)
            .values(status=RAFFLE_ENDED)
        )
        with self.session() as s:
            return s.execute(stmt).rowcount == 1

    def increment_ticket_count(
        self, session: Session, raffle_id: int, quantity: int, now: datetime | None = None
    ) -> bool:
        """Atomic ``total_tickets += quantity`` on an open raffle.

        Returns False when no active raffle with that id is still before its
        end time. Expired raffles that were never swept count as closed.
        """
        stmt = (
            update(Raffle)
            .where(
                Raffle.id == raffle_id,
                Raffle.status == RAFFLE_ACTIVE,
                Raffle.end_time > (now or utcnow()),
            )
            .values(total_tickets=Raffle.total_tickets + quantity)
        )
        return session.execute(stmt).rowcount == 1

    def set_winner(
        self,
        raffle_id: int,
        winner_wallet: str,
        winner_discord_id: int | None,
        drawn_at: datetime,
    ) -> bool:
        """Compare-and-set the winner; False if a winner was already committed."""
        stmt = (
            update(Raffle)
            .where(
                Raffle.id == raffle_id,
                Raffle.winner_wallet.is_(None),
                Raffle.winner_discord_id.is_(None),
            )
            .values(
                winner_wallet=winner_wallet,
                winner_discord_id=winner_discord_id,
                status=RAFFLE_ENDED,
                drawn_at=drawn_at,
            )
        )
        with self.session() as s:
            return s.execute(stmt).rowcount == 1

    def reconcile_ticket_count(self, raffle_id: int) -> int:
        """Raise ``total_tickets`` to the sum of entry quantities if it lags."""
        with self.session() as s:
            total = self._sum_quantities(s, raffle_id)
            s.execute(
                update(Raffle)
                .where(Raffle.id == raffle_id, Raffle.total_tickets < total)
                .values(total_tickets=total)
            )
            return total

    # ---------- Entries ----------
    def insert_entry(self, session: Session, entry: Entry) -> Entry:
        """Insert inside the caller's transaction; a reused reference aborts it."""
        session.add(entry)
        try:
            session.flush()
        except IntegrityError as e:
            if _violates(e, "payment_reference"):
                raise DuplicatePayment() from e
            raise
        return entry

    def payment_reference_exists(self, payment_reference: str) -> bool:
        stmt = select(Entry.id).where(Entry.payment_reference == payment_reference).limit(1)
        with self.session() as s:
            return s.execute(stmt).first() is not None

    def list_entries(self, raffle_id: int) -> List[Entry]:
        stmt = select(Entry).where(Entry.raffle_id == raffle_id).order_by(Entry.id.asc())
        with self.session() as s:
            return list(s.execute(stmt).scalars().all())

    def sum_quantities(self, raffle_id: int) -> int:
        with self.session() as s:
            return self._sum_quantities(s, raffle_id)

    @staticmethod
    def _sum_quantities(session: Session, raffle_id: int) -> int:
        stmt = select(func.coalesce(func.sum(Entry.quantity), 0)).where(
            Entry.raffle_id == raffle_id
        )
        return int(session.execute(stmt).scalar_one())

    # ---------- Users ----------
    def get_user_by_wallet(self, wallet: str) -> Optional[User]:
        stmt = select(User).where(User.wallet_address == wallet)
        with self.session() as s:
            return s.execute(stmt).scalars().first()

    # ---------- Stats ----------
    def stats(self) -> Dict[str, Any]:
        with self.session() as s:
            total_users = s.execute(select(func.count(User.id))).scalar_one()
            total_raffles = s.execute(select(func.count(Raffle.id))).scalar_one()
            completed = s.execute(
                select(func.count(Raffle.id)).where(Raffle.status == RAFFLE_ENDED)
            ).scalar_one()
            active = s.execute(
                select(func.count(Raffle.id)).where(Raffle.status == RAFFLE_ACTIVE)
            ).scalar_one()
            revenue, tickets = s.execute(
                select(
                    func.coalesce(func.sum(Entry.amount_paid_lamports), 0),
                    func.coalesce(func.sum(Entry.quantity), 0),
                )
            ).one()
        return {
            "total_users": int(total_users),
            "total_raffles": int(total_raffles),
            "completed_raffles": int(completed),
            "active_raffles": int(active),
            "total_revenue_lamports": int(revenue),
            "total_tickets": int(tickets),
        }

    def revenue_history(self, period: str, now: datetime | None = None) -> Dict[str, Any]:
        """Ticket revenue and tickets sold per bucket, oldest bucket first.

        daily: the last 7 UTC days including today. weekly: the last 4
        seven-day windows ending at ``now``. monthly: the last 12 calendar
        months including the current one.
        """
        if period not in HISTORY_PERIODS:
            raise ValueError(f"period must be one of {', '.join(HISTORY_PERIODS)}")
        now = now or utcnow()
        buckets = HISTORY_PERIODS[period]

        if period == "daily":
            first_day = now.date() - timedelta(days=buckets - 1)
            start = datetime.combine(first_day, time.min)
            labels = [(first_day + timedelta(days=i)).isoformat() for i in range(buckets)]

            def bucket(ts: datetime) -> int:
                return (ts.date() - first_day).days

        elif period == "weekly":
            start = now - timedelta(days=7 * buckets)
            labels = [f"Week {i + 1}" for i in range(buckets)]

            def bucket(ts: datetime) -> int:
                return min((ts - start) // timedelta(days=7), buckets - 1)

        else:
            months = [_shift_month(now.date(), i - (buckets - 1)) for i in range(buckets)]
            start = datetime.combine(months[0], time.min)
            labels = [m.strftime("%Y-%m") for m in months]

            def bucket(ts: datetime) -> int:
                return (ts.year - months[0].year) * 12 + ts.month - months[0].month

        revenue = [0] * buckets
        tickets = [0] * buckets
        stmt = select(Entry.purchased_at, Entry.amount_paid_lamports, Entry.quantity).where(
            Entry.purchased_at >= start, Entry.purchased_at <= now
        )
        with self.session() as s:
            for purchased_at, amount, quantity in s.execute(stmt):
                i = bucket(purchased_at)
                if 0 <= i < buckets:
                    revenue[i] += amount
                    tickets[i] += quantity

        total = sum(revenue)
        return {
            "period": period,
            "labels": labels,
            "revenue_lamports": revenue,
            "tickets": tickets,
            "summary": {
                "total_lamports": total,
                "average_lamports": total // buckets,
                "tickets": sum(tickets),
            },
        }

    def user_stats(self, wallet: str, recent: int = RECENT_ENTRIES_LIMIT) -> Dict[str, Any]:
        """Profile plus purchase totals for a wallet.

        Entries are matched on the linked Discord id when there is one,
        otherwise on the paying wallet.
        """
        with self.session() as s:
            user = s.execute(select(User).where(User.wallet_address == wallet)).scalars().first()
            if user is not None and user.discord_id is not None:
                match = Entry.buyer_discord_id == user.discord_id
            else:
                match = Entry.buyer_wallet == wallet

            purchases, tickets, spent = s.execute(
                select(
                    func.count(Entry.id),
                    func.coalesce(func.sum(Entry.quantity), 0),
                    func.coalesce(func.sum(Entry.amount_paid_lamports), 0),
                ).where(match)
            ).one()
            latest = s.execute(
                select(Entry).where(match).order_by(Entry.id.desc()).limit(recent)
            ).scalars().all()

        return {
            "wallet": wallet,
            "display_name": user.display_name if user else None,
            "avatar_url": user.avatar_url if user else None,
            "discord_id": user.discord_id if user else None,
            "total_purchases": int(purchases),
            "total_tickets": int(tickets),
            "total_spent_lamports": int(spent),
            "recent_entries": [
                {
                    "raffle_id": e.raffle_id,
                    "payment_reference": e.payment_reference,
                    "quantity": e.quantity,
                    "amount_paid_lamports": e.amount_paid_lamports,
                    "purchased_at": e.purchased_at.isoformat(),
                }
                for e in latest
            ],
        }


def _shift_month(d: date, months: int) -> date:
    """First day of the month ``months`` away from ``d``'s month."""
    index = d.year * 12 + d.month - 1 + months
    return date(index // 12, index % 12 + 1, 1)
