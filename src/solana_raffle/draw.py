from __future__ import annotations

from dataclasses import dataclass
from bisect import bisect_left
from decimal import Decimal
from typing import Iterable, List, Protocol, Tuple

from .project_constants import LAMPORTS_PER_SOL


class RandomSource(Protocol):
    def uniform(self, a: float, b: float) -> float: ...


@dataclass(frozen=True)
class EntryRange:
    entry_id: int
    payment_reference: str
    discord_id: int | None
    wallet: str
    quantity: int
    start_ticket: int
    end_ticket: int  # cumulative quantity up to and including this entry


def to_sol(lamports: int) -> Decimal:
    return Decimal(lamports) / LAMPORTS_PER_SOL


def build_ranges(entries: Iterable) -> Tuple[List[EntryRange], int]:
    """Entries must already be in insertion order."""
    ranges: List[EntryRange] = []
    cursor = 0
    for e in entries:
        start = cursor
        end = cursor + int(e.quantity)
        ranges.append(
            EntryRange(
                entry_id=e.id,
                payment_reference=e.payment_reference,
                discord_id=e.buyer_discord_id,
                wallet=e.buyer_wallet,
                quantity=int(e.quantity),
                start_ticket=start,
                end_ticket=end,
            )
        )
        cursor = end
    return ranges, cursor


def draw_point(total_tickets: int, rng: RandomSource) -> float:
    return rng.uniform(0, total_tickets)


def find_winner(ranges: List[EntryRange], point: float) -> EntryRange:
    """First entry whose cumulative sum is >= point."""
    if not ranges:
        raise ValueError("No entrants to draw from.")
    ends = [r.end_ticket for r in ranges]
    idx = bisect_left(ends, point)
    # A point at or past the final boundary (float rounding) goes to the last entry.
    if idx >= len(ranges):
        return ranges[-1]
    return ranges[idx]
