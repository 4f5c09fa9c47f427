from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import List, Optional

from .draw import EntryRange, RandomSource, build_ranges, draw_point, find_winner
from .errors import NoEntries, RaffleNotFound, WinnerAlreadyPicked
from .models import utcnow
from .notify import Notifier, NullNotifier
from .raffles import require_admin
from .store import Store

logger = logging.getLogger(__name__)

UNKNOWN_WINNER_NAME = "Unknown User"


@dataclass(frozen=True)
class DrawResult:
    raffle_id: int
    winner: EntryRange
    winner_name: str
    draw_point: float
    total_tickets: int
    entrants: List[EntryRange]


class WinnerSelector:
    """
    Weighted winner selection: each entry wins with probability
    quantity / total. The winner is committed with a compare-and-set, so two
    concurrent picks can never both succeed.
    """

    def __init__(
        self,
        store: Store,
        admin_wallet: Optional[str],
        notifier: Notifier | None = None,
        rng: RandomSource | None = None,
    ) -> None:
        self.store = store
        self.admin_wallet = admin_wallet
        self.notifier = notifier or NullNotifier()
        self.rng = rng or random.SystemRandom()

    def pick_winner(self, raffle_id: int, wallet: Optional[str]) -> DrawResult:
        require_admin(wallet, self.admin_wallet)

        raffle = self.store.get_raffle(raffle_id)
        if raffle is None:
            raise RaffleNotFound(f"Raffle {raffle_id} not found")
        if raffle.has_winner:
            raise WinnerAlreadyPicked()

        # Stop sales before reading entries; the recorder only counts tickets
        # on active raffles, so nothing can be credited after this point.
        if self.store.force_end(raffle_id):
            logger.info("Raffle %d closed for the draw", raffle_id)
        # Ticket count is final now; the notification reports it.
        raffle = self.store.get_raffle(raffle_id) or raffle

        entries = self.store.list_entries(raffle_id)
        if not entries:
            raise NoEntries()

        ranges, total = build_ranges(entries)
        point = draw_point(total, self.rng)
        winner = find_winner(ranges, point)

        logger.info("🎲 Drawing raffle %d", raffle_id)
        logger.info("   Total tickets: %d", total)
        logger.info("   Entrants     : %d", len(ranges))
        logger.info("   Draw point   : %r", point)

        user = self.store.get_user_by_wallet(winner.wallet)
        winner_name = (user.display_name if user else None) or UNKNOWN_WINNER_NAME

        if not self.store.set_winner(raffle_id, winner.wallet, winner.discord_id, utcnow()):
            # Someone else committed between our read and our write.
            raise WinnerAlreadyPicked()

        logger.info(
            "Raffle %d won by %s (%s) with entry %s",
            raffle_id,
            winner_name,
            winner.wallet,
            winner.payment_reference,
        )

        try:
            self.notifier.raffle_ended(raffle, winner.wallet, winner_name)
        except Exception:
            logger.exception("Winner for raffle %d committed but notification failed", raffle_id)

        return DrawResult(
            raffle_id=raffle_id,
            winner=winner,
            winner_name=winner_name,
            draw_point=point,
            total_tickets=total,
            entrants=ranges,
        )
