from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from .errors import RaffleNotFound, Unauthorized
from .models import Raffle, utcnow
from .notify import Notifier, NullNotifier
from .project_constants import RAFFLE_ACTIVE, WINNERS_PAGE_SIZE
from .schemas import CreateRaffleRequest
from .store import Store

logger = logging.getLogger(__name__)


def require_admin(wallet: Optional[str], admin_wallet: Optional[str]) -> None:
    # No configured admin means nobody is admin.
    if not wallet or not admin_wallet or wallet != admin_wallet:
        raise Unauthorized()


class RaffleAdmin:
    def __init__(
        self,
        store: Store,
        admin_wallet: Optional[str],
        notifier: Notifier | None = None,
    ) -> None:
        self.store = store
        self.admin_wallet = admin_wallet
        self.notifier = notifier or NullNotifier()

    def create_raffle(self, req: CreateRaffleRequest) -> Raffle:
        require_admin(req.wallet, self.admin_wallet)
        raffle = self.store.insert_raffle(
            Raffle(
                prize_name=req.prize_name,
                prize_image_url=req.prize_image_url,
                prize_type=req.prize_type,
                prize_amount=req.prize_amount,
                ticket_price_lamports=req.ticket_price_lamports,
                end_time=req.end_time,
                status=RAFFLE_ACTIVE,
                total_tickets=0,
                created_at=utcnow(),
            )
        )
        logger.info("Created raffle %d (%s), ends %s", raffle.id, raffle.prize_name, raffle.end_time)
        try:
            self.notifier.raffle_created(raffle)
        except Exception:
            logger.exception("Raffle %d created but notification failed", raffle.id)
        return raffle

    def close_expired(self, now: datetime | None = None) -> int:
        """Flip every active raffle past its end time to ended. Idempotent."""
        closed = self.store.close_expired(now or utcnow())
        if closed:
            logger.info("Closed %d expired raffle(s)", closed)
        return closed

    def force_end(self, raffle_id: int, wallet: Optional[str]) -> bool:
        require_admin(wallet, self.admin_wallet)
        if self.store.get_raffle(raffle_id) is None:
            raise RaffleNotFound(f"Raffle {raffle_id} not found")
        ended = self.store.force_end(raffle_id)
        if ended:
            logger.info("Raffle %d force-ended", raffle_id)
        return ended

    def get(self, raffle_id: int) -> Raffle:
        raffle = self.store.get_raffle(raffle_id)
        if raffle is None:
            raise RaffleNotFound(f"Raffle {raffle_id} not found")
        return raffle

    def list_active(self, now: datetime | None = None) -> Dict[str, Any]:
        self.close_expired(now)
        raffles = self.store.list_raffles(status=RAFFLE_ACTIVE)
        return {"raffles": raffles, "stats": self.store.stats()}

    def list_winners(self, limit: int = WINNERS_PAGE_SIZE) -> List[Raffle]:
        return self.store.list_winners(limit)
