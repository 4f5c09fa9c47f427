from __future__ import annotations

import logging

from .errors import RaffleClosed, RaffleNotFound
from .models import Entry, Raffle, utcnow
from .payments import PaymentVerifier, VerifiedPayment
from .schemas import PurchaseRequest
from .store import Store

logger = logging.getLogger(__name__)


class EntryRecorder:
    """Persists verified purchases exactly once per payment reference."""

    def __init__(self, store: Store) -> None:
        self.store = store

    def record(self, payment: VerifiedPayment) -> Entry:
        """
        Insert the entry and bump the raffle's ticket count in one transaction.

        Raises DuplicatePayment when the reference is already recorded (the
        unique constraint rejects the insert), RaffleNotFound / RaffleClosed
        when the raffle can no longer take tickets. Either way nothing is
        written.
        """
        entry = Entry(
            raffle_id=payment.raffle_id,
            buyer_discord_id=payment.buyer_discord_id,
            buyer_wallet=payment.buyer_wallet,
            quantity=payment.quantity,
            payment_reference=payment.payment_reference,
            amount_paid_lamports=payment.amount_lamports,
            purchased_at=utcnow(),
            channel=payment.channel,
        )
        with self.store.session() as s:
            self.store.insert_entry(s, entry)
            if not self.store.increment_ticket_count(s, payment.raffle_id, payment.quantity):
                # Roll back the insert too.
                if s.get(Raffle, payment.raffle_id) is None:
                    raise RaffleNotFound(f"Raffle {payment.raffle_id} not found")
                raise RaffleClosed(f"Raffle {payment.raffle_id} has ended")

        logger.info(
            "Recorded %d tickets for %s in raffle %d (payment %s)",
            payment.quantity,
            payment.buyer_discord_id,
            payment.raffle_id,
            payment.payment_reference,
        )
        return entry

    def purchase(self, verifier: PaymentVerifier, req: PurchaseRequest) -> Entry:
        return self.record(verifier.verify(req))

    def reconcile(self, raffle_id: int) -> int:
        if self.store.get_raffle(raffle_id) is None:
            raise RaffleNotFound(f"Raffle {raffle_id} not found")
        total = self.store.reconcile_ticket_count(raffle_id)
        logger.info("Raffle %d ticket count reconciled to %d", raffle_id, total)
        return total
