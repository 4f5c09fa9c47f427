"""
Payment verification

Decides whether a buyer's claim ("I paid X lamports with signature S for
raffle R") is trustworthy enough to credit. Nothing here writes to the store;
a VerifiedPayment is handed straight to the EntryRecorder.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from .errors import (
    DuplicatePayment,
    PaymentMismatch,
    PaymentNotConfirmed,
    RaffleClosed,
    RaffleNotFound,
    WalletNotLinked,
)
from .models import Raffle, utcnow
from .project_constants import DEFAULT_CHANNEL, RAFFLE_ACTIVE
from .rpc import TransferQuery
from .schemas import PurchaseRequest
from .store import Store

logger = logging.getLogger(__name__)


class PaymentNetwork(Protocol):
    def query_transfer(self, signature: str, commitment: str = "confirmed") -> TransferQuery: ...


@dataclass(frozen=True)
class VerifiedPayment:
    raffle_id: int
    payment_reference: str
    amount_lamports: int
    quantity: int
    buyer_wallet: str
    buyer_discord_id: int
    channel: str = DEFAULT_CHANNEL


def is_open(raffle: Raffle) -> bool:
    return raffle.status == RAFFLE_ACTIVE and raffle.end_time > utcnow()


class PaymentVerifier:
    def __init__(
        self,
        store: Store,
        network: PaymentNetwork,
        treasury_address: str,
        commitment: str = "confirmed",
        strict: bool = True,
    ) -> None:
        self.store = store
        self.network = network
        self.treasury_address = treasury_address
        self.commitment = commitment
        self.strict = strict

    def verify(self, req: PurchaseRequest) -> VerifiedPayment:
        # 1. Replay fast path. The unique insert is what actually guards it.
        if self.store.payment_reference_exists(req.signature):
            raise DuplicatePayment()

        raffle = self.store.get_raffle(req.raffle_id)
        if raffle is None:
            raise RaffleNotFound(f"Raffle {req.raffle_id} not found")
        if not is_open(raffle):
            raise RaffleClosed(f"Raffle {raffle.id} has ended")

        claimed = req.amount_lamports
        due = raffle.ticket_price_lamports * req.quantity
        if claimed < due:
            raise PaymentMismatch(
                f"Claimed {claimed} lamports is below {req.quantity} x "
                f"{raffle.ticket_price_lamports} lamports"
            )

        user = self.store.get_user_by_wallet(req.wallet)
        if user is None or user.discord_id is None:
            raise WalletNotLinked()

        # 2. Existence / confirmation
        query = self.network.query_transfer(req.signature, commitment=self.commitment)
        if not query.found or not query.confirmed:
            logger.info("Payment %s not confirmed yet (found=%s)", req.signature, query.found)
            raise PaymentNotConfirmed()
        if query.failed:
            raise PaymentMismatch("Transaction failed on-chain")

        # 3. Correctness
        self._check_amount(req, query, claimed)

        logger.info(
            "Verified payment %s: %d lamports from %s for raffle %d (%d tickets)",
            req.signature,
            claimed,
            req.wallet,
            raffle.id,
            req.quantity,
        )
        return VerifiedPayment(
            raffle_id=raffle.id,
            payment_reference=req.signature,
            amount_lamports=claimed,
            quantity=req.quantity,
            buyer_wallet=req.wallet,
            buyer_discord_id=user.discord_id,
            channel=req.channel,
        )

    def _check_amount(self, req: PurchaseRequest, query: TransferQuery, claimed: int) -> None:
        if query.parsed:
            moved = query.lamports_moved(req.wallet, self.treasury_address)
            if moved < claimed:
                raise PaymentMismatch(
                    f"Transaction moved {moved} lamports from {req.wallet} to the "
                    f"treasury, claimed {claimed}"
                )
            return

        # No parsed transfer instruction: fall back to balance deltas.
        received = query.balance_deltas.get(self.treasury_address)
        sent = query.balance_deltas.get(req.wallet)
        if received is not None and sent is not None:
            # The payer also covers the fee, so it may have lost more than claimed.
            if received < claimed or -sent < claimed:
                raise PaymentMismatch(
                    f"Treasury received {received} lamports, payer sent {-sent}, "
                    f"claimed {claimed}"
                )
            return

        if self.strict:
            raise PaymentMismatch("Transaction could not be cross-checked against the treasury")
        logger.warning(
            "Payment %s could not be cross-checked (no transfer or balances); "
            "crediting on trust because strict payment check is off",
            req.signature,
        )
