"""Shared fixtures: a throwaway SQLite ledger, wallets and fake collaborators."""

from datetime import timedelta
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest
from solders.keypair import Keypair

from solana_raffle.entries import EntryRecorder
from solana_raffle.models import Raffle, User, utcnow
from solana_raffle.payments import VerifiedPayment
from solana_raffle.rpc import Transfer, TransferQuery
from solana_raffle.store import Store

LAMPORTS = 10**9
TICKET_PRICE_LAMPORTS = LAMPORTS // 10  # 0.1 SOL


def new_wallet() -> str:
    return str(Keypair().pubkey())


@pytest.fixture
def store(tmp_path):
    s = Store(f"sqlite:///{tmp_path / 'raffle.sqlite3'}")
    s.create_all()
    yield s
    s.close()


@pytest.fixture
def admin_wallet():
    return new_wallet()


@pytest.fixture
def treasury():
    return new_wallet()


def make_raffle(store: Store, **overrides) -> Raffle:
    fields = dict(
        prize_name="Mad Lads #1234",
        prize_type="nft",
        ticket_price_lamports=TICKET_PRICE_LAMPORTS,
        end_time=utcnow() + timedelta(days=1),
        status="active",
        total_tickets=0,
    )
    fields.update(overrides)
    return store.insert_raffle(Raffle(**fields))


def make_user(store: Store, wallet: str, discord_id: Optional[int], display_name: Optional[str] = None) -> User:
    with store.session() as s:
        user = User(wallet_address=wallet, discord_id=discord_id, display_name=display_name)
        s.add(user)
    return user


def fake_entry(id, quantity, ref=None, wallet="wallet", discord_id=None):
    return SimpleNamespace(
        id=id,
        quantity=quantity,
        payment_reference=ref or f"tx{id}",
        buyer_wallet=wallet,
        buyer_discord_id=discord_id,
    )


def paid(signature: str, source: str, destination: str, lamports: int) -> TransferQuery:
    return TransferQuery(
        signature=signature,
        found=True,
        confirmed=True,
        transfers=[Transfer(source=source, destination=destination, lamports=lamports)],
        parsed=True,
    )


class FakeNetwork:
    """Answers query_transfer from a dict; unknown signatures are not found."""

    def __init__(self, queries: Optional[Dict[str, TransferQuery]] = None) -> None:
        self.queries = dict(queries or {})
        self.calls: List[str] = []

    def query_transfer(self, signature: str, commitment: str = "confirmed") -> TransferQuery:
        self.calls.append(signature)
        return self.queries.get(signature, TransferQuery(signature=signature, found=False))


class RecordingNotifier:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.events: List[tuple] = []

    def _emit(self, *event) -> None:
        self.events.append(event)
        if self.fail:
            raise RuntimeError("webhook down")

    def raffle_created(self, raffle) -> None:
        self._emit("created", raffle.id)

    def raffle_ended(self, raffle, winner_wallet, winner_name) -> None:
        self._emit("ended", raffle.id, winner_wallet, winner_name)

    def airdrop_sent(self, amount, token_type, recipient_count, signature) -> None:
        self._emit("airdrop", amount, token_type, recipient_count, signature)


class FixedRandom:
    """Always draws the same point, whatever the bounds."""

    def __init__(self, point: float) -> None:
        self.point = point

    def uniform(self, a: float, b: float) -> float:
        return self.point


def seed_entries(store: Store, raffle_id: int, quantities: List[int]) -> List[str]:
    """Record one entry per quantity (refs tx1, tx2, ...); returns buyer wallets."""
    recorder = EntryRecorder(store)
    wallets = []
    for i, q in enumerate(quantities, start=1):
        wallet = new_wallet()
        wallets.append(wallet)
        recorder.record(
            VerifiedPayment(
                raffle_id=raffle_id,
                payment_reference=f"tx{i}",
                amount_lamports=q * TICKET_PRICE_LAMPORTS,
                quantity=q,
                buyer_wallet=wallet,
                buyer_discord_id=1000 + i,
            )
        )
    return wallets
