"""Entry recording: exactly-once per payment reference, counter conservation."""

import random
from datetime import timedelta
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import update

from conftest import TICKET_PRICE_LAMPORTS, make_raffle
from solana_raffle.entries import EntryRecorder
from solana_raffle.errors import DuplicatePayment, RaffleClosed, RaffleNotFound
from solana_raffle.models import Raffle, utcnow
from solana_raffle.payments import VerifiedPayment


def payment(raffle_id, ref, quantity=1, discord_id=111, wallet="BuyerWallet"):
    return VerifiedPayment(
        raffle_id=raffle_id,
        payment_reference=ref,
        amount_lamports=quantity * TICKET_PRICE_LAMPORTS,
        quantity=quantity,
        buyer_wallet=wallet,
        buyer_discord_id=discord_id,
    )


def test_record_inserts_entry_and_bumps_count(store):
    raffle = make_raffle(store)
    entry = EntryRecorder(store).record(payment(raffle.id, "sig-1", quantity=3))

    assert entry.id is not None
    assert store.get_raffle(raffle.id).total_tickets == 3
    assert [e.payment_reference for e in store.list_entries(raffle.id)] == ["sig-1"]


def test_same_reference_twice_is_rejected(store):
    raffle = make_raffle(store)
    recorder = EntryRecorder(store)
    recorder.record(payment(raffle.id, "sig-1", quantity=2))

    with pytest.raises(DuplicatePayment):
        recorder.record(payment(raffle.id, "sig-1", quantity=2))

    assert len(store.list_entries(raffle.id)) == 1
    assert store.get_raffle(raffle.id).total_tickets == 2


def test_reference_is_unique_across_raffles(store):
    first = make_raffle(store)
    second = make_raffle(store)
    recorder = EntryRecorder(store)
    recorder.record(payment(first.id, "sig-1"))

    with pytest.raises(DuplicatePayment):
        recorder.record(payment(second.id, "sig-1"))
    assert store.get_raffle(second.id).total_tickets == 0


def test_ended_raffle_rolls_back_entry(store):
    raffle = make_raffle(store, status="ended")

    with pytest.raises(RaffleClosed):
        EntryRecorder(store).record(payment(raffle.id, "sig-1"))
    assert store.list_entries(raffle.id) == []
    assert not store.payment_reference_exists("sig-1")


def test_expired_but_unswept_raffle_is_closed(store):
    raffle = make_raffle(store, end_time=utcnow() - timedelta(hours=1))
    assert store.get_raffle(raffle.id).status == "active"

    with pytest.raises(RaffleClosed):
        EntryRecorder(store).record(payment(raffle.id, "sig-late"))
    assert store.get_raffle(raffle.id).total_tickets == 0
    assert not store.payment_reference_exists("sig-late")


def test_missing_raffle(store):
    with pytest.raises(RaffleNotFound):
        EntryRecorder(store).record(payment(999, "sig-1"))
    assert not store.payment_reference_exists("sig-1")


def test_concurrent_duplicate_submissions_credit_once(store):
    raffle = make_raffle(store)
    recorder = EntryRecorder(store)

    def submit(_):
        try:
            recorder.record(payment(raffle.id, "same-sig", quantity=4))
            return "ok"
        except DuplicatePayment:
            return "dup"

    with ThreadPoolExecutor(max_workers=8) as pool:
        outcomes = list(pool.map(submit, range(8)))

    assert outcomes.count("ok") == 1
    assert outcomes.count("dup") == 7
    assert store.get_raffle(raffle.id).total_tickets == 4
    assert len(store.list_entries(raffle.id)) == 1


def test_concurrent_purchases_conserve_ticket_count(store):
    raffle = make_raffle(store)
    recorder = EntryRecorder(store)
    rng = random.Random(42)
    payments = [payment(raffle.id, f"sig-{i}", quantity=rng.randint(1, 20)) for i in range(40)]

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(recorder.record, payments))

    expected = sum(p.quantity for p in payments)
    assert store.sum_quantities(raffle.id) == expected
    assert store.get_raffle(raffle.id).total_tickets == expected


def test_reconcile_heals_lagging_count(store):
    raffle = make_raffle(store)
    recorder = EntryRecorder(store)
    recorder.record(payment(raffle.id, "sig-1", quantity=2))
    recorder.record(payment(raffle.id, "sig-2", quantity=5))

    # entry recorded, count not incremented
    with store.session() as s:
        s.execute(update(Raffle).where(Raffle.id == raffle.id).values(total_tickets=2))

    assert recorder.reconcile(raffle.id) == 7
    assert store.get_raffle(raffle.id).total_tickets == 7
    # already consistent: nothing changes
    assert recorder.reconcile(raffle.id) == 7


def test_reconcile_unknown_raffle(store):
    with pytest.raises(RaffleNotFound):
        EntryRecorder(store).reconcile(42)
