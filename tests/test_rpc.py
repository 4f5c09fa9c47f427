"""JSON-RPC client against an httpx mock transport."""

import json

import httpx
import pytest

from solana_raffle.errors import PaymentNetworkUnavailable
from solana_raffle.project_constants import SYSTEM_PROGRAM_ID
from solana_raffle.rpc import RpcClient, is_commitment_reached, parse_transaction

SIG = "4uQeVj5tqViQh7yWWGStvkEG1Zmhx6uasJtWCJziofM"
BUYER = "Buyer111111111111111111111111111111111111111"
TREASURY = "Treasury1111111111111111111111111111111111"


def transfer_ix(source, destination, lamports):
    return {
        "programId": SYSTEM_PROGRAM_ID,
        "program": "system",
        "parsed": {
            "type": "transfer",
            "info": {"source": source, "destination": destination, "lamports": lamports},
        },
    }


def parsed_tx(instructions, inner=None, err=None):
    return {
        "slot": 250_000_000,
        "meta": {
            "err": err,
            "fee": 5000,
            "preBalances": [1_000_000_000, 0, 1],
            "postBalances": [799_995_000, 200_000_000, 1],
            "innerInstructions": inner or [],
        },
        "transaction": {
            "message": {
                "accountKeys": [
                    {"pubkey": BUYER, "signer": True, "writable": True},
                    {"pubkey": TREASURY, "signer": False, "writable": True},
                    {"pubkey": SYSTEM_PROGRAM_ID, "signer": False, "writable": False},
                ],
                "instructions": instructions,
            }
        },
    }


def mock_client(status, tx=None, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        if status_code != 200:
            return httpx.Response(status_code, json={})
        if body["method"] == "getSignatureStatuses":
            return httpx.Response(
                200, json={"jsonrpc": "2.0", "id": 1, "result": {"context": {"slot": 1}, "value": [status]}}
            )
        if body["method"] == "getTransaction":
            assert body["params"][1]["encoding"] == "jsonParsed"
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": tx})
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32601}})

    return RpcClient("https://rpc.test", transport=httpx.MockTransport(handler))


def test_confirmed_transfer_is_itemised():
    rpc = mock_client(
        {"confirmationStatus": "confirmed", "err": None},
        parsed_tx([transfer_ix(BUYER, TREASURY, 200_000_000)]),
    )
    try:
        q = rpc.query_transfer(SIG)
    finally:
        rpc.close()

    assert q.found and q.confirmed and not q.failed
    assert q.parsed
    assert q.lamports_moved(BUYER, TREASURY) == 200_000_000
    assert q.balance_deltas[TREASURY] == 200_000_000
    assert q.slot == 250_000_000


def test_unknown_signature_is_not_found():
    rpc = mock_client(None)
    q = rpc.query_transfer(SIG)
    assert not q.found


def test_processed_is_below_confirmed():
    rpc = mock_client({"confirmationStatus": "processed", "err": None})
    q = rpc.query_transfer(SIG)
    assert q.found and not q.confirmed


def test_finalized_commitment_requirement():
    rpc = mock_client({"confirmationStatus": "confirmed", "err": None})
    q = rpc.query_transfer(SIG, commitment="finalized")
    assert not q.confirmed


def test_failed_status():
    rpc = mock_client({"confirmationStatus": "finalized", "err": {"InstructionError": [0, "Custom"]}})
    q = rpc.query_transfer(SIG)
    assert q.failed


def test_http_error_is_network_unavailable():
    rpc = mock_client(None, status_code=503)
    with pytest.raises(PaymentNetworkUnavailable) as exc:
        rpc.get_signature_status(SIG)
    assert exc.value.retryable


def test_rpc_error_payload_is_network_unavailable():
    def handler(request):
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "busy"}})

    rpc = RpcClient("https://rpc.test", transport=httpx.MockTransport(handler))
    with pytest.raises(PaymentNetworkUnavailable):
        rpc.get_transaction(SIG)


def test_inner_instructions_count():
    tx = parsed_tx(
        [{"programId": "SomeProgram1111111111111111111111111111111", "accounts": [], "data": ""}],
        inner=[{"index": 0, "instructions": [transfer_ix(BUYER, TREASURY, 150_000_000)]}],
    )
    q = parse_transaction(SIG, tx)
    assert q.lamports_moved(BUYER, TREASURY) == 150_000_000


def test_unparsed_transaction_keeps_balance_deltas():
    tx = parsed_tx([{"programIdIndex": 2, "accounts": [0, 1], "data": "3Bxs4h24hBtQy9rw"}])
    q = parse_transaction(SIG, tx)
    assert not q.parsed
    assert q.balance_deltas == {BUYER: -200_005_000, TREASURY: 200_000_000, SYSTEM_PROGRAM_ID: 0}


def test_meta_error_marks_failed():
    q = parse_transaction(SIG, parsed_tx([], err={"InsufficientFundsForRent": {"account_index": 0}}))
    assert q.failed


def test_commitment_levels():
    assert is_commitment_reached("finalized", "confirmed")
    assert is_commitment_reached("confirmed", "confirmed")
    assert not is_commitment_reached("processed", "confirmed")
    assert not is_commitment_reached(None, "processed")
