from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from .errors import PaymentNetworkUnavailable
from .project_constants import SYSTEM_PROGRAM_ID

# Ordered weakest to strongest
COMMITMENT_LEVELS = ("processed", "confirmed", "finalized")


@dataclass(frozen=True)
class Transfer:
    source: str
    destination: str
    lamports: int


@dataclass(frozen=True)
class TransferQuery:
    """What the network knows about one transaction signature."""

    signature: str
    found: bool
    confirmed: bool = False
    failed: bool = False
    slot: Optional[int] = None
    # Parsed System Program transfers, top level and inner instructions
    transfers: List[Transfer] = field(default_factory=list)
    # post - pre lamports per account key
    balance_deltas: Dict[str, int] = field(default_factory=dict)
    parsed: bool = False

    def lamports_moved(self, source: str, destination: str) -> int:
        return sum(
            t.lamports
            for t in self.transfers
            if t.source == source and t.destination == destination
        )


class RpcClient:
    def __init__(
        self,
        rpc_url: str,
        timeout_s: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.rpc_url = rpc_url
        self.client = httpx.Client(timeout=timeout_s, transport=transport)

    def close(self) -> None:
        self.client.close()

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            resp = self.client.post(self.rpc_url, json=payload)
            resp.raise_for_status()
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise PaymentNetworkUnavailable(f"RPC request failed: {e}") from e
        if "error" in data:
            raise PaymentNetworkUnavailable(f"RPC error: {data['error']}")
        return data

    def get_signature_status(self, signature: str) -> Optional[Dict[str, Any]]:
        """Returns the status object for a signature, or None if unknown."""
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getSignatureStatuses",
            "params": [[signature], {"searchTransactionHistory": True}],
        }
        data = self._post(payload)
        values = (data.get("result") or {}).get("value") or [None]
        return values[0]

    def get_transaction(self, signature: str, commitment: str = "confirmed") -> Optional[Dict[str, Any]]:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "getTransaction",
            "params": [
                signature,
                {
                    "encoding": "jsonParsed",
                    "commitment": commitment,
                    "maxSupportedTransactionVersion": 0,
                },
            ],
        }
        data = self._post(payload)
        return data.get("result")

    def query_transfer(self, signature: str, commitment: str = "confirmed") -> TransferQuery:
        status = self.get_signature_status(signature)
        if status is None:
            return TransferQuery(signature=signature, found=False)

        if status.get("err") is not None:
            return TransferQuery(signature=signature, found=True, confirmed=True, failed=True)

        if not is_commitment_reached(status.get("confirmationStatus"), commitment):
            return TransferQuery(signature=signature, found=True, confirmed=False)

        tx = self.get_transaction(signature, commitment=commitment)
        if tx is None:
            # Status cache and ledger can briefly disagree; treat as pending.
            return TransferQuery(signature=signature, found=True, confirmed=False)

        return parse_transaction(signature, tx)


def is_commitment_reached(actual: Optional[str], required: str) -> bool:
    if actual not in COMMITMENT_LEVELS:
        return False
    return COMMITMENT_LEVELS.index(actual) >= COMMITMENT_LEVELS.index(required)


def _account_key(key: Any) -> str:
    # jsonParsed gives {"pubkey": ..., "signer": ...}; json gives plain strings
    if isinstance(key, dict):
        return str(key.get("pubkey", ""))
    return str(key)


def _parsed_transfers(instructions: List[Dict[str, Any]]) -> List[Transfer]:
    out: List[Transfer] = []
    for ix in instructions:
        if ix.get("programId") != SYSTEM_PROGRAM_ID:
            continue
        parsed = ix.get("parsed")
        if not isinstance(parsed, dict):
            continue
        if parsed.get("type") not in ("transfer", "transferWithSeed"):
            continue
        info = parsed.get("info") or {}
        try:
            out.append(
                Transfer(
                    source=str(info["source"]),
                    destination=str(info["destination"]),
                    lamports=int(info["lamports"]),
                )
            )
        except (KeyError, TypeError, ValueError):
            continue
    return out


def parse_transaction(signature: str, tx: Dict[str, Any]) -> TransferQuery:
    """
    Extracts SOL movements from a getTransaction result.
    Note: only System Program transfers are itemised; anything else shows up
    in balance_deltas alone.
    """
    meta = tx.get("meta") or {}
    if meta.get("err") is not None:
        return TransferQuery(
            signature=signature, found=True, confirmed=True, failed=True, slot=tx.get("slot")
        )

    message = (tx.get("transaction") or {}).get("message") or {}
    instructions: List[Dict[str, Any]] = list(message.get("instructions") or [])
    for inner in meta.get("innerInstructions") or []:
        instructions.extend(inner.get("instructions") or [])

    transfers = _parsed_transfers(instructions)

    keys = [_account_key(k) for k in message.get("accountKeys") or []]
    pre = meta.get("preBalances") or []
    post = meta.get("postBalances") or []
    deltas: Dict[str, int] = {}
    if len(keys) == len(pre) == len(post):
        for key, before, after in zip(keys, pre, post):
            deltas[key] = int(after) - int(before)

    return TransferQuery(
        signature=signature,
        found=True,
        confirmed=True,
        slot=tx.get("slot"),
        transfers=transfers,
        balance_deltas=deltas,
        parsed=bool(transfers),
    )
