from __future__ import annotations

import json
from datetime import datetime, timezone
from types import SimpleNamespace
from typing import Any, Dict

from .draw import build_ranges, find_winner
from .winner import DrawResult


def build_audit(result: DrawResult) -> Dict[str, Any]:
    return {
        "metadata": {
            "tool": "solana-raffle",
            "version": "1.0.0",
            "generated_at_utc": datetime.now(timezone.utc).isoformat(),
            "raffle_id": result.raffle_id,
            "total_tickets": result.total_tickets,
            # repr keeps every bit of the float
            "draw_point": repr(result.draw_point),
        },
        "winner": {
            "entry_id": result.winner.entry_id,
            "payment_reference": result.winner.payment_reference,
            "wallet": result.winner.wallet,
            "discord_id": result.winner.discord_id,
            "name": result.winner_name,
        },
        # Entrants in insertion order with ranges so anyone can re-run the walk.
        "all_entrants": [
            {
                "entry_id": r.entry_id,
                "payment_reference": r.payment_reference,
                "wallet": r.wallet,
                "discord_id": r.discord_id,
                "quantity": r.quantity,
                "start_ticket": r.start_ticket,
                "end_ticket": r.end_ticket,
            }
            for r in result.entrants
        ],
    }


def write_audit(result: DrawResult, path: str) -> Dict[str, Any]:
    audit = build_audit(result)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(audit, f, indent=2)
    return audit


def verify_audit(audit_path: str) -> Dict[str, Any]:
    with open(audit_path, "r", encoding="utf-8") as f:
        audit = json.load(f)

    meta = audit["metadata"]
    total_expected = int(meta["total_tickets"])
    point = float(meta["draw_point"])

    entries = [
        SimpleNamespace(
            id=e["entry_id"],
            payment_reference=e["payment_reference"],
            buyer_discord_id=e["discord_id"],
            buyer_wallet=e["wallet"],
            quantity=int(e["quantity"]),
        )
        for e in audit["all_entrants"]
    ]
    ranges, total = build_ranges(entries)
    if total != total_expected:
        raise RuntimeError(f"Total tickets mismatch: audit={total_expected} recomputed={total}")
    if not 0 <= point <= total:
        raise RuntimeError(f"Draw point {point} outside [0, {total}]")

    winner = find_winner(ranges, point)
    winner_expected = audit["winner"]["payment_reference"]
    if winner.payment_reference != winner_expected:
        raise RuntimeError(
            f"Winner mismatch: audit={winner_expected} recomputed={winner.payment_reference}"
        )

    return {
        "ok": True,
        "raffle_id": meta["raffle_id"],
        "winner": winner.wallet,
        "winning_entry": winner.payment_reference,
        "draw_point": point,
        "total_tickets": total,
    }
