from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List

from .project_constants import AIRDROP_BATCH_LIMIT
from .schemas import is_wallet_address, to_lamports

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AirdropBatch:
    index: int
    recipients: List[str]
    lamports_each: int

    @property
    def total_lamports(self) -> int:
        return self.lamports_each * len(self.recipients)


def load_wallet_list(path: str) -> List[str]:
    """One wallet per line; '#' comments and blanks skipped, duplicates dropped."""
    out: List[str] = []
    seen = set()
    with open(path, "r", encoding="utf-8") as f:
        for lineno, line in enumerate(f, start=1):
            w = line.strip()
            if not w or w.startswith("#"):
                continue
            if not is_wallet_address(w):
                logger.warning("Skipping invalid wallet on line %d: %r", lineno, w)
                continue
            if w in seen:
                continue
            seen.add(w)
            out.append(w)
    return out


def plan_airdrop(
    wallets: List[str],
    amount_sol: Decimal,
    batch_size: int = AIRDROP_BATCH_LIMIT,
) -> List[AirdropBatch]:
    if amount_sol <= 0:
        raise ValueError("Airdrop amount must be positive")
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    lamports = to_lamports(amount_sol)
    return [
        AirdropBatch(index=i // batch_size, recipients=wallets[i : i + batch_size], lamports_each=lamports)
        for i in range(0, len(wallets), batch_size)
    ]
