"""
Wallet ↔ Discord identity linking

A wallet proves ownership by signing the link message (see
project_constants.LINK_MESSAGE_TEMPLATE) with its ed25519 key. Purchases and
winnings are credited to the linked Discord id, so a wallet must be linked
before it can buy tickets.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import base58
from solders.pubkey import Pubkey
from solders.signature import Signature
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from .errors import InvalidSignature, UsernameTaken, WalletAlreadyLinked
from .models import User, utcnow
from .project_constants import LINK_MESSAGE_HEADER, LINK_MESSAGE_TEMPLATE
from .schemas import LinkWalletRequest, ProfileUpdateRequest
from .store import Store

logger = logging.getLogger(__name__)

# Allowed clock drift for timestamps from the client's future
FUTURE_SKEW_S = 60


@dataclass(frozen=True)
class LinkResult:
    wallet: str
    discord_id: Optional[int]
    linked: bool


def build_link_message(discord_id: int, wallet: str, timestamp_ms: int) -> str:
    return LINK_MESSAGE_TEMPLATE.format(
        discord_id=discord_id, wallet=wallet, timestamp_ms=timestamp_ms
    )


def parse_link_message(message: str) -> Dict[str, str]:
    lines = message.splitlines()
    if not lines or lines[0].strip() != LINK_MESSAGE_HEADER:
        raise InvalidSignature("Unexpected verification message")
    fields: Dict[str, str] = {}
    for line in lines[1:]:
        key, sep, value = line.partition(":")
        if sep:
            fields[key.strip()] = value.strip()
    return fields


def verify_wallet_signature(wallet: str, message: str, signature_b58: str) -> bool:
    """Detached ed25519 check of ``signature_b58`` over the UTF-8 message."""
    try:
        key_bytes = base58.b58decode(wallet)
        sig_bytes = base58.b58decode(signature_b58)
    except ValueError:
        return False
    if len(key_bytes) != 32 or len(sig_bytes) != 64:
        return False
    return Signature(sig_bytes).verify(Pubkey(key_bytes), message.encode("utf-8"))


class IdentityLinker:
    def __init__(
        self,
        store: Store,
        max_age_s: int = 600,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.max_age_s = max_age_s
        self.clock = clock

    def _check_message(self, req: LinkWalletRequest) -> None:
        fields = parse_link_message(req.message)
        if fields.get("Discord ID") != str(req.discord_id):
            raise InvalidSignature("Message was signed for a different Discord ID")
        if fields.get("Wallet") != req.wallet:
            raise InvalidSignature("Message was signed for a different wallet")
        if self.max_age_s <= 0:
            return
        try:
            signed_at = int(fields.get("Timestamp", "")) / 1000.0
        except ValueError:
            raise InvalidSignature("Message has no valid timestamp")
        now = self.clock()
        if signed_at < now - self.max_age_s or signed_at > now + FUTURE_SKEW_S:
            raise InvalidSignature("Verification message expired; sign a new one")

    def link(self, req: LinkWalletRequest) -> LinkResult:
        if not verify_wallet_signature(req.wallet, req.message, req.signature):
            raise InvalidSignature()

        if req.discord_id is None:
            # Just verify signature without saving
            return LinkResult(wallet=req.wallet, discord_id=None, linked=False)

        self._check_message(req)

        try:
            with self.store.session() as s:
                by_wallet = s.execute(
                    select(User).where(User.wallet_address == req.wallet)
                ).scalars().first()
                if by_wallet is not None and by_wallet.discord_id not in (None, req.discord_id):
                    raise WalletAlreadyLinked()

                by_discord = s.execute(
                    select(User).where(User.discord_id == req.discord_id)
                ).scalars().first()
                if by_discord is not None and by_discord.wallet_address != req.wallet:
                    raise WalletAlreadyLinked("Discord user already linked to another wallet")

                now = utcnow()
                if by_wallet is None:
                    by_wallet = User(wallet_address=req.wallet, registered_at=now)
                    s.add(by_wallet)
                by_wallet.discord_id = req.discord_id
                by_wallet.linked_at = now
                by_wallet.linked_via = req.channel
                s.flush()
        except IntegrityError as e:
            # A concurrent link got there first.
            raise WalletAlreadyLinked() from e

        logger.info("Linked wallet %s to Discord %s via %s", req.wallet, req.discord_id, req.channel)
        return LinkResult(wallet=req.wallet, discord_id=req.discord_id, linked=True)

    def lookup(self, wallet: str) -> Optional[User]:
        """Linked user for a wallet, or None if it never verified."""
        user = self.store.get_user_by_wallet(wallet)
        if user is None or user.discord_id is None:
            return None
        return user

    def update_profile(self, req: ProfileUpdateRequest) -> User:
        try:
            with self.store.session() as s:
                if req.display_name:
                    taken = s.execute(
                        select(User.id).where(
                            User.display_name == req.display_name,
                            User.wallet_address != req.wallet,
                        )
                    ).first()
                    if taken is not None:
                        raise UsernameTaken()

                user = s.execute(
                    select(User).where(User.wallet_address == req.wallet)
                ).scalars().first()
                if user is None:
                    user = User(wallet_address=req.wallet, registered_at=utcnow())
                    s.add(user)
                user.display_name = req.display_name
                user.avatar_url = req.avatar_url
                s.flush()
        except IntegrityError as e:
            raise UsernameTaken() from e
        return user
