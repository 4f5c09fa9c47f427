from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Protocol

import httpx

from .draw import to_sol
from .models import Raffle
from .project_constants import DEFAULT_APP_URL

logger = logging.getLogger(__name__)

PURPLE = 0x9333EA
EMERALD = 0x10B981
BLUE = 0x3B82F6


class Notifier(Protocol):
    def raffle_created(self, raffle: Raffle) -> None: ...

    def raffle_ended(self, raffle: Raffle, winner_wallet: str, winner_name: str) -> None: ...

    def airdrop_sent(
        self, amount: str, token_type: str, recipient_count: int, signature: str
    ) -> None: ...


class NullNotifier:
    """Used when no webhook is configured."""

    def raffle_created(self, raffle: Raffle) -> None:
        logger.debug("No webhook configured; raffle %d created", raffle.id)

    def raffle_ended(self, raffle: Raffle, winner_wallet: str, winner_name: str) -> None:
        logger.debug("No webhook configured; raffle %d won by %s", raffle.id, winner_wallet)

    def airdrop_sent(
        self, amount: str, token_type: str, recipient_count: int, signature: str
    ) -> None:
        logger.debug("No webhook configured; airdrop %s sent", signature)


def _prize_label(raffle: Raffle) -> str:
    if raffle.prize_type == "sol":
        return f"{raffle.prize_amount} SOL"
    return "NFT/Token"


class DiscordNotifier:
    """Posts embeds to a Discord webhook. Failures are logged, never raised."""

    def __init__(
        self,
        webhook_url: str,
        app_url: str = DEFAULT_APP_URL,
        timeout_s: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.app_url = app_url.rstrip("/")
        self.client = httpx.Client(timeout=timeout_s, transport=transport)

    def close(self) -> None:
        self.client.close()

    def send(self, embed: Dict[str, Any]) -> bool:
        try:
            resp = self.client.post(self.webhook_url, json={"embeds": [embed]})
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Failed to send webhook: %s", e)
            return False
        return True

    def raffle_created(self, raffle: Raffle) -> None:
        embed: Dict[str, Any] = {
            "title": "🎉 New Raffle Created!",
            "description": f"**{raffle.prize_name}**",
            "color": PURPLE,
            "fields": [
                {
                    "name": "🎟️ Ticket Price",
                    "value": f"{to_sol(raffle.ticket_price_lamports)} SOL",
                    "inline": True,
                },
                {"name": "🏆 Prize", "value": _prize_label(raffle), "inline": True},
                {
                    "name": "⏰ Ends In",
                    "value": f"<t:{int(raffle.end_time.replace(tzinfo=timezone.utc).timestamp())}:R>",
                    "inline": False,
                },
                {
                    "name": "🔗 Join Now",
                    "value": f"[Click to Buy Tickets]({self.app_url}/raffles/{raffle.id})",
                    "inline": False,
                },
            ],
            "footer": {"text": "Solana Raffle System"},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if raffle.prize_image_url:
            embed["image"] = {"url": raffle.prize_image_url}
        self.send(embed)

    def raffle_ended(self, raffle: Raffle, winner_wallet: str, winner_name: str) -> None:
        embed: Dict[str, Any] = {
            "title": "🎊 Raffle Ended!",
            "description": f"The raffle for **{raffle.prize_name}** has ended.",
            "color": EMERALD,
            "fields": [
                {"name": "🏆 Winner", "value": f"{winner_name}\n`{winner_wallet}`", "inline": False},
                {"name": "🎟️ Total Tickets Sold", "value": str(raffle.total_tickets), "inline": True},
            ],
            "footer": {"text": "Congratulations!"},
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if raffle.prize_image_url:
            embed["thumbnail"] = {"url": raffle.prize_image_url}
        self.send(embed)

    def airdrop_sent(
        self, amount: str, token_type: str, recipient_count: int, signature: str
    ) -> None:
        self.send(
            {
                "title": "🚀 Airdrop Sent!",
                "description": "An airdrop has been successfully distributed.",
                "color": BLUE,
                "fields": [
                    {"name": "💰 Amount", "value": f"{amount} {token_type.upper()}", "inline": True},
                    {"name": "👥 Recipients", "value": f"{recipient_count} Users", "inline": True},
                    {
                        "name": "🔗 Transaction",
                        "value": f"[View on Solscan](https://solscan.io/tx/{signature})",
                        "inline": False,
                    },
                ],
                "footer": {"text": "Solana Airdrop System"},
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        )
