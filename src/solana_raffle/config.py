from __future__ import annotations

import os
from dataclasses import dataclass
from dotenv import load_dotenv

from .project_constants import DEFAULT_APP_URL, DEFAULT_DATABASE_URL, DEFAULT_RPC_URL


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_str(name: str) -> str | None:
    return os.getenv(name, "").strip() or None


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    database_url: str = DEFAULT_DATABASE_URL
    treasury_address: str | None = None
    admin_wallet: str | None = None
    discord_webhook_url: str | None = None
    app_url: str = DEFAULT_APP_URL
    rpc_commitment: str = "confirmed"
    rpc_timeout_s: float = 30.0
    strict_payment_check: bool = True
    link_message_max_age_s: int = 600

    @staticmethod
    def from_env(
        rpc_url_override: str | None = None,
        database_url_override: str | None = None,
    ) -> "Settings":
        load_dotenv()

        return Settings(
            rpc_url=rpc_url_override or _rpc_url_from_env(),
            database_url=normalize_database_url(
                database_url_override or _env_str("DATABASE_URL") or DEFAULT_DATABASE_URL
            ),
            treasury_address=_env_str("TREASURY_ADDRESS"),
            admin_wallet=_env_str("ADMIN_WALLET"),
            discord_webhook_url=_env_str("DISCORD_WEBHOOK_URL"),
            app_url=_env_str("APP_URL") or DEFAULT_APP_URL,
            rpc_commitment=_env_str("RPC_COMMITMENT") or "confirmed",
            rpc_timeout_s=float(_env_str("RPC_TIMEOUT_S") or 30.0),
            strict_payment_check=_env_bool("STRICT_PAYMENT_CHECK", True),
            link_message_max_age_s=int(_env_str("LINK_MESSAGE_MAX_AGE_S") or 600),
        )


def _rpc_url_from_env() -> str:
    # RPC_URL wins, else build helius url from key, else the public endpoint.
    env_rpc = _env_str("RPC_URL")
    if env_rpc:
        return env_rpc

    helius_key = _env_str("HELIUS_API_KEY")
    if helius_key:
        return f"https://mainnet.helius-rpc.com/?api-key={helius_key}"

    return DEFAULT_RPC_URL


def normalize_database_url(url: str) -> str:
    # Heroku/Railway style URLs are not accepted by SQLAlchemy 1.4+
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url
