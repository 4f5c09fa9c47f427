"""
Request schemas

Every payload that reaches the raffle core is parsed into one of these models
first. Amounts arrive as SOL decimals and are converted to lamports here, so
the core only ever sees integers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional, Type, TypeVar

import base58
from pydantic import BaseModel, Field, ValidationError, field_validator

from .errors import InvalidRequest
from .project_constants import (
    AIRDROP_BATCH_LIMIT,
    DEFAULT_CHANNEL,
    LAMPORTS_PER_SOL,
    PRIZE_TYPES,
)

M = TypeVar("M", bound=BaseModel)


def to_lamports(sol: Decimal) -> int:
    lamports = sol * LAMPORTS_PER_SOL
    if lamports != lamports.to_integral_value():
        raise ValueError(f"{sol} SOL is not a whole number of lamports")
    return int(lamports)


def is_wallet_address(value: str) -> bool:
    try:
        return len(base58.b58decode(value)) == 32
    except ValueError:
        return False


def _check_wallet(value: str) -> str:
    value = value.strip()
    if not is_wallet_address(value):
        raise ValueError("not a base58 Solana public key")
    return value


def parse_request(model: Type[M], payload: Dict[str, Any]) -> M:
    """Validate a raw payload, raising InvalidRequest on bad input."""
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequest(str(e)) from e


class CreateRaffleRequest(BaseModel):
    wallet: str = Field(..., description="Admin wallet performing the action")
    prize_name: str = Field(..., min_length=1, max_length=200)
    prize_image_url: Optional[str] = Field(None, max_length=500)
    prize_type: str = Field("sol", description="sol | nft | token")
    prize_amount: Decimal = Field(Decimal(0), ge=0)
    ticket_price: Decimal = Field(..., gt=0, description="Ticket price in SOL")
    end_time: datetime

    @field_validator("prize_type")
    @classmethod
    def _prize_type(cls, v: str) -> str:
        v = v.lower()
        if v not in PRIZE_TYPES:
            raise ValueError(f"prize_type must be one of {', '.join(PRIZE_TYPES)}")
        return v

    @field_validator("end_time")
    @classmethod
    def _naive_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is not None:
            v = v.astimezone(timezone.utc).replace(tzinfo=None)
        return v

    @field_validator("ticket_price")
    @classmethod
    def _whole_lamports(cls, v: Decimal) -> Decimal:
        to_lamports(v)
        return v

    @property
    def ticket_price_lamports(self) -> int:
        return to_lamports(self.ticket_price)


class PurchaseRequest(BaseModel):
    raffle_id: int = Field(..., ge=1)
    wallet: str = Field(..., description="Paying wallet")
    signature: str = Field(..., min_length=1, max_length=128, description="Transaction signature")
    quantity: int = Field(..., ge=1)
    amount: Decimal = Field(..., gt=0, description="Total paid in SOL")
    channel: str = Field(DEFAULT_CHANNEL, max_length=32)

    @field_validator("wallet")
    @classmethod
    def _wallet(cls, v: str) -> str:
        return _check_wallet(v)

    @field_validator("amount")
    @classmethod
    def _whole_lamports(cls, v: Decimal) -> Decimal:
        to_lamports(v)
        return v

    @property
    def amount_lamports(self) -> int:
        return to_lamports(self.amount)


class LinkWalletRequest(BaseModel):
    wallet: str
    signature: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    discord_id: Optional[int] = Field(None, ge=1)
    channel: str = Field(DEFAULT_CHANNEL, max_length=32)

    @field_validator("wallet")
    @classmethod
    def _wallet(cls, v: str) -> str:
        return _check_wallet(v)


class ProfileUpdateRequest(BaseModel):
    wallet: str
    display_name: Optional[str] = Field(None, min_length=1, max_length=64)
    avatar_url: Optional[str] = Field(None, max_length=500)

    @field_validator("wallet")
    @classmethod
    def _wallet(cls, v: str) -> str:
        return _check_wallet(v)


class PickWinnerRequest(BaseModel):
    raffle_id: int = Field(..., ge=1)
    wallet: str


class AirdropPlanRequest(BaseModel):
    amount: Decimal = Field(..., gt=0, description="SOL per recipient")
    batch_size: int = Field(AIRDROP_BATCH_LIMIT, ge=1)

    @field_validator("amount")
    @classmethod
    def _whole_lamports(cls, v: Decimal) -> Decimal:
        to_lamports(v)
        return v
