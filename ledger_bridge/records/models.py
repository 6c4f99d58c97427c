"""Canonical accounting record sent to the ledger."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)


class RecordType(str, Enum):
    """Direction of value flow relative to the account holder."""

    IN = "in"
    OUT = "out"


class TransactionKind(str, Enum):
    """Upstream transaction shapes handled by the bridge."""

    P2P = "p2p"
    PAY = "pay"
    DEPOSIT = "deposit"


def coerce_minor_units(value: Any) -> int:
    """Coerce an amount-like value already expressed in minor units to int.

    Fractional input is rounded half away from zero. Negative values,
    booleans and anything non-numeric are rejected.
    """
    if isinstance(value, bool):
        raise ValueError("amount must be numeric, got a boolean")
    if isinstance(value, int):
        units = value
    else:
        try:
            dec = Decimal(str(value).strip())
        except (InvalidOperation, ValueError) as e:
            raise ValueError(f"amount must be numeric, got {value!r}") from e
        if not dec.is_finite():
            raise ValueError(f"amount must be finite, got {value!r}")
        try:
            units = int(dec.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        except InvalidOperation as e:
            raise ValueError(f"amount out of range: {value!r}") from e
    if units < 0:
        raise ValueError("amount must be non-negative; direction is carried by type")
    return units


def _from_epoch_ms(value: int | float) -> datetime:
    try:
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as e:
        raise ValueError(f"epoch milliseconds out of range: {value!r}") from e


def coerce_timestamp(value: Any) -> datetime:
    """Parse a datetime, ISO-8601 string or epoch-milliseconds value to UTC."""
    if isinstance(value, bool):
        raise ValueError("date must be a timestamp, got a boolean")
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        dt = _from_epoch_ms(value)
    elif isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            dt = _from_epoch_ms(int(text))
        else:
            if text.endswith("Z"):
                text = text[:-1] + "+00:00"
            dt = datetime.fromisoformat(text)
    else:
        raise ValueError(f"date must be a timestamp, got {type(value).__name__}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with milliseconds, e.g. 2023-11-14T22:13:20.000Z."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


class CanonicalRecord(BaseModel):
    """One normalized transaction, in the ledger's record schema.

    Constructed once per upstream transaction and never mutated. Field
    names follow Python conventions; the ledger's camelCase names are
    aliases and are used on the wire.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    amount: int = Field(..., description="Amount in minor units (x100), never negative")
    type: RecordType = Field(..., description="Direction of value flow")
    currency: str = Field(..., min_length=1, description="Upper-case asset or currency code")
    description: str = Field(..., min_length=1, description="Human-readable origin summary")
    date: datetime = Field(..., description="When the transaction happened upstream (UTC)")
    tag: str | None = Field(default=None, description="Downstream classification slot")
    external_id: str | None = Field(
        default=None, alias="externalId", description="Deduplication key, <PREFIX>-<id>"
    )
    secondary_amount: int | None = Field(
        default=None, alias="secondaryAmount", description="Fiat leg in minor units (P2P only)"
    )
    secondary_currency: str | None = Field(
        default=None, alias="secondaryCurrency", description="Fiat leg currency (P2P only)"
    )

    @field_validator("amount", mode="before")
    @classmethod
    def _coerce_amount(cls, value: Any) -> int:
        return coerce_minor_units(value)

    @field_validator("secondary_amount", mode="before")
    @classmethod
    def _coerce_secondary_amount(cls, value: Any) -> int | None:
        if value is None:
            return None
        return coerce_minor_units(value)

    @field_validator("currency", "secondary_currency", mode="before")
    @classmethod
    def _upper_currency(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @field_validator("date", mode="before")
    @classmethod
    def _coerce_date(cls, value: Any) -> datetime:
        return coerce_timestamp(value)

    @field_serializer("amount", "secondary_amount")
    def _serialize_amount(self, value: int | None) -> str | None:
        return None if value is None else str(value)

    @field_serializer("date")
    def _serialize_date(self, value: datetime) -> str:
        return format_timestamp(value)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-ready dict sent to the ledger."""
        payload = self.model_dump(mode="json", by_alias=True)
        for key in ("externalId", "secondaryAmount", "secondaryCurrency"):
            if payload.get(key) is None:
                payload.pop(key, None)
        return payload
