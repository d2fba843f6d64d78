"""
SnapAdmin Data Models

Transient, per-request views over SnapTrade payloads. Nothing here is
persisted; upstream bodies are kept as-is in ``raw`` fields.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


# === Enums ===

class ProcessRole(str, Enum):
    """Children started by the dev supervisor."""
    BACKEND = "backend"
    FRONTEND = "frontend"


class SecretStoreKind(str, Enum):
    """Backends available for userId → userSecret storage."""
    MEMORY = "memory"
    POSTGRES = "postgres"


# === Holdings ===

class PositionRecord(BaseModel):
    """
    Display view of one position.

    Every field resolves: strings fall back to "" and numbers to None,
    whatever shape the connector returned.
    """
    ticker: str = Field(default="", description="Ticker symbol, e.g. AAPL")
    security_name: str = Field(default="", description="Security or company name")
    quantity: Any = Field(default=None, description="Units held, as returned upstream")
    price: Any = Field(default=None, description="Price per unit, as returned upstream")


class NormalizedHoldingsResult(BaseModel):
    """Holdings payload reduced to the lists the console renders."""
    positions: list[Any] = Field(default_factory=list)
    accounts: list[Any] = Field(default_factory=list)
    raw: Any = Field(default=None, description="Original upstream payload")

    @field_validator("positions", "accounts", mode="before")
    @classmethod
    def coerce_to_list(cls, v: Any) -> list[Any]:
        """Anything that is not a list becomes an empty list."""
        return v if isinstance(v, list) else []


# === Users ===

class UserRecord(BaseModel):
    """A SnapTrade user as listed by the admin API."""
    userId: str
    userSecret: str | None = None
