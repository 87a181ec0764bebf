from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _parse_timestamp(v: Any) -> datetime | None:
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v
    try:
        return datetime.fromisoformat(v.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


class BetStatus(str, Enum):
    PENDING = "pending"
    SUCCESSFUL = "successful"
    FAILED = "failed"


class WireModel(BaseModel):
    """Base for server entities. Numeric ids on the wire become strings."""

    model_config = ConfigDict(coerce_numbers_to_str=True, frozen=True)


class Account(WireModel):
    id: str
    name: str = ""
    hostname: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def parse_time(cls, v: Any) -> datetime | None:
        return _parse_timestamp(v)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Account:
        return cls(
            id=data.get("id", data.get("pk")),
            name=data.get("name", ""),
            hostname=data.get("hostname", ""),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


class Bet(WireModel):
    pid: str
    id: str = ""
    batch_id: str
    selection: str = ""
    stake: float = 0.0
    cost: float = 0.0
    status: BetStatus = BetStatus.PENDING

    @classmethod
    def from_api(cls, data: dict[str, Any], batch_id: str | int | None = None) -> Bet:
        return cls(
            pid=data["pid"],
            id=data.get("id", ""),
            batch_id=data.get("batch_id", batch_id),
            selection=data.get("selection", ""),
            stake=data.get("stake", 0.0),
            cost=data.get("cost", 0.0),
            status=data.get("status", BetStatus.PENDING),
        )

    def with_status(self, status: BetStatus) -> Bet:
        return self.model_copy(update={"status": status})


class Batch(WireModel):
    id: str
    account_id: str
    meta: dict[str, Any] = Field(default_factory=dict)
    completed: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    bets: tuple[Bet, ...] = ()

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def parse_time(cls, v: Any) -> datetime | None:
        return _parse_timestamp(v)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Batch:
        batch_id = data.get("id", data.get("pk"))
        return cls(
            id=batch_id,
            account_id=data["account_id"],
            meta=data.get("meta") or {},
            completed=bool(data.get("completed", False)),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
            bets=tuple(Bet.from_api(b, batch_id) for b in data.get("bets") or []),
        )

    def get_bet(self, pid: str) -> Bet | None:
        for bet in self.bets:
            if bet.pid == pid:
                return bet
        return None

    @property
    def pending_count(self) -> int:
        return sum(1 for bet in self.bets if bet.status == BetStatus.PENDING)


class NewBet(BaseModel):
    """Bet line submitted when creating a batch."""

    id: int
    selection: str
    stake: float
    cost: float
