"""Stream wire records and canonical event types.

Raw ``ServerSentEvent`` messages come off the transport. The decoder turns
each into exactly one canonical event below; nothing past the decoder ever
sees wire payload variance.
"""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict

from betsync.services.betting.models import Account, Batch, BetStatus


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class ServerSentEvent(BaseModel):
    """One dispatched SSE message."""

    event: str = "message"
    data: str = ""
    id: str | None = None
    retry: int | None = None


class StreamEvent(BaseModel):
    model_config = ConfigDict(coerce_numbers_to_str=True, frozen=True)

    name: ClassVar[str] = ""


class AccountCreated(StreamEvent):
    name: ClassVar[str] = "account_created"

    account: Account


class AccountReference(StreamEvent):
    """Account creation announced by id only; must be fetched."""

    name: ClassVar[str] = "account_created"

    account_id: str


class AccountDeleted(StreamEvent):
    name: ClassVar[str] = "account_deleted"

    account_id: str


class BatchCreated(StreamEvent):
    name: ClassVar[str] = "batch_created"

    batch: Batch


class BatchReference(StreamEvent):
    """Batch creation announced by id only; must be fetched."""

    name: ClassVar[str] = "batch_created"

    batch_id: str
    account_id: str | None = None


class BatchCompleted(StreamEvent):
    name: ClassVar[str] = "batch_completed"

    batch_id: str
    account_id: str | None = None


class BatchCancelled(StreamEvent):
    """Produced locally by a successful cancel; never decoded off the wire."""

    name: ClassVar[str] = "batch_cancelled"

    batch_id: str
    account_id: str | None = None


class BetStatusUpdated(StreamEvent):
    name: ClassVar[str] = "bet_status_updated"

    batch_id: str
    bet_id: str
    status: BetStatus


class Ping(StreamEvent):
    name: ClassVar[str] = "ping"

    data: str = ""
