from .client import EventStreamClient, iter_sse
from .config import StreamConfig
from .decoder import SHAPES, EventDecoder
from .exceptions import MalformedEventError, StreamError, TransportError
from .models import (
    AccountCreated,
    AccountDeleted,
    AccountReference,
    BatchCancelled,
    BatchCompleted,
    BatchCreated,
    BatchReference,
    BetStatusUpdated,
    ConnectionState,
    Ping,
    ServerSentEvent,
    StreamEvent,
)

__all__ = [
    "EventStreamClient",
    "iter_sse",
    "StreamConfig",
    "SHAPES",
    "EventDecoder",
    "MalformedEventError",
    "StreamError",
    "TransportError",
    "AccountCreated",
    "AccountDeleted",
    "AccountReference",
    "BatchCancelled",
    "BatchCompleted",
    "BatchCreated",
    "BatchReference",
    "BetStatusUpdated",
    "ConnectionState",
    "Ping",
    "ServerSentEvent",
    "StreamEvent",
]
