from pydantic import BaseModel, Field


class StreamConfig(BaseModel):
    """Configuration for the server-sent event stream."""

    url: str = "http://localhost:3001/sse"
    connect_timeout_seconds: float = 10.0
    # No read timeout: the stream is idle between pings.
    read_timeout_seconds: float | None = None
    reconnect_delay_seconds: float = 1.0
    max_reconnect_delay_seconds: float = 30.0
    max_reconnect_attempts: int | None = None
    queue_size: int = 1000
    # Event name -> accepted payload shape names, in match order. None accepts all.
    accepted_shapes: dict[str, list[str]] | None = Field(default=None)
