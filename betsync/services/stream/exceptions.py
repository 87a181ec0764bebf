"""Custom exceptions for the event stream client."""


class StreamError(Exception):
    """Base exception for event stream errors."""

    pass


class TransportError(StreamError):
    """Stream connection failed or was cut. Recovered by reconnecting."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedEventError(StreamError):
    """Event payload could not be decoded. The event is dropped."""

    def __init__(self, message: str, event_name: str | None = None):
        super().__init__(message)
        self.event_name = event_name
