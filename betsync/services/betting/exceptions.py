"""Custom exceptions for the betting server REST client."""


class BettingAPIError(Exception):
    """Base exception for betting server API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class BettingBadRequestError(BettingAPIError):
    """Invalid request parameters (400/422)."""

    pass


class BettingNotFoundError(BettingAPIError):
    """Resource not found (404)."""

    pass


class BettingServerError(BettingAPIError):
    """Server-side error (5xx) after retries."""

    pass
