"""Errors surfaced by the engine to its caller."""


class EngineError(Exception):
    """Base exception for reconciliation engine errors."""

    pass


class SnapshotLoadError(EngineError):
    """A snapshot fetch failed. Prior local state is kept."""

    def __init__(self, message: str, errors: list[Exception] | None = None):
        super().__init__(message)
        self.errors = errors or []


class MutationError(EngineError):
    """A REST mutation failed. The local store was not changed."""

    def __init__(self, message: str, operation: str, status_code: int | None = None):
        super().__init__(message)
        self.operation = operation
        self.status_code = status_code
