"""Error taxonomy for the ContextEngine gateway."""


class ContextEngineError(Exception):
    """Base class for gateway errors."""


class ValidationError(ContextEngineError):
    """Caller input is missing or malformed."""


class FilesystemError(ContextEngineError):
    """Local scaffold creation or write failed."""


class RemoteCallError(ContextEngineError):
    """Network failure or non-success status from the ContextEngine API."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportError(ContextEngineError):
    """Transport-level failure (e.g. no free port to listen on)."""
