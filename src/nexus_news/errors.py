from __future__ import annotations


class NexusError(Exception):
    """Base class for errors raised by the trending news desk."""


class SecurityError(NexusError):
    """Request failed authentication or authorization. Nothing else runs."""

    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.status_code = status_code


class ValidationError(NexusError):
    """Malformed ids, untrusted callback host or bad command parameters."""


class RateLimitedError(NexusError):
    pass


class NewsSourceError(NexusError):
    pass


class PipelineFatalError(NexusError):
    """Aborts the whole job; reported once through the callback URL."""
