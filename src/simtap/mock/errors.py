"""
SimTap Errors

Exception hierarchy shared by the mock response engine.

Backend errors are classified at the generation-backend boundary so the
retry loop and the HTTP error mapping only ever see these types.
"""

from typing import Optional


class SimTapError(Exception):
    """Base for all SimTap errors."""


class ConfigurationError(SimTapError, ValueError):
    """Raised for a missing credential, an invalid URL or an out-of-range option."""


class BackendError(SimTapError):
    """Base for classified generation-backend failures."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class UpstreamTransientError(BackendError):
    """Rate limit, 5xx or network failure. Retried with backoff."""


class UpstreamTimeoutError(UpstreamTransientError):
    """The backend call timed out. Retried, surfaced as 504 when exhausted."""


class UpstreamPermanentError(BackendError):
    """Malformed request or auth failure. Never retried."""


class GenerationEmptyError(SimTapError):
    """The backend answered but produced no usable content."""


class RequestCancelledError(SimTapError):
    """The originating HTTP request was aborted by the caller."""
