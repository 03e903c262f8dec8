"""Exception hierarchy shared by the registry, the back-ends and the session."""

from __future__ import annotations

from typing import Iterable, Optional


class CrosstalkError(Exception):
    """Base class for every error raised by crosstalk."""


# ---------------------------------------------------------------------------
# Startup errors
# ---------------------------------------------------------------------------


class ConfigurationError(CrosstalkError):
    """Raised when the configuration cannot produce a usable registry."""


class DuplicateProviderError(ConfigurationError):
    """Raised when one provider identifier is registered twice."""

    def __init__(self, identifier: str):
        super().__init__(f"provider '{identifier}' is registered more than once")
        self.identifier = identifier


class UnknownModelError(CrosstalkError):
    """Raised when a model string does not resolve to any provider."""

    def __init__(self, requested: Optional[str], known: Iterable[str] = ()):
        self.requested = requested
        self.known = list(known)
        if requested is None:
            head = "no model was requested and no default model is configured"
        else:
            head = f"unknown model '{requested}'"
        available = ", ".join(self.known) or "<none>"
        super().__init__(f"{head} (available models: {available})")


class EditorError(CrosstalkError):
    """Raised when the external editor cannot produce a prompt."""


# ---------------------------------------------------------------------------
# Completion errors
#
# These are carried as values by ``Failed`` stream increments. Back-ends may
# raise them from inside their raw stream; the protocol layer catches them
# before they reach the session.
# ---------------------------------------------------------------------------


class CompletionError(CrosstalkError):
    """A classified failure of one completion request."""

    kind = "provider error"

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message

    def describe(self) -> str:
        """Return the human-readable classification and message."""
        if self.message:
            return f"{self.kind}: {self.message}"
        return self.kind


class AuthError(CompletionError):
    kind = "authentication failed"


class RateLimited(CompletionError):
    kind = "rate limited"

    def __init__(self, message: str = "", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after

    def describe(self) -> str:
        text = super().describe()
        if self.retry_after is not None:
            text += f" (retry after {self.retry_after:g}s)"
        return text


class InvalidRequest(CompletionError):
    kind = "invalid request"


class TransportError(CompletionError):
    kind = "transport error"


class ProviderError(CompletionError):
    kind = "provider error"


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header given in seconds."""
    if value is None:
        return None
    try:
        seconds = float(value.strip())
    except ValueError:
        return None
    return seconds if seconds >= 0 else None
