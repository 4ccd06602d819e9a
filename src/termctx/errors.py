"""Exceptions for termctx request handling."""

from typing import List, Optional


class TermctxError(Exception):
    """Base exception for termctx."""

    pass


class ConfigurationError(TermctxError, ValueError):
    """Raised when required AI settings are missing. Never retried."""

    def __init__(self, missing: Optional[List[str]] = None):
        self.missing = list(missing or [])
        fields = ", ".join(self.missing) if self.missing else "settings"
        super().__init__(f"AI settings incomplete (missing: {fields})")


class TransportError(TermctxError):
    """Raised when the model transport reports an error event."""

    pass


class RequestCancelled(TermctxError):
    """Raised when a request is cancelled by the caller."""

    pass
