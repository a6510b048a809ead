"""Exception taxonomy for Callgate.

A denied decision is never an exception: check_file_access() and
is_whitelisted() return False. Exceptions are reserved for configuration
errors, failed durable writes, and missing administrator capability.
"""

from __future__ import annotations

from typing import Optional


class GateError(Exception):
    """Base class for all gate errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class MalformedRuleError(GateError):
    """Raised when a rule cannot be constructed.

    Covers path patterns that google-re2 refuses to compile, unknown
    operation names and missing verdicts. The whole rule set is rejected.
    """

    def __init__(self, message: str, index: Optional[int] = None) -> None:
        if index is not None:
            message = f"rule #{index}: {message}"
        super().__init__(message)
        self.index = index


class PersistenceError(GateError):
    """Raised when a whitelist mutation did not durably land on disk.

    HTTP mapping: 500 — the administrator must not be told the change took effect.
    """


class AuthorizationError(GateError):
    """Raised when an admin entry point is invoked without administrator capability.

    HTTP mapping: 403 Forbidden, with no further detail.
    """

    def __init__(self, message: str = "Forbidden") -> None:
        super().__init__(message)
