"""Callgate — access-control gate for remote callables and filesystem operations."""

from callgate.errors import AuthorizationError, GateError, MalformedRuleError, PersistenceError
from callgate.gate import AdminGate

__version__ = "1.0.0"

__all__ = [
    "AdminGate",
    "AuthorizationError",
    "GateError",
    "MalformedRuleError",
    "PersistenceError",
]
