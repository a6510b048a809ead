"""Qualified type names, the unit of whitelisting."""

from __future__ import annotations

from typing import Any


def qualified_name(subject: Any) -> str:
    """Return ``module.QualName`` for a class, or for the class of an instance.

    A string is taken to already be a qualified name.
    """
    if isinstance(subject, str):
        return subject.strip()
    cls = subject if isinstance(subject, type) else type(subject)
    module = getattr(cls, "__module__", None)
    qualname = getattr(cls, "__qualname__", cls.__name__)
    if not module:
        return qualname
    return f"{module}.{qualname}"
