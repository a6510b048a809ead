"""Ordered filesystem access rules.

A PathRuleSet is an immutable, ordered tuple of PathRule values. Evaluation
is a linear scan in declaration order: the first rule whose operation matcher
and path pattern both match decides. No match means deny.

Paths are matched against their literal string form. They are never
canonicalized or made absolute, so a root reached through several mount
points or symlinks is governed by rules written for each spelling.

A deny verdict only stops evaluation of this rule set; it is not a security
exception. Other access filters further down the chain may still grant the
operation.

IMPORT RULES:
  - `import re2` ONLY — `import re` is PROHIBITED in this file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, Union

import re2  # google-re2. NEVER: import re

from callgate.constants import ANY_OPERATION_TOKENS, FILE_OPERATIONS, OPERATION_ALIASES
from callgate.errors import MalformedRuleError

PathArg = Union[str, bytes, "os.PathLike[str]"]


@dataclass(frozen=True)
class OperationMatcher:
    """Matches an operation name against a fixed subset of FILE_OPERATIONS.

    ``operations=None`` matches any operation.
    """

    operations: Optional[frozenset[str]] = None

    @classmethod
    def parse(cls, value: Any) -> "OperationMatcher":
        """Build a matcher from ``"*"``, ``"all"``, ``"read"`` or ``"read,stat"``.

        A list of names is accepted as well.

        Raises:
            MalformedRuleError: empty value or an operation outside the vocabulary.
        """
        if isinstance(value, str):
            names = [part.strip() for part in value.split(",")]
        elif isinstance(value, (list, tuple, set, frozenset)):
            names = [str(part).strip() for part in value]
        else:
            raise MalformedRuleError(f"operation must be a string or list, got {type(value).__name__}")

        names = [OPERATION_ALIASES.get(n, n) for n in names if n]
        if not names:
            raise MalformedRuleError("operation is empty")
        if any(n in ANY_OPERATION_TOKENS for n in names):
            return cls(None)

        unknown = sorted(set(names) - FILE_OPERATIONS)
        if unknown:
            raise MalformedRuleError(
                f"unknown operation(s) {unknown}; expected one of {sorted(FILE_OPERATIONS)} or '*'"
            )
        return cls(frozenset(names))

    def matches(self, operation: str) -> bool:
        if self.operations is None:
            return True
        return OPERATION_ALIASES.get(operation, operation) in self.operations

    def __str__(self) -> str:
        if self.operations is None:
            return "*"
        return ",".join(sorted(self.operations))


@dataclass(frozen=True)
class PathRule:
    """(operation matcher, path pattern, verdict).

    The pattern is compiled with google-re2 at construction and must match
    the whole path string.
    """

    op: OperationMatcher
    pattern: str
    allow: bool
    _compiled: Any = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.pattern, str):
            raise MalformedRuleError(f"path pattern must be a string, got {type(self.pattern).__name__}")
        if not isinstance(self.allow, bool):
            raise MalformedRuleError(f"verdict must be a boolean, got {self.allow!r}")
        try:
            compiled = re2.compile(self.pattern)
        except re2.error as exc:
            raise MalformedRuleError(f"invalid path pattern {self.pattern!r}: {exc}") from exc
        object.__setattr__(self, "_compiled", compiled)

    @classmethod
    def of(cls, op: Any, pattern: str, allow: bool) -> "PathRule":
        """Convenience constructor taking a raw operation string or list."""
        return cls(OperationMatcher.parse(op), pattern, allow)

    def matches_path(self, path_str: str) -> bool:
        return self._compiled.fullmatch(path_str) is not None

    def to_dict(self) -> dict:
        return {"op": str(self.op), "path": self.pattern, "allow": self.allow}


class PathRuleSet:
    """Immutable ordered sequence of PathRule. First match wins; default deny."""

    __slots__ = ("_rules", "source")

    def __init__(self, rules: Iterable[PathRule] = (), source: Optional[str] = None) -> None:
        rules = tuple(rules)
        for i, rule in enumerate(rules):
            if not isinstance(rule, PathRule):
                raise MalformedRuleError(f"expected PathRule, got {type(rule).__name__}", index=i)
        self._rules: tuple[PathRule, ...] = rules
        self.source = source

    @classmethod
    def empty(cls) -> "PathRuleSet":
        return cls(())

    @property
    def rules(self) -> tuple[PathRule, ...]:
        return self._rules

    def evaluate(self, operation: str, path: PathArg) -> bool:
        """Return the verdict of the first matching rule, or False if none match."""
        path_str: Optional[str] = None
        for rule in self._rules:
            if not rule.op.matches(operation):
                continue
            if path_str is None:
                # literal form only: no realpath(), no abspath()
                path_str = os.fsdecode(path)
            if rule.matches_path(path_str):
                return rule.allow
        return False

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[PathRule]:
        return iter(self._rules)

    def __repr__(self) -> str:
        return f"PathRuleSet(rules={len(self._rules)}, source={self.source!r})"
