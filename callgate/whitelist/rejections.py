"""Record of callable types that were refused because they were not whitelisted.

Administrators review get() and approve entries, which moves them into the
WhitelistStore. Anything whitelisted is filtered out of get() regardless of
how it got whitelisted (replace, append, approve, approve_all), so a type is
never shown as pending and approved at the same time.

Deduplication happens on both sides: report() ignores names it has already
seen, and get() filters against the current whitelist.

Optionally (persist=True) rejections are appended to rejected-callables.txt
and read back at startup. Failures writing that file are logged, never
raised: it is advisory, and report() runs on the hot path of a remote call.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any, Optional, Union

from callgate.errors import PersistenceError
from callgate.utils.logger import get_logger
from callgate.whitelist.naming import qualified_name
from callgate.whitelist.store import PersistentLineSet, WhitelistStore, ensure_trailing_newline

logger = get_logger(__name__)


def _ordered_unique(lines: list[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for line in lines:
        line = line.strip()
        if line:
            seen.setdefault(line, None)
    return tuple(seen)


class RejectionLog:
    """Pending (rejected, not yet whitelisted) callable type names."""

    def __init__(
        self,
        whitelist: WhitelistStore,
        path: Optional[Union[str, Path]] = None,
        persist: bool = False,
    ) -> None:
        self._whitelist = whitelist
        self._lock = threading.Lock()
        self._file: Optional[PersistentLineSet] = None
        self._seen: tuple[str, ...] = ()
        self._seen_set: frozenset[str] = frozenset()

        if persist:
            if path is None:
                raise ValueError("persist=True requires a path")
            self._file = PersistentLineSet(path)
            self._set_seen(_ordered_unique(self._file.text.splitlines()))
            logger.info(
                "Rejection log seeded from disk",
                path=str(path),
                entries=len(self._seen),
            )

    @property
    def persistent(self) -> bool:
        return self._file is not None

    def _set_seen(self, names: tuple[str, ...]) -> None:
        self._seen_set = frozenset(names)
        self._seen = names

    # ── Recording ─────────────────────────────────────────────────────────────

    def report(self, subject: Any) -> bool:
        """Record ``subject`` (class, instance or name) as rejected.

        Returns True if this is the first time the name was recorded.
        """
        name = qualified_name(subject)
        if not name or self._whitelist.contains(name) or name in self._seen_set:
            return False

        with self._lock:
            if name in self._seen_set:
                return False
            self._set_seen(self._seen + (name,))

            # under the same lock as prune(), whose rewrite would drop it otherwise
            if self._file is not None:
                try:
                    self._file.append(name)
                except PersistenceError as exc:
                    logger.error(
                        "Could not persist rejection (kept in memory)",
                        callable=name,
                        error=exc.message,
                    )

        logger.info("Callable rejected — pending admin review", callable=name)
        return True

    # ── Admin view ────────────────────────────────────────────────────────────

    def get(self) -> list[str]:
        """Rejected names not currently whitelisted, in first-seen order."""
        whitelist = self._whitelist
        return [name for name in self._seen if not whitelist.contains(name)]

    def __len__(self) -> int:
        return len(self.get())

    # ── Approval ──────────────────────────────────────────────────────────────

    def approve_all(self) -> list[str]:
        """Whitelist every pending name with a single append. Returns what was approved.

        Raises:
            PersistenceError: the whitelist append did not land.
        """
        names = self.get()
        if not names:
            logger.debug("approve_all: nothing pending")
            return []
        self._whitelist.append("\n".join(names) + "\n")
        logger.info("Approved all rejected callables", count=len(names), callables=names)
        self.prune()
        return names

    def approve(self, name: str) -> None:
        """Append a single literal name to the whitelist.

        The name does not have to come from an observed rejection.

        Raises:
            PersistenceError: the whitelist append did not land.
        """
        self._whitelist.append(name.strip())
        logger.info("Approved callable", callable=name.strip())
        self.prune()

    def prune(self) -> int:
        """Drop names that are now whitelisted. Returns how many were dropped."""
        with self._lock:
            keep = tuple(self.get())
            dropped = len(self._seen) - len(keep)
            if not dropped:
                return 0
            self._set_seen(keep)

            if self._file is not None:
                try:
                    self._file.replace(ensure_trailing_newline("\n".join(keep)))
                except PersistenceError as exc:
                    logger.error(
                        "Could not rewrite rejection file after approval",
                        error=exc.message,
                    )
        return dropped
