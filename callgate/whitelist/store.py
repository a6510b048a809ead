"""Durable line sets backing the callable whitelist.

PersistentLineSet keeps one entry per line in a text file. The file is the
source of truth; the in-memory view is a frozenset rebuilt from the text
after every successful write and swapped in by reference, so readers never
take a lock and never see a half-applied update.

Write discipline:
  - a single writer lock serializes replace() and append()
  - the new full text is written to a sibling temp file, fsync'd, chmod 0600
    and renamed over the target (os.replace is atomic on POSIX), so a reader
    of the file sees the old or the new content, never a truncated mix
  - the in-memory view is swapped only after the rename succeeded; a failed
    write raises PersistenceError and leaves memory and disk unchanged

Read discipline:
  - a missing file is an empty set
  - an unreadable file is logged at ERROR and treated as empty (deny-all)
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Iterator, Union

from callgate.constants import (
    SECRETS_DIR_MODE,
    SECRETS_DIRNAME,
    SECRETS_FILE_MODE,
    SLOW_WRITE_THRESHOLD_MS,
)
from callgate.errors import PersistenceError
from callgate.utils.logger import PerformanceLogger, get_logger

logger = get_logger(__name__)


def parse_lines(text: str) -> frozenset[str]:
    """Return the distinct non-blank trimmed lines of ``text``."""
    return frozenset(line.strip() for line in text.splitlines() if line.strip())


def ensure_trailing_newline(text: str) -> str:
    if text and not text.endswith("\n"):
        return text + "\n"
    return text


class PersistentLineSet:
    """A set of strings persisted as lines of a text file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        self._write_lock = threading.Lock()
        self._text: str = ""
        self._entries: frozenset[str] = frozenset()
        # set while the backing file exists but could not be read
        self._load_failed = False
        self.load()

    # ── Read API (lock-free) ──────────────────────────────────────────────────

    @property
    def path(self) -> Path:
        return self._path

    @property
    def text(self) -> str:
        """Raw file content as of the last load or successful write."""
        return self._text

    def contains(self, entry: str) -> bool:
        return entry in self._entries

    def __contains__(self, entry: object) -> bool:
        return entry in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def snapshot(self) -> frozenset[str]:
        return self._entries

    # ── Load ──────────────────────────────────────────────────────────────────

    def load(self) -> int:
        """(Re)read the backing file. Returns the number of distinct entries.

        Never raises: unreadable content fails safe to an empty set. Until a
        later load or replace() succeeds, append() refuses to write so the
        unread file is not overwritten.
        """
        with self._write_lock:
            try:
                text = self._read_file()
                self._load_failed = False
            except (OSError, UnicodeDecodeError) as exc:
                logger.error(
                    "Could not read line set file — treating as empty",
                    path=str(self._path),
                    error=str(exc),
                )
                text = ""
                self._load_failed = True
            self._swap(text)
        return len(self._entries)

    # ── Mutations ─────────────────────────────────────────────────────────────

    def replace(self, text: str) -> None:
        """Atomically overwrite the whole file with ``text``.

        Raises:
            PersistenceError: the new content did not land on disk.
        """
        text = ensure_trailing_newline(text)
        with self._write_lock:
            self._write_atomic(text, operation="replace")
            self._swap(text)
            self._load_failed = False
        logger.info("Line set replaced", path=str(self._path), entries=len(self._entries))

    def append(self, text: str) -> None:
        """Add the lines of ``text`` after the existing content.

        Duplicates are tolerated in the file; the in-memory set deduplicates.

        Raises:
            PersistenceError: the new content did not land on disk, or the
                existing file is still unreadable.
        """
        addition = ensure_trailing_newline(text)
        if not addition.strip():
            return
        with self._write_lock:
            if self._load_failed:
                self._reread_before_append()
            new_text = ensure_trailing_newline(self._text) + addition
            self._write_atomic(new_text, operation="append")
            self._swap(new_text)
        logger.info("Line set appended", path=str(self._path), entries=len(self._entries))

    # ── Internals ─────────────────────────────────────────────────────────────

    def _read_file(self) -> str:
        try:
            return self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.debug("Line set file not found — empty set", path=str(self._path))
            return ""

    def _reread_before_append(self) -> None:
        # Must be called with _write_lock held.
        try:
            text = self._read_file()
        except (OSError, UnicodeDecodeError) as exc:
            raise PersistenceError(
                f"refusing to append to {self._path}: existing content is unreadable ({exc})"
            ) from exc
        self._swap(text)
        self._load_failed = False
        logger.info("Line set re-read after failed load", path=str(self._path))

    def _swap(self, text: str) -> None:
        # Must be called with _write_lock held. Entries first: a reader that
        # sees the new text must also see its entries.
        self._entries = parse_lines(text)
        self._text = text

    def _write_atomic(self, text: str, operation: str) -> None:
        tmp_path = self._path.with_name(f".{self._path.name}.{os.getpid()}.tmp")
        with PerformanceLogger(
            f"Line set {operation}",
            logger=logger,
            threshold_ms=SLOW_WRITE_THRESHOLD_MS,
        ):
            try:
                self._path.parent.mkdir(mode=SECRETS_DIR_MODE, parents=True, exist_ok=True)
                fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, SECRETS_FILE_MODE)
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    fh.write(text)
                    fh.flush()
                    os.fsync(fh.fileno())
                os.chmod(tmp_path, SECRETS_FILE_MODE)
                os.replace(tmp_path, self._path)
            except OSError as exc:
                try:
                    tmp_path.unlink(missing_ok=True)
                except OSError:
                    logger.warning("Could not remove temp file", path=str(tmp_path))
                raise PersistenceError(f"could not write {self._path}: {exc}") from exc


class WhitelistStore(PersistentLineSet):
    """Callable type names an administrator has approved for execution."""

    def is_whitelisted(self, name: str) -> bool:
        return self.contains(name)

    def entries(self) -> list[str]:
        return sorted(self.snapshot())


def secrets_path(root_dir: Union[str, Path], filename: str) -> Path:
    """Return ``<root_dir>/secrets/<filename>``."""
    return Path(os.path.expanduser(str(root_dir))) / SECRETS_DIRNAME / filename
