"""AdminGate — the access-control façade.

Enforcement points call check_file_access() before remote filesystem I/O and
is_whitelisted() before executing a callable received from a remote peer.
Both are synchronous, safe to call from any thread, and return plain
booleans: a denial is an expected outcome, not an exception.

The admin adapter calls the mutation operations (submit_whitelist,
approve_all, approve). Capability checks are the adapter's job; the gate
itself does not know who is calling.

One gate is constructed at startup from explicit configuration and handed
by reference to every call site. There is no global lookup.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Iterable, Mapping, Optional

from callgate.config import Config
from callgate.constants import CLASS_PARAM_PREFIX
from callgate.rules.model import PathArg, PathRuleSet
from callgate.utils.logger import get_logger
from callgate.whitelist.naming import qualified_name
from callgate.whitelist.rejections import RejectionLog
from callgate.whitelist.store import WhitelistStore, ensure_trailing_newline

logger = get_logger(__name__)


def normalize_submission(
    whitelist: Optional[str],
    params: Iterable[str] = (),
) -> str:
    """Build the new whitelist text from an admin submission.

    The free-text whitelist gets a trailing newline, then every parameter
    named ``class:<name>`` contributes ``<name>`` as an extra line.
    """
    text = ensure_trailing_newline(whitelist or "")
    for param in params:
        if param.startswith(CLASS_PARAM_PREFIX):
            name = param[len(CLASS_PARAM_PREFIX):].strip()
            if name:
                text += name + "\n"
    return text


class AdminGate:
    """Decides file access and callable execution; records and approves rejections."""

    def __init__(
        self,
        whitelist: WhitelistStore,
        rejected: RejectionLog,
        rules: Optional[PathRuleSet] = None,
    ) -> None:
        self.whitelist = whitelist
        self.rejected = rejected
        self._rules: PathRuleSet = rules if rules is not None else PathRuleSet.empty()
        self.rules_published_at: Optional[datetime] = None

    @classmethod
    def from_config(cls, config: Config) -> "AdminGate":
        """Open the whitelist (and, if configured, the rejection file) under root_dir."""
        whitelist = WhitelistStore(config.gate.whitelist_path)
        rejected = RejectionLog(
            whitelist,
            path=config.gate.rejected_path,
            persist=config.gate.persist_rejections,
        )
        logger.info(
            "Gate initialised",
            whitelist_path=config.gate.whitelist_path,
            whitelisted=len(whitelist),
            persist_rejections=config.gate.persist_rejections,
        )
        return cls(whitelist, rejected)

    # ── Rule snapshots ────────────────────────────────────────────────────────

    @property
    def rules(self) -> PathRuleSet:
        return self._rules

    def publish_rules(self, rules: PathRuleSet) -> None:
        """Swap in a new immutable rule set.

        Evaluations already running finish against the snapshot they started with.
        """
        self._rules = rules
        self.rules_published_at = datetime.now(timezone.utc)
        logger.info("Rule snapshot published", rules=len(rules), source=rules.source)

    # ── Decision path ─────────────────────────────────────────────────────────

    def check_file_access(self, operation: str, path: PathArg) -> bool:
        """True if the current rule set allows ``operation`` on ``path``.

        An empty rule set denies everything.
        """
        rules = self._rules
        allowed = rules.evaluate(operation, path)
        if not allowed:
            logger.debug("File access denied by rule set", operation=operation, path=str(path))
        return allowed

    def is_whitelisted(self, subject: Any, context: Any = None) -> bool:
        """True if the callable's type is whitelisted; otherwise record the rejection.

        ``subject`` may be a class, an instance or a qualified name.
        ``context`` is accepted for enforcement points that pass one; it does
        not affect the decision.
        """
        name = qualified_name(subject)
        if self.whitelist.contains(name):
            return True
        self.rejected.report(name)
        return False

    # ── Admin operations ──────────────────────────────────────────────────────

    def submit_whitelist(self, whitelist: Optional[str], params: Iterable[str] = ()) -> int:
        """Replace the whole whitelist. Returns the number of distinct entries.

        Raises:
            PersistenceError: the new whitelist was not saved.
        """
        text = normalize_submission(whitelist, params)
        self.whitelist.replace(text)
        self.rejected.prune()
        return len(self.whitelist)

    def approve_all(self) -> list[str]:
        """Whitelist every pending rejection.

        Raises:
            PersistenceError: the whitelist was not updated.
        """
        return self.rejected.approve_all()

    def approve(self, name: str) -> None:
        """Whitelist a single name supplied by an administrator.

        Raises:
            PersistenceError: the whitelist was not updated.
        """
        self.rejected.approve(name)

    def rejected_names(self) -> list[str]:
        return self.rejected.get()

    def status(self) -> Mapping[str, Any]:
        return {
            "rules": len(self._rules),
            "rules_source": self._rules.source,
            "rules_published_at": (
                self.rules_published_at.isoformat() if self.rules_published_at else None
            ),
            "whitelisted": len(self.whitelist),
            "pending_rejections": len(self.rejected_names()),
        }
