"""Rule file loader for Callgate.

Loads the filesystem access rules from YAML, builds a PathRuleSet snapshot
and publishes it through a callback (normally AdminGate.publish_rules).
Provides async watchfiles hot-reload; a broken edit is logged and the
previously published snapshot stays in force.

Rule file format:

    version: 1
    rules:
      - op: read                      # "*", "all", "read" or "read,stat"
                                      # "mkdir" is accepted for "mkdirs"
        path: "<ROOT_DIR>/secrets/.*"
        allow: false

A bare top-level list of rules is accepted as well.

IMPORT RULES:
  - `import re2` ONLY — `import re` is PROHIBITED in this file.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Optional

import re2  # google-re2. NEVER: import re
import yaml

from callgate.constants import ROOT_DIR_PLACEHOLDER
from callgate.errors import MalformedRuleError
from callgate.rules.model import OperationMatcher, PathRule, PathRuleSet
from callgate.utils.logger import get_logger

logger = get_logger(__name__)

SUPPORTED_RULE_FILE_VERSIONS: frozenset[int] = frozenset({1})


class RuleSetLoader:
    """Loads rule files and publishes each successfully built snapshot.

    Usage (in lifespan):
        loader = RuleSetLoader(gate.publish_rules, root_dir=config.gate.root_dir)
        loader.load(rules_path)                  # raises on a malformed file
        asyncio.create_task(loader.start_watcher(rules_path))
    """

    def __init__(
        self,
        publish: Callable[[PathRuleSet], None],
        root_dir: Optional[str] = None,
    ) -> None:
        self._publish = publish
        self._root_dir = root_dir

    def load(self, path: str) -> int:
        """Load, build and publish the rule set at ``path``.

        A missing file publishes an empty rule set (deny everything).

        Returns the number of published rules.

        Raises:
            MalformedRuleError: unreadable YAML, bad structure, or any rule that
                fails to build. Nothing is published in that case.
        """
        try:
            with open(path) as fh:
                raw = yaml.safe_load(fh)
        except FileNotFoundError:
            logger.info("Rule file not found — publishing empty rule set (deny all)", path=path)
            self._publish(PathRuleSet((), source=path))
            return 0
        except yaml.YAMLError as exc:
            raise MalformedRuleError(f"{path}: YAML parse error: {exc}") from exc
        except OSError as exc:
            raise MalformedRuleError(f"{path}: could not read rule file: {exc}") from exc

        rule_set = parse_rule_set(raw, root_dir=self._root_dir, source=path)
        self._publish(rule_set)
        logger.info("Rule set published", rules=len(rule_set), path=path)
        return len(rule_set)

    async def start_watcher(self, path: str) -> None:
        """Reload the rule file on every change until cancelled.

        A reload that fails is logged at ERROR and the prior snapshot is kept.
        """
        try:
            import watchfiles

            logger.info("Rule file watcher started", path=path)
            async for _ in watchfiles.awatch(path):
                try:
                    count = self.load(path)
                    logger.info("Rule set hot-reloaded", rules=count, path=path)
                except MalformedRuleError as exc:
                    logger.error(
                        "Rule reload failed — keeping prior rule set",
                        path=path,
                        error=exc.message,
                    )
        except asyncio.CancelledError:
            logger.debug("Rule file watcher cancelled", path=path)
            raise
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "Rule file watcher error (watcher stopped)",
                error=str(exc),
                path=path,
            )


# ─── Parsing helpers ──────────────────────────────────────────────────────────


def parse_rule_set(
    raw: object,
    root_dir: Optional[str] = None,
    source: Optional[str] = None,
) -> PathRuleSet:
    """Build a PathRuleSet from a parsed YAML document.

    Unlike lenient config sections, a single bad rule rejects the whole set:
    silently dropping a deny rule would widen access.
    """
    if raw is None:
        return PathRuleSet((), source=source)

    if isinstance(raw, dict):
        version = raw.get("version", 1)
        if version not in SUPPORTED_RULE_FILE_VERSIONS:
            raise MalformedRuleError(
                f"unsupported rule file version {version!r}; "
                f"supported: {sorted(SUPPORTED_RULE_FILE_VERSIONS)}"
            )
        items = raw.get("rules") or []
    elif isinstance(raw, list):
        items = raw
    else:
        raise MalformedRuleError(
            f"rule file root must be a mapping or a list, got {type(raw).__name__}"
        )

    if not isinstance(items, list):
        raise MalformedRuleError(f"'rules' must be a list, got {type(items).__name__}")

    return PathRuleSet(
        (_parse_rule(item, i, root_dir) for i, item in enumerate(items)),
        source=source,
    )


def _parse_rule(item: object, index: int, root_dir: Optional[str]) -> PathRule:
    if not isinstance(item, dict):
        raise MalformedRuleError(f"rule must be a mapping, got {type(item).__name__}", index=index)

    for key in ("op", "path", "allow"):
        if key not in item:
            raise MalformedRuleError(f"missing required key '{key}'", index=index)

    pattern = item["path"]
    if isinstance(pattern, str):
        pattern = expand_root_dir(pattern, root_dir)

    try:
        return PathRule(OperationMatcher.parse(item["op"]), pattern, item["allow"])
    except MalformedRuleError as exc:
        raise MalformedRuleError(exc.message, index=index) from exc


def expand_root_dir(pattern: str, root_dir: Optional[str]) -> str:
    """Replace ``<ROOT_DIR>`` with the escaped literal root dir.

    The root dir is used exactly as configured: not resolved, not made absolute.
    """
    if ROOT_DIR_PLACEHOLDER not in pattern:
        return pattern
    if not root_dir:
        raise MalformedRuleError(f"pattern {pattern!r} uses {ROOT_DIR_PLACEHOLDER} but no root dir is configured")
    return pattern.replace(ROOT_DIR_PLACEHOLDER, re2.escape(root_dir.rstrip("/")))
