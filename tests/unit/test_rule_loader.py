"""Tests for RuleSetLoader and parse_rule_set().

Tests:
  - mapping and bare-list rule files
  - <ROOT_DIR> substitution (escaped, not canonicalized)
  - any malformed rule rejects the whole file
  - missing file publishes an empty (deny-all) rule set
  - hot-reload keeps the prior snapshot when an edit is broken
"""

from __future__ import annotations

import textwrap

import pytest
import re2

from callgate.errors import MalformedRuleError
from callgate.rules.loader import RuleSetLoader, expand_root_dir, parse_rule_set
from callgate.rules.model import PathRule, PathRuleSet

_VALID = textwrap.dedent("""\
    version: 1
    rules:
      - op: read
        path: "/secrets/.*"
        allow: false
      - op: "*"
        path: ".*"
        allow: true
""")


def _write(tmp_path, content: str, name: str = "rules.yaml") -> str:
    path = tmp_path / name
    path.write_text(content)
    return str(path)


# ─── parse_rule_set ───────────────────────────────────────────────────────────


class TestParseRuleSet:
    def test_none_is_empty(self):
        assert len(parse_rule_set(None)) == 0

    def test_mapping_with_rules_key(self):
        rules = parse_rule_set({"version": 1, "rules": [{"op": "read", "path": ".*", "allow": True}]})
        assert len(rules) == 1
        assert rules.evaluate("read", "/x") is True

    def test_bare_list(self):
        rules = parse_rule_set([
            {"op": "read", "path": "/a", "allow": False},
            {"op": "all", "path": ".*", "allow": True},
        ])
        assert rules.evaluate("read", "/a") is False
        assert rules.evaluate("read", "/b") is True

    def test_null_rules_key_is_empty(self):
        assert len(parse_rule_set({"version": 1, "rules": None})) == 0

    def test_unsupported_version_rejected(self):
        with pytest.raises(MalformedRuleError, match="version"):
            parse_rule_set({"version": 2, "rules": []})

    def test_scalar_root_rejected(self):
        with pytest.raises(MalformedRuleError):
            parse_rule_set("allow everything")

    def test_rules_not_a_list_rejected(self):
        with pytest.raises(MalformedRuleError):
            parse_rule_set({"rules": {"op": "read"}})

    @pytest.mark.parametrize("missing", ["op", "path", "allow"])
    def test_missing_key_rejected_with_index(self, missing):
        rule = {"op": "read", "path": ".*", "allow": True}
        del rule[missing]
        with pytest.raises(MalformedRuleError) as exc_info:
            parse_rule_set([{"op": "read", "path": "/ok", "allow": True}, rule])
        assert exc_info.value.index == 1
        assert missing in exc_info.value.message

    def test_one_bad_pattern_rejects_whole_set(self):
        with pytest.raises(MalformedRuleError, match="rule #1"):
            parse_rule_set([
                {"op": "read", "path": "/fine/.*", "allow": True},
                {"op": "read", "path": "(unclosed", "allow": False},
            ])

    def test_string_verdict_rejected(self):
        with pytest.raises(MalformedRuleError):
            parse_rule_set([{"op": "read", "path": ".*", "allow": "false"}])

    def test_source_recorded(self):
        assert parse_rule_set([], source="/etc/rules.yaml").source == "/etc/rules.yaml"


class TestRootDirExpansion:
    def test_placeholder_replaced_with_escaped_root(self):
        rules = parse_rule_set(
            [{"op": "read", "path": "<ROOT_DIR>/secrets/.*", "allow": False},
             {"op": "read", "path": ".*", "allow": True}],
            root_dir="/var/lib/gate.d",
        )
        assert rules.evaluate("read", "/var/lib/gate.d/secrets/key") is False
        # "." in the root is literal, not a wildcard
        assert rules.evaluate("read", "/var/lib/gateXd/secrets/key") is True

    def test_trailing_slash_trimmed(self):
        assert expand_root_dir("<ROOT_DIR>/x", "/srv/") == re2.escape("/srv") + "/x"
        rule = PathRule.of("read", expand_root_dir("<ROOT_DIR>/x", "/srv/"), True)
        assert rule.matches_path("/srv/x")
        assert not rule.matches_path("/srv//x")

    def test_no_placeholder_untouched(self):
        assert expand_root_dir("/abs/.*", None) == "/abs/.*"

    def test_placeholder_without_root_rejected(self):
        with pytest.raises(MalformedRuleError):
            parse_rule_set([{"op": "read", "path": "<ROOT_DIR>/x", "allow": True}])


# ─── RuleSetLoader.load ───────────────────────────────────────────────────────


class TestRuleSetLoaderLoad:
    def test_load_publishes_rule_set(self, tmp_path):
        published: list[PathRuleSet] = []
        loader = RuleSetLoader(published.append)
        path = _write(tmp_path, _VALID)

        assert loader.load(path) == 2
        assert len(published) == 1
        assert published[0].source == path
        assert published[0].evaluate("read", "/secrets/k") is False
        assert published[0].evaluate("write", "/tmp/a") is True

    def test_missing_file_publishes_empty_rule_set(self, tmp_path):
        published: list[PathRuleSet] = []
        loader = RuleSetLoader(published.append)

        assert loader.load(str(tmp_path / "absent.yaml")) == 0
        assert len(published) == 1
        assert published[0].evaluate("read", "/x") is False

    def test_invalid_yaml_raises_and_publishes_nothing(self, tmp_path):
        published: list[PathRuleSet] = []
        loader = RuleSetLoader(published.append)
        path = _write(tmp_path, "rules: [unclosed\n")

        with pytest.raises(MalformedRuleError, match="YAML"):
            loader.load(path)
        assert published == []

    def test_bad_rule_raises_and_publishes_nothing(self, tmp_path):
        published: list[PathRuleSet] = []
        loader = RuleSetLoader(published.append)
        path = _write(tmp_path, "rules:\n  - {op: read, path: '[bad', allow: true}\n")

        with pytest.raises(MalformedRuleError):
            loader.load(path)
        assert published == []

    def test_empty_file_publishes_empty_rule_set(self, tmp_path):
        published: list[PathRuleSet] = []
        loader = RuleSetLoader(published.append)
        assert loader.load(_write(tmp_path, "")) == 0
        assert len(published[0]) == 0


# ─── Hot reload ───────────────────────────────────────────────────────────────


class TestRuleSetWatcher:
    async def test_broken_edit_keeps_prior_snapshot(self, tmp_path, monkeypatch):
        import watchfiles

        published: list[PathRuleSet] = []
        loader = RuleSetLoader(published.append)
        path = _write(tmp_path, _VALID)
        loader.load(path)

        async def fake_awatch(watched):
            (tmp_path / "rules.yaml").write_text("rules:\n  - {op: bogus, path: x, allow: true}\n")
            yield {("modified", watched)}
            (tmp_path / "rules.yaml").write_text("rules:\n  - {op: read, path: '.*', allow: true}\n")
            yield {("modified", watched)}

        monkeypatch.setattr(watchfiles, "awatch", fake_awatch)

        await loader.start_watcher(path)

        # initial load + the second (valid) edit; the broken edit published nothing
        assert len(published) == 2
        assert published[-1].evaluate("read", "/secrets/k") is True

    async def test_watcher_error_stops_quietly(self, tmp_path, monkeypatch):
        import watchfiles

        async def failing_awatch(watched):
            raise RuntimeError("inotify limit reached")
            yield  # pragma: no cover

        monkeypatch.setattr(watchfiles, "awatch", failing_awatch)
        loader = RuleSetLoader(lambda rules: None)
        await loader.start_watcher(str(tmp_path / "rules.yaml"))
