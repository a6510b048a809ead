"""Callgate filesystem access rules.

Public API:
    PathRule         — (operation matcher, path pattern, verdict)
    PathRuleSet      — ordered rules, first match wins, default deny
    OperationMatcher — closed-vocabulary operation matcher
    RuleSetLoader    — YAML loader with watchfiles hot-reload
"""
from callgate.rules.loader import RuleSetLoader, parse_rule_set
from callgate.rules.model import OperationMatcher, PathRule, PathRuleSet

__all__ = ["OperationMatcher", "PathRule", "PathRuleSet", "RuleSetLoader", "parse_rule_set"]
