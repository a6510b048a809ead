"""Callgate callable whitelist.

Public API:
    PersistentLineSet — atomically rewritten set of lines on disk
    WhitelistStore    — approved callable type names
    RejectionLog      — rejected callable type names pending review
    qualified_name    — type identity used for whitelisting
"""
from callgate.whitelist.naming import qualified_name
from callgate.whitelist.rejections import RejectionLog
from callgate.whitelist.store import PersistentLineSet, WhitelistStore, secrets_path

__all__ = ["PersistentLineSet", "RejectionLog", "WhitelistStore", "qualified_name", "secrets_path"]
