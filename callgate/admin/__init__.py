"""Callgate admin adapter.

Public API:
  - router                   — FastAPI routes for whitelist administration
  - require_admin()          — per-request administrator capability dependency
  - check_admin_key()        — bcrypt verification, raises AuthorizationError
  - hash_admin_key()         — bcrypt hash for configuring a new admin key
  - AdminLocalhostMiddleware — loopback-only guard for /admin/*
"""

from __future__ import annotations

from callgate.admin.auth import check_admin_key, hash_admin_key, require_admin
from callgate.admin.middleware import AdminLocalhostMiddleware
from callgate.admin.router import router

__all__ = [
    "AdminLocalhostMiddleware",
    "check_admin_key",
    "hash_admin_key",
    "require_admin",
    "router",
]
