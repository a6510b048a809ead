"""Administrator capability check for the Callgate admin API.

Provides ``require_admin()``: a FastAPI Depends()-compatible async dependency
that every admin route consumes. It is evaluated on every request; no
authorization result is cached between calls, so revoking the key (changing
the configured hash) takes effect on the next request.

Header extraction precedence:
  1. X-Callgate-Admin-Key: <key>
  2. Authorization: Bearer <key>

The key is verified with bcrypt against, in order:
  1. CALLGATE_ADMIN_KEY_HASH environment variable
  2. config.admin.key_hash (app.state.config)
With no hash configured every admin call is forbidden.

Auth control:
  - CALLGATE_ADMIN_REQUIRED=true  → capability enforced (default — production mode)
  - CALLGATE_ADMIN_REQUIRED=false → bypassed, caller 'anonymous' (testing/dev only)

Failures are reported as a bare HTTP 403 "Forbidden": no hint whether the
key was missing, wrong, or no key is configured at all.
"""

from __future__ import annotations

import os
import re
from typing import Optional

import bcrypt
from fastapi import HTTPException, Request

from callgate.errors import AuthorizationError
from callgate.utils.logger import get_logger

logger = get_logger(__name__)

#: bcrypt cost factor for hash_admin_key()
_BCRYPT_ROUNDS: int = 12

_BEARER_RE = re.compile(r"^Bearer\s+(\S+)", re.IGNORECASE)


def _is_admin_required() -> bool:
    """Read CALLGATE_ADMIN_REQUIRED dynamically so tests can monkeypatch it."""
    return os.environ.get("CALLGATE_ADMIN_REQUIRED", "true").lower() == "true"


def _extract_bearer(authorization: str) -> Optional[str]:
    if not authorization:
        return None
    m = _BEARER_RE.match(authorization.strip())
    return m.group(1) if m else None


def _configured_key_hash(request: Request) -> Optional[str]:
    env_hash = os.environ.get("CALLGATE_ADMIN_KEY_HASH")
    if env_hash:
        return env_hash
    config = getattr(request.app.state, "config", None)
    if config is None:
        return None
    return config.admin.key_hash


def hash_admin_key(plaintext: str) -> str:
    """Return the bcrypt hash to configure for ``plaintext``."""
    salt = bcrypt.gensalt(rounds=_BCRYPT_ROUNDS)
    return bcrypt.hashpw(plaintext.encode(), salt).decode()


def check_admin_key(key: Optional[str], key_hash: Optional[str]) -> None:
    """Succeed silently if ``key`` matches ``key_hash``.

    Raises:
        AuthorizationError: no key, no configured hash, malformed hash, or mismatch.
    """
    if not key or not key_hash:
        raise AuthorizationError()
    try:
        ok = bcrypt.checkpw(key.encode(), key_hash.encode())
    except ValueError as exc:
        logger.error("Configured admin key hash is not a valid bcrypt hash", error=str(exc))
        raise AuthorizationError() from exc
    if not ok:
        raise AuthorizationError()


async def require_admin(request: Request) -> str:
    """FastAPI dependency: require administrator capability.

    Returns:
        'admin' on success, or 'anonymous' when CALLGATE_ADMIN_REQUIRED=false.

    Raises:
        HTTPException(403): capability missing. The route handler never runs,
                            so no mutation is partially applied.
    """
    if not _is_admin_required():
        return "anonymous"

    key = request.headers.get("X-Callgate-Admin-Key") or _extract_bearer(
        request.headers.get("Authorization", "")
    )

    try:
        check_admin_key(key, _configured_key_hash(request))
    except AuthorizationError:
        logger.warning(
            "Admin authorization failed",
            path=str(request.url.path),
            method=request.method,
            key_present=bool(key),
        )
        raise HTTPException(status_code=403, detail="Forbidden")

    return "admin"
