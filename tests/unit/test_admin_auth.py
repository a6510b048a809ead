"""Tests for callgate/admin/auth.py — the administrator capability check.

Covers:
  - check_admin_key(): match, mismatch, missing key, missing hash, bad hash
  - require_admin(): header and Bearer extraction, env vs config hash
  - CALLGATE_ADMIN_REQUIRED=false bypass
  - No caching: changing the configured hash takes effect immediately
"""

from __future__ import annotations

import bcrypt
import pytest
from fastapi import Depends, FastAPI
from httpx import ASGITransport, AsyncClient

from callgate.admin.auth import check_admin_key, hash_admin_key, require_admin
from callgate.config import AdminConfig, Config
from callgate.errors import AuthorizationError

KEY = "correct horse battery staple"


def _fast_hash(key: str) -> str:
    return bcrypt.hashpw(key.encode(), bcrypt.gensalt(rounds=4)).decode()


KEY_HASH = _fast_hash(KEY)


@pytest.fixture
def admin_required(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CALLGATE_ADMIN_REQUIRED", "true")


def _make_app(key_hash=None) -> FastAPI:
    app = FastAPI()
    app.state.config = Config(admin=AdminConfig(key_hash=key_hash))

    @app.post("/admin/approve")
    async def approve(caller: str = Depends(require_admin)):
        return {"caller": caller}

    return app


async def _post(app: FastAPI, headers: dict | None = None):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.post("/admin/approve", headers=headers or {})


# ─── check_admin_key ──────────────────────────────────────────────────────────


class TestCheckAdminKey:
    def test_matching_key(self):
        check_admin_key(KEY, KEY_HASH)

    def test_wrong_key(self):
        with pytest.raises(AuthorizationError):
            check_admin_key("nope", KEY_HASH)

    @pytest.mark.parametrize("key", [None, ""])
    def test_missing_key(self, key):
        with pytest.raises(AuthorizationError):
            check_admin_key(key, KEY_HASH)

    def test_no_hash_configured(self):
        with pytest.raises(AuthorizationError):
            check_admin_key(KEY, None)

    def test_malformed_hash(self):
        with pytest.raises(AuthorizationError):
            check_admin_key(KEY, "not-a-bcrypt-hash")

    def test_error_message_is_generic(self):
        with pytest.raises(AuthorizationError) as exc_info:
            check_admin_key("nope", KEY_HASH)
        assert exc_info.value.message == "Forbidden"

    def test_hash_admin_key_roundtrip(self):
        hashed = hash_admin_key("k3y")
        assert hashed.startswith("$2")
        check_admin_key("k3y", hashed)


# ─── require_admin ────────────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestRequireAdmin:

    async def test_header_key_accepted(self, admin_required):
        response = await _post(_make_app(KEY_HASH), {"X-Callgate-Admin-Key": KEY})
        assert response.status_code == 200
        assert response.json() == {"caller": "admin"}

    async def test_bearer_single_token_key(self, admin_required):
        app = _make_app(_fast_hash("tok3n"))
        response = await _post(app, {"Authorization": "Bearer tok3n"})
        assert response.status_code == 200

    async def test_missing_key_forbidden(self, admin_required):
        response = await _post(_make_app(KEY_HASH))
        assert response.status_code == 403
        assert response.json()["detail"] == "Forbidden"

    async def test_wrong_key_forbidden(self, admin_required):
        response = await _post(_make_app(KEY_HASH), {"X-Callgate-Admin-Key": "wrong"})
        assert response.status_code == 403

    async def test_no_hash_anywhere_forbidden(self, admin_required):
        response = await _post(_make_app(None), {"X-Callgate-Admin-Key": KEY})
        assert response.status_code == 403

    async def test_env_hash_takes_precedence(self, admin_required, monkeypatch):
        monkeypatch.setenv("CALLGATE_ADMIN_KEY_HASH", _fast_hash("env-key"))
        app = _make_app(KEY_HASH)

        assert (await _post(app, {"X-Callgate-Admin-Key": "env-key"})).status_code == 200
        assert (await _post(app, {"X-Callgate-Admin-Key": KEY})).status_code == 403

    async def test_rotated_hash_applies_to_next_request(self, admin_required):
        app = _make_app(KEY_HASH)
        assert (await _post(app, {"X-Callgate-Admin-Key": KEY})).status_code == 200

        app.state.config.admin.key_hash = _fast_hash("rotated")

        assert (await _post(app, {"X-Callgate-Admin-Key": KEY})).status_code == 403
        assert (await _post(app, {"X-Callgate-Admin-Key": "rotated"})).status_code == 200

    async def test_bypass_when_not_required(self):
        # conftest sets CALLGATE_ADMIN_REQUIRED=false
        response = await _post(_make_app(None))
        assert response.status_code == 200
        assert response.json() == {"caller": "anonymous"}
