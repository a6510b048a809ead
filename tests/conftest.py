"""Root test configuration for Callgate.

Disables the admin capability check and the localhost-only guard for the
whole suite so gate and endpoint tests do not need to provision keys.

Tests that verify enforcement (test_admin_auth.py, the auth cases in
test_admin_endpoints.py, test_admin_localhost_middleware.py) re-enable them
with their own monkeypatch fixtures.

Production default is CALLGATE_ADMIN_REQUIRED=true — see callgate/admin/auth.py.
"""

import pytest

_ISOLATED_ENV = (
    "CALLGATE_CONFIG",
    "CALLGATE_ROOT_DIR",
    "CALLGATE_PORT",
    "CALLGATE_PERSIST_REJECTIONS",
    "CALLGATE_ADMIN_KEY_HASH",
)


@pytest.fixture(autouse=True)
def disable_admin_checks_for_tests(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CALLGATE_ADMIN_REQUIRED", "false")
    monkeypatch.setenv("CALLGATE_ADMIN_LOCALHOST_ONLY", "false")
    for name in _ISOLATED_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def reset_rate_limiter() -> None:
    """Reset the in-memory rate limiter storage between tests."""
    from callgate.admin.limiter import limiter
    try:
        limiter._storage.reset()
    except Exception:
        pass  # not every storage backend supports reset()


@pytest.fixture
def secrets_dir(tmp_path):
    return tmp_path / "secrets"


@pytest.fixture
def gate(secrets_dir):
    """An AdminGate over fresh files in a temp secrets dir, no rules."""
    from callgate.gate import AdminGate
    from callgate.whitelist import RejectionLog, WhitelistStore

    whitelist = WhitelistStore(secrets_dir / "whitelisted-callables.txt")
    rejected = RejectionLog(whitelist)
    return AdminGate(whitelist, rejected)
