"""Programmatic uvicorn entry point for the Callgate admin server.

Usage:
    python -m callgate.run          # reads .callgate/config.yaml
    callgate                        # via pyproject.toml [project.scripts]
    callgate-hash-key               # prints a bcrypt hash for admin.key_hash
"""

from __future__ import annotations

import getpass

import uvicorn

from callgate.admin.auth import hash_admin_key
from callgate.config import load_config

UVICORN_LIMIT_CONCURRENCY: int = 20

UVICORN_BACKLOG: int = 50

UVICORN_TIMEOUT_KEEP_ALIVE: int = 5


def main() -> None:
    """Start the admin server with hardened uvicorn defaults.

    Raises:
        SystemExit: Propagated from load_config() on config parse errors.
    """
    config = load_config()

    uvicorn.run(
        "callgate.main:app",
        host=config.server.host,
        port=config.server.port,
        limit_concurrency=UVICORN_LIMIT_CONCURRENCY,
        backlog=UVICORN_BACKLOG,
        timeout_keep_alive=UVICORN_TIMEOUT_KEEP_ALIVE,
    )


def hash_key() -> None:
    """Prompt for an admin key and print the hash to put in admin.key_hash."""
    key = getpass.getpass("Admin key: ")
    if not key:
        raise SystemExit("empty key")
    print(hash_admin_key(key))


if __name__ == "__main__":
    main()
