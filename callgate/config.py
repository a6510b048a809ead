"""Config loading for Callgate.

Reads `.callgate/config.yaml` (or `~/.callgate/config.yaml`).
Raises SystemExit on parse errors or missing `version` field.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. CALLGATE_CONFIG environment variable (if set)
  3. `.callgate/config.yaml` (working directory — for development)
  4. `~/.callgate/config.yaml` (home directory — for production deployments)

Environment variable overrides:
  CALLGATE_ROOT_DIR            — overrides gate.root_dir
  CALLGATE_PORT                — overrides server.port
  CALLGATE_PERSIST_REJECTIONS  — overrides gate.persist_rejections (true/false)
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Optional

import yaml

from callgate.constants import (
    REJECTED_FILENAME,
    RULES_FILENAME,
    WHITELIST_FILENAME,
)
from callgate.utils.logger import get_logger
from callgate.whitelist.store import secrets_path

logger = get_logger(__name__)

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

DEFAULT_ROOT_DIR = "~/.callgate"

DEFAULT_CONFIG_PATHS = [
    ".callgate/config.yaml",
    os.path.expanduser("~/.callgate/config.yaml"),
]


def _config_error(msg: str) -> None:
    print(f"CONFIG ERROR: {msg}", file=sys.stderr)
    raise SystemExit(1)


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class GateConfig:
    """Where the gate keeps its state and how it treats rejections.

    root_dir:            Deployment root. Whitelist files live in <root_dir>/secrets/.
    rules_path:          Rule file; defaults to <root_dir>/filepath-rules.yaml.
    persist_rejections:  Append rejections to rejected-callables.txt and
                         reload them at startup.
    watch_rules:         Hot-reload the rule file on change.
    """

    root_dir: str = DEFAULT_ROOT_DIR
    rules_path: Optional[str] = None
    persist_rejections: bool = False
    watch_rules: bool = True

    @property
    def resolved_root_dir(self) -> str:
        # expanduser only; the root is never canonicalized
        return os.path.expanduser(self.root_dir)

    @property
    def resolved_rules_path(self) -> str:
        if self.rules_path:
            return os.path.expanduser(self.rules_path)
        return os.path.join(self.resolved_root_dir, RULES_FILENAME)

    @property
    def whitelist_path(self) -> str:
        return str(secrets_path(self.resolved_root_dir, WHITELIST_FILENAME))

    @property
    def rejected_path(self) -> str:
        return str(secrets_path(self.resolved_root_dir, REJECTED_FILENAME))


@dataclass
class AdminConfig:
    """Admin adapter configuration.

    key_hash: bcrypt hash of the administrator key. CALLGATE_ADMIN_KEY_HASH
              takes precedence. With neither set every admin call is forbidden.
    """

    key_hash: Optional[str] = None


@dataclass
class ServerConfig:
    """Admin server binding configuration."""

    host: str = "127.0.0.1"
    port: int = 4343


@dataclass
class Config:
    """Root configuration object populated from .callgate/config.yaml.

    All fields have safe defaults — Callgate can start without any config file.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    gate: GateConfig = field(default_factory=GateConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    path: Optional[str] = None

    @classmethod
    def defaults(cls) -> "Config":
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On a section that is not a mapping or a field of the wrong type.
        """
        gate_raw = _section(raw, "gate")
        gate = GateConfig(
            root_dir=_typed(gate_raw, "gate.root_dir", "root_dir", str, DEFAULT_ROOT_DIR),
            rules_path=_typed(gate_raw, "gate.rules_path", "rules_path", str, None),
            persist_rejections=_typed(gate_raw, "gate.persist_rejections", "persist_rejections", bool, False),
            watch_rules=_typed(gate_raw, "gate.watch_rules", "watch_rules", bool, True),
        )

        admin_raw = _section(raw, "admin")
        admin = AdminConfig(
            key_hash=_typed(admin_raw, "admin.key_hash", "key_hash", str, None),
        )

        server_raw = _section(raw, "server")
        server = ServerConfig(
            host=_typed(server_raw, "server.host", "host", str, "127.0.0.1"),
            port=_typed(server_raw, "server.port", "port", int, 4343),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            gate=gate,
            admin=admin,
            server=server,
            path=path,
        )


def _section(raw: dict, name: str) -> dict:
    value = raw.get(name) or {}
    if not isinstance(value, dict):
        _config_error(f"'{name}' must be a mapping, got {type(value).__name__}.")
    return value


def _typed(section: dict, label: str, key: str, kind: type, default):
    value = section.get(key, default)
    if value is None:
        return default
    # bool is a subclass of int; "port: true" is not a port
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        _config_error(f"'{label}' must be of type {kind.__name__}, got {value!r}.")
    return value


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate Callgate configuration.

    If no file is found at any search path, returns default Config (not an error).
    If a file is found but invalid, writes error to stderr and raises SystemExit(1).

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, a mistyped field, or an invalid env override.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("CALLGATE_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _config_error(
            f"Failed to parse {found_path}: {exc}\n"
            "Callgate refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _config_error(f"Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _config_error(
                f"{found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _config_error(
            f"{found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _config_error(
            f"{found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )
    if version not in SUPPORTED_VERSIONS:
        _config_error(
            f"Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.server.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: Callgate admin server is configured to bind on 0.0.0.0 "
            "(all interfaces). Recommended: server.host: '127.0.0.1'."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        root_dir=config.gate.root_dir,
        persist_rejections=config.gate.persist_rejections,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If CALLGATE_PORT is not an integer or
                       CALLGATE_PERSIST_REJECTIONS is not true/false.
    """
    env_root = os.environ.get("CALLGATE_ROOT_DIR")
    if env_root:
        config.gate.root_dir = env_root

    env_port = os.environ.get("CALLGATE_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _config_error(
                f"CALLGATE_PORT environment variable is not a valid integer: '{env_port}'"
            )

    env_persist = os.environ.get("CALLGATE_PERSIST_REJECTIONS")
    if env_persist is not None:
        value = env_persist.strip().lower()
        if value not in ("true", "false"):
            _config_error(
                f"CALLGATE_PERSIST_REJECTIONS must be 'true' or 'false', got '{env_persist}'"
            )
        config.gate.persist_rejections = value == "true"
