"""Shared constants for Callgate.

File names, the operation vocabulary, and admin surface limits live here.
No magic strings in other modules — import from here.
"""

# ─── Persisted state ─────────────────────────────────────────────────────────

# Subdirectory of the root dir holding the whitelist files. Write access to
# these files is equivalent to code execution, so they live with the secrets.
SECRETS_DIRNAME: str = "secrets"

WHITELIST_FILENAME: str = "whitelisted-callables.txt"
REJECTED_FILENAME: str = "rejected-callables.txt"

# Default rule file, relative to the root dir.
RULES_FILENAME: str = "filepath-rules.yaml"

# Permissions applied to the secrets directory and every file written in it.
SECRETS_DIR_MODE: int = 0o700
SECRETS_FILE_MODE: int = 0o600

# ─── Filesystem operations ───────────────────────────────────────────────────

# Closed vocabulary of filesystem operations a rule can name.
FILE_OPERATIONS: frozenset[str] = frozenset({
    "read",
    "write",
    "mkdirs",
    "create",
    "delete",
    "stat",
    "symlink",
    "chmod",
    "list",
})

# Alternate spellings accepted in rule files and at evaluation time.
OPERATION_ALIASES: dict[str, str] = {"mkdir": "mkdirs"}

# Operation tokens that match every operation.
ANY_OPERATION_TOKENS: frozenset[str] = frozenset({"*", "all"})

# Placeholder substituted with the escaped root dir inside rule path patterns.
ROOT_DIR_PLACEHOLDER: str = "<ROOT_DIR>"

# ─── Admin surface ───────────────────────────────────────────────────────────

# Parameter prefix for individually selected classes on whitelist submit.
CLASS_PARAM_PREFIX: str = "class:"

# Writes slower than this are logged at WARNING.
SLOW_WRITE_THRESHOLD_MS: float = 50.0
