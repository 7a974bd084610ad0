"""Constants for beadsync."""

from __future__ import annotations

# Default values applied when normalizing externally-authored records
DEFAULT_STATUS = "open"
DEFAULT_TYPE = "task"
DEFAULT_PRIORITY = 3
MIN_PRIORITY = 1
MAX_PRIORITY = 5

# Default locations inside the backing repository
ISSUES_PATH = ".beads/issues.jsonl"
DELETIONS_PATH = ".beads/deletions.jsonl"
MARKDOWN_DIR = ".beads/issues"

# Local configuration directory and file
CONFIG_DIRNAME = ".beadsync"
CONFIG_FILENAME = "config.toml"
DEFAULT_ACTION_LOG = ".beadsync/action-log.jsonl"
DEFAULT_ID_PREFIX = "bd"

# Retry configuration
MAX_RETRIES = 3
BASE_DELAY_MS = 100
MAX_DELAY_MS = 2000

# Fields a caller may change through update; the merge engine only looks at these
EDITABLE_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "status",
    "priority",
    "issue_type",
    "assignee",
)

# Fields accepted by bulk update
BULK_FIELDS: frozenset[str] = frozenset({"status", "priority"})

# Length limits
ISSUE_TITLE_MAX = 256
ISSUE_DESCRIPTION_MAX = 65536
COMMENT_TEXT_MAX = 32768
REPO_OWNER_MAX = 39
REPO_NAME_MAX = 100
ISSUE_ID_MAX = 64
BULK_IDS_MAX = 500

# Progressive ID length scaling thresholds
# Tuple of (max_issue_count, id_length)
ID_LENGTH_THRESHOLDS = (
    (500, 4),
    (1500, 5),
    (5000, 6),
)
ID_LENGTH_MAX = 7

# Action log payload sanitizing
SENSITIVE_FIELDS: tuple[str, ...] = (
    "password",
    "token",
    "secret",
    "api_key",
    "apikey",
    "auth",
    "authorization",
    "bearer",
    "credit_card",
    "creditcard",
    "ssn",
    "social_security",
    "socialsecurity",
)
PAYLOAD_MAX_STRING = 1000
PAYLOAD_MAX_DEPTH = 10

# Color mappings for CLI display
PRIORITY_COLORS = {
    1: "bright_red",
    2: "yellow",
    3: "white",
    4: "cyan",
    5: "bright_black",
}

TYPE_COLORS = {
    "task": "white",
    "bug": "bright_red",
    "feature": "bright_green",
    "epic": "bright_magenta",
}

STATUS_COLORS = {
    "open": "bright_green",
    "in_progress": "bright_blue",
    "closed": "white",
}
