"""Configuration file handling for beadsync.

Settings live in ``.beadsync/config.toml``::

    backend = "local"          # or "github"
    root = "."                 # local backend: directory holding .beads/
    layout = "auto"            # auto, jsonl or markdown
    id_prefix = "bd"
    action_log = ".beadsync/actions.jsonl"

    [retry]
    max_retries = 3
    base_delay_ms = 100
    max_delay_ms = 2000

    [github]
    owner = "octo"
    repo = "tracker"
    branch = "main"
    token_env = "GITHUB_TOKEN"
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import tomli_w

from beadsync.action_log import JSONLActionLog
from beadsync.constants import (
    BASE_DELAY_MS,
    CONFIG_DIRNAME,
    CONFIG_FILENAME,
    DEFAULT_ACTION_LOG,
    DEFAULT_ID_PREFIX,
    DELETIONS_PATH,
    ISSUES_PATH,
    MARKDOWN_DIR,
    MAX_DELAY_MS,
    MAX_RETRIES,
)
from beadsync.content_store import LocalContentStore
from beadsync.errors import ValidationError
from beadsync.github_store import DEFAULT_API_URL, GitHubContentStore
from beadsync.operations import CollectionPaths, IssueService, Layout
from beadsync.retry import RetryPolicy

if TYPE_CHECKING:
    from beadsync.content_store import ContentStore

logger = logging.getLogger(__name__)

BACKENDS = ("local", "github")


@dataclass
class RetrySettings:
    """Retry bound and backoff, in milliseconds as written in the file."""

    max_retries: int = MAX_RETRIES
    base_delay_ms: int = BASE_DELAY_MS
    max_delay_ms: int = MAX_DELAY_MS

    def policy(self) -> RetryPolicy:
        """Convert to a ``RetryPolicy``."""
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay_ms / 1000,
            max_delay=self.max_delay_ms / 1000,
        )


@dataclass
class GitHubSettings:
    """Target repository for the GitHub backend."""

    owner: str = ""
    repo: str = ""
    branch: str | None = None
    api_url: str = DEFAULT_API_URL
    token_env: str = "GITHUB_TOKEN"


@dataclass
class Settings:
    """Resolved beadsync configuration."""

    backend: str = "local"
    root: str = "."
    layout: str = Layout.AUTO.value
    issues_path: str = ISSUES_PATH
    deletions_path: str = DELETIONS_PATH
    markdown_dir: str = MARKDOWN_DIR
    id_prefix: str = DEFAULT_ID_PREFIX
    action_log: str | None = DEFAULT_ACTION_LOG
    retry: RetrySettings = field(default_factory=RetrySettings)
    github: GitHubSettings = field(default_factory=GitHubSettings)
    base_dir: Path = field(default_factory=Path.cwd)

    def paths(self) -> CollectionPaths:
        """File locations inside the store."""
        return CollectionPaths(
            issues=self.issues_path,
            deletions=self.deletions_path,
            markdown_dir=self.markdown_dir,
        )

    def resolve(self, value: str) -> Path:
        """Resolve a path from the config file relative to the project dir."""
        path = Path(value)
        return path if path.is_absolute() else self.base_dir / path


def get_config_path(config_dir: str | Path) -> Path:
    """Get the path to the config file inside ``config_dir``."""
    return Path(config_dir) / CONFIG_FILENAME


def find_config_dir(start: str | Path | None = None) -> Path | None:
    """Walk up from ``start`` looking for a ``.beadsync`` directory.

    Returns:
        The directory, or None if no ancestor has one.
    """
    current = Path(start or Path.cwd()).resolve()
    for candidate in (current, *current.parents):
        config_dir = candidate / CONFIG_DIRNAME
        if config_dir.is_dir():
            return config_dir
    return None


def load_config(config_dir: str | Path) -> dict[str, Any]:
    """Load configuration from ``config.toml``.

    Args:
        config_dir: Path to the ``.beadsync`` directory.

    Returns:
        Configuration dictionary, or empty dict if no config exists.
    """
    config_path = get_config_path(config_dir)
    if not config_path.exists():
        return {}

    try:
        with config_path.open("rb") as f:
            return tomllib.load(f)
    except (tomllib.TOMLDecodeError, OSError):
        logger.warning("Ignoring unreadable config file %s", config_path)
        return {}


def save_config(config_dir: str | Path, config: dict[str, Any]) -> None:
    """Save configuration to ``config.toml``, creating the directory."""
    config_path = get_config_path(config_dir)
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with config_path.open("wb") as f:
        tomli_w.dump(config, f)


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name, {})
    if not isinstance(value, dict):
        msg = f"[{name}] must be a table"
        raise ValidationError(msg)
    return value


def settings_from_dict(raw: dict[str, Any], base_dir: str | Path) -> Settings:
    """Build ``Settings`` from a parsed config dictionary.

    Unknown keys are ignored.  ``base_dir`` is the project directory that
    relative paths are resolved against.
    """
    retry_raw = _section(raw, "retry")
    github_raw = _section(raw, "github")

    settings = Settings(base_dir=Path(base_dir))
    for key in (
        "backend",
        "root",
        "layout",
        "issues_path",
        "deletions_path",
        "markdown_dir",
        "id_prefix",
    ):
        if key in raw:
            setattr(settings, key, str(raw[key]))
    if "action_log" in raw:
        settings.action_log = str(raw["action_log"]) or None

    for key in ("max_retries", "base_delay_ms", "max_delay_ms"):
        if key in retry_raw:
            setattr(settings.retry, key, int(retry_raw[key]))
    for key in ("owner", "repo", "branch", "api_url", "token_env"):
        if key in github_raw:
            setattr(settings.github, key, str(github_raw[key]))

    if settings.backend not in BACKENDS:
        msg = f"Unknown backend {settings.backend!r}; expected one of: {', '.join(BACKENDS)}"
        raise ValidationError(msg)
    try:
        Layout(settings.layout)
    except ValueError:
        msg = f"Unknown layout {settings.layout!r}"
        raise ValidationError(msg) from None
    return settings


def settings_to_dict(settings: Settings) -> dict[str, Any]:
    """Convert ``Settings`` back to the dictionary written to disk."""
    data: dict[str, Any] = {
        "backend": settings.backend,
        "root": settings.root,
        "layout": settings.layout,
        "issues_path": settings.issues_path,
        "deletions_path": settings.deletions_path,
        "markdown_dir": settings.markdown_dir,
        "id_prefix": settings.id_prefix,
        "action_log": settings.action_log or "",
        "retry": {
            "max_retries": settings.retry.max_retries,
            "base_delay_ms": settings.retry.base_delay_ms,
            "max_delay_ms": settings.retry.max_delay_ms,
        },
    }
    if settings.backend == "github":
        github = {
            "owner": settings.github.owner,
            "repo": settings.github.repo,
            "api_url": settings.github.api_url,
            "token_env": settings.github.token_env,
        }
        if settings.github.branch:
            github["branch"] = settings.github.branch
        data["github"] = github
    return data


def load_settings(start: str | Path | None = None) -> Settings:
    """Find the nearest ``.beadsync`` directory and load its settings.

    Without a config directory the defaults apply, rooted at ``start``.
    """
    config_dir = find_config_dir(start)
    if config_dir is None:
        return Settings(base_dir=Path(start or Path.cwd()).resolve())
    return settings_from_dict(load_config(config_dir), config_dir.parent)


def build_store(settings: Settings) -> ContentStore:
    """Create the content store the settings describe."""
    if settings.backend == "github":
        github = settings.github
        if not github.owner or not github.repo:
            msg = "GitHub backend requires [github] owner and repo"
            raise ValidationError(msg)
        return GitHubContentStore(
            github.owner,
            github.repo,
            os.environ.get(github.token_env),
            branch=github.branch,
            api_url=github.api_url,
        )
    return LocalContentStore(settings.resolve(settings.root))


def build_service(
    settings: Settings,
    store: ContentStore | None = None,
    **kwargs: Any,
) -> IssueService:
    """Create an ``IssueService`` from settings.

    Args:
        settings: Loaded settings.
        store: Store to use instead of the one the settings describe.
        **kwargs: Passed through to ``IssueService``.
    """
    action_log = (
        JSONLActionLog(settings.resolve(settings.action_log))
        if settings.action_log
        else None
    )
    if settings.backend == "github":
        kwargs.setdefault("repo_owner", settings.github.owner)
        kwargs.setdefault("repo_name", settings.github.repo)
    kwargs.setdefault("action_log", action_log)
    return IssueService(
        store if store is not None else build_store(settings),
        paths=settings.paths(),
        layout=settings.layout,
        policy=settings.retry.policy(),
        id_prefix=settings.id_prefix,
        **kwargs,
    )
