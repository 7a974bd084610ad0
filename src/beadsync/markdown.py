"""Markdown codec for the one-file-per-issue storage layout.

Each issue lives in ``<markdown_dir>/<id>.md``: a YAML front matter block
between ``---`` fences, then a ``# <title>`` heading and the description as
free text.  This layout never takes part in three-way merge; updates to it
are last-write-wins.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

import yaml

from beadsync.models import normalize_issue

if TYPE_CHECKING:
    from beadsync.models import Issue

DELIMITER = "---"

_DOCUMENT_RE = re.compile(
    r"\A---[ \t]*\r?\n(.*?)^---[ \t]*\r?$\n?(.*)\Z",
    re.DOTALL | re.MULTILINE,
)

# Front matter key -> issue dict key
_KEY_ALIASES = {
    "created": "created_at",
    "updated": "updated_at",
    "closed": "closed_at",
    "type": "issue_type",
}

# Keys written by serialize_markdown_issue() itself
_WRITTEN_KEYS = frozenset(
    {"id", "title", "type", "status", "priority", "assignee", "created",
     "updated", "closed", "parent", "description", *_KEY_ALIASES.values()},
)

_LINE_BREAKS = ("\n", "\r", "\x85", "\u2028", "\u2029")


class _FrontMatterDumper(yaml.SafeDumper):
    """Safe dumper that never spreads a string over several lines."""


def _represent_str(dumper: yaml.SafeDumper, value: str) -> yaml.ScalarNode:
    style = '"' if any(brk in value for brk in _LINE_BREAKS) else None
    return dumper.represent_scalar("tag:yaml.org,2002:str", value, style=style)


_FrontMatterDumper.add_representer(str, _represent_str)


def _heading(title: str) -> str:
    return ("# " + " ".join(title.split())).rstrip()


def parse_markdown_issue(content: str) -> Issue:
    """Parse a markdown issue document.

    Args:
        content: The full text of the ``.md`` file.

    Returns:
        The normalized issue.

    Raises:
        ValueError: If the front matter is missing or is not a YAML mapping.
    """
    match = _DOCUMENT_RE.match(content)
    if not match:
        msg = "Invalid markdown issue: missing front matter"
        raise ValueError(msg)

    front_matter, body = match.groups()
    try:
        loaded = yaml.safe_load(front_matter)
    except yaml.YAMLError as e:
        msg = f"Invalid markdown issue front matter: {e}"
        raise ValueError(msg) from e
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        msg = "Invalid markdown issue: front matter must be a mapping"
        raise ValueError(msg)

    meta: dict[str, Any] = {
        _KEY_ALIASES.get(str(key), str(key)): value for key, value in loaded.items()
    }

    title = str(meta.get("title") or "")
    lines = body.strip().splitlines()
    # The title heading is generated on write and is not part of the description
    if lines and lines[0].strip() == _heading(title):
        lines = lines[1:]
    meta["description"] = "\n".join(lines).strip()

    return normalize_issue(meta)


def serialize_markdown_issue(issue: Issue) -> str:
    """Serialize an issue as a markdown document."""
    meta: dict[str, Any] = {
        "id": issue.id,
        "title": issue.title,
        "type": issue.issue_type.value,
        "status": issue.status.value,
        "priority": issue.priority,
        "created": issue.created_at.isoformat(),
    }
    if issue.updated_at is not None:
        meta["updated"] = issue.updated_at.isoformat()
    if issue.closed_at is not None:
        meta["closed"] = issue.closed_at.isoformat()
    if issue.assignee:
        meta["assignee"] = issue.assignee
    if issue.parent:
        meta["parent"] = issue.parent
    for key, value in issue.extra.items():
        if key not in _WRITTEN_KEYS:
            meta[key] = value

    header = yaml.dump(
        meta,
        Dumper=_FrontMatterDumper,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=float("inf"),
    )
    parts = [DELIMITER, "\n", header, DELIMITER, "\n\n", _heading(issue.title), "\n"]
    if issue.description:
        parts.extend(["\n", issue.description, "\n"])
    return "".join(parts)


def markdown_path(markdown_dir: str, issue_id: str) -> str:
    """Return the store path of an issue's markdown file."""
    return f"{markdown_dir.rstrip('/')}/{issue_id}.md"
