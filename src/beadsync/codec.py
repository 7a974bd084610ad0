"""JSONL codec for the issue collection and the deletions log.

Decoding is lenient: a malformed line costs that line only, never the
whole collection.  Encoding is strict and always produces one object per
line with a trailing newline.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import orjson

from beadsync.models import (
    Tombstone,
    issue_to_dict,
    normalize_issue,
    parse_timestamp,
    tombstone_to_dict,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from beadsync.models import Issue

logger = logging.getLogger(__name__)

_CONFLICT_MARKERS = (b"<<<<<<<", b"=======", b">>>>>>>")


def decode_lines(data: bytes, *, source: str = "<bytes>") -> list[dict[str, Any]]:
    """Decode JSONL bytes into a list of dicts, skipping invalid lines.

    Logs warnings for malformed lines, non-object values and git conflict
    markers so that skipped records are visible in the logs.

    Args:
        data: Raw file content.
        source: Name used in log messages (usually the file path).

    Returns:
        The decoded objects in file order.
    """
    records: list[dict[str, Any]] = []
    for line_num, raw in enumerate(data.splitlines(), 1):
        stripped = raw.strip()
        if not stripped:
            continue
        if stripped.startswith(_CONFLICT_MARKERS):
            logger.warning(
                "Git conflict marker at line %d in %s, file has unresolved conflicts",
                line_num,
                source,
            )
            continue
        try:
            value = orjson.loads(stripped)
        except orjson.JSONDecodeError:
            logger.warning("Skipping malformed JSONL at line %d in %s", line_num, source)
            continue
        if not isinstance(value, dict):
            logger.warning("Skipping non-object JSONL at line %d in %s", line_num, source)
            continue
        records.append(value)
    return records


def decode_issues(data: bytes, *, source: str = "<bytes>") -> dict[str, Issue]:
    """Decode JSONL bytes into issues keyed by id, preserving file order.

    A later record with the same id replaces the earlier one in place.
    Records without an id are skipped.
    """
    issues: dict[str, Issue] = {}
    for record in decode_lines(data, source=source):
        issue = normalize_issue(record)
        if not issue.id:
            logger.warning("Skipping issue record without id in %s", source)
            continue
        issues[issue.id] = issue
    return issues


def encode_issues(issues: Iterable[Issue]) -> bytes:
    """Encode issues as JSONL bytes."""
    return b"".join(orjson.dumps(issue_to_dict(issue)) + b"\n" for issue in issues)


def decode_tombstones(data: bytes, *, source: str = "<bytes>") -> list[Tombstone]:
    """Decode the deletions log, skipping entries without an id."""
    tombstones: list[Tombstone] = []
    for record in decode_lines(data, source=source):
        tombstone_id = record.get("id")
        if not tombstone_id:
            continue
        deleted_at = parse_timestamp(record.get("deleted_at"))
        if deleted_at is None:
            logger.warning(
                "Tombstone for %s has no valid deleted_at in %s",
                tombstone_id,
                source,
            )
            continue
        tombstones.append(Tombstone(id=str(tombstone_id), deleted_at=deleted_at))
    return tombstones


def encode_tombstones(tombstones: Iterable[Tombstone]) -> bytes:
    """Encode tombstones as JSONL bytes."""
    return b"".join(orjson.dumps(tombstone_to_dict(t)) + b"\n" for t in tombstones)


def tombstoned_ids(data: bytes | None, *, source: str = "<bytes>") -> set[str]:
    """Return the set of deleted ids from deletions log content.

    Unlike decode_tombstones(), entries with an unusable timestamp still
    count as deletions.
    """
    if not data:
        return set()
    return {
        str(record["id"])
        for record in decode_lines(data, source=source)
        if record.get("id")
    }


def append_encoded(data: bytes | None, encoded: bytes) -> bytes:
    """Append already-encoded JSONL lines to existing content.

    The existing bytes are kept verbatim, including lines this codec would
    skip on decode.  A missing trailing newline is repaired first.
    """
    existing = (data or b"").rstrip(b"\r\n")
    if not existing.strip():
        return encoded
    return existing + b"\n" + encoded


def append_tombstone(data: bytes | None, tombstone: Tombstone) -> bytes:
    """Append a tombstone to existing deletions log content."""
    return append_encoded(data, encode_tombstones([tombstone]))
