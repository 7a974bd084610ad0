"""Hash-based ID generation for new issues."""

from __future__ import annotations

import hashlib
import re
import secrets
from datetime import datetime, timezone

from beadsync.constants import DEFAULT_ID_PREFIX, ID_LENGTH_MAX, ID_LENGTH_THRESHOLDS


def get_id_length_for_count(issue_count: int) -> int:
    """Determine the appropriate ID length based on issue count.

    Progressive scaling keeps collisions unlikely as the collection grows:
    - 4 characters for 0-500 issues
    - 5 characters for 501-1500 issues
    - 6 characters for 1501-5000 issues
    - 7 characters beyond that

    Args:
        issue_count: Current number of issues in the collection.

    Returns:
        Appropriate ID length (4-7 characters).
    """
    for max_count, length in ID_LENGTH_THRESHOLDS:
        if issue_count <= max_count:
            return length
    return ID_LENGTH_MAX


def _base36_encode(data: bytes) -> str:
    """Encode bytes as base36 (0-9, a-z)."""
    num = int.from_bytes(data, byteorder="big")
    if num == 0:
        return "0"

    digits = "0123456789abcdefghijklmnopqrstuvwxyz"
    result: list[str] = []
    while num:
        result.append(digits[num % 36])
        num //= 36
    return "".join(reversed(result))


def generate_hash_id(input_data: str, nonce: str = "", length: int = 4) -> str:
    """Generate a base36 hash of ``input_data`` truncated to ``length``."""
    hash_bytes = hashlib.sha256((input_data + nonce).encode()).digest()
    return _base36_encode(hash_bytes)[:length]


def prefix_from_repo(repo: str) -> str:
    """Derive an id prefix from a repository name ("My-Repo" -> "myrepo")."""
    return re.sub(r"[^a-z0-9]", "", repo.lower()) or DEFAULT_ID_PREFIX


class IDGenerator:
    """Generates issue ids that do not collide with a known set."""

    def __init__(
        self,
        existing_ids: set[str] | None = None,
        prefix: str = DEFAULT_ID_PREFIX,
    ) -> None:
        """Initialize the ID generator.

        Args:
            existing_ids: Full ids already in use.
            prefix: Prefix for generated ids.
        """
        self.existing_ids = set(existing_ids or ())
        self.prefix = prefix
        self.max_retries = 100

    @property
    def id_length(self) -> int:
        """Get the appropriate ID length based on current issue count."""
        return get_id_length_for_count(len(self.existing_ids))

    def generate_issue_id(self, title: str, timestamp: datetime | None = None) -> str:
        """Generate a unique full issue id such as ``myrepo-4kzj``.

        A random salt is mixed into the hash so that two writers creating
        the same title at the same instant still get different ids.

        Args:
            title: Issue title.
            timestamp: Creation time (default: now).

        Returns:
            An id not in ``existing_ids``; it is added to the set.
        """
        if timestamp is None:
            timestamp = datetime.now(timezone.utc)

        length = self.id_length
        input_data = f"{title}:{timestamp.isoformat()}:{secrets.token_hex(4)}"

        for attempt in range(self.max_retries):
            nonce = "" if attempt == 0 else str(attempt)
            candidate = f"{self.prefix}-{generate_hash_id(input_data, nonce, length)}"
            if candidate not in self.existing_ids:
                self.existing_ids.add(candidate)
                return candidate

        # Standard length exhausted, fall back to a longer id
        candidate = f"{self.prefix}-{generate_hash_id(input_data, '', length + 2)}"
        while candidate in self.existing_ids:
            candidate = f"{self.prefix}-{secrets.token_hex(4)}"
        self.existing_ids.add(candidate)
        return candidate
