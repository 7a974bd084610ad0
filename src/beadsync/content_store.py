"""Versioned content stores with conditional-write semantics.

A content store holds whole files addressed by path.  Every read returns an
opaque version token bound to the exact bytes read, and every write must
present the token of the read it builds on.  The store is the single point
of serialization for concurrent writers: exactly one write wins each race.
"""

from __future__ import annotations

import fcntl
import hashlib
import logging
import os
import tempfile
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from beadsync.errors import NotFoundError, StoreError, VersionConflictError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FileContent:
    """The bytes of a file together with the version token they were read at."""

    data: bytes
    version: str


class ContentStore(Protocol):
    """Read/write access to versioned files."""

    def read(self, path: str) -> FileContent:
        """Return the file's content and version.

        Raises:
            NotFoundError: If the file does not exist.
        """
        ...

    def write_if_version(
        self,
        path: str,
        data: bytes,
        expected_version: str | None,
        message: str,
    ) -> str:
        """Overwrite the file if it is still at ``expected_version``.

        ``expected_version=None`` creates the file and requires that it does
        not exist yet.

        Returns:
            The new version token.

        Raises:
            VersionConflictError: If another writer changed the file first.
            WriteRejectedError: If the store refused the write outright.
            StoreError: On any other store failure.
        """
        ...

    def list_dir(self, path: str) -> list[str]:
        """Return the file names directly below ``path`` (empty if absent)."""
        ...


def content_version(data: bytes) -> str:
    """Return the version token for a blob of content."""
    return hashlib.sha256(data).hexdigest()


class MemoryContentStore:
    """In-process content store.

    Counts reads and writes so tests can assert how often the store was
    touched.
    """

    def __init__(self, files: dict[str, bytes] | None = None) -> None:
        self._files: dict[str, bytes] = dict(files or {})
        self._lock = threading.Lock()
        self.read_calls = 0
        self.write_calls = 0
        self.messages: list[str] = []

    def read(self, path: str) -> FileContent:
        """Return the file's content and version."""
        with self._lock:
            self.read_calls += 1
            if path not in self._files:
                msg = f"File {path} not found"
                raise NotFoundError(msg)
            data = self._files[path]
        return FileContent(data=data, version=content_version(data))

    def write_if_version(
        self,
        path: str,
        data: bytes,
        expected_version: str | None,
        message: str,
    ) -> str:
        """Overwrite the file if it is still at ``expected_version``."""
        with self._lock:
            self.write_calls += 1
            current = self._files.get(path)
            current_version = None if current is None else content_version(current)
            if current_version != expected_version:
                msg = f"File {path} changed since version {expected_version}"
                raise VersionConflictError(msg)
            self._files[path] = data
            self.messages.append(message)
        return content_version(data)

    def list_dir(self, path: str) -> list[str]:
        """Return the file names directly below ``path``."""
        prefix = path.rstrip("/") + "/"
        with self._lock:
            return sorted(
                name[len(prefix):]
                for name in self._files
                if name.startswith(prefix) and "/" not in name[len(prefix):]
            )

    def get(self, path: str) -> bytes | None:
        """Return raw file content without counting a read."""
        with self._lock:
            return self._files.get(path)

    def put(self, path: str, data: bytes) -> None:
        """Replace a file unconditionally, as an outside writer would."""
        with self._lock:
            self._files[path] = data


class LocalContentStore:
    """Content store backed by a directory on the local filesystem.

    Writes take an advisory ``fcntl`` lock, compare the version under the
    lock, and replace the file via a temporary file and atomic rename.
    """

    def __init__(self, root: str | Path, *, create_dir: bool = False) -> None:
        """Initialize the store.

        Args:
            root: Directory that paths are resolved against.
            create_dir: If True, create ``root`` when it does not exist.
                If False (default), raise an error instead.
        """
        self.root = Path(root)
        if create_dir:
            self.root.mkdir(parents=True, exist_ok=True)
        elif not self.root.is_dir():
            msg = f"Store root '{self.root}' does not exist"
            raise StoreError(msg)

    def _resolve(self, path: str) -> Path:
        """Resolve a store path, refusing anything outside the root."""
        target = (self.root / path).resolve()
        try:
            target.relative_to(self.root.resolve())
        except ValueError:
            msg = f"Path '{path}' escapes store root '{self.root}'"
            raise StoreError(msg) from None
        return target

    @contextmanager
    def _file_lock(self, target: Path) -> Iterator[None]:
        """Acquire an advisory file lock for exclusive writes to ``target``."""
        target.parent.mkdir(parents=True, exist_ok=True)
        lock_path = target.parent / f".{target.name}.lock"
        lock_fd = lock_path.open("w")
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX)
            yield
        finally:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)
            lock_fd.close()

    def read(self, path: str) -> FileContent:
        """Return the file's content and version."""
        target = self._resolve(path)
        try:
            data = target.read_bytes()
        except FileNotFoundError:
            msg = f"File {path} not found"
            raise NotFoundError(msg) from None
        except OSError as e:
            msg = f"Failed to read {path}: {e}"
            raise StoreError(msg) from e
        return FileContent(data=data, version=content_version(data))

    def write_if_version(
        self,
        path: str,
        data: bytes,
        expected_version: str | None,
        message: str,
    ) -> str:
        """Overwrite the file if it is still at ``expected_version``."""
        target = self._resolve(path)
        with self._file_lock(target):
            try:
                current_version = content_version(target.read_bytes())
            except FileNotFoundError:
                current_version = None
            if current_version != expected_version:
                msg = f"File {path} changed since version {expected_version}"
                raise VersionConflictError(msg)

            with tempfile.NamedTemporaryFile(
                mode="wb",
                dir=target.parent,
                delete=False,
                prefix=f".{target.name}.",
            ) as tmp_file:
                tmp_path = Path(tmp_file.name)
                try:
                    tmp_file.write(data)
                    tmp_file.flush()
                    os.fsync(tmp_file.fileno())
                except OSError as e:
                    tmp_path.unlink(missing_ok=True)
                    msg = f"Failed to write temporary file for {path}: {e}"
                    raise StoreError(msg) from e

            try:
                tmp_path.replace(target)
            except OSError as e:
                tmp_path.unlink(missing_ok=True)
                msg = f"Failed to write {path}: {e}"
                raise StoreError(msg) from e

        logger.debug("Wrote %s (%d bytes): %s", path, len(data), message)
        return content_version(data)

    def list_dir(self, path: str) -> list[str]:
        """Return the file names directly below ``path``."""
        directory = self._resolve(path)
        if not directory.is_dir():
            return []
        return sorted(
            p.name
            for p in directory.iterdir()
            if p.is_file() and not p.name.startswith(".")
        )
