"""Issue mutations composed from the store, codec, merge engine and retry loop.

``IssueService`` is the single entry point used by the CLI and the web app.
It holds configuration only; every call re-reads the backing file, so one
instance can serve concurrent requests.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from beadsync.action_log import (
    ActionLogEntry,
    generate_request_id,
    log_action,
    start_timer,
)
from beadsync.codec import (
    append_encoded,
    append_tombstone,
    decode_issues,
    encode_issues,
    tombstoned_ids,
)
from beadsync.constants import DELETIONS_PATH, ISSUES_PATH, MARKDOWN_DIR
from beadsync.errors import (
    BeadsyncError,
    MergeConflictError,
    NotFoundError,
    RetriesExhaustedError,
    StoreError,
    ValidationError,
)
from beadsync.idgen import IDGenerator
from beadsync.markdown import (
    markdown_path,
    parse_markdown_issue,
    serialize_markdown_issue,
)
from beadsync.merge import MergeResult, MergeStatus, three_way_merge
from beadsync.models import (
    Comment,
    Issue,
    Status,
    Tombstone,
    normalize_issue,
    utc_now,
)
from beadsync.retry import Commit, RetryCoordinator, RetryPolicy, Snapshot
from beadsync.validation import (
    coerce_bulk_request,
    coerce_new_issue,
    coerce_updates,
    validate_comment_text,
    validate_issue_id,
)

if TYPE_CHECKING:
    import threading
    from collections.abc import Callable, Iterator
    from datetime import datetime

    from beadsync.action_log import ActionLogSink
    from beadsync.content_store import ContentStore

logger = logging.getLogger(__name__)


class Layout(str, Enum):
    """Storage layout of an issue collection."""

    AUTO = "auto"
    JSONL = "jsonl"
    MARKDOWN = "markdown"


@dataclass(frozen=True)
class CollectionPaths:
    """Where the collection's files live inside the store."""

    issues: str = ISSUES_PATH
    deletions: str = DELETIONS_PATH
    markdown_dir: str = MARKDOWN_DIR


@dataclass
class MutationResult:
    """Successful outcome of a mutation.

    ``updated`` is the number of issues a bulk update changed.
    """

    retry_count: int = 0
    conflict_detected: bool = False
    written: bool = True
    updated: int = 0


@dataclass(kw_only=True)
class IssueResult(MutationResult):
    """Outcome of a create: the issue as written."""

    issue: Issue


@dataclass(kw_only=True)
class UpdateResult(IssueResult):
    """Outcome of an update, with the merge that produced it."""

    merge_result: MergeResult


@dataclass(kw_only=True)
class CommentResult(MutationResult):
    """Outcome of adding a comment."""

    comment: Comment


@dataclass
class _Report:
    """Mutable holder for what the action log needs from a finished call."""

    retry_count: int = 0
    conflict_detected: bool = False


class IssueService:
    """Create, read, update, delete and comment on issues in a content store."""

    def __init__(
        self,
        store: ContentStore,
        *,
        paths: CollectionPaths | None = None,
        layout: Layout | str = Layout.AUTO,
        policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        id_prefix: str = "bd",
        clock: Callable[[], datetime] = utc_now,
        action_log: ActionLogSink | None = None,
        repo_owner: str | None = None,
        repo_name: str | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            store: Backing content store.
            paths: File locations (default: ``.beads/...``).
            layout: ``auto`` detects JSONL or markdown on every call.
            policy: Retry bound and backoff for version races.
            sleep: Delay function used between retries.
            id_prefix: Prefix for new issue ids.
            clock: Source of timestamps.
            action_log: Sink that receives one entry per mutation.
            repo_owner: Reported to the action log.
            repo_name: Reported to the action log.
        """
        self.store = store
        self.paths = paths or CollectionPaths()
        self.layout = Layout(layout)
        self.coordinator = RetryCoordinator(store, policy, sleep=sleep)
        self.id_prefix = id_prefix
        self.clock = clock
        self.action_log = action_log
        self.repo_owner = repo_owner
        self.repo_name = repo_name

    # -- Action log ------------------------------------------------------

    @contextmanager
    def _reported(
        self,
        action: str,
        issue_id: str | None,
        payload: Any,
        actor: str | None,
    ) -> Iterator[_Report]:
        """Report the enclosed mutation to the action log, success or not."""
        timer = start_timer()
        report = _Report()
        entry = ActionLogEntry(
            action=action,
            success=False,
            repo_owner=self.repo_owner,
            repo_name=self.repo_name,
            issue_id=issue_id,
            actor=actor,
            request_payload=payload,
            request_id=generate_request_id(),
        )
        try:
            yield report
        except Exception as e:
            entry.error_message = e.message if isinstance(e, BeadsyncError) else str(e)
            entry.retry_count = getattr(e, "retry_count", 0)
            entry.conflict_detected = getattr(e, "conflict_detected", False)
            entry.duration_ms = timer()
            log_action(self.action_log, entry)
            raise
        entry.success = True
        entry.retry_count = report.retry_count
        entry.conflict_detected = report.conflict_detected
        entry.duration_ms = timer()
        log_action(self.action_log, entry)

    # -- Reads -----------------------------------------------------------

    def resolve_layout(self) -> Layout:
        """Return the layout in use, detecting it when set to ``auto``.

        JSONL wins when ``issues.jsonl`` exists; markdown is used when the
        markdown directory holds ``.md`` files; an empty store is JSONL.
        """
        if self.layout != Layout.AUTO:
            return self.layout
        try:
            self.store.read(self.paths.issues)
        except NotFoundError:
            pass
        else:
            return Layout.JSONL
        names = self.store.list_dir(self.paths.markdown_dir)
        if any(name.endswith(".md") for name in names):
            return Layout.MARKDOWN
        return Layout.JSONL

    def _read_optional(self, path: str) -> bytes | None:
        try:
            return self.store.read(path).data
        except NotFoundError:
            return None

    def _deleted_ids(self) -> set[str]:
        return tombstoned_ids(
            self._read_optional(self.paths.deletions),
            source=self.paths.deletions,
        )

    def _read_markdown_issue(self, issue_id: str) -> Issue:
        path = markdown_path(self.paths.markdown_dir, issue_id)
        content = self.store.read(path)
        return self._parse_markdown(path, content.data)

    @staticmethod
    def _parse_markdown(path: str, data: bytes) -> Issue:
        try:
            return parse_markdown_issue(data.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            msg = f"Invalid markdown issue file {path}: {e}"
            raise StoreError(msg) from e

    def _markdown_issues(self) -> list[Issue]:
        issues: list[Issue] = []
        for name in self.store.list_dir(self.paths.markdown_dir):
            if not name.endswith(".md"):
                continue
            try:
                issues.append(self._read_markdown_issue(name[: -len(".md")]))
            except NotFoundError:
                continue  # removed between listing and reading
            except StoreError:
                logger.warning("Skipping unreadable markdown issue %s", name)
        return issues

    def list_issues(self, layout: Layout | None = None) -> list[Issue]:
        """List all issues, minus every id in the deletions log.

        Args:
            layout: Layout to read (default: ``resolve_layout()``).

        Returns:
            Issues in file order (JSONL) or file-name order (markdown).
        """
        layout = layout or self.resolve_layout()
        if layout == Layout.MARKDOWN:
            issues = self._markdown_issues()
        else:
            data = self._read_optional(self.paths.issues)
            issues = list(decode_issues(data or b"", source=self.paths.issues).values())
        deleted = self._deleted_ids()
        return [issue for issue in issues if issue.id not in deleted]

    def get_issue(self, issue_id: str) -> Issue:
        """Get a single issue.

        Raises:
            NotFoundError: If the issue does not exist or was deleted.
        """
        validate_issue_id(issue_id)
        if self.resolve_layout() == Layout.MARKDOWN:
            issue = self._read_markdown_issue(issue_id)
        else:
            data = self._read_optional(self.paths.issues)
            found = decode_issues(data or b"", source=self.paths.issues).get(issue_id)
            if found is None:
                msg = f"Issue {issue_id} not found"
                raise NotFoundError(msg)
            issue = found
        if issue_id in self._deleted_ids():
            msg = f"Issue {issue_id} not found"
            raise NotFoundError(msg)
        return issue

    # -- Create ----------------------------------------------------------

    def _new_issue(
        self,
        fields: dict[str, Any],
        existing_ids: set[str],
        now: datetime,
    ) -> Issue:
        generator = IDGenerator(existing_ids, prefix=self.id_prefix)
        status = fields.get("status", Status.OPEN)
        values = {k: v for k, v in fields.items() if k != "title"}
        return Issue(
            id=generator.generate_issue_id(fields["title"], now),
            title=fields["title"],
            created_at=now,
            updated_at=now,
            closed_at=now if status == Status.CLOSED else None,
            **values,
        )

    def create_issue(
        self,
        fields: dict[str, Any],
        *,
        actor: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> IssueResult:
        """Create a new issue and assign its id.

        In the JSONL layout the record is appended to the existing file
        content (creating the file if needed).  The id is re-checked against
        the ids read in each attempt and regenerated on collision.

        Args:
            fields: ``title`` plus any editable fields and ``parent``.
            actor: Who is creating the issue (action log only).
            cancel_event: Stops retries once set.

        Returns:
            Result with ``issue`` set to the created issue.
        """
        with self._reported("create_issue", None, fields, actor) as report:
            typed = coerce_new_issue(fields)
            now = self.clock()
            if self.resolve_layout() == Layout.MARKDOWN:
                result = self._create_markdown(typed, now, cancel_event)
            else:
                result = self._create_jsonl(typed, now, cancel_event)
            report.retry_count = result.retry_count
            report.conflict_detected = result.conflict_detected
            logger.info("Created issue %s", result.issue.id)
            return result

    def _create_jsonl(
        self,
        fields: dict[str, Any],
        now: datetime,
        cancel_event: threading.Event | None,
    ) -> IssueResult:
        created: Issue | None = None

        def prepare(snapshot: Snapshot) -> Commit[Issue]:
            nonlocal created
            existing = decode_issues(snapshot.data or b"", source=snapshot.path)
            if created is None or created.id in existing:
                created = self._new_issue(fields, set(existing), now)
            return Commit(
                value=created,
                data=append_encoded(snapshot.data, encode_issues([created])),
                message=f"Add issue: {created.title}",
            )

        outcome = self.coordinator.run(
            self.paths.issues,
            prepare,
            missing_ok=True,
            cancel_event=cancel_event,
        )
        return IssueResult(
            retry_count=outcome.retry_count,
            conflict_detected=outcome.conflict_detected,
            issue=outcome.value,
        )

    def _create_markdown(
        self,
        fields: dict[str, Any],
        now: datetime,
        cancel_event: threading.Event | None,
    ) -> IssueResult:
        existing = {
            name[: -len(".md")]
            for name in self.store.list_dir(self.paths.markdown_dir)
            if name.endswith(".md")
        }
        retries = 0
        for _ in range(self.coordinator.policy.max_attempts):
            issue = self._new_issue(fields, existing, now)
            path = markdown_path(self.paths.markdown_dir, issue.id)

            def prepare(snapshot: Snapshot, issue: Issue = issue) -> Commit[Issue | None]:
                if snapshot.exists:
                    return Commit(value=None)  # id taken, pick another
                return Commit(
                    value=issue,
                    data=serialize_markdown_issue(issue).encode("utf-8"),
                    message=f"Add issue: {issue.title}",
                )

            outcome = self.coordinator.run(
                path,
                prepare,
                missing_ok=True,
                cancel_event=cancel_event,
            )
            retries += outcome.retry_count
            if outcome.value is not None:
                return IssueResult(
                    retry_count=retries,
                    conflict_detected=retries > 0 or outcome.conflict_detected,
                    issue=outcome.value,
                )
            logger.info("Issue file %s already exists, regenerating id", path)
            existing.add(issue.id)
            retries += 1

        msg = (
            "Could not allocate a unique issue id after "
            f"{self.coordinator.policy.max_attempts} attempts. "
            "Please try again."
        )
        error = RetriesExhaustedError(msg)
        error.retry_count = retries
        error.conflict_detected = True
        raise error

    # -- Update ----------------------------------------------------------

    def update_issue(
        self,
        issue_id: str,
        updates: dict[str, Any],
        *,
        base: Issue | dict[str, Any] | None = None,
        actor: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> UpdateResult:
        """Update an issue, merging with concurrent edits.

        In the JSONL layout every attempt runs a three-way merge of the
        caller's ``updates`` (made against ``base``) with the issue as read
        in that attempt.  Without ``base`` the update is last-write-wins.
        The markdown layout is always last-write-wins.

        Args:
            issue_id: Id of the issue to update.
            updates: Changed fields only.
            base: Snapshot of the issue when the caller started editing.
            actor: Who is updating (action log only).
            cancel_event: Stops retries once set.

        Returns:
            Result with ``issue`` and ``merge_result`` set.

        Raises:
            MergeConflictError: If a field was changed differently on both
                sides.  Nothing is written.
            NotFoundError: If the issue does not exist.
        """
        with self._reported("update_issue", issue_id, updates, actor) as report:
            validate_issue_id(issue_id)
            local = coerce_updates(updates)
            if not local:
                msg = "At least one update field is required"
                raise ValidationError(msg)
            base_issue = normalize_issue(base) if isinstance(base, dict) else base

            if self.resolve_layout() == Layout.MARKDOWN:
                result = self._update_markdown(issue_id, local, cancel_event)
            else:
                result = self._update_jsonl(issue_id, local, base_issue, cancel_event)
            report.retry_count = result.retry_count
            report.conflict_detected = result.conflict_detected
            return result

    def _touch(self, issue: Issue, now: datetime, **changes: Any) -> Issue:
        """Apply changes, refresh ``updated_at`` and stamp ``closed_at``."""
        updated = dataclasses.replace(issue, **changes, updated_at=now)
        if updated.status == Status.CLOSED and updated.closed_at is None:
            updated = dataclasses.replace(updated, closed_at=now)
        return updated

    def _update_jsonl(
        self,
        issue_id: str,
        local: dict[str, Any],
        base: Issue | None,
        cancel_event: threading.Event | None,
    ) -> UpdateResult:
        def prepare(snapshot: Snapshot) -> Commit[tuple[Issue, MergeResult]]:
            issues = decode_issues(snapshot.data or b"", source=snapshot.path)
            remote = issues.get(issue_id)
            if remote is None:
                msg = f"Issue {issue_id} not found"
                raise NotFoundError(msg)

            merge_result = three_way_merge(base, local, remote)
            if merge_result.is_conflict:
                fields = ", ".join(c.field for c in merge_result.conflicts)
                logger.info("Merge conflict on %s: %s", issue_id, fields)
                msg = "Merge conflict detected - manual resolution required"
                raise MergeConflictError(msg, merge_result)

            updated = self._touch(merge_result.merged_issue, self.clock())
            issues[issue_id] = updated
            return Commit(
                value=(updated, merge_result),
                data=encode_issues(issues.values()),
                message=f"Update issue: {updated.title}",
            )

        outcome = self.coordinator.run(
            self.paths.issues,
            prepare,
            missing_ok=True,
            cancel_event=cancel_event,
        )
        issue, merge_result = outcome.value
        if merge_result.status == MergeStatus.AUTO_MERGED:
            logger.info(
                "Auto-merged %s from remote on %s",
                ", ".join(merge_result.auto_merged_fields),
                issue_id,
            )
        return UpdateResult(
            retry_count=outcome.retry_count,
            conflict_detected=outcome.conflict_detected,
            issue=issue,
            merge_result=merge_result,
        )

    def _update_markdown(
        self,
        issue_id: str,
        local: dict[str, Any],
        cancel_event: threading.Event | None,
    ) -> UpdateResult:
        path = markdown_path(self.paths.markdown_dir, issue_id)

        def prepare(snapshot: Snapshot) -> Commit[Issue]:
            existing = self._parse_markdown(path, snapshot.data or b"")
            updated = self._touch(existing, self.clock(), **local)
            return Commit(
                value=updated,
                data=serialize_markdown_issue(updated).encode("utf-8"),
                message=f"Update issue: {updated.title}",
            )

        try:
            outcome = self.coordinator.run(path, prepare, cancel_event=cancel_event)
        except NotFoundError as e:
            msg = f"Issue {issue_id} not found"
            raise NotFoundError(msg) from e
        return UpdateResult(
            retry_count=outcome.retry_count,
            conflict_detected=outcome.conflict_detected,
            issue=outcome.value,
            merge_result=MergeResult(
                status=MergeStatus.SUCCESS,
                merged_issue=outcome.value,
            ),
        )

    # -- Delete ----------------------------------------------------------

    def delete_issue(
        self,
        issue_id: str,
        *,
        actor: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> MutationResult:
        """Delete an issue by appending a tombstone to the deletions log.

        The issue collection itself is never touched.  Deleting an id that
        is already tombstoned succeeds without a write.
        """
        with self._reported("delete_issue", issue_id, None, actor) as report:
            validate_issue_id(issue_id)

            def prepare(snapshot: Snapshot) -> Commit[bool]:
                if issue_id in tombstoned_ids(snapshot.data, source=snapshot.path):
                    return Commit(value=False)
                tombstone = Tombstone(id=issue_id, deleted_at=self.clock())
                return Commit(
                    value=True,
                    data=append_tombstone(snapshot.data, tombstone),
                    message=f"Delete issue: {issue_id}",
                )

            outcome = self.coordinator.run(
                self.paths.deletions,
                prepare,
                missing_ok=True,
                cancel_event=cancel_event,
            )
            report.retry_count = outcome.retry_count
            report.conflict_detected = outcome.conflict_detected
            return MutationResult(
                retry_count=outcome.retry_count,
                conflict_detected=outcome.conflict_detected,
                written=outcome.written,
            )

    # -- Bulk update -----------------------------------------------------

    def bulk_update(
        self,
        issue_ids: list[str],
        updates: dict[str, Any],
        *,
        actor: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> MutationResult:
        """Set ``status`` and/or ``priority`` on every listed issue in one write.

        Ids not present in the collection are ignored.  When nothing
        matches, no write is made and ``updated`` is 0.
        """
        payload = {"issue_ids": issue_ids, "updates": updates}
        with self._reported("bulk_update", None, payload, actor) as report:
            ids, typed = coerce_bulk_request(issue_ids, updates)
            wanted = set(ids)

            def prepare(snapshot: Snapshot) -> Commit[int]:
                issues = decode_issues(snapshot.data or b"", source=snapshot.path)
                now = self.clock()
                count = 0
                for issue_id, issue in issues.items():
                    if issue_id not in wanted:
                        continue
                    issues[issue_id] = self._touch(issue, now, **typed)
                    count += 1
                if count == 0:
                    return Commit(value=0)
                return Commit(
                    value=count,
                    data=encode_issues(issues.values()),
                    message=f"Bulk update {count} issues",
                )

            outcome = self.coordinator.run(
                self.paths.issues,
                prepare,
                missing_ok=True,
                cancel_event=cancel_event,
            )
            report.retry_count = outcome.retry_count
            report.conflict_detected = outcome.conflict_detected
            return MutationResult(
                retry_count=outcome.retry_count,
                conflict_detected=outcome.conflict_detected,
                written=outcome.written,
                updated=outcome.value,
            )

    # -- Comments --------------------------------------------------------

    def add_comment(
        self,
        issue_id: str,
        text: str,
        *,
        author: str | None = None,
        cancel_event: threading.Event | None = None,
    ) -> CommentResult:
        """Append a comment to an issue.

        The comment id is ``max(existing ids) + 1``, recomputed from the
        freshly read issue on every attempt.
        """
        payload = {"text": text}
        with self._reported("add_comment", issue_id, payload, author) as report:
            validate_issue_id(issue_id)
            clean_text = validate_comment_text(text)

            def prepare(snapshot: Snapshot) -> Commit[Comment]:
                issues = decode_issues(snapshot.data or b"", source=snapshot.path)
                issue = issues.get(issue_id)
                if issue is None:
                    msg = f"Issue {issue_id} not found"
                    raise NotFoundError(msg)
                now = self.clock()
                comment = Comment(
                    id=issue.next_comment_id(),
                    issue_id=issue_id,
                    author=author or "anonymous",
                    text=clean_text,
                    created_at=now,
                )
                issues[issue_id] = self._touch(
                    issue,
                    now,
                    comments=[*issue.comments, comment],
                )
                return Commit(
                    value=comment,
                    data=encode_issues(issues.values()),
                    message=f"Add comment to {issue_id}",
                )

            outcome = self.coordinator.run(
                self.paths.issues,
                prepare,
                missing_ok=True,
                cancel_event=cancel_event,
            )
            report.retry_count = outcome.retry_count
            report.conflict_detected = outcome.conflict_detected
            return CommentResult(
                retry_count=outcome.retry_count,
                conflict_detected=outcome.conflict_detected,
                comment=outcome.value,
            )
