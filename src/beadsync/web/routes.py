"""Routes for the beadsync issue API.

Handlers are plain ``def`` functions: FastAPI runs them in its threadpool,
so a mutation sleeping between retries does not block other requests.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from fastapi import APIRouter, Body, Depends, Header, Request

from beadsync.errors import ValidationError
from beadsync.models import comment_to_dict, issue_to_dict
from beadsync.operations import IssueService  # noqa: TC001
from beadsync.validation import validate_repo_name, validate_repo_owner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/repos/{owner}/{repo}/issues")


def get_service(request: Request, owner: str, repo: str) -> Iterator[IssueService]:
    """Build the service for the repository named in the path."""
    validate_repo_owner(owner)
    validate_repo_name(repo)
    service: IssueService = request.app.state.service_factory(owner, repo)
    try:
        yield service
    finally:
        close = getattr(service.store, "close", None)
        if callable(close):
            close()


def _split_update_body(body: dict[str, Any]) -> tuple[Any, dict[str, Any] | None]:
    """Return ``(updates, base)`` from a new-style or legacy update body."""
    if "updates" not in body:
        return body, None  # legacy: the body is the update itself

    base: dict[str, Any] | None = None
    base_state = body.get("base_state")
    if base_state is not None:
        if not isinstance(base_state, dict) or not isinstance(
            base_state.get("issue"),
            dict,
        ):
            msg = "base_state.issue must be an object"
            raise ValidationError(msg)
        base = base_state["issue"]
    return body["updates"], base


@router.get("")
def list_issues(
    service: IssueService = Depends(get_service),  # noqa: B008
) -> dict[str, Any]:
    """List all issues that have not been deleted."""
    layout = service.resolve_layout()
    issues = service.list_issues(layout)
    return {
        "issues": [issue_to_dict(issue) for issue in issues],
        "format": layout.value,
    }


@router.post("", status_code=201)
def create_issue(
    body: dict[str, Any] = Body(...),  # noqa: B008
    service: IssueService = Depends(get_service),  # noqa: B008
    x_beadsync_user: str | None = Header(default=None),
) -> dict[str, Any]:
    """Create an issue."""
    result = service.create_issue(body, actor=x_beadsync_user)
    return {"issue": issue_to_dict(result.issue)}


@router.put("/bulk")
def bulk_update(
    body: dict[str, Any] = Body(...),  # noqa: B008
    service: IssueService = Depends(get_service),  # noqa: B008
    x_beadsync_user: str | None = Header(default=None),
) -> dict[str, Any]:
    """Set status and/or priority on many issues in one write."""
    result = service.bulk_update(
        body.get("issue_ids"),  # type: ignore[arg-type]
        body.get("updates"),  # type: ignore[arg-type]
        actor=x_beadsync_user,
    )
    return {"success": True, "updated": result.updated}


@router.put("/{issue_id}")
def update_issue(
    issue_id: str,
    body: dict[str, Any] = Body(...),  # noqa: B008
    service: IssueService = Depends(get_service),  # noqa: B008
    x_beadsync_user: str | None = Header(default=None),
) -> dict[str, Any]:
    """Update an issue, three-way merging when ``base_state`` is sent."""
    updates, base = _split_update_body(body)
    result = service.update_issue(
        issue_id,
        updates,
        base=base,
        actor=x_beadsync_user,
    )
    return {
        "success": True,
        "merge_result": result.merge_result.to_dict(),
        "retry_count": result.retry_count,
    }


@router.delete("/{issue_id}")
def delete_issue(
    issue_id: str,
    service: IssueService = Depends(get_service),  # noqa: B008
    x_beadsync_user: str | None = Header(default=None),
) -> dict[str, Any]:
    """Delete an issue by tombstoning it."""
    service.delete_issue(issue_id, actor=x_beadsync_user)
    return {"success": True}


@router.post("/{issue_id}/comments", status_code=201)
def add_comment(
    issue_id: str,
    body: dict[str, Any] = Body(...),  # noqa: B008
    service: IssueService = Depends(get_service),  # noqa: B008
    x_beadsync_user: str | None = Header(default=None),
) -> dict[str, Any]:
    """Add a comment to an issue."""
    result = service.add_comment(
        issue_id,
        body.get("text"),  # type: ignore[arg-type]
        author=x_beadsync_user,
    )
    return {"comment": comment_to_dict(result.comment)}
