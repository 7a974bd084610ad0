"""Beadsync HTTP API for issue mutations."""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING, Any

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from beadsync.errors import (
    BeadsyncError,
    MergeConflictError,
    MutationCancelledError,
    NotFoundError,
    StoreError,
    ValidationError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from starlette.requests import Request

    from beadsync.action_log import ActionLogSink
    from beadsync.config import Settings
    from beadsync.operations import IssueService

    ServiceFactory = Callable[[str, str], IssueService]

logger = logging.getLogger(__name__)


def status_code_for(error: BeadsyncError) -> int:
    """Map a beadsync error to its HTTP status code."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, MergeConflictError):
        return 409
    if isinstance(error, MutationCancelledError):
        return 503
    if isinstance(error, StoreError):
        return 502
    return 500  # RetriesExhaustedError included


async def _beadsync_error_handler(
    request: Request,
    exc: BeadsyncError,
) -> JSONResponse:
    status_code = status_code_for(exc)
    content: dict[str, Any] = {"success": False, "error": exc.message}
    if isinstance(exc, MergeConflictError):
        content["conflict"] = True
        content["merge_result"] = exc.merge_result.to_dict()
    if status_code >= 500:
        logger.error(
            "%s %s failed: %s",
            request.method,
            request.url.path,
            exc.message,
        )
    return JSONResponse(status_code=status_code, content=content)


async def _request_validation_handler(
    request: Request,  # noqa: ARG001
    exc: RequestValidationError,
) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": f"Invalid request body: {message}"},
    )


def create_app(service_factory: ServiceFactory) -> FastAPI:
    """Create the FastAPI app.

    Args:
        service_factory: Returns the ``IssueService`` for an owner and repo
            from the request path.  Called once per request.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="beadsync",
        docs_url=None,
        redoc_url=None,
    )
    app.state.service_factory = service_factory

    app.add_exception_handler(BeadsyncError, _beadsync_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)

    from beadsync.web.routes import router

    app.include_router(router)

    return app


def settings_service_factory(
    settings: Settings,
    action_log: ActionLogSink | None = None,
) -> ServiceFactory:
    """Build services from settings.

    With the GitHub backend the owner and repo from the request path select
    the repository.  The local backend serves its one directory under any
    owner and repo.
    """
    from beadsync.config import build_service

    def factory(owner: str, repo: str) -> IssueService:
        resolved = settings
        if settings.backend == "github":
            github = dataclasses.replace(settings.github, owner=owner, repo=repo)
            resolved = dataclasses.replace(settings, github=github)
        kwargs: dict[str, Any] = {"repo_owner": owner, "repo_name": repo}
        if action_log is not None:
            kwargs["action_log"] = action_log
        return build_service(resolved, **kwargs)

    return factory


__all__ = ["create_app", "settings_service_factory", "status_code_for"]
