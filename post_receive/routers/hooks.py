"""Post-receive router: turns a reported push into events and notifications."""

from contextlib import closing
from typing import Annotated

import httpx
import structlog
from fastapi import APIRouter, Depends, status

from post_receive.config import settings
from post_receive.dependencies import (
    BackendFactory,
    get_activity_store,
    get_backend_factory,
    get_http_client,
    get_side_effects,
)
from post_receive.git.backend import RepositoryBackend
from post_receive.schemas.hooks import HookTestRequest, PostReceiveRequest, PostReceiveResponse
from post_receive.schemas.push import Project
from post_receive.services.activity import ActivityStore
from post_receive.services.dispatch import NotificationDispatcher, build_targets
from post_receive.services.push_builder import PushEventBuilder
from post_receive.services.push_service import PushResult, PushService, send_sample
from post_receive.services.side_effects import SideEffects

logger = structlog.get_logger()

router = APIRouter(prefix="/hooks", tags=["hooks"])


def _builder(backend: RepositoryBackend) -> PushEventBuilder:
    return PushEventBuilder(
        backend,
        settings.external_url,
        commit_limit=settings.push_commit_limit,
    )


def _push_service(
    project: Project,
    backend: RepositoryBackend,
    activity_store: ActivityStore,
    side_effects: SideEffects,
    client: httpx.AsyncClient,
) -> PushService:
    """Wire a PushService for one project's repository and hook configuration."""
    return PushService(
        builder=_builder(backend),
        activity_store=activity_store,
        cache=side_effects,
        merge_requests=side_effects,
        dispatcher=NotificationDispatcher(build_targets(project.hooks, client)),
    )


def _response(result: PushResult) -> PostReceiveResponse:
    return PostReceiveResponse(
        status="processed",
        ref=result.payload.ref,
        total_commits_count=result.payload.total_commits_count,
        commits_included=len(result.payload.commits),
        dispatched=result.dispatched,
        refresh_failed=result.refresh_failed,
        delivered=result.report.delivered,
        failed=result.report.failed,
    )


@router.post("/post-receive", status_code=status.HTTP_202_ACCEPTED)
async def post_receive(
    request: PostReceiveRequest,
    backend_factory: Annotated[BackendFactory, Depends(get_backend_factory)],
    activity_store: Annotated[ActivityStore, Depends(get_activity_store)],
    side_effects: Annotated[SideEffects, Depends(get_side_effects)],
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> PostReceiveResponse:
    """Process a push that the transport layer has already accepted.

    Pipeline errors are mapped to HTTP responses by the handlers in ``main``.
    """
    logger.debug("post_receive_received", project_id=request.project.id, ref=request.ref)
    with closing(backend_factory(request.project.path_with_namespace)) as backend:
        service = _push_service(request.project, backend, activity_store, side_effects, client)
        result = await service.handle_push(
            request.project, request.pusher, request.before, request.after, request.ref
        )
    return _response(result)


@router.post("/test")
async def fire_test_hooks(
    request: HookTestRequest,
    backend_factory: Annotated[BackendFactory, Depends(get_backend_factory)],
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
) -> PostReceiveResponse:
    """Send a sample push payload to every hook of the project."""
    dispatcher = NotificationDispatcher(build_targets(request.project.hooks, client))
    with closing(backend_factory(request.project.path_with_namespace)) as backend:
        result = await send_sample(
            _builder(backend), dispatcher, request.project, request.pusher, request.branch
        )
    return _response(result)
