"""Post-receive orchestration.

Runs once per push, after the transport layer has already stored the pushed
objects:

1. Build the push payload.
2. Record a ``pushed`` activity event.
3. Invalidate cached repository metadata.
4. For branch pushes with a previous revision, refresh merge requests and
   dispatch the payload to the project's hooks and services. A failed
   refresh is logged and reported but never blocks dispatch.

Dispatch only happens after the event has been recorded, and nothing is
dispatched when payload construction fails.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import structlog

from post_receive.git.refs import Branch, parse_ref
from post_receive.schemas.push import Project, Pusher, PushPayload
from post_receive.services.activity import PUSHED, ActivityStore
from post_receive.services.dispatch import DispatchReport, NotificationDispatcher
from post_receive.services.push_builder import PushEventBuilder
from post_receive.services.side_effects import CacheInvalidator, MergeRequestRefresher

logger = structlog.get_logger()


@dataclass
class PushResult:
    """What happened while handling one push."""

    payload: PushPayload
    dispatched: bool = False
    refresh_failed: bool = False
    report: DispatchReport = field(default_factory=DispatchReport)


class PushService:
    """Handle pushes for one project repository."""

    def __init__(
        self,
        builder: PushEventBuilder,
        activity_store: ActivityStore,
        cache: CacheInvalidator,
        merge_requests: MergeRequestRefresher,
        dispatcher: NotificationDispatcher,
    ) -> None:
        self._builder = builder
        self._activity_store = activity_store
        self._cache = cache
        self._merge_requests = merge_requests
        self._dispatcher = dispatcher

    def push_to_branch(self, ref: str, oldrev: str) -> bool:
        """True for pushes that update an existing branch."""
        return isinstance(parse_ref(ref), Branch) and oldrev != self._builder.null_revision

    async def handle_push(
        self,
        project: Project,
        pusher: Pusher,
        oldrev: str,
        newrev: str,
        ref: str,
    ) -> PushResult:
        """Process one push end to end.

        Raises:
            RangeResolutionError: If the commit range cannot be resolved.
            EventRecordingError: If the activity store rejects the event.
        """
        structlog.contextvars.bind_contextvars(project_id=project.id, ref=ref)
        try:
            payload = await asyncio.to_thread(
                self._builder.build, project, pusher, oldrev, newrev, ref
            )

            await self._activity_store.record_event(
                PUSHED, payload.to_document(), pusher.id, project_id=project.id
            )
            await self._cache.invalidate_repository_cache(project.id)

            result = PushResult(payload=payload)
            if self.push_to_branch(ref, oldrev):
                try:
                    await self._merge_requests.refresh(project.id, payload.to_document())
                except Exception:
                    logger.exception("merge_request_refresh_failed")
                    result.refresh_failed = True
                result.report = await self._dispatcher.dispatch(payload)
                result.dispatched = True

            logger.info(
                "push_processed",
                total_commits=payload.total_commits_count,
                created=bool(payload.created),
                deleted=bool(payload.deleted),
                dispatched=result.dispatched,
            )
            return result
        finally:
            structlog.contextvars.unbind_contextvars("project_id", "ref")


async def send_sample(
    builder: PushEventBuilder,
    dispatcher: NotificationDispatcher,
    project: Project,
    pusher: Pusher,
    branch: str | None = None,
) -> PushResult:
    """Dispatch a sample payload built from a branch's latest commits.

    Nothing is recorded in the activity feed and no side effects run.
    """
    payload = await asyncio.to_thread(builder.sample, project, pusher, branch)
    report = await dispatcher.dispatch(payload)
    logger.info("hooks_tested", project_id=project.id, delivered=len(report.delivered))
    return PushResult(payload=payload, dispatched=True, report=report)
