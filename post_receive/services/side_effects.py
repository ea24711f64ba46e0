"""Post-push side effects owned by other subsystems.

Merge-request refresh and repository cache invalidation are handed off as
Google Cloud Tasks in production (``CloudTasksSideEffects``), so a slow
consumer never holds up the push pipeline. ``InMemorySideEffects`` records
the calls for tests and local development.
"""

from __future__ import annotations

import asyncio
import json
from typing import Protocol

import structlog

logger = structlog.get_logger()


class CacheInvalidator(Protocol):
    """Protocol for expiring cached repository metadata."""

    async def invalidate_repository_cache(self, project_id: int) -> None:
        """Expire default-branch detection and cached tree listings."""
        ...


class MergeRequestRefresher(Protocol):
    """Protocol for re-evaluating open merge requests after a branch push."""

    async def refresh(self, project_id: int, payload: dict) -> None:
        """Refresh merge requests whose source or target branch was pushed."""
        ...


class SideEffects(CacheInvalidator, MergeRequestRefresher, Protocol):
    """Both side effects, as provided by one implementation."""


class CloudTasksSideEffects:
    """Enqueue side effects as HTTP POST Cloud Tasks.

    The ``google.cloud.tasks_v2`` client is imported lazily so the module can
    be loaded without the GCP SDK installed (useful in tests).
    """

    def __init__(self, project: str, location: str, queue: str, handler_base_url: str) -> None:
        from google.cloud import tasks_v2

        self._client = tasks_v2.CloudTasksClient()
        self._parent = self._client.queue_path(project, location, queue)
        self._handler_base_url = handler_base_url.rstrip("/")

    async def _enqueue(self, endpoint: str, body: dict) -> str:
        from google.cloud import tasks_v2

        task = tasks_v2.Task(
            http_request=tasks_v2.HttpRequest(
                http_method=tasks_v2.HttpMethod.POST,
                url=f"{self._handler_base_url}{endpoint}",
                headers={"Content-Type": "application/json"},
                body=json.dumps(body).encode(),
            ),
        )
        response = await asyncio.to_thread(
            self._client.create_task,
            tasks_v2.CreateTaskRequest(parent=self._parent, task=task),
        )
        logger.debug("side_effect_enqueued", endpoint=endpoint, task=response.name)
        return response.name

    async def invalidate_repository_cache(self, project_id: int) -> None:
        await self._enqueue("/tasks/expire-repository-cache", {"project_id": project_id})

    async def refresh(self, project_id: int, payload: dict) -> None:
        await self._enqueue(
            "/tasks/refresh-merge-requests",
            {"project_id": project_id, "push": payload},
        )


class InMemorySideEffects:
    """Test double that records invalidations and refreshes."""

    def __init__(self) -> None:
        self.invalidated: list[int] = []
        self.refreshed: list[dict] = []

    async def invalidate_repository_cache(self, project_id: int) -> None:
        self.invalidated.append(project_id)

    async def refresh(self, project_id: int, payload: dict) -> None:
        self.refreshed.append({"project_id": project_id, "payload": payload})
