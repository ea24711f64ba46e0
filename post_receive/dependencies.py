"""Centralized FastAPI dependencies for use with Depends()."""

from collections.abc import AsyncGenerator, Callable
from typing import Annotated

import httpx
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from post_receive.config import settings
from post_receive.db.engine import get_db_session
from post_receive.git.backend import GitRepositoryFactory, RepositoryBackend
from post_receive.services.activity import ActivityStore, SqlActivityStore
from post_receive.services.side_effects import InMemorySideEffects, SideEffects

BackendFactory = Callable[[str], RepositoryBackend]

_backend_factory: BackendFactory = GitRepositoryFactory(settings.repositories_path)
_side_effects: SideEffects = InMemorySideEffects()


def init_production_deps(
    gcp_project: str,
    gcp_location: str,
    cloud_tasks_queue: str,
    task_handler_base_url: str,
) -> None:
    """Swap the in-memory side-effect recorder for the Cloud Tasks implementation.

    Uses a lazy import so the module loads without GCP SDKs installed.
    """
    global _side_effects  # noqa: PLW0603

    from post_receive.services.side_effects import CloudTasksSideEffects

    _side_effects = CloudTasksSideEffects(
        gcp_project, gcp_location, cloud_tasks_queue, task_handler_base_url
    )


def get_backend_factory() -> BackendFactory:
    """Return the factory opening a project's repository by its namespaced path."""
    return _backend_factory


def get_side_effects() -> SideEffects:
    """Return the merge-request refresher / cache invalidator.

    Defaults to InMemorySideEffects for development and testing.
    Swapped to Cloud Tasks by ``init_production_deps()``.
    """
    return _side_effects


def get_activity_store(
    session: Annotated[AsyncSession, Depends(get_db_session)],
) -> ActivityStore:
    """Return an activity store bound to the request's database session."""
    return SqlActivityStore(session)


async def get_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
    """Yield an httpx client for outbound hook delivery."""
    async with httpx.AsyncClient(timeout=settings.hook_timeout) as client:
        yield client


__all__ = [
    "get_activity_store",
    "get_backend_factory",
    "get_db_session",
    "get_http_client",
    "get_side_effects",
    "init_production_deps",
]
