"""Shared fixtures: in-memory repository, collaborator doubles and a test client."""

from collections.abc import AsyncGenerator, Callable, Sequence
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from post_receive.db.engine import get_db_session
from post_receive.dependencies import (
    get_activity_store,
    get_backend_factory,
    get_http_client,
    get_side_effects,
)
from post_receive.git.backend import InMemoryRepositoryBackend
from post_receive.main import app
from post_receive.schemas.push import HookConfig, Project, Pusher
from post_receive.services.activity import InMemoryActivityStore
from post_receive.services.side_effects import InMemorySideEffects

NULL_SHA = "0" * 40
BASE_URL = "https://git.example.com"
EPOCH = datetime(2026, 2, 7, 12, 0, tzinfo=UTC)


def sha(n: int) -> str:
    """Deterministic, non-null 40-digit revision for commit number ``n``."""
    return f"{n + 1:040x}"


def make_patch(
    commit_id: str,
    *,
    added: Sequence[str] = (),
    removed: Sequence[str] = (),
    modified: Sequence[str] = (),
    message: str = "change",
) -> str:
    """Build patch text shaped like ``git format-patch --stdout`` output."""
    lines = [
        f"From {commit_id} Mon Sep 17 00:00:00 2001",
        "From: Test User <test@example.com>",
        "Date: Sat, 7 Feb 2026 12:00:00 +0000",
        f"Subject: [PATCH] {message}",
        "",
        "---",
        f" {len(added) + len(removed) + len(modified)} files changed",
        "",
    ]
    for path in added:
        lines += [
            f"diff --git a/{path} b/{path}",
            "new file mode 100644",
            "index 0000000..ce01362",
            "--- /dev/null",
            f"+++ b/{path}",
            "@@ -0,0 +1 @@",
            "+hello",
        ]
    for path in removed:
        lines += [
            f"diff --git a/{path} b/{path}",
            "deleted file mode 100644",
            "index ce01362..0000000",
            f"--- a/{path}",
            "+++ /dev/null",
            "@@ -1 +0,0 @@",
            "-hello",
        ]
    for path in modified:
        lines += [
            f"diff --git a/{path} b/{path}",
            "index ce01362..94954ab 100644",
            f"--- a/{path}",
            f"+++ b/{path}",
            "@@ -1 +1 @@",
            "-hello",
            "+world",
        ]
    lines += ["-- ", "2.43.0", ""]
    return "\n".join(lines)


def commit_fields(n: int, parents: Sequence[str] = ()) -> dict:
    """Flat commit record for commit number ``n``."""
    when = EPOCH + timedelta(minutes=n)
    return {
        "id": sha(n),
        "authored_date": when.isoformat(),
        "committed_date": when.isoformat(),
        "author_name": "Test User",
        "author_email": "test@example.com",
        "committer_name": "Test User",
        "committer_email": "test@example.com",
        "message": f"commit {n}\n\nbody of commit {n}",
        "parent_ids": list(parents),
    }


@pytest.fixture
def anyio_backend() -> str:
    """Run anyio-marked tests on asyncio, the only loop the service targets."""
    return "asyncio"


@pytest.fixture
def backend() -> InMemoryRepositoryBackend:
    """Create an empty in-memory repository."""
    return InMemoryRepositoryBackend()


@pytest.fixture
def add_linear_history(
    backend: InMemoryRepositoryBackend,
) -> Callable[[int], list[str]]:
    """Return a function appending ``count`` linear commits to ``main``.

    Commit ``n`` adds ``file{n}.py``. The ids of the new commits are returned,
    oldest first.
    """

    def _add(count: int) -> list[str]:
        parent = backend.refs.get("main")
        start = len(backend.resolve_commit_range(None, parent)) if parent else 0
        ids = []
        for n in range(start, start + count):
            fields = commit_fields(n, [parent] if parent else [])
            backend.add_commit(
                fields,
                patch=make_patch(fields["id"], added=[f"file{n}.py"]),
                lines_changed=1,
            )
            parent = fields["id"]
            ids.append(parent)
        backend.refs["main"] = parent
        return ids

    return _add


@pytest.fixture
def project() -> Project:
    return Project(
        id=7,
        name="my-repo",
        path_with_namespace="acme/my-repo",
        description="A test repository",
        url_to_repo="git@git.example.com:acme/my-repo.git",
        hooks=[HookConfig(kind="webhook", url="https://hooks.example.com/push")],
    )


@pytest.fixture
def pusher() -> Pusher:
    return Pusher(id=42, name="Test User")


@pytest.fixture
def activity_store() -> InMemoryActivityStore:
    """Create a fresh in-memory activity store for test inspection."""
    return InMemoryActivityStore()


@pytest.fixture
def side_effects() -> InMemorySideEffects:
    """Create a fresh in-memory side-effect recorder."""
    return InMemorySideEffects()


@pytest.fixture
def hook_requests() -> list[httpx.Request]:
    """Outbound HTTP requests captured by the mock transport."""
    return []


@pytest.fixture
def mock_db_session() -> AsyncMock:
    """Create a mock async database session that executes successfully."""
    session = AsyncMock(spec=AsyncSession)
    session.execute.return_value = None
    return session


@pytest.fixture
async def client(
    backend: InMemoryRepositoryBackend,
    activity_store: InMemoryActivityStore,
    side_effects: InMemorySideEffects,
    hook_requests: list[httpx.Request],
    mock_db_session: AsyncMock,
) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient with every collaborator overridden.

    Outbound hook deliveries go to a MockTransport that records each request
    and answers 200, so tests need neither a database nor a network.
    """

    def _handler(request: httpx.Request) -> httpx.Response:
        hook_requests.append(request)
        return httpx.Response(200)

    async def _override_http_client() -> AsyncGenerator[httpx.AsyncClient, None]:
        async with httpx.AsyncClient(transport=httpx.MockTransport(_handler)) as hook_client:
            yield hook_client

    async def _override_db_session() -> AsyncGenerator[AsyncSession, None]:
        yield mock_db_session  # type: ignore[misc]

    app.dependency_overrides[get_backend_factory] = lambda: (lambda path: backend)
    app.dependency_overrides[get_activity_store] = lambda: activity_store
    app.dependency_overrides[get_side_effects] = lambda: side_effects
    app.dependency_overrides[get_http_client] = _override_http_client
    app.dependency_overrides[get_db_session] = _override_db_session
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
