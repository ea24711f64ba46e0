"""Tests for push payload construction."""

from collections.abc import Callable
from unittest.mock import MagicMock

import pytest
from conftest import BASE_URL, NULL_SHA, commit_fields, make_patch, sha

from post_receive.exceptions import BackendError, RangeResolutionError
from post_receive.git.backend import InMemoryRepositoryBackend
from post_receive.schemas.push import Project, Pusher
from post_receive.services import push_builder
from post_receive.services.push_builder import PushEventBuilder

AddHistory = Callable[[int], list[str]]


@pytest.fixture
def builder(backend: InMemoryRepositoryBackend) -> PushEventBuilder:
    return PushEventBuilder(backend, BASE_URL)


# ---------------------------------------------------------------------------
# Push classification
# ---------------------------------------------------------------------------


def test_branch_creation(
    builder: PushEventBuilder, add_linear_history: AddHistory, project: Project, pusher: Pusher
) -> None:
    """old = null revision: created, no compare link, whole history counted."""
    ids = add_linear_history(3)

    payload = builder.build(project, pusher, NULL_SHA, ids[-1], "refs/heads/main")

    assert payload.created is True
    assert payload.deleted is None
    assert payload.compare_url is None
    assert payload.total_commits_count == 3
    assert [c.id for c in payload.commits] == ids

    document = payload.to_document()
    assert document["created"] is True
    assert "deleted" not in document
    assert "compare_url" not in document


def test_branch_deletion(
    builder: PushEventBuilder, add_linear_history: AddHistory, project: Project, pusher: Pusher
) -> None:
    """new = null revision: deleted, no commits, no compare link."""
    ids = add_linear_history(2)

    payload = builder.build(project, pusher, ids[-1], NULL_SHA, "refs/heads/feature")

    assert payload.deleted is True
    assert payload.created is None
    assert payload.compare_url is None
    assert payload.total_commits_count == 0
    assert payload.commits == ()

    document = payload.to_document()
    assert document["deleted"] is True
    assert "created" not in document


def test_branch_update_has_compare_url(
    builder: PushEventBuilder, add_linear_history: AddHistory, project: Project, pusher: Pusher
) -> None:
    ids = add_linear_history(4)

    payload = builder.build(project, pusher, ids[0], ids[-1], "refs/heads/main")

    assert payload.created is None
    assert payload.deleted is None
    assert payload.compare_url == f"{BASE_URL}/acme/my-repo/compare/{ids[0]}...{ids[-1]}"
    assert payload.total_commits_count == 3
    assert [c.id for c in payload.commits] == ids[1:]


def test_both_endpoints_null_is_rejected(
    builder: PushEventBuilder, project: Project, pusher: Pusher
) -> None:
    with pytest.raises(RangeResolutionError):
        builder.build(project, pusher, NULL_SHA, NULL_SHA, "refs/heads/main")


def test_backward_move_has_no_commits(
    builder: PushEventBuilder, add_linear_history: AddHistory, project: Project, pusher: Pusher
) -> None:
    ids = add_linear_history(3)

    payload = builder.build(project, pusher, ids[-1], ids[0], "refs/heads/main")

    assert payload.total_commits_count == 0
    assert payload.commits == ()
    assert payload.compare_url is not None


# ---------------------------------------------------------------------------
# Commit bounding
# ---------------------------------------------------------------------------


def test_large_push_is_capped_at_twenty(
    builder: PushEventBuilder, add_linear_history: AddHistory, project: Project, pusher: Pusher
) -> None:
    """35 commits: accurate total, 20 most recent summaries, oldest first."""
    base = add_linear_history(1)[0]
    ids = add_linear_history(35)

    payload = builder.build(project, pusher, base, ids[-1], "refs/heads/main")

    assert payload.total_commits_count == 35
    assert len(payload.commits) == 20
    assert [c.id for c in payload.commits] == ids[-20:]


def test_custom_commit_limit(
    backend: InMemoryRepositoryBackend,
    add_linear_history: AddHistory,
    project: Project,
    pusher: Pusher,
) -> None:
    ids = add_linear_history(5)
    builder = PushEventBuilder(backend, BASE_URL, commit_limit=2)

    payload = builder.build(project, pusher, NULL_SHA, ids[-1], "refs/heads/main")

    assert payload.total_commits_count == 5
    assert [c.id for c in payload.commits] == ids[-2:]


# ---------------------------------------------------------------------------
# Commit summaries
# ---------------------------------------------------------------------------


def test_commit_summary_fields(
    builder: PushEventBuilder, add_linear_history: AddHistory, project: Project, pusher: Pusher
) -> None:
    ids = add_linear_history(1)

    payload = builder.build(project, pusher, NULL_SHA, ids[0], "refs/heads/main")
    summary = payload.commits[0]

    assert summary.id == ids[0]
    assert summary.message == "commit 0\n\nbody of commit 0"
    assert summary.timestamp == "2026-02-07T12:00:00+00:00"
    assert summary.url == f"{BASE_URL}/acme/my-repo/commit/{ids[0]}"
    assert summary.author.name == "Test User"
    assert summary.author.email == "test@example.com"
    assert summary.added == ("file0.py",)
    assert summary.removed == ()
    assert summary.modified == ()


def test_payload_header_fields(
    builder: PushEventBuilder, add_linear_history: AddHistory, project: Project, pusher: Pusher
) -> None:
    ids = add_linear_history(1)

    document = builder.build(project, pusher, NULL_SHA, ids[0], "refs/heads/main").to_document()

    assert document["before"] == NULL_SHA
    assert document["after"] == ids[0]
    assert document["ref"] == "refs/heads/main"
    assert document["user_id"] == 42
    assert document["user_name"] == "Test User"
    assert document["repository"] == {
        "name": "my-repo",
        "url": "git@git.example.com:acme/my-repo.git",
        "description": "A test repository",
        "homepage": f"{BASE_URL}/acme/my-repo",
    }
    assert set(document["commits"][0]) == {
        "id", "message", "timestamp", "url", "author", "added", "removed", "modified",
    }


def test_mixed_changes_are_grouped(
    backend: InMemoryRepositoryBackend,
    builder: PushEventBuilder,
    project: Project,
    pusher: Pusher,
) -> None:
    fields = commit_fields(0)
    backend.add_commit(
        fields,
        patch=make_patch(fields["id"], added=["n1", "n2"], removed=["gone"], modified=["m"]),
    )

    summary = builder.build(project, pusher, NULL_SHA, fields["id"], "refs/heads/main").commits[0]

    assert summary.added == ("n1", "n2")
    assert summary.removed == ("gone",)
    assert summary.modified == ("m",)


def test_malformed_patch_degrades_to_empty_changes(
    backend: InMemoryRepositoryBackend,
    builder: PushEventBuilder,
    project: Project,
    pusher: Pusher,
) -> None:
    """An unparseable patch keeps the summary, just without file lists."""
    fields = commit_fields(0)
    backend.add_commit(fields, patch="Subject: [PATCH] empty commit\n\n---\n")

    payload = builder.build(project, pusher, NULL_SHA, fields["id"], "refs/heads/main")

    assert payload.total_commits_count == 1
    assert payload.commits[0].added == ()
    assert payload.commits[0].modified == ()


def test_empty_commit_logs_at_debug(
    backend: InMemoryRepositoryBackend,
    builder: PushEventBuilder,
    project: Project,
    pusher: Pusher,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A commit with no diff body and no changed lines is not a warning."""
    log = MagicMock()
    monkeypatch.setattr(push_builder, "logger", log)
    fields = commit_fields(0)
    backend.add_commit(fields, patch="Subject: [PATCH] empty commit\n\n---\n", lines_changed=0)

    builder.build(project, pusher, NULL_SHA, fields["id"], "refs/heads/main")

    log.debug.assert_any_call("commit_diff_empty", commit_id=fields["id"])
    log.warning.assert_not_called()


def test_unparseable_patch_with_changes_logs_warning(
    backend: InMemoryRepositoryBackend,
    builder: PushEventBuilder,
    project: Project,
    pusher: Pusher,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    log = MagicMock()
    monkeypatch.setattr(push_builder, "logger", log)
    fields = commit_fields(0)
    backend.add_commit(fields, patch="Subject: [PATCH] lost\n\n---\n", lines_changed=12)

    builder.build(project, pusher, NULL_SHA, fields["id"], "refs/heads/main")

    log.warning.assert_called_once_with("commit_diff_unavailable", commit_id=fields["id"])


def test_unreadable_patch_aborts_the_build(
    backend: InMemoryRepositoryBackend,
    builder: PushEventBuilder,
    project: Project,
    pusher: Pusher,
) -> None:
    fields = commit_fields(0)
    backend.add_commit(fields)

    with pytest.raises(BackendError):
        builder.build(project, pusher, NULL_SHA, fields["id"], "refs/heads/main")


# ---------------------------------------------------------------------------
# Errors and backend properties
# ---------------------------------------------------------------------------


def test_unresolvable_range_raises(
    builder: PushEventBuilder, add_linear_history: AddHistory, project: Project, pusher: Pusher
) -> None:
    ids = add_linear_history(1)

    with pytest.raises(RangeResolutionError):
        builder.build(project, pusher, sha(500), ids[0], "refs/heads/main")


@pytest.mark.parametrize(
    "revision",
    ["--all", "HEAD", "main", "abc123", "g" * 40, "0" * 32],
)
def test_non_object_id_revision_is_rejected(
    builder: PushEventBuilder,
    add_linear_history: AddHistory,
    project: Project,
    pusher: Pusher,
    revision: str,
) -> None:
    """Only full hex ids of the backend's hash width reach the backend."""
    ids = add_linear_history(3)

    with pytest.raises(RangeResolutionError):
        builder.build(project, pusher, NULL_SHA, revision, "refs/heads/main")
    with pytest.raises(RangeResolutionError):
        builder.build(project, pusher, revision, ids[-1], "refs/heads/main")


def test_null_revision_follows_backend_hash_width(project: Project, pusher: Pusher) -> None:
    """A SHA-256 repository uses 64 zeros; 40 zeros is an ordinary revision there."""
    backend = InMemoryRepositoryBackend(hash_width=64)
    fields = {**commit_fields(0), "id": "a" * 64}
    backend.add_commit(fields, patch=make_patch(fields["id"], added=["x"]))
    builder = PushEventBuilder(backend, BASE_URL)

    payload = builder.build(project, pusher, "0" * 64, "a" * 64, "refs/heads/main")
    assert payload.created is True

    with pytest.raises(RangeResolutionError):
        builder.build(project, pusher, NULL_SHA, "a" * 64, "refs/heads/main")


def test_base_url_trailing_slash_is_ignored(
    backend: InMemoryRepositoryBackend,
    add_linear_history: AddHistory,
    project: Project,
    pusher: Pusher,
) -> None:
    ids = add_linear_history(1)
    builder = PushEventBuilder(backend, f"{BASE_URL}/")

    payload = builder.build(project, pusher, NULL_SHA, ids[0], "refs/heads/main")

    assert payload.repository.homepage == f"{BASE_URL}/acme/my-repo"


# ---------------------------------------------------------------------------
# Sample payloads
# ---------------------------------------------------------------------------


def test_sample_uses_latest_three_commits(
    builder: PushEventBuilder, add_linear_history: AddHistory, project: Project, pusher: Pusher
) -> None:
    ids = add_linear_history(5)

    payload = builder.sample(project, pusher)

    assert payload.before == ids[2]
    assert payload.after == ids[4]
    assert payload.ref == "refs/heads/main"
    assert [c.id for c in payload.commits] == ids[3:]


def test_sample_of_unknown_branch_raises(
    builder: PushEventBuilder, add_linear_history: AddHistory, project: Project, pusher: Pusher
) -> None:
    add_linear_history(1)

    with pytest.raises(RangeResolutionError):
        builder.sample(project, pusher, "does-not-exist")
