"""Repository backend abstraction with swappable implementations.

Production code uses ``GitRepositoryBackend`` which reads bare repositories
on disk through GitPython. Tests use ``InMemoryRepositoryBackend`` which
serves flat commit records from a dict, so the pipeline can be exercised
without a git binary.

Backends return *raw* commits: GitPython ``Commit`` objects or plain field
mappings. ``CommitRecord.coerce`` turns either into the normalized form.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol

import git
import structlog
from pydantic import BaseModel

from post_receive.exceptions import BackendError
from post_receive.git.refs import SHA1_WIDTH, SHA256_WIDTH

logger = structlog.get_logger()


class DiffStats(BaseModel):
    """Line statistics for a single commit."""

    total_lines_changed: int


class RepositoryBackend(Protocol):
    """Protocol for reading commits, patches and stats from one repository."""

    @property
    def hash_width(self) -> int:
        """Number of hex digits in a revision id for this repository."""
        ...

    def resolve_commit_range(self, old: str | None, new: str) -> list[Any]:
        """Return the commits reachable from ``new`` but not ``old``, oldest first.

        ``old=None`` means every ancestor of ``new``.

        Raises:
            BackendError: If either revision cannot be resolved.
        """
        ...

    def get_patch(self, commit_id: str) -> str:
        """Return the patch text of a commit against its first parent."""
        ...

    def get_diff_stats(self, commit_id: str) -> DiffStats:
        """Return line statistics for a commit."""
        ...

    def recent_commits(self, ref: str, limit: int) -> list[Any]:
        """Return up to ``limit`` commits reachable from ``ref``, newest first."""
        ...

    def close(self) -> None:
        """Release any handles held on the repository."""
        ...


class GitRepositoryBackend:
    """Backend for an on-disk repository, read through GitPython."""

    def __init__(self, path: str | Path) -> None:
        try:
            self._repo = git.Repo(path)
        except (git.exc.NoSuchPathError, git.exc.InvalidGitRepositoryError) as exc:
            msg = f"Not a git repository: {path}"
            raise BackendError(msg) from exc

    @property
    def hash_width(self) -> int:
        reader = self._repo.config_reader("repository")
        object_format = reader.get_value("extensions", "objectformat", "sha1")
        return SHA256_WIDTH if str(object_format).lower() == "sha256" else SHA1_WIDTH

    def _rev_list(self, *options: str, rev: str) -> list[git.Commit]:
        # revisions come from the network; never let one parse as an option
        try:
            output = self._repo.git.rev_list(*options, "--end-of-options", rev)
            return [self._repo.commit(sha) for sha in output.split()]
        except (git.exc.GitCommandError, git.exc.BadName, ValueError) as exc:
            msg = f"Cannot list commits of {rev}"
            raise BackendError(msg) from exc

    def resolve_commit_range(self, old: str | None, new: str) -> list[git.Commit]:
        rev = f"{old}..{new}" if old else new
        return self._rev_list("--reverse", rev=rev)

    def _commit(self, commit_id: str) -> git.Commit:
        try:
            return self._repo.commit(commit_id)
        except (git.exc.BadName, git.exc.BadObject, ValueError) as exc:
            msg = f"Unknown commit {commit_id}"
            raise BackendError(msg) from exc

    def get_patch(self, commit_id: str) -> str:
        commit = self._commit(commit_id)
        try:
            if len(commit.parents) > 1:
                # format-patch skips merges; diff against the first parent instead
                return self._repo.git.diff(
                    commit.parents[0].hexsha, commit.hexsha, no_ext_diff=True, no_color=True
                )
            return self._repo.git.format_patch("-1", "--stdout", commit.hexsha)
        except git.exc.GitCommandError as exc:
            msg = f"Cannot read patch for {commit_id}"
            raise BackendError(msg) from exc

    def get_diff_stats(self, commit_id: str) -> DiffStats:
        commit = self._commit(commit_id)
        try:
            total = commit.stats.total
        except (git.exc.GitCommandError, ValueError) as exc:
            msg = f"Cannot read stats for {commit_id}"
            raise BackendError(msg) from exc
        return DiffStats(total_lines_changed=total["lines"])

    def recent_commits(self, ref: str, limit: int) -> list[git.Commit]:
        return self._rev_list(f"--max-count={limit}", rev=ref)

    def close(self) -> None:
        self._repo.close()


class GitRepositoryFactory:
    """Open the bare repository ``<root>/<path_with_namespace>.git``."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    def __call__(self, path_with_namespace: str) -> GitRepositoryBackend:
        """Open a project's repository.

        Raises:
            BackendError: If the path escapes the repositories root.
        """
        path = (self._root / f"{path_with_namespace}.git").resolve()
        if not path.is_relative_to(self._root):
            msg = f"Repository path outside the repositories root: {path_with_namespace}"
            raise BackendError(msg)
        logger.debug("opening_repository", path=str(path))
        return GitRepositoryBackend(path)


class InMemoryRepositoryBackend:
    """Test double serving flat commit records.

    Commits must be added parents-first; insertion order is treated as
    chronological order.
    """

    def __init__(self, hash_width: int = SHA1_WIDTH) -> None:
        self._hash_width = hash_width
        self._commits: dict[str, dict[str, Any]] = {}
        self._order: list[str] = []
        self._patches: dict[str, str] = {}
        self._stats: dict[str, int] = {}
        self.refs: dict[str, str] = {}
        self.closed = False

    @property
    def hash_width(self) -> int:
        return self._hash_width

    def add_commit(
        self,
        fields: Mapping[str, Any],
        *,
        patch: str | None = None,
        lines_changed: int | None = None,
    ) -> str:
        """Store a commit record; ``patch``/``lines_changed`` of None mean unreadable."""
        commit_id = fields["id"]
        self._commits[commit_id] = dict(fields)
        self._order.append(commit_id)
        if patch is not None:
            self._patches[commit_id] = patch
        if lines_changed is not None:
            self._stats[commit_id] = lines_changed
        return commit_id

    def _resolve(self, rev: str) -> str:
        commit_id = self.refs.get(rev, rev)
        if commit_id not in self._commits:
            msg = f"Unknown revision {rev}"
            raise BackendError(msg)
        return commit_id

    def _ancestors(self, commit_id: str) -> set[str]:
        seen: set[str] = set()
        stack = [commit_id]
        while stack:
            current = stack.pop()
            if current in seen or current not in self._commits:
                continue
            seen.add(current)
            stack.extend(self._commits[current].get("parent_ids") or [])
        return seen

    def resolve_commit_range(self, old: str | None, new: str) -> list[dict[str, Any]]:
        reachable = self._ancestors(self._resolve(new))
        excluded = self._ancestors(self._resolve(old)) if old else set()
        return [
            dict(self._commits[sha])
            for sha in self._order
            if sha in reachable and sha not in excluded
        ]

    def get_patch(self, commit_id: str) -> str:
        if commit_id not in self._patches:
            msg = f"No patch for {commit_id}"
            raise BackendError(msg)
        return self._patches[commit_id]

    def get_diff_stats(self, commit_id: str) -> DiffStats:
        if commit_id not in self._stats:
            msg = f"No stats for {commit_id}"
            raise BackendError(msg)
        return DiffStats(total_lines_changed=self._stats[commit_id])

    def recent_commits(self, ref: str, limit: int) -> list[dict[str, Any]]:
        reachable = self._ancestors(self._resolve(ref))
        newest_first = [sha for sha in reversed(self._order) if sha in reachable]
        return [dict(self._commits[sha]) for sha in newest_first[:limit]]

    def close(self) -> None:
        self.closed = True
