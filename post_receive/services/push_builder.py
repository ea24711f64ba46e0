"""Push payload construction.

Walks the pushed commit range, classifies the push (branch creation,
deletion or update) and assembles a size-bounded ``PushPayload``. The builder
is synchronous: every call into the repository backend is blocking I/O, so
async callers should run it in a worker thread.
"""

import structlog

from post_receive.exceptions import BackendError, MalformedPatchError, RangeResolutionError
from post_receive.git.backend import RepositoryBackend
from post_receive.git.commit import CommitRecord
from post_receive.git.diff import ChangeKind
from post_receive.git.refs import BRANCH_PREFIX, is_revision, null_revision
from post_receive.schemas.push import (
    CommitAuthor,
    CommitSummary,
    Project,
    Pusher,
    PushPayload,
    RepositoryDescriptor,
)

logger = structlog.get_logger()

# Maximum number of commits summarized in full detail.
DEFAULT_COMMIT_LIMIT = 20

# Number of commits used for a sample (hook test) payload.
SAMPLE_COMMIT_COUNT = 3


class PushEventBuilder:
    """Build push payloads for one repository.

    Args:
        backend: Repository backend for the pushed project.
        base_url: External base URL of the hosting platform, used for the
            browsable commit, compare and homepage links.
        commit_limit: Maximum number of commits summarized in the payload.
    """

    def __init__(
        self,
        backend: RepositoryBackend,
        base_url: str,
        commit_limit: int = DEFAULT_COMMIT_LIMIT,
    ) -> None:
        self._backend = backend
        self._base_url = base_url.rstrip("/")
        self._commit_limit = commit_limit

    @property
    def null_revision(self) -> str:
        return null_revision(self._backend.hash_width)

    def _web_url(self, project: Project) -> str:
        return f"{self._base_url}/{project.path_with_namespace}"

    def _resolve_commits(self, oldrev: str, newrev: str) -> list[CommitRecord]:
        null = self.null_revision
        if newrev == null:
            return []
        try:
            raw_commits = self._backend.resolve_commit_range(
                None if oldrev == null else oldrev, newrev
            )
        except BackendError as exc:
            msg = f"Cannot resolve {oldrev}..{newrev}"
            raise RangeResolutionError(msg) from exc
        return [CommitRecord.coerce(raw, self._backend) for raw in raw_commits]

    def _summarize(self, project: Project, commit: CommitRecord) -> CommitSummary:
        changes: dict[ChangeKind, list[str]] = {kind: [] for kind in ChangeKind}
        try:
            for change in commit.diff():
                changes[change.kind].append(change.path)
        except MalformedPatchError:
            if commit.has_zero_stats():
                logger.debug("commit_diff_empty", commit_id=commit.id)
            else:
                logger.warning("commit_diff_unavailable", commit_id=commit.id)

        return CommitSummary(
            id=commit.id,
            message=commit.safe_message,
            timestamp=commit.date.isoformat() if commit.date else None,
            url=f"{self._web_url(project)}/commit/{commit.id}",
            author=CommitAuthor(name=commit.author_name, email=commit.author_email),
            added=tuple(changes[ChangeKind.ADDED]),
            removed=tuple(changes[ChangeKind.REMOVED]),
            modified=tuple(changes[ChangeKind.MODIFIED]),
        )

    def build(
        self,
        project: Project,
        pusher: Pusher,
        oldrev: str,
        newrev: str,
        ref: str,
    ) -> PushPayload:
        """Build the payload for a push moving ``ref`` from ``oldrev`` to ``newrev``.

        Raises:
            RangeResolutionError: If a revision is not a full object id of the
                backend's hash width, both revisions are null, or the backend
                cannot resolve the range.
        """
        width = self._backend.hash_width
        for rev in (oldrev, newrev):
            if not is_revision(rev, width):
                msg = f"Push to {ref} carries an invalid revision {rev!r}"
                raise RangeResolutionError(msg)

        null = self.null_revision
        created = oldrev == null
        deleted = newrev == null
        if created and deleted:
            msg = f"Push to {ref} has a null revision on both ends"
            raise RangeResolutionError(msg)

        push_commits = self._resolve_commits(oldrev, newrev)

        # Latest commits, oldest first
        limited = push_commits[-self._commit_limit:] if self._commit_limit > 0 else []

        web_url = self._web_url(project)
        payload = PushPayload(
            before=oldrev,
            after=newrev,
            ref=ref,
            user_id=pusher.id,
            user_name=pusher.name,
            repository=RepositoryDescriptor(
                name=project.name,
                url=project.url_to_repo,
                description=project.description,
                homepage=web_url,
            ),
            commits=tuple(self._summarize(project, commit) for commit in limited),
            total_commits_count=len(push_commits),
            created=True if created else None,
            deleted=True if deleted else None,
            compare_url=None if created or deleted else f"{web_url}/compare/{oldrev}...{newrev}",
        )
        logger.debug(
            "push_payload_built",
            ref=ref,
            total_commits=payload.total_commits_count,
            included_commits=len(payload.commits),
        )
        return payload

    def sample(self, project: Project, pusher: Pusher, branch: str | None = None) -> PushPayload:
        """Build a payload from the latest commits of ``branch`` for testing hooks.

        Raises:
            RangeResolutionError: If the branch has no readable commits.
        """
        branch = branch or project.default_branch
        try:
            recent = [
                CommitRecord.coerce(raw, self._backend)
                for raw in self._backend.recent_commits(branch, SAMPLE_COMMIT_COUNT)
            ]
        except BackendError as exc:
            msg = f"Cannot read commits of {branch}"
            raise RangeResolutionError(msg) from exc
        if not recent:
            msg = f"Branch {branch} has no commits"
            raise RangeResolutionError(msg)

        return self.build(project, pusher, recent[-1].id, recent[0].id, f"{BRANCH_PREFIX}{branch}")
