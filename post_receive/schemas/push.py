"""Pydantic models for the push payload handed to every downstream consumer.

The serialized field names are a wire contract: webhook receivers and chat
integrations match on them, so they must not be renamed.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class HookConfig(BaseModel):
    """A notification target registered on a project."""

    kind: Literal["webhook", "chat"] = "webhook"
    url: str
    token: str = ""


class Project(BaseModel):
    """The pushed-to project, as supplied by the storage service."""

    id: int
    name: str
    path_with_namespace: str
    description: str = ""
    url_to_repo: str = ""
    default_branch: str = "main"
    hooks: list[HookConfig] = Field(default_factory=list)


class Pusher(BaseModel):
    """The user who performed the push."""

    id: int
    name: str


class CommitAuthor(BaseModel):
    """Author information of a summarized commit."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: str


class CommitSummary(BaseModel):
    """A single commit within a push payload."""

    model_config = ConfigDict(frozen=True)

    id: str
    message: str
    timestamp: str | None = None
    url: str
    author: CommitAuthor
    added: tuple[str, ...] = ()
    removed: tuple[str, ...] = ()
    modified: tuple[str, ...] = ()


class RepositoryDescriptor(BaseModel):
    """Repository metadata carried in the push payload."""

    model_config = ConfigDict(frozen=True)

    name: str
    url: str
    description: str
    homepage: str


class PushPayload(BaseModel):
    """Normalized description of one push.

    ``created``, ``deleted`` and ``compare_url`` are left as None when they do
    not apply and are omitted from ``to_document()``.
    """

    model_config = ConfigDict(frozen=True)

    before: str
    after: str
    ref: str
    user_id: int
    user_name: str
    repository: RepositoryDescriptor
    commits: tuple[CommitSummary, ...] = ()
    total_commits_count: int
    created: Literal[True] | None = None
    deleted: Literal[True] | None = None
    compare_url: str | None = None

    def to_document(self) -> dict:
        """Return a fresh JSON-compatible dict; callers may mutate it freely."""
        return self.model_dump(mode="json", exclude_none=True)
