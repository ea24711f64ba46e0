"""Pydantic request/response models for the post-receive endpoints."""

from pydantic import BaseModel

from post_receive.schemas.push import Project, Pusher


class PostReceiveRequest(BaseModel):
    """One push, as reported by the transport layer after it stored the objects."""

    project: Project
    pusher: Pusher
    before: str
    after: str
    ref: str


class PostReceiveResponse(BaseModel):
    """Summary of how a push was processed."""

    status: str
    ref: str
    total_commits_count: int
    commits_included: int
    dispatched: bool
    refresh_failed: bool = False
    delivered: list[str]
    failed: list[str]


class HookTestRequest(BaseModel):
    """Fire a sample payload built from a branch at the project's hooks."""

    project: Project
    pusher: Pusher
    branch: str | None = None
