"""Fan-out of push payloads to webhooks and chat integrations.

Each target receives its own freshly serialized copy of the payload, and a
failing target never stops delivery to the others.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol

import httpx
import structlog

from post_receive.git.refs import Branch, Tag, parse_ref
from post_receive.schemas.push import HookConfig, PushPayload

logger = structlog.get_logger()

# Number of commits listed in a chat message.
CHAT_COMMIT_LINES = 5


class DispatchTarget(Protocol):
    """Protocol for a single notification target."""

    name: str

    async def deliver(self, payload: dict) -> None:
        """Deliver one payload document; raise on failure."""
        ...


class WebhookTarget:
    """POST the payload document as JSON to a project web hook."""

    def __init__(self, client: httpx.AsyncClient, url: str) -> None:
        self._client = client
        self.url = url
        self.name = f"webhook:{url}"

    async def deliver(self, payload: dict) -> None:
        resp = await self._client.post(url=self.url, json=payload)
        resp.raise_for_status()


def build_chat_message(payload: dict) -> str:
    """Render a push payload document as a short chat message."""
    parsed = parse_ref(payload["ref"])
    ref_name = parsed.name if isinstance(parsed, Branch | Tag) else parsed.path
    user = payload["user_name"]
    repo = payload["repository"]["name"]

    if payload.get("deleted"):
        return f"{user} removed {ref_name} from {repo}"

    count = payload["total_commits_count"]
    noun = "commit" if count == 1 else "commits"
    if payload.get("created"):
        header = f"{user} pushed new {ref_name} to {repo} ({count} {noun})"
    else:
        header = f"{user} pushed {count} {noun} to {ref_name} of {repo}"
    if payload.get("compare_url"):
        header = f"{header}\n{payload['compare_url']}"

    lines = [header]
    for commit in payload["commits"][-CHAT_COMMIT_LINES:]:
        summary = commit["message"].split("\n", maxsplit=1)[0]
        lines.append(f"- {commit['id'][:8]}: {summary}")
    return "\n".join(lines)


class ChatTarget:
    """Post a chat message to a team inbox integration."""

    def __init__(self, client: httpx.AsyncClient, url: str, token: str) -> None:
        self._client = client
        self.url = url
        self._token = token
        self.name = f"chat:{url}"

    async def deliver(self, payload: dict) -> None:
        message = {
            "flow_token": self._token,
            "event": "message",
            "content": build_chat_message(payload),
            "external_user_name": payload["user_name"],
        }
        resp = await self._client.post(url=self.url, json=message)
        resp.raise_for_status()


class InMemoryTarget:
    """Test double that captures delivered payloads."""

    def __init__(self, name: str = "memory", *, fail: bool = False) -> None:
        self.name = name
        self.fail = fail
        self.deliveries: list[dict] = []

    async def deliver(self, payload: dict) -> None:
        if self.fail:
            msg = f"{self.name} is unavailable"
            raise RuntimeError(msg)
        self.deliveries.append(payload)


def build_targets(hooks: Sequence[HookConfig], client: httpx.AsyncClient) -> list[DispatchTarget]:
    """Instantiate targets for a project's hook configuration."""
    targets: list[DispatchTarget] = []
    for hook in hooks:
        if hook.kind == "chat":
            targets.append(ChatTarget(client, hook.url, hook.token))
        else:
            targets.append(WebhookTarget(client, hook.url))
    return targets


@dataclass
class DispatchReport:
    """Outcome of one dispatch round."""

    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class NotificationDispatcher:
    """Deliver a payload to zero or more targets, isolating failures."""

    def __init__(self, targets: Sequence[DispatchTarget] = ()) -> None:
        self._targets = list(targets)

    @property
    def targets(self) -> list[DispatchTarget]:
        return list(self._targets)

    async def dispatch(self, payload: PushPayload) -> DispatchReport:
        report = DispatchReport()
        for target in self._targets:
            try:
                await target.deliver(payload.to_document())
            except Exception:
                logger.exception("hook_delivery_failed", target=target.name, ref=payload.ref)
                report.failed.append(target.name)
            else:
                report.delivered.append(target.name)
        logger.info(
            "push_dispatched",
            ref=payload.ref,
            delivered=len(report.delivered),
            failed=len(report.failed),
        )
        return report
