"""Activity feed recording with protocol-based swappable implementations.

Production code uses ``SqlActivityStore`` which writes ``Event`` rows through
an async SQLAlchemy session. Tests use ``InMemoryActivityStore`` which keeps
recorded events in a list.
"""

from __future__ import annotations

from typing import Protocol

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from post_receive.db.models import Event
from post_receive.exceptions import EventRecordingError

logger = structlog.get_logger()

PUSHED = "pushed"


class ActivityStore(Protocol):
    """Protocol for recording activity events."""

    async def record_event(
        self, kind: str, payload: dict, actor_id: int, *, project_id: int
    ) -> None:
        """Persist one event.

        Raises:
            EventRecordingError: If the store rejects the event.
        """
        ...


class SqlActivityStore:
    """Store events in the ``events`` table.

    The event is committed before returning so that nothing downstream runs
    for a push whose event is not durable.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def record_event(
        self, kind: str, payload: dict, actor_id: int, *, project_id: int
    ) -> None:
        event = Event(project_id=project_id, action=kind, author_id=actor_id, data=payload)
        try:
            self._session.add(event)
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            msg = f"Failed to record {kind} event for project {project_id}"
            raise EventRecordingError(msg) from exc
        logger.info("event_recorded", kind=kind, project_id=project_id, author_id=actor_id)


class InMemoryActivityStore:
    """Test double that records events for assertions."""

    def __init__(self) -> None:
        self.events: list[dict] = []

    async def record_event(
        self, kind: str, payload: dict, actor_id: int, *, project_id: int
    ) -> None:
        self.events.append(
            {"kind": kind, "payload": payload, "actor_id": actor_id, "project_id": project_id}
        )
