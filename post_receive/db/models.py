"""SQLAlchemy ORM models for the activity feed."""

from datetime import datetime

from sqlalchemy import JSON, Index, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class Event(Base):
    """One entry of a project's activity feed."""

    __tablename__ = "events"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int]
    action: Mapped[str] = mapped_column(String(32))
    author_id: Mapped[int]
    data: Mapped[dict] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())

    __table_args__ = (
        Index("ix_events_project_id_created_at", "project_id", "created_at"),
        Index("ix_events_author_id", "author_id"),
    )
