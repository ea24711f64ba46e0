"""Normalized, backend-agnostic commit representation.

A ``CommitRecord`` is built once, either from a native commit handle (a
GitPython ``Commit`` or anything exposing the same attributes) or from a
flat field mapping such as a cached or stored record. Nothing outside this
module needs to know which library produced the commit.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import structlog

from post_receive.exceptions import BackendError, MalformedCommitError
from post_receive.git.backend import RepositoryBackend
from post_receive.git.diff import FileChange, extract_changes, to_unified_diff

logger = structlog.get_logger()

SERIALIZE_KEYS: tuple[str, ...] = (
    "id",
    "authored_date",
    "committed_date",
    "author_name",
    "author_email",
    "committer_name",
    "committer_email",
    "message",
    "parent_ids",
)

DEFAULT_SHORT_ID_LENGTH = 10


def _to_datetime(value: Any) -> datetime | None:
    """Coerce a stored timestamp into an aware datetime.

    Accepts datetimes, ISO-8601 strings and epoch seconds. Naive values are
    taken to be UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, int | float):
        return datetime.fromtimestamp(value, tz=UTC)
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _decode(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _parent_ids(value: Any) -> tuple[str, ...]:
    if not value:
        return ()
    if isinstance(value, str | bytes):
        return (_decode(value),)
    return tuple(_decode(parent) for parent in value)


@dataclass(frozen=True)
class CommitRecord:
    """An immutable commit, independent of the git library that read it."""

    id: str
    authored_date: datetime | None = None
    committed_date: datetime | None = None
    message: str = ""
    author_name: str = ""
    author_email: str = ""
    committer_name: str = ""
    committer_email: str = ""
    parent_ids: tuple[str, ...] = ()
    backend: RepositoryBackend | None = field(default=None, compare=False, repr=False)

    # -- construction -------------------------------------------------------

    @classmethod
    def from_native(cls, handle: Any, backend: RepositoryBackend | None = None) -> CommitRecord:
        """Build a record from a native commit object.

        Raises:
            MalformedCommitError: If ``handle`` is None or cannot be read.
        """
        if handle is None:
            msg = "Nil as raw commit passed"
            raise MalformedCommitError(msg)
        try:
            return cls(
                id=handle.hexsha,
                authored_date=_to_datetime(handle.authored_datetime),
                committed_date=_to_datetime(handle.committed_datetime),
                message=_decode(handle.message),
                author_name=_decode(handle.author.name),
                author_email=_decode(handle.author.email),
                committer_name=_decode(handle.committer.name),
                committer_email=_decode(handle.committer.email),
                parent_ids=tuple(parent.hexsha for parent in handle.parents),
                backend=backend,
            )
        except (AttributeError, TypeError, ValueError) as exc:
            msg = f"Unreadable commit handle: {exc}"
            raise MalformedCommitError(msg) from exc

    @classmethod
    def from_fields(
        cls, fields: Mapping[str, Any], backend: RepositoryBackend | None = None
    ) -> CommitRecord:
        """Rebuild a record from a flat mapping; missing keys become empty values."""
        return cls(
            id=_decode(fields.get("id")),
            authored_date=_to_datetime(fields.get("authored_date")),
            committed_date=_to_datetime(fields.get("committed_date")),
            message=_decode(fields.get("message")),
            author_name=_decode(fields.get("author_name")),
            author_email=_decode(fields.get("author_email")),
            committer_name=_decode(fields.get("committer_name")),
            committer_email=_decode(fields.get("committer_email")),
            parent_ids=_parent_ids(fields.get("parent_ids")),
            backend=backend,
        )

    @classmethod
    def coerce(cls, raw: Any, backend: RepositoryBackend | None = None) -> CommitRecord:
        """Dispatch on the raw commit shape: mappings are records, anything else is native."""
        if isinstance(raw, Mapping):
            return cls.from_fields(raw, backend)
        return cls.from_native(raw, backend)

    def to_fields(self) -> dict[str, Any]:
        """Serialize the nine stored fields; dates become ISO-8601 strings."""
        return {
            "id": self.id,
            "authored_date": self.authored_date.isoformat() if self.authored_date else None,
            "committed_date": self.committed_date.isoformat() if self.committed_date else None,
            "author_name": self.author_name,
            "author_email": self.author_email,
            "committer_name": self.committer_name,
            "committer_email": self.committer_email,
            "message": self.message,
            "parent_ids": list(self.parent_ids),
        }

    # -- derived attributes -------------------------------------------------

    @property
    def sha(self) -> str:
        return self.id

    def short_id(self, length: int = DEFAULT_SHORT_ID_LENGTH) -> str:
        return self.id[:length]

    @property
    def safe_message(self) -> str:
        return self.message or ""

    @property
    def date(self) -> datetime | None:
        return self.committed_date

    @property
    def created_at(self) -> datetime | None:
        return self.committed_date

    @property
    def different_committer(self) -> bool:
        """Was this commit committed by someone other than its author?"""
        return (
            self.author_name != self.committer_name
            or self.author_email != self.committer_email
        )

    @property
    def parent_id(self) -> str | None:
        return self.parent_ids[0] if self.parent_ids else None

    # -- diff access --------------------------------------------------------

    def _patch(self) -> str:
        if self.backend is None:
            msg = f"Commit {self.short_id()} has no repository backend bound"
            raise MalformedCommitError(msg)
        return self.backend.get_patch(self.id)

    def diff(self) -> tuple[FileChange, ...]:
        """File changes between this commit and its first parent.

        Raises:
            MalformedCommitError: If no backend is bound to the record.
            MalformedPatchError: If the backend's patch has no diff sections.
        """
        return tuple(extract_changes(self._patch()))

    def to_diff(self) -> str:
        """The displayable diff body, without mail header, stats or signature."""
        return to_unified_diff(self._patch())

    def has_zero_stats(self) -> bool:
        """True if no lines changed.

        Used as a display hint only, so an unbound record or a backend that
        cannot produce stats also reports True.
        """
        if self.backend is None:
            return True
        try:
            stats = self.backend.get_diff_stats(self.id)
        except BackendError:
            logger.debug("diff_stats_unavailable", commit_id=self.id)
            return True
        return stats.total_lines_changed == 0
