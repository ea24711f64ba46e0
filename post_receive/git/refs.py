"""Ref path parsing and null-revision helpers."""

import string
from dataclasses import dataclass

BRANCH_PREFIX = "refs/heads/"
TAG_PREFIX = "refs/tags/"

SHA1_WIDTH = 40
SHA256_WIDTH = 64


@dataclass(frozen=True)
class Branch:
    """A ref under ``refs/heads/``."""

    name: str

    @property
    def path(self) -> str:
        return f"{BRANCH_PREFIX}{self.name}"


@dataclass(frozen=True)
class Tag:
    """A ref under ``refs/tags/``."""

    name: str

    @property
    def path(self) -> str:
        return f"{TAG_PREFIX}{self.name}"


@dataclass(frozen=True)
class OtherRef:
    """Any other ref, e.g. ``refs/merge-requests/1/head`` or ``HEAD``."""

    path: str


Ref = Branch | Tag | OtherRef


def parse_ref(ref: str) -> Ref:
    """Classify a full ref path.

    ``refs/heads/feature/x`` is the branch ``feature/x``. A bare prefix with
    no name after it is not a branch or tag.
    """
    if ref.startswith(BRANCH_PREFIX) and len(ref) > len(BRANCH_PREFIX):
        return Branch(ref[len(BRANCH_PREFIX):])
    if ref.startswith(TAG_PREFIX) and len(ref) > len(TAG_PREFIX):
        return Tag(ref[len(TAG_PREFIX):])
    return OtherRef(ref)


def null_revision(width: int = SHA1_WIDTH) -> str:
    """Return the all-zero revision for a hash of ``width`` hex digits."""
    return "0" * width


def is_null_revision(revision: str, width: int = SHA1_WIDTH) -> bool:
    """True if ``revision`` is exactly the null revision of the given width."""
    return revision == null_revision(width)


def is_revision(value: str, width: int = SHA1_WIDTH) -> bool:
    """True if ``value`` is a full hex object id of ``width`` digits."""
    return len(value) == width and all(c in string.hexdigits for c in value)
