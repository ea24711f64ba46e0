"""Patch parsing: per-file change classification and diff isolation.

Works on the text produced by ``git format-patch --stdout`` (mail header,
stats, ``diff --git`` sections, trailing signature) as well as on a bare
``git diff`` body. Per-file classification is read from a
``unidiff.PatchSet``.
"""

import re
from enum import Enum
from io import StringIO

from pydantic import BaseModel, ConfigDict
from unidiff import PatchedFile, PatchSet, UnidiffParseError
from unidiff.constants import DEV_NULL

from post_receive.exceptions import MalformedPatchError

_DIFF_HEADER = "diff --git"

# ``diff --git a/<path> b/<path>``; paths may contain spaces, so anchor on " b/".
_DIFF_HEADER_PATTERN = re.compile(r"^diff --git (?P<a>\"?a/.+?\"?) (?P<b>\"?b/.+\"?)$")

# Trailing line git appends to format-patch output, e.g. "2.43.0".
_GIT_VERSION_PATTERN = re.compile(r"^[\d.]+$")

_SIGNATURE_SEPARATOR = "-- "


class ChangeKind(str, Enum):
    """How a single file was affected by a commit."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


class FileChange(BaseModel):
    """One file touched by a commit."""

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    path: str


def to_unified_diff(raw_patch: str) -> str:
    """Cut the mail header, stats and trailing signature out of a patch.

    Lines before the first ``diff --git`` line are discarded. A trailing git
    version line is dropped, then a trailing ``-- `` separator line. The
    result carries no trailing newline.

    Raises:
        MalformedPatchError: If the patch has no ``diff --git`` line.
    """
    lines = raw_patch.split("\n")

    start = next((i for i, line in enumerate(lines) if line.startswith(_DIFF_HEADER)), None)
    if start is None:
        msg = "Patch contains no 'diff --git' line"
        raise MalformedPatchError(msg)
    lines = lines[start:]

    # format-patch output ends with a newline, leaving an empty last element
    trailing_newline = bool(lines) and lines[-1] == ""
    if trailing_newline:
        lines.pop()

    if lines and _GIT_VERSION_PATTERN.match(lines[-1]):
        lines.pop()
    if lines and lines[-1] == _SIGNATURE_SEPARATOR:
        lines.pop()

    return "\n".join(lines)


def _strip_prefix(path: str) -> str:
    """Remove quoting and the ``a/``/``b/`` prefix from a header path."""
    path = path.strip('"')
    if path.startswith(("a/", "b/")):
        return path[2:]
    return path


def _header_path(header: str) -> str:
    match = _DIFF_HEADER_PATTERN.match(header.rstrip("\n"))
    if match is None:
        return _strip_prefix(header.rstrip("\n").rsplit(" ", maxsplit=1)[-1])
    return _strip_prefix(match.group("b"))


def _file_path(patched: PatchedFile) -> str:
    """Path of a patched file; renames report the new name.

    A section flagged both new and deleted has ``/dev/null`` on both sides,
    so the path comes from its ``diff --git`` header instead.
    """
    path = patched.path
    if path == DEV_NULL and patched.patch_info:
        return _header_path(patched.patch_info[0])
    return path.strip('"')


def _change_kind(patched: PatchedFile) -> ChangeKind:
    # new before deleted: a section carrying both flags counts as added
    if patched.is_added_file:
        return ChangeKind.ADDED
    if patched.is_removed_file:
        return ChangeKind.REMOVED
    return ChangeKind.MODIFIED


def extract_changes(raw_patch: str) -> list[FileChange]:
    """Return one ``FileChange`` per file section of a patch, in patch order.

    Raises:
        MalformedPatchError: If the patch has no ``diff --git`` line or its
            sections cannot be parsed.
    """
    body = to_unified_diff(raw_patch)
    try:
        patch_set = PatchSet(StringIO(f"{body}\n"))
    except UnidiffParseError as exc:
        msg = f"Unparseable patch: {exc}"
        raise MalformedPatchError(msg) from exc

    return [
        FileChange(kind=_change_kind(patched), path=_file_path(patched))
        for patched in patch_set
    ]
