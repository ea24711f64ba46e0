"""Error taxonomy for the post-receive pipeline.

Every error raised on purpose by the pipeline derives from
``PushPipelineError`` so the HTTP layer can map the whole family with a
single exception handler.
"""


class PushPipelineError(Exception):
    """Base class for all post-receive pipeline errors."""


class BackendError(PushPipelineError):
    """The repository backend could not read the requested git data."""


class MalformedCommitError(PushPipelineError):
    """A commit handle was absent or could not be read."""


class MalformedPatchError(PushPipelineError):
    """Patch text lacks the ``diff --git`` markers needed to parse it."""


class RangeResolutionError(PushPipelineError):
    """The ``old..new`` commit range could not be resolved."""


class EventRecordingError(PushPipelineError):
    """The activity store rejected the push event."""
