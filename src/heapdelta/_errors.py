"""Error taxonomy for heapdelta.

- MalformedInputError: unparseable snapshot/benchmark input (fail fast, nothing applied)
- KeyMismatchError: inputs the reporter cannot key consistently (schemas differ,
  or two signatures render to one key)
- SamplingDroppedError: a sample could not be stored (absorbed by the recorder)
"""


class HeapDeltaError(Exception):
    """Base class for all heapdelta errors."""


class MalformedInputError(HeapDeltaError):
    """A persisted snapshot or benchmark file could not be parsed."""

    def __init__(self, message: str, source: str | None = None) -> None:
        self.source = source
        if source is not None:
            message = f"{source}: {message}"
        super().__init__(message)


class KeyMismatchError(HeapDeltaError):
    """Tables with different kinds or metric sets, or colliding row keys."""


class SamplingDroppedError(HeapDeltaError):
    """A sample was dropped because the aggregator is out of capacity."""
