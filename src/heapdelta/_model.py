"""Value types shared by the recorder, aggregator, stores and reporter.

Design by Contract:
- Counters MUST be non-negative (crash if negative)
- live counters MUST NOT exceed alloc counters
- All types are frozen; views hand out fresh containers
"""

import math
from dataclasses import dataclass, field

UNKNOWN_STACK = "<unknown>"
FRAME_SEPARATOR = " <- "


@dataclass(frozen=True, slots=True)
class Frame:
    """One symbolized stack frame."""

    function: str
    filename: str
    lineno: int

    def __str__(self) -> str:
        return f"{self.function} ({self.filename}:{self.lineno})"


@dataclass(frozen=True, slots=True)
class CallStackSignature:
    """Ordered call stack used as an aggregation key, innermost frame first.

    Equality and hashing are structural, so two captures of the same stack
    aggregate into one entry.
    """

    frames: tuple[Frame, ...] = ()

    def __post_init__(self) -> None:
        assert isinstance(self.frames, tuple), (
            f"Signature frames must be a tuple, got {type(self.frames).__name__}"
        )

    @classmethod
    def of(cls, *frames: tuple[str, str, int]) -> "CallStackSignature":
        """Build a signature from ``(function, filename, lineno)`` triples."""
        return cls(tuple(Frame(fn, filename, lineno) for fn, filename, lineno in frames))

    @property
    def key(self) -> str:
        if not self.frames:
            return UNKNOWN_STACK
        return FRAME_SEPARATOR.join(str(frame) for frame in self.frames)

    @property
    def leaf(self) -> Frame | None:
        return self.frames[0] if self.frames else None

    def __len__(self) -> int:
        return len(self.frames)

    def __str__(self) -> str:
        return self.key


@dataclass(frozen=True, slots=True)
class AllocationSample:
    """One observed allocation (object_count > 0) or free (object_count < 0)."""

    signature: CallStackSignature
    object_count: int
    byte_size: int
    timestamp: float

    def __post_init__(self) -> None:
        assert self.object_count != 0, "Sample object_count must be non-zero"
        assert self.byte_size >= 0, f"Sample byte_size must be non-negative: {self.byte_size}"

    @property
    def is_free(self) -> bool:
        return self.object_count < 0

    def freed(self, timestamp: float) -> "AllocationSample":
        """Return the matching free event for this allocation sample."""
        assert not self.is_free, "Cannot free a free event"
        return AllocationSample(self.signature, -self.object_count, self.byte_size, timestamp)


@dataclass(frozen=True, slots=True)
class AggregateEntry:
    """Per-signature totals at the moment a snapshot was taken."""

    signature: CallStackSignature
    alloc_objects: int
    alloc_bytes: int
    live_objects: int
    live_bytes: int

    def __post_init__(self) -> None:
        assert self.alloc_objects >= 0, f"alloc_objects must be non-negative: {self.alloc_objects}"
        assert self.alloc_bytes >= 0, f"alloc_bytes must be non-negative: {self.alloc_bytes}"
        assert 0 <= self.live_objects <= self.alloc_objects, (
            f"live_objects must be within [0, {self.alloc_objects}]: {self.live_objects}"
        )
        assert 0 <= self.live_bytes <= self.alloc_bytes, (
            f"live_bytes must be within [0, {self.alloc_bytes}]: {self.live_bytes}"
        )

    def metrics(self) -> dict[str, float]:
        return {
            "alloc_objects": float(self.alloc_objects),
            "alloc_bytes": float(self.alloc_bytes),
            "live_objects": float(self.live_objects),
            "live_bytes": float(self.live_bytes),
        }


@dataclass(frozen=True, slots=True)
class ProfileSnapshot:
    """Immutable point-in-time copy of an aggregator.

    Entries are kept sorted by signature key so that equal snapshots compare
    equal regardless of ingestion order.
    """

    taken_at: float
    sampling_rate: int
    process_rss_bytes: int
    entries: tuple[AggregateEntry, ...] = field(default=())

    def __post_init__(self) -> None:
        assert self.sampling_rate >= 0, f"sampling_rate must be non-negative: {self.sampling_rate}"
        assert self.process_rss_bytes >= 0, (
            f"process_rss_bytes must be non-negative: {self.process_rss_bytes}"
        )
        ordered = tuple(sorted(self.entries, key=lambda entry: entry.signature.key))
        signatures = {entry.signature for entry in ordered}
        assert len(signatures) == len(ordered), "Snapshot entries must have unique signatures"
        object.__setattr__(self, "entries", ordered)

    def __len__(self) -> int:
        return len(self.entries)

    def by_signature(self) -> dict[CallStackSignature, AggregateEntry]:
        return {entry.signature: entry for entry in self.entries}

    def entry(self, signature: CallStackSignature) -> AggregateEntry | None:
        for candidate in self.entries:
            if candidate.signature == signature:
                return candidate
        return None

    @property
    def total_alloc_bytes(self) -> int:
        return sum(entry.alloc_bytes for entry in self.entries)

    @property
    def total_live_bytes(self) -> int:
        return sum(entry.live_bytes for entry in self.entries)


@dataclass(frozen=True, slots=True)
class BenchmarkMeasurement:
    """One named benchmark result from a repeated-trial run."""

    name: str
    iterations: int
    ns_per_op: float
    bytes_per_op: float
    allocs_per_op: float

    def __post_init__(self) -> None:
        assert self.name, "Benchmark name must be non-empty"
        assert not any(ch.isspace() for ch in self.name), (
            f"Benchmark name must not contain whitespace: {self.name!r}"
        )
        assert self.iterations >= 0, f"iterations must be non-negative: {self.iterations}"
        for label, value in (
            ("ns_per_op", self.ns_per_op),
            ("bytes_per_op", self.bytes_per_op),
            ("allocs_per_op", self.allocs_per_op),
        ):
            assert math.isfinite(value) and value >= 0, (
                f"{label} must be finite and non-negative: {value}"
            )

    def metrics(self) -> dict[str, float]:
        return {
            "ns_per_op": float(self.ns_per_op),
            "bytes_per_op": float(self.bytes_per_op),
            "allocs_per_op": float(self.allocs_per_op),
        }
