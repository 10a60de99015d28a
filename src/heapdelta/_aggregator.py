"""Profile aggregation keyed by call-stack signature.

Locking model:
- One lock per signature cell; same-signature updates serialize
- The index lock is taken only to insert a new signature, to copy cell
  references for a snapshot, or to swap the index on reset()
- Snapshot reads each cell under its own lock, never all cells at once
"""

import threading
import time

import psutil
from beartype import beartype
from loguru import logger

from heapdelta._errors import SamplingDroppedError
from heapdelta._model import AggregateEntry, AllocationSample, CallStackSignature, ProfileSnapshot


class _Cell:
    __slots__ = ("lock", "alloc_objects", "alloc_bytes", "live_objects", "live_bytes")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.alloc_objects = 0
        self.alloc_bytes = 0
        self.live_objects = 0
        self.live_bytes = 0


class ProfileAggregator:
    """Merges allocation samples into per-signature running totals.

    Owned and injectable: independent sessions use independent instances.

    Args:
        max_entries: Upper bound on distinct signatures, or None for unbounded.
            Samples for new signatures beyond the bound raise SamplingDroppedError.

    Example:
        aggregator = ProfileAggregator()
        aggregator.ingest(sample)
        snapshot = aggregator.snapshot(sampling_rate=1)
        aggregator.reset()
    """

    @beartype
    def __init__(self, max_entries: int | None = None) -> None:
        assert max_entries is None or max_entries >= 1, (
            f"max_entries must be >= 1 when set: {max_entries}"
        )
        self.max_entries = max_entries
        self._cells: dict[CallStackSignature, _Cell] = {}
        self._index_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._cells)

    def _cell_for(self, signature: CallStackSignature) -> _Cell:
        cell = self._cells.get(signature)
        if cell is not None:
            return cell
        with self._index_lock:
            cell = self._cells.get(signature)
            if cell is None:
                if self.max_entries is not None and len(self._cells) >= self.max_entries:
                    raise SamplingDroppedError(
                        f"Aggregator full ({self.max_entries} signatures), "
                        f"dropping sample for {signature.key}"
                    )
                cell = _Cell()
                self._cells[signature] = cell
            return cell

    @beartype
    def ingest(self, sample: AllocationSample) -> None:
        """Apply one sample to the entry for its signature.

        Allocation samples add to both alloc and live counters. Free samples
        (negative object_count) decrement live counters, clamped at zero.
        """
        if sample.is_free:
            self._release(sample.signature, -sample.object_count, sample.byte_size)
            return

        cell = self._cell_for(sample.signature)
        with cell.lock:
            cell.alloc_objects += sample.object_count
            cell.alloc_bytes += sample.byte_size
            cell.live_objects += sample.object_count
            cell.live_bytes += sample.byte_size

    @beartype
    def free(self, signature: CallStackSignature, object_count: int, byte_size: int) -> None:
        """Record that objects allocated at signature were freed."""
        assert object_count >= 1, f"Freed object_count must be >= 1: {object_count}"
        assert byte_size >= 0, f"Freed byte_size must be non-negative: {byte_size}"
        self._release(signature, object_count, byte_size)

    def _release(self, signature: CallStackSignature, object_count: int, byte_size: int) -> None:
        cell = self._cells.get(signature)
        if cell is None:
            logger.trace(f"Ignoring free for unknown signature {signature.key}")
            return
        with cell.lock:
            cell.live_objects = max(0, cell.live_objects - object_count)
            cell.live_bytes = max(0, cell.live_bytes - byte_size)

    @beartype
    def snapshot(self, sampling_rate: int) -> ProfileSnapshot:
        """Return an independent point-in-time copy of all entries.

        Args:
            sampling_rate: Rate the samples were recorded at (stored as metadata)
        """
        with self._index_lock:
            cells = list(self._cells.items())

        entries = []
        for signature, cell in cells:
            with cell.lock:
                counters = (
                    cell.alloc_objects,
                    cell.alloc_bytes,
                    cell.live_objects,
                    cell.live_bytes,
                )
            entries.append(AggregateEntry(signature, *counters))

        snapshot = ProfileSnapshot(
            taken_at=time.time(),
            sampling_rate=sampling_rate,
            process_rss_bytes=psutil.Process().memory_info().rss,
            entries=tuple(entries),
        )
        logger.debug(
            f"Snapshot taken: {len(snapshot)} signatures, "
            f"{snapshot.total_alloc_bytes} bytes allocated, {snapshot.total_live_bytes} live"
        )
        return snapshot

    @beartype
    def reset(self) -> None:
        """Drop all entries, starting a new measurement window."""
        with self._index_lock:
            dropped = len(self._cells)
            self._cells = {}
        logger.debug(f"Aggregator reset, {dropped} signatures cleared")
