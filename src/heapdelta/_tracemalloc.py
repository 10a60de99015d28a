"""Feed Python's own allocator statistics (tracemalloc) into an aggregator."""

import time
import tracemalloc

from beartype import beartype
from loguru import logger

from heapdelta._aggregator import ProfileAggregator
from heapdelta._errors import SamplingDroppedError
from heapdelta._model import AllocationSample, CallStackSignature, Frame

# tracemalloc frames carry no function name
UNKNOWN_FUNCTION = "?"


@beartype
def signature_from_traceback(traceback: tracemalloc.Traceback) -> CallStackSignature:
    """Convert a tracemalloc traceback (oldest frame first) to innermost-first."""
    return CallStackSignature(
        tuple(Frame(UNKNOWN_FUNCTION, f.filename, f.lineno) for f in reversed(traceback))
    )


@beartype
def ingest_tracemalloc(aggregator: ProfileAggregator, snapshot: tracemalloc.Snapshot) -> int:
    """Ingest one sample per traceback-grouped statistic of a tracemalloc snapshot.

    tracemalloc reports exact live blocks, so each statistic lands as an
    allocation whose alloc and live counters are equal.

    Returns:
        Number of samples ingested (dropped samples are logged and skipped).
    """
    now = time.time()
    ingested = 0
    for stat in snapshot.statistics("traceback"):
        if stat.count == 0:
            continue
        signature = signature_from_traceback(stat.traceback)
        sample = AllocationSample(signature, stat.count, stat.size, now)
        try:
            aggregator.ingest(sample)
        except SamplingDroppedError as exc:
            logger.debug(f"tracemalloc statistic dropped: {exc}")
            continue
        ingested += 1
    logger.debug(f"Ingested {ingested} tracemalloc statistics")
    return ingested
