"""heapdelta: Sampling allocation profiler with benchmark-delta reporting.

Provides:
- SampleRecorder: Statistical allocation sampler (1 sample per N bytes on average)
- ProfileAggregator: Thread-safe per-call-stack counters with copy-on-snapshot
- save_snapshot / load_snapshot: Stable JSON persistence of ProfileSnapshot
- BenchmarkResultStore: Named benchmark measurements (last write wins)
- compare_snapshots / compare_benchmarks: Per-key and TOTAL deltas with a
  regression threshold

Usage:
    from heapdelta import ProfileAggregator, SampleRecorder, capture_signature

    recorder = SampleRecorder(ProfileAggregator(), sampling_rate=1)
    sample = recorder.record(capture_signature(), object_count=1, byte_size=4096)
    before = recorder.snapshot()

    ...

    report = compare_snapshots(before, recorder.snapshot())
    report.print_summary("Allocation Delta")
    if report.regressions(threshold_pct=5.0):
        ...
"""

from heapdelta._aggregator import ProfileAggregator
from heapdelta._benchmarks import (
    BenchmarkResultStore,
    MeasurementView,
    dumps_benchmarks,
    load_benchmarks,
    loads_benchmarks,
    parse_benchmark_lines,
    save_benchmarks,
)
from heapdelta._delta import (
    BENCHMARK_METRICS,
    PROFILE_METRICS,
    TOTAL_KEY,
    DeltaReport,
    DeltaRow,
    MetricDelta,
    MetricTable,
    RowStatus,
    benchmark_table,
    compare_benchmarks,
    compare_snapshots,
    compare_tables,
    percent_change,
    profile_table,
)
from heapdelta._errors import (
    HeapDeltaError,
    KeyMismatchError,
    MalformedInputError,
    SamplingDroppedError,
)
from heapdelta._model import (
    AggregateEntry,
    AllocationSample,
    BenchmarkMeasurement,
    CallStackSignature,
    Frame,
    ProfileSnapshot,
)
from heapdelta._recorder import SampleRecorder
from heapdelta._signature import capture_signature
from heapdelta._snapshot_store import dumps_snapshot, load_snapshot, loads_snapshot, save_snapshot
from heapdelta._tracemalloc import ingest_tracemalloc, signature_from_traceback

__all__ = [
    "AggregateEntry",
    "AllocationSample",
    "BENCHMARK_METRICS",
    "BenchmarkMeasurement",
    "BenchmarkResultStore",
    "CallStackSignature",
    "DeltaReport",
    "DeltaRow",
    "Frame",
    "HeapDeltaError",
    "KeyMismatchError",
    "MalformedInputError",
    "MeasurementView",
    "MetricDelta",
    "MetricTable",
    "PROFILE_METRICS",
    "ProfileAggregator",
    "ProfileSnapshot",
    "RowStatus",
    "SampleRecorder",
    "SamplingDroppedError",
    "TOTAL_KEY",
    "benchmark_table",
    "capture_signature",
    "compare_benchmarks",
    "compare_snapshots",
    "compare_tables",
    "dumps_benchmarks",
    "dumps_snapshot",
    "ingest_tracemalloc",
    "load_benchmarks",
    "load_snapshot",
    "loads_benchmarks",
    "loads_snapshot",
    "parse_benchmark_lines",
    "percent_change",
    "profile_table",
    "save_benchmarks",
    "save_snapshot",
    "signature_from_traceback",
]

__version__ = "0.1.0"
