"""Benchmark result store and its line-oriented text format.

Canonical line:   name iterations nsPerOp bytesPerOp allocsPerOp
Go testing line:  BenchmarkX-8  1000  123 ns/op  64 B/op  2 allocs/op

Blank lines, lines starting with '#', and anything that is not a result line
(`go test` headers, "--- BENCH:" blocks, benchmark logs, PASS/FAIL/ok) are
ignored.
"""

import math
import statistics
import threading
from collections import defaultdict
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Literal

from beartype import beartype
from loguru import logger

from heapdelta._errors import MalformedInputError
from heapdelta._model import BenchmarkMeasurement

Combine = Literal["last", "median"]

_GO_UNITS = {"ns/op": "ns_per_op", "B/op": "bytes_per_op", "allocs/op": "allocs_per_op"}


class MeasurementView:
    """Lazy, restartable iteration over a store, ordered by name.

    Each pass copies the store's current contents when it starts.
    """

    def __init__(self, store: "BenchmarkResultStore") -> None:
        self._store = store

    def __iter__(self) -> Iterator[BenchmarkMeasurement]:
        current = self._store._copy()
        for name in sorted(current):
            yield current[name]

    def __len__(self) -> int:
        return len(self._store)


class BenchmarkResultStore:
    """Named benchmark measurements, one per name (last write wins).

    Thread-safe for concurrent record() calls.

    Example:
        store = BenchmarkResultStore()
        store.record("BenchmarkParse", iterations=1000, ns_per_op=812.0,
                     bytes_per_op=256.0, allocs_per_op=4.0)
        for m in store.measurements():
            print(m.name, m.ns_per_op)
    """

    def __init__(self) -> None:
        self._results: dict[str, BenchmarkMeasurement] = {}
        self._lock = threading.Lock()

    @beartype
    def record(
        self,
        name: str,
        iterations: int,
        ns_per_op: float,
        bytes_per_op: float,
        allocs_per_op: float,
    ) -> BenchmarkMeasurement:
        """Insert or overwrite the measurement for name."""
        measurement = BenchmarkMeasurement(name, iterations, ns_per_op, bytes_per_op, allocs_per_op)
        self.put(measurement)
        return measurement

    @beartype
    def put(self, measurement: BenchmarkMeasurement) -> None:
        with self._lock:
            if measurement.name in self._results:
                logger.debug(f"Benchmark {measurement.name} re-run, superseding previous result")
            self._results[measurement.name] = measurement

    @beartype
    def get(self, name: str) -> BenchmarkMeasurement | None:
        with self._lock:
            return self._results.get(name)

    def measurements(self) -> MeasurementView:
        return MeasurementView(self)

    def _copy(self) -> dict[str, BenchmarkMeasurement]:
        with self._lock:
            return dict(self._results)

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, name: object) -> bool:
        return name in self._results

    def __iter__(self) -> Iterator[BenchmarkMeasurement]:
        return iter(self.measurements())


def _parse_float(token: str, line_no: int, source: str | None) -> float:
    try:
        value = float(token)
    except ValueError as exc:
        raise MalformedInputError(f"line {line_no}: not a number: {token!r}", source) from exc
    if not math.isfinite(value) or value < 0:
        raise MalformedInputError(f"line {line_no}: value out of range: {token!r}", source)
    return value


def _parse_iterations(token: str, line_no: int, source: str | None) -> int:
    try:
        value = int(token)
    except ValueError as exc:
        raise MalformedInputError(
            f"line {line_no}: bad iteration count: {token!r}", source
        ) from exc
    if value < 0:
        raise MalformedInputError(f"line {line_no}: negative iteration count", source)
    return value


def _parse_line(tokens: list[str], line_no: int, source: str | None) -> BenchmarkMeasurement:
    name = tokens[0]
    iterations = _parse_iterations(tokens[1], line_no, source)

    if len(tokens) == 5 and not any("/" in token for token in tokens[2:]):
        ns, bytes_, allocs = (_parse_float(t, line_no, source) for t in tokens[2:])
        return BenchmarkMeasurement(name, iterations, ns, bytes_, allocs)

    rest = tokens[2:]
    if not rest or len(rest) % 2:
        raise MalformedInputError(
            f"line {line_no}: expected 5 columns or value/unit pairs, got {len(tokens)} tokens",
            source,
        )
    values = {"ns_per_op": 0.0, "bytes_per_op": 0.0, "allocs_per_op": 0.0}
    seen_ns = False
    for value_token, unit in zip(rest[::2], rest[1::2]):
        value = _parse_float(value_token, line_no, source)
        field = _GO_UNITS.get(unit)
        if field is None:
            # Custom metrics (MB/s, b.ReportMetric) carry no allocation signal.
            continue
        seen_ns = seen_ns or field == "ns_per_op"
        values[field] = value
    if not seen_ns:
        raise MalformedInputError(f"line {line_no}: no ns/op value", source)
    return BenchmarkMeasurement(name, iterations, **values)


def _is_result_line(tokens: list[str]) -> bool:
    if tokens[0].startswith("Benchmark"):
        return True
    # Canonical lines may use any name; log output like "x_test.go:12: msg" never counts
    return len(tokens) >= 2 and not tokens[0].endswith(":") and tokens[1].isdigit()


@beartype
def parse_benchmark_lines(
    lines: Iterable[str],
    source: str | None = None,
) -> list[BenchmarkMeasurement]:
    """Parse benchmark lines in file order, keeping repeated trials.

    Lines that are not results are skipped, as benchstat does: `go test`
    headers, "--- BENCH:" blocks, benchmark log output, PASS/FAIL/ok.

    Raises:
        MalformedInputError: on the first malformed result line, or when the
            input has content but not a single result line.
    """
    parsed = []
    skipped = 0
    for line_no, raw in enumerate(lines, start=1):
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        tokens = line.split()
        if not _is_result_line(tokens):
            skipped += 1
            continue
        if len(tokens) < 3:
            raise MalformedInputError(f"line {line_no}: too few columns", source)
        parsed.append(_parse_line(tokens, line_no, source))
    if skipped and not parsed:
        raise MalformedInputError("no benchmark result lines", source)
    return parsed


def _median_of_trials(trials: list[BenchmarkMeasurement]) -> BenchmarkMeasurement:
    return BenchmarkMeasurement(
        name=trials[0].name,
        iterations=sum(t.iterations for t in trials),
        ns_per_op=statistics.median(t.ns_per_op for t in trials),
        bytes_per_op=statistics.median(t.bytes_per_op for t in trials),
        allocs_per_op=statistics.median(t.allocs_per_op for t in trials),
    )


@beartype
def loads_benchmarks(
    text: str,
    combine: Combine,
    source: str | None = None,
) -> BenchmarkResultStore:
    """Build a store from benchmark text.

    Args:
        text: Benchmark lines
        combine: How repeated trials of one name are folded: "last" keeps the
            final line, "median" keeps the per-metric median
        source: Label used in error messages
    """
    parsed = parse_benchmark_lines(text.splitlines(), source)
    store = BenchmarkResultStore()
    if combine == "last":
        for measurement in parsed:
            store.put(measurement)
        return store

    trials: dict[str, list[BenchmarkMeasurement]] = defaultdict(list)
    for measurement in parsed:
        trials[measurement.name].append(measurement)
    for runs in trials.values():
        store.put(_median_of_trials(runs))
    return store


@beartype
def dumps_benchmarks(store: BenchmarkResultStore) -> str:
    """Serialize a store to canonical lines, ordered by name."""
    lines = ["# name iterations ns/op B/op allocs/op"]
    for m in store.measurements():
        lines.append(
            f"{m.name} {m.iterations} {m.ns_per_op!r} {m.bytes_per_op!r} {m.allocs_per_op!r}"
        )
    return "\n".join(lines) + "\n"


@beartype
def save_benchmarks(store: BenchmarkResultStore, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dumps_benchmarks(store), encoding="utf-8")
    logger.info(f"Saved {len(store)} benchmark results to {path}")


@beartype
def load_benchmarks(path: Path, combine: Combine) -> BenchmarkResultStore:
    """Read a benchmark file.

    Raises:
        MalformedInputError: undecodable or unparseable content
        OSError: the file could not be read
    """
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedInputError(f"not valid UTF-8: {exc}", str(path)) from exc
    store = loads_benchmarks(text, combine, source=str(path))
    logger.debug(f"Loaded {len(store)} benchmark results from {path}")
    return store
