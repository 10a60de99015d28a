"""Cross-run comparison of profile snapshots and benchmark stores.

Design by Contract:
- Inputs are never mutated; compare_tables() is a pure function of (old, new)
- Every key present in either input yields a row per metric, except keys
  that are zero on both sides when elide_zero is set
- The TOTAL row is computed from the sums of old and new values, never
  from per-row percentages, and is always last
- Inputs of different kinds or metric sets abort with KeyMismatchError
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType

from beartype import beartype
from loguru import logger

from heapdelta._benchmarks import BenchmarkResultStore
from heapdelta._errors import KeyMismatchError
from heapdelta._model import ProfileSnapshot

PROFILE_KIND = "profile"
BENCHMARK_KIND = "benchmark"
PROFILE_METRICS = ("alloc_objects", "alloc_bytes", "live_objects", "live_bytes")
BENCHMARK_METRICS = ("ns_per_op", "bytes_per_op", "allocs_per_op")
TOTAL_KEY = "TOTAL"


class RowStatus(str, Enum):
    UNCHANGED = "unchanged"
    CHANGED = "changed"
    ADDED = "added"
    REMOVED = "removed"
    TOTAL = "total"


@dataclass(frozen=True)
class MetricTable:
    """Key-indexed measurements of one entity kind, ready for comparison.

    Attributes:
        kind: Entity kind ("profile" or "benchmark"); only equal kinds compare
        metrics: Measured dimensions, in report order
        values: key -> metric -> value (frozen on construction)
        sampling_rate: Profile sampling rate, None for benchmarks
    """

    kind: str
    metrics: tuple[str, ...]
    values: Mapping[str, Mapping[str, float]]
    sampling_rate: int | None = None

    def __post_init__(self) -> None:
        assert self.metrics, "A table must measure at least one metric"
        frozen = {}
        for key, row in self.values.items():
            missing = [m for m in self.metrics if m not in row]
            assert not missing, f"Key {key!r} is missing metrics {missing}"
            frozen[key] = MappingProxyType({m: float(row[m]) for m in self.metrics})
        object.__setattr__(self, "values", MappingProxyType(frozen))


@beartype
def profile_table(snapshot: ProfileSnapshot) -> MetricTable:
    """Index a snapshot's entries by signature key.

    Raises:
        KeyMismatchError: two distinct signatures render to the same key
    """
    values: dict[str, dict[str, float]] = {}
    for entry in snapshot.entries:
        key = entry.signature.key
        if key in values:
            raise KeyMismatchError(f"Distinct signatures share the report key {key!r}")
        values[key] = entry.metrics()
    return MetricTable(
        kind=PROFILE_KIND,
        metrics=PROFILE_METRICS,
        values=values,
        sampling_rate=snapshot.sampling_rate,
    )


@beartype
def benchmark_table(store: BenchmarkResultStore) -> MetricTable:
    """Index a benchmark store's measurements by name."""
    return MetricTable(
        kind=BENCHMARK_KIND,
        metrics=BENCHMARK_METRICS,
        values={m.name: m.metrics() for m in store.measurements()},
    )


def percent_change(old: float, new: float) -> float:
    """(new - old) / old * 100, with inf for growth from a zero baseline."""
    if old == 0:
        return math.inf if new > 0 else 0.0
    return (new - old) / old * 100.0


@dataclass(frozen=True)
class DeltaRow:
    """One key's old and new value for a single metric.

    A REMOVED row has new_value 0 and an ADDED row has old_value 0; the
    status, not the value, distinguishes "removed" from "reduced to zero".
    """

    key: str
    old_value: float
    new_value: float
    percent_change: float
    status: RowStatus

    @property
    def delta(self) -> float:
        return self.new_value - self.old_value


@dataclass(frozen=True)
class MetricDelta:
    metric: str
    rows: tuple[DeltaRow, ...]
    total: DeltaRow

    def all_rows(self) -> tuple[DeltaRow, ...]:
        return self.rows + (self.total,)


def _format_value(value: float) -> str:
    if value.is_integer():
        return f"{value:.0f}"
    return f"{value:.2f}"


def _format_delta(row: DeltaRow) -> str:
    if row.status is RowStatus.ADDED:
        return "new"
    if row.status is RowStatus.REMOVED:
        return "removed"
    if math.isinf(row.percent_change):
        return "+inf%"
    return f"{row.percent_change:+.2f}%"


@dataclass(frozen=True)
class DeltaReport:
    """Ordered comparison result: one section per metric."""

    kind: str
    sections: tuple[MetricDelta, ...]

    @property
    def is_empty(self) -> bool:
        return not any(section.rows for section in self.sections)

    @beartype
    def section(self, metric: str) -> MetricDelta:
        for section in self.sections:
            if section.metric == metric:
                return section
        raise KeyError(metric)

    @beartype
    def regressions(self, threshold_pct: float) -> list[tuple[str, DeltaRow]]:
        """Rows that grew by more than threshold_pct percent.

        Only CHANGED and TOTAL rows count; keys that appear or disappear
        between runs are structural changes, not regressions.
        """
        assert threshold_pct >= 0, f"Threshold must be non-negative: {threshold_pct}"
        found = []
        for section in self.sections:
            for row in section.all_rows():
                if row.status in (RowStatus.CHANGED, RowStatus.TOTAL):
                    if row.percent_change > threshold_pct:
                        found.append((section.metric, row))
        return found

    @beartype
    def render(self, title: str = "DELTA REPORT") -> str:
        """Render the report as a text table per metric with a trailing TOTAL line."""
        if self.is_empty:
            return f"{title}: no data\n"

        keys = [row.key for section in self.sections for row in section.all_rows()]
        name_width = max(len("name"), *(len(key) for key in keys))
        width = name_width + 3 * 15

        lines = ["=" * width, f"{title:^{width}}", "=" * width]
        for section in self.sections:
            lines.append(f"[{self.kind}] {section.metric}")
            lines.append(f"{'name':<{name_width}} {'old':>14} {'new':>14} {'delta':>14}")
            lines.append("-" * width)
            for row in section.all_rows():
                if row is section.total:
                    lines.append("-" * width)
                old = "-" if row.status is RowStatus.ADDED else _format_value(row.old_value)
                new = "-" if row.status is RowStatus.REMOVED else _format_value(row.new_value)
                lines.append(
                    f"{row.key:<{name_width}} {old:>14} {new:>14} {_format_delta(row):>14}"
                )
            lines.append("=" * width)
        return "\n".join(lines) + "\n"

    @beartype
    def print_summary(self, title: str = "DELTA REPORT") -> None:
        """Log the rendered report line by line via loguru."""
        for line in self.render(title).splitlines():
            logger.info(line)


def _compare_metric(
    old: MetricTable,
    new: MetricTable,
    metric: str,
    keys: list[str],
    elide_zero: bool,
) -> MetricDelta:
    rows = []
    old_values = []
    new_values = []
    for key in keys:
        in_old = key in old.values
        in_new = key in new.values
        old_value = old.values[key][metric] if in_old else 0.0
        new_value = new.values[key][metric] if in_new else 0.0
        old_values.append(old_value)
        new_values.append(new_value)

        if in_old and in_new:
            if old_value == new_value:
                if elide_zero and old_value == 0:
                    continue
                status = RowStatus.UNCHANGED
            else:
                status = RowStatus.CHANGED
        elif in_old:
            status = RowStatus.REMOVED
        else:
            status = RowStatus.ADDED
        rows.append(
            DeltaRow(key, old_value, new_value, percent_change(old_value, new_value), status)
        )

    old_total = math.fsum(old_values)
    new_total = math.fsum(new_values)
    total = DeltaRow(
        TOTAL_KEY, old_total, new_total, percent_change(old_total, new_total), RowStatus.TOTAL
    )
    return MetricDelta(metric, tuple(rows), total)


@beartype
def compare_tables(
    old: MetricTable,
    new: MetricTable,
    metrics: tuple[str, ...] | None = None,
    elide_zero: bool = True,
) -> DeltaReport:
    """Compare two tables key by key.

    Args:
        old: Baseline table
        new: Candidate table
        metrics: Subset of metrics to report, in order (None = all)
        elide_zero: Drop rows whose key is present and zero on both sides

    Raises:
        KeyMismatchError: kinds or metric sets differ, or an unknown metric
            was requested. No partial report is produced.
    """
    if old.kind != new.kind:
        raise KeyMismatchError(f"Cannot compare a {old.kind} table with a {new.kind} table")
    if old.metrics != new.metrics:
        raise KeyMismatchError(
            f"Metric sets differ: {list(old.metrics)} vs {list(new.metrics)}"
        )
    selected = old.metrics if metrics is None else metrics
    unknown = [m for m in selected if m not in old.metrics]
    if unknown:
        raise KeyMismatchError(f"Unknown metrics {unknown}; available: {list(old.metrics)}")

    if old.sampling_rate != new.sampling_rate:
        logger.warning(
            f"Comparing profiles sampled at different rates "
            f"({old.sampling_rate} vs {new.sampling_rate}); totals are estimates"
        )

    keys = sorted(set(old.values) | set(new.values))
    sections = tuple(_compare_metric(old, new, m, keys, elide_zero) for m in selected)
    logger.debug(f"Compared {len(keys)} {old.kind} keys across {len(sections)} metrics")
    return DeltaReport(kind=old.kind, sections=sections)


@beartype
def compare_snapshots(
    old: ProfileSnapshot,
    new: ProfileSnapshot,
    metrics: tuple[str, ...] | None = None,
    elide_zero: bool = True,
) -> DeltaReport:
    return compare_tables(profile_table(old), profile_table(new), metrics, elide_zero)


@beartype
def compare_benchmarks(
    old: BenchmarkResultStore,
    new: BenchmarkResultStore,
    metrics: tuple[str, ...] | None = None,
    elide_zero: bool = True,
) -> DeltaReport:
    return compare_tables(benchmark_table(old), benchmark_table(new), metrics, elide_zero)
