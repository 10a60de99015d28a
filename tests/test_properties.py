"""Property-based tests for heapdelta using Hypothesis.

These tests verify the accounting and comparison invariants for arbitrary
inputs: exact totals at sampling rate 1, snapshot isolation, persistence
round-trips, and TOTAL rows computed from sums.

Totals are only asserted exactly at sampling rate 1; sampled runs are
estimates and are covered statistically in test_recorder.py.
"""

import math

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from heapdelta import (
    AggregateEntry,
    BenchmarkResultStore,
    CallStackSignature,
    Frame,
    MetricTable,
    ProfileAggregator,
    ProfileSnapshot,
    RowStatus,
    SampleRecorder,
    compare_benchmarks,
    compare_snapshots,
    compare_tables,
    dumps_benchmarks,
    dumps_snapshot,
    loads_benchmarks,
    loads_snapshot,
)

# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

identifiers = st.text(alphabet="abcdefghijklmnopqrstuvwxyz_", min_size=1, max_size=12)

frames = st.builds(
    Frame,
    function=identifiers,
    filename=identifiers.map(lambda name: f"{name}.py"),
    lineno=st.integers(min_value=1, max_value=10_000),
)

signatures = st.lists(frames, min_size=0, max_size=4).map(
    lambda fs: CallStackSignature(tuple(fs))
)

# (object_count, byte_size) for an allocation event
allocations = st.tuples(
    st.integers(min_value=1, max_value=1_000),
    st.integers(min_value=0, max_value=1 << 30),
)


@st.composite
def entries(draw) -> AggregateEntry:
    signature = draw(signatures)
    alloc_objects = draw(st.integers(min_value=0, max_value=10**9))
    alloc_bytes = draw(st.integers(min_value=0, max_value=10**15))
    live_objects = draw(st.integers(min_value=0, max_value=alloc_objects))
    live_bytes = draw(st.integers(min_value=0, max_value=alloc_bytes))
    return AggregateEntry(signature, alloc_objects, alloc_bytes, live_objects, live_bytes)


snapshots = st.builds(
    ProfileSnapshot,
    taken_at=st.floats(min_value=0, max_value=4e9, allow_nan=False, allow_infinity=False),
    sampling_rate=st.integers(min_value=0, max_value=1 << 24),
    process_rss_bytes=st.integers(min_value=0, max_value=1 << 40),
    entries=st.lists(entries(), max_size=8, unique_by=lambda e: e.signature).map(tuple),
)

metric_values = st.floats(min_value=0.0, max_value=1e12, allow_nan=False, allow_infinity=False)
keyed_values = st.dictionaries(identifiers, metric_values, max_size=10)

benchmark_rows = st.dictionaries(
    identifiers.map(lambda name: f"Benchmark{name}"),
    st.tuples(
        st.integers(min_value=0, max_value=10**9), metric_values, metric_values, metric_values
    ),
    max_size=8,
)


def table(values: dict[str, float]) -> MetricTable:
    return MetricTable(
        kind="test", metrics=("value",), values={k: {"value": v} for k, v in values.items()}
    )


# ---------------------------------------------------------------------------
# Aggregation: exact at rate 1
# ---------------------------------------------------------------------------

class TestExactAccountingProperties:
    @given(events=st.lists(st.tuples(st.sampled_from(range(3)), allocations), max_size=60))
    def test_alloc_bytes_is_sum_of_recorded_sizes(self, events):
        """At rate 1 each entry's alloc totals equal the sums of recorded events."""
        sigs = [CallStackSignature.of((f"f{i}", "x.py", i)) for i in range(3)]
        recorder = SampleRecorder(ProfileAggregator(), sampling_rate=1)
        for index, (count, size) in events:
            recorder.record(sigs[index], count, size)

        snapshot = recorder.snapshot()
        for index, sig in enumerate(sigs):
            mine = [(c, s) for i, (c, s) in events if i == index]
            entry = snapshot.entry(sig)
            if not mine:
                assert entry is None
                continue
            assert entry.alloc_bytes == sum(s for _, s in mine)
            assert entry.alloc_objects == sum(c for c, _ in mine)

    @given(events=st.lists(st.tuples(allocations, st.booleans()), min_size=1, max_size=40))
    def test_live_never_exceeds_alloc(self, events):
        """Freeing any subset of recorded samples keeps live within [0, alloc]."""
        sig = CallStackSignature.of(("f", "x.py", 1))
        recorder = SampleRecorder(ProfileAggregator(), sampling_rate=1)
        samples = [(recorder.record(sig, c, s), free) for (c, s), free in events]
        for sample, free in samples:
            if free:
                recorder.release(sample)

        entry = recorder.snapshot().entry(sig)
        kept = [sample for sample, free in samples if not free]
        assert entry.live_objects == sum(s.object_count for s in kept)
        assert entry.live_bytes == sum(s.byte_size for s in kept)
        assert 0 <= entry.live_bytes <= entry.alloc_bytes

    @given(
        before=st.lists(allocations, min_size=1, max_size=20),
        after=st.lists(allocations, max_size=20),
    )
    def test_snapshot_isolated_from_later_ingest(self, before, after):
        sig = CallStackSignature.of(("f", "x.py", 1))
        recorder = SampleRecorder(ProfileAggregator(), sampling_rate=1)
        for count, size in before:
            recorder.record(sig, count, size)
        snapshot = recorder.snapshot()
        frozen_text = dumps_snapshot(snapshot)

        for count, size in after:
            recorder.record(sig, count, size)
        recorder.aggregator.reset()

        assert dumps_snapshot(snapshot) == frozen_text
        assert snapshot.entry(sig).alloc_bytes == sum(s for _, s in before)


# ---------------------------------------------------------------------------
# Persistence round-trips
# ---------------------------------------------------------------------------

class TestRoundTripProperties:
    @given(snapshot=snapshots)
    @settings(max_examples=50)
    def test_snapshot_round_trip(self, snapshot):
        loaded = loads_snapshot(dumps_snapshot(snapshot))
        assert loaded == snapshot
        assert set(loaded.entries) == set(snapshot.entries)

    @given(rows=benchmark_rows)
    @settings(max_examples=50)
    def test_benchmark_round_trip(self, rows):
        store = BenchmarkResultStore()
        for name, (iterations, ns, b, allocs) in rows.items():
            store.record(name, iterations, ns, b, allocs)
        loaded = loads_benchmarks(dumps_benchmarks(store), combine="last")
        assert list(loaded.measurements()) == list(store.measurements())


# ---------------------------------------------------------------------------
# Delta reporter
# ---------------------------------------------------------------------------

class TestDeltaProperties:
    @given(values=keyed_values)
    def test_self_diff_is_zero(self, values):
        section = compare_tables(table(values), table(values)).section("value")
        assert all(row.percent_change == 0.0 for row in section.rows)
        assert section.total.percent_change == 0.0

    @given(old=keyed_values, new=keyed_values)
    def test_every_key_reported_once_in_order(self, old, new):
        section = compare_tables(table(old), table(new), elide_zero=False).section("value")
        keys = [row.key for row in section.rows]
        assert keys == sorted(set(old) | set(new))

    @given(old=keyed_values, new=keyed_values)
    def test_total_is_computed_from_sums(self, old, new):
        total = compare_tables(table(old), table(new)).section("value").total
        assert total.old_value == pytest.approx(math.fsum(old.values()))
        assert total.new_value == pytest.approx(math.fsum(new.values()))
        old_sum, new_sum = total.old_value, total.new_value
        if old_sum > 0:
            assert total.percent_change == pytest.approx((new_sum - old_sum) / old_sum * 100)

    @given(old=keyed_values, new=keyed_values)
    def test_status_reflects_presence(self, old, new):
        section = compare_tables(table(old), table(new)).section("value")
        for row in section.rows:
            if row.key not in new:
                assert row.status is RowStatus.REMOVED
            elif row.key not in old:
                assert row.status is RowStatus.ADDED
            else:
                assert row.status in (RowStatus.CHANGED, RowStatus.UNCHANGED)

    @given(old=keyed_values, new=keyed_values)
    @settings(max_examples=50)
    def test_render_never_crashes(self, old, new):
        report = compare_tables(table(old), table(new))
        text = report.render("Property")
        assert text.endswith("\n")

    @given(snapshot=snapshots)
    @settings(max_examples=30)
    def test_snapshot_self_diff_has_no_regressions(self, snapshot):
        assert compare_snapshots(snapshot, snapshot).regressions(0.0) == []

    @given(rows=benchmark_rows)
    @settings(max_examples=30)
    def test_benchmark_self_diff_has_no_regressions(self, rows):
        store = BenchmarkResultStore()
        for name, (iterations, ns, b, allocs) in rows.items():
            store.record(name, iterations, ns, b, allocs)
        assert compare_benchmarks(store, store).regressions(0.0) == []
