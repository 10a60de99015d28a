"""Tests for heapdelta value types."""

import pytest

from heapdelta import (
    AggregateEntry,
    AllocationSample,
    BenchmarkMeasurement,
    CallStackSignature,
    Frame,
    ProfileSnapshot,
)

SIG_A = CallStackSignature.of(("alloc", "a.py", 1), ("main", "m.py", 9))
SIG_B = CallStackSignature.of(("build", "b.py", 2))


# ---------------------------------------------------------------------------
# CallStackSignature
# ---------------------------------------------------------------------------

class TestCallStackSignature:
    def test_structural_equality_and_hash(self):
        again = CallStackSignature((Frame("alloc", "a.py", 1), Frame("main", "m.py", 9)))
        assert again == SIG_A
        assert hash(again) == hash(SIG_A)
        assert {SIG_A: 1}[again] == 1

    def test_frame_order_matters(self):
        reversed_sig = CallStackSignature(tuple(reversed(SIG_A.frames)))
        assert reversed_sig != SIG_A

    def test_key_joins_frames_innermost_first(self):
        assert SIG_A.key == "alloc (a.py:1) <- main (m.py:9)"
        assert SIG_A.leaf == Frame("alloc", "a.py", 1)
        assert len(SIG_A) == 2

    def test_empty_signature_renders_unknown(self):
        empty = CallStackSignature()
        assert empty.key == "<unknown>"
        assert empty.leaf is None

    def test_frames_must_be_tuple(self):
        with pytest.raises(AssertionError, match="tuple"):
            CallStackSignature([Frame("f", "x.py", 1)])


# ---------------------------------------------------------------------------
# AllocationSample
# ---------------------------------------------------------------------------

class TestAllocationSample:
    def test_zero_object_count_raises(self):
        with pytest.raises(AssertionError, match="non-zero"):
            AllocationSample(SIG_A, 0, 16, 0.0)

    def test_negative_byte_size_raises(self):
        with pytest.raises(AssertionError, match="non-negative"):
            AllocationSample(SIG_A, 1, -1, 0.0)

    def test_freed_mirrors_counts(self):
        sample = AllocationSample(SIG_A, 3, 48, 1.0)
        freed = sample.freed(2.0)
        assert freed.is_free
        assert freed.object_count == -3
        assert freed.byte_size == 48
        assert freed.signature == SIG_A

    def test_cannot_free_a_free(self):
        freed = AllocationSample(SIG_A, -1, 8, 0.0)
        with pytest.raises(AssertionError, match="free event"):
            freed.freed(1.0)


# ---------------------------------------------------------------------------
# AggregateEntry / ProfileSnapshot
# ---------------------------------------------------------------------------

class TestAggregateEntry:
    def test_live_cannot_exceed_alloc(self):
        with pytest.raises(AssertionError, match="live_objects"):
            AggregateEntry(SIG_A, alloc_objects=1, alloc_bytes=8, live_objects=2, live_bytes=8)
        with pytest.raises(AssertionError, match="live_bytes"):
            AggregateEntry(SIG_A, alloc_objects=1, alloc_bytes=8, live_objects=1, live_bytes=9)

    def test_metrics_are_floats(self):
        entry = AggregateEntry(SIG_A, 2, 32, 1, 16)
        assert entry.metrics() == {
            "alloc_objects": 2.0,
            "alloc_bytes": 32.0,
            "live_objects": 1.0,
            "live_bytes": 16.0,
        }


class TestProfileSnapshot:
    def test_entries_sorted_regardless_of_input_order(self):
        a = AggregateEntry(SIG_A, 1, 8, 1, 8)
        b = AggregateEntry(SIG_B, 1, 8, 1, 8)
        first = ProfileSnapshot(1.0, 1, 0, (b, a))
        second = ProfileSnapshot(1.0, 1, 0, (a, b))
        assert first == second
        assert [e.signature for e in first.entries] == [SIG_A, SIG_B]

    def test_duplicate_signatures_raise(self):
        a = AggregateEntry(SIG_A, 1, 8, 1, 8)
        with pytest.raises(AssertionError, match="unique"):
            ProfileSnapshot(1.0, 1, 0, (a, a))

    def test_views_are_fresh_copies(self):
        snapshot = ProfileSnapshot(1.0, 1, 0, (AggregateEntry(SIG_A, 1, 8, 1, 8),))
        view = snapshot.by_signature()
        view.clear()
        assert len(snapshot) == 1
        assert snapshot.entry(SIG_A).alloc_bytes == 8
        assert snapshot.entry(SIG_B) is None


# ---------------------------------------------------------------------------
# BenchmarkMeasurement
# ---------------------------------------------------------------------------

class TestBenchmarkMeasurement:
    def test_empty_name_raises(self):
        with pytest.raises(AssertionError, match="non-empty"):
            BenchmarkMeasurement("", 1, 1.0, 0.0, 0.0)

    def test_whitespace_in_name_raises(self):
        with pytest.raises(AssertionError, match="whitespace"):
            BenchmarkMeasurement("Bench Mark", 1, 1.0, 0.0, 0.0)

    @pytest.mark.parametrize("bad", [-1.0, float("nan"), float("inf")])
    def test_non_finite_or_negative_metric_raises(self, bad):
        with pytest.raises(AssertionError, match="finite and non-negative"):
            BenchmarkMeasurement("BenchmarkX", 1, bad, 0.0, 0.0)
