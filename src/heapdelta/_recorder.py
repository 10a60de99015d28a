"""Statistical allocation sampling.

With sampling rate n, on average one sample is taken per n allocated bytes.
Each thread counts down a byte budget drawn from an exponential distribution
with mean n; the allocation that exhausts the budget is sampled and scaled
by 1 / (1 - exp(-size / n)), so totals are unbiased estimates, never exact
counts. Rate 1 records every allocation exactly; rate 0 records nothing.

Design by Contract:
- sampling_rate MUST be >= 0
- object_count MUST be >= 1, byte_size MUST be >= 0
- record() never raises because of the aggregator (drops are counted)
"""

import math
import random
import threading
import time

from beartype import beartype
from loguru import logger

from heapdelta._aggregator import ProfileAggregator
from heapdelta._errors import SamplingDroppedError
from heapdelta._model import AllocationSample, CallStackSignature, ProfileSnapshot


class SampleRecorder:
    """Records allocation events into a ProfileAggregator at a sampling rate.

    Thread-safe: the byte countdown is per thread, the shared random source is
    only consulted when a countdown is redrawn.

    Args:
        aggregator: Aggregator receiving the samples
        sampling_rate: Average bytes between samples (1 = exact, 0 = off)
        seed: Seed for the interval generator, or None for a random seed

    Example:
        recorder = SampleRecorder(ProfileAggregator(), sampling_rate=512 * 1024)
        sample = recorder.record(capture_signature(), object_count=1, byte_size=4096)
        ...
        if sample is not None:
            recorder.release(sample)
    """

    @beartype
    def __init__(
        self,
        aggregator: ProfileAggregator,
        sampling_rate: int,
        seed: int | None = None,
    ) -> None:
        assert sampling_rate >= 0, f"Sampling rate must be non-negative: {sampling_rate}"
        self.aggregator = aggregator
        # (rate, generation); always replaced as one tuple
        self._setting = (sampling_rate, 0)
        self._setting_lock = threading.Lock()
        self._rng = random.Random(seed)
        self._rng_lock = threading.Lock()
        self._local = threading.local()
        self._stats_lock = threading.Lock()
        self._recorded = 0
        self._dropped = 0

    @property
    def sampling_rate(self) -> int:
        return self._setting[0]

    @property
    def recorded(self) -> int:
        return self._recorded

    @property
    def dropped(self) -> int:
        return self._dropped

    @beartype
    def set_sampling_rate(self, rate: int) -> None:
        """Change the sampling rate; every thread redraws its countdown."""
        assert rate >= 0, f"Sampling rate must be non-negative: {rate}"
        with self._setting_lock:
            self._setting = (rate, self._setting[1] + 1)
        logger.debug(f"Sampling rate set to {rate}")

    def _draw_interval(self, rate: int) -> float:
        with self._rng_lock:
            return self._rng.expovariate(1.0 / rate)

    def _should_sample(self, rate: int, generation: int, byte_size: int) -> bool:
        state = self._local
        if getattr(state, "generation", None) != generation:
            state.generation = generation
            state.countdown = self._draw_interval(rate)

        state.countdown -= byte_size
        if state.countdown > 0:
            return False
        state.countdown = self._draw_interval(rate)
        return True

    @staticmethod
    def _scale(rate: int, object_count: int, byte_size: int) -> tuple[int, int]:
        if byte_size == 0:
            return object_count, byte_size
        weight = 1.0 / (1.0 - math.exp(-byte_size / rate))
        return max(1, round(object_count * weight)), round(byte_size * weight)

    @beartype
    def record(
        self,
        signature: CallStackSignature,
        object_count: int,
        byte_size: int,
    ) -> AllocationSample | None:
        """Offer one allocation to the sampler.

        Args:
            signature: Call stack the allocation came from
            object_count: Objects allocated (MUST be >= 1)
            byte_size: Bytes allocated (MUST be >= 0)

        Returns:
            The recorded sample (scaled to an estimate when rate > 1), or None
            when the allocation was not sampled or the sample was dropped.
            Hand the returned sample to release() when the objects are freed.
        """
        assert object_count >= 1, f"object_count must be >= 1: {object_count}"
        assert byte_size >= 0, f"byte_size must be non-negative: {byte_size}"

        rate, generation = self._setting
        if rate == 0:
            return None
        if rate > 1:
            if not self._should_sample(rate, generation, byte_size):
                return None
            object_count, byte_size = self._scale(rate, object_count, byte_size)

        sample = AllocationSample(signature, object_count, byte_size, time.time())
        if not self._deliver(sample):
            return None
        with self._stats_lock:
            self._recorded += 1
        return sample

    @beartype
    def release(self, sample: AllocationSample) -> None:
        """Report that the objects behind a recorded sample were freed."""
        self._deliver(sample.freed(time.time()))

    def _deliver(self, sample: AllocationSample) -> bool:
        try:
            self.aggregator.ingest(sample)
        except SamplingDroppedError as exc:
            self._count_drop()
            logger.debug(f"Sample dropped: {exc}")
            return False
        except Exception:
            self._count_drop()
            logger.opt(exception=True).warning(
                f"Unexpected error recording sample for {sample.signature.key}; dropped"
            )
            return False
        return True

    def _count_drop(self) -> None:
        with self._stats_lock:
            self._dropped += 1

    @beartype
    def snapshot(self) -> ProfileSnapshot:
        """Snapshot the aggregator, stamped with the current sampling rate."""
        return self.aggregator.snapshot(self._setting[0])
