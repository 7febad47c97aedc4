"""Benchmark counters and a high-dynamic-range latency histogram."""

from __future__ import annotations

import math
import sys
from dataclasses import dataclass, field

from loadkali.utils import unix_timestamp_millis


class HistogramRangeError(ValueError):
    """A value falls outside what the histogram can track."""


class LatencyHistogram:
    """Log-bucketed histogram with a fixed number of significant digits."""

    def __init__(
        self,
        lowest: int = 1,
        highest: int = 60_000_000,
        significant_digits: int = 3,
    ) -> None:
        if lowest < 1:
            raise ValueError("lowest discernible value must be at least 1")
        if highest < 2 * lowest:
            raise ValueError("highest trackable value must be at least twice the lowest")
        if not 0 <= significant_digits <= 5:
            raise ValueError("significant digits must be between 0 and 5")

        single_unit_limit = 2 * 10**significant_digits
        self._unit_magnitude = lowest.bit_length() - 1
        count_magnitude = max((single_unit_limit - 1).bit_length(), 1)
        self._half_magnitude = count_magnitude - 1
        self._sub_bucket_count = 1 << (self._half_magnitude + 1)
        self._sub_bucket_half_count = self._sub_bucket_count // 2
        self._sub_bucket_mask = (self._sub_bucket_count - 1) << self._unit_magnitude

        smallest_untrackable = self._sub_bucket_count << self._unit_magnitude
        bucket_count = 1
        while smallest_untrackable <= highest:
            smallest_untrackable <<= 1
            bucket_count += 1
        self._counts_len = (bucket_count + 1) * self._sub_bucket_half_count

        self._counts: dict[int, int] = {}
        self._total = 0
        self._min_non_zero: int | None = None
        self._max: int | None = None

    def __len__(self) -> int:
        return self._total

    def _locate(self, value: int) -> tuple[int, int]:
        bucket = (
            (value | self._sub_bucket_mask).bit_length()
            - self._unit_magnitude
            - (self._half_magnitude + 1)
        )
        return bucket, value >> (bucket + self._unit_magnitude)

    def _index_for(self, value: int) -> int:
        bucket, sub_bucket = self._locate(value)
        return ((bucket + 1) << self._half_magnitude) + sub_bucket - self._sub_bucket_half_count

    def _value_for(self, index: int) -> int:
        bucket = (index >> self._half_magnitude) - 1
        sub_bucket = (index & (self._sub_bucket_half_count - 1)) + self._sub_bucket_half_count
        if bucket < 0:
            sub_bucket -= self._sub_bucket_half_count
            bucket = 0
        return sub_bucket << (bucket + self._unit_magnitude)

    def _lowest_equivalent(self, value: int) -> int:
        bucket, sub_bucket = self._locate(value)
        return sub_bucket << (bucket + self._unit_magnitude)

    def _range_size(self, value: int) -> int:
        bucket, sub_bucket = self._locate(value)
        if sub_bucket >= self._sub_bucket_count:
            bucket += 1
        return 1 << (self._unit_magnitude + bucket)

    def _highest_equivalent(self, value: int) -> int:
        return self._lowest_equivalent(value) + self._range_size(value) - 1

    def _median_equivalent(self, value: int) -> int:
        return self._lowest_equivalent(value) + (self._range_size(value) >> 1)

    def record(self, value: int) -> None:
        """Count one occurrence of ``value``."""
        if value < 0:
            raise HistogramRangeError(f"value {value} is negative")
        index = self._index_for(value)
        if index >= self._counts_len:
            raise HistogramRangeError(f"value {value} is out of the trackable range")
        self._counts[index] = self._counts.get(index, 0) + 1
        self._total += 1
        if value and (self._min_non_zero is None or value < self._min_non_zero):
            self._min_non_zero = value
        if self._max is None or value > self._max:
            self._max = value

    def reset(self) -> None:
        """Forget every recorded value."""
        self._counts.clear()
        self._total = 0
        self._min_non_zero = None
        self._max = None

    def value_at_percentile(self, percentile: float) -> int:
        """Value at or below which ``percentile`` percent of samples fall."""
        quantile = min(percentile / 100.0, 1.0)
        wanted = max(math.ceil(quantile * self._total), 1)
        running = 0
        for index in sorted(self._counts):
            running += self._counts[index]
            if running >= wanted:
                value = self._value_for(index)
                if quantile == 0.0:
                    return self._lowest_equivalent(value)
                return self._highest_equivalent(value)
        return 0

    def mean(self) -> float:
        """Mean of the recorded values at bucket resolution."""
        if not self._total:
            return 0.0
        weighted = sum(
            self._median_equivalent(self._value_for(index)) * count
            for index, count in self._counts.items()
        )
        return weighted / self._total

    def min(self) -> int:
        """Smallest recorded value at bucket resolution, or 0."""
        if not self._total or self._counts.get(0) or self._min_non_zero is None:
            return 0
        return self._lowest_equivalent(self._min_non_zero)

    def max(self) -> int:
        """Largest recorded value at bucket resolution, or 0."""
        if self._max is None:
            return 0
        return self._highest_equivalent(self._max)


@dataclass
class Stats:
    """Shared counters for a benchmark run."""

    total_connections: int = 0
    success_connections: int = 0
    total_requests: int = 0
    total_bytes_sent: int = 0
    total_bytes_received: int = 0
    connection_errors: int = 0
    latency_histogram: LatencyHistogram = field(default_factory=LatencyHistogram)
    warming_up: bool = True
    shutting_down: bool = False
    last_print_time: int = field(default_factory=unix_timestamp_millis)
    last_print_count: int = 0

    def record_latency(self, latency_us: int, sample_count: int) -> None:
        """Record every hundredth latency sample once warmup is over."""
        if sample_count % 100 != 0 or self.warming_up:
            return
        try:
            self.latency_histogram.record(latency_us)
        except HistogramRangeError as exc:
            if not self.shutting_down:
                print(f"Failed to record latency: {exc}", file=sys.stderr)

    def record_request(self, bytes_sent: int, bytes_received: int) -> None:
        """Count a completed request and its traffic once warmup is over."""
        if self.warming_up:
            return
        self.total_requests += 1
        self.total_bytes_sent += bytes_sent
        self.total_bytes_received += bytes_received

    def record_connection_error(self) -> None:
        self.connection_errors += 1

    def end_warmup(self) -> None:
        """Leave warmup and clear everything gathered during it."""
        self.warming_up = False
        self.total_requests = 0
        self.total_bytes_sent = 0
        self.total_bytes_received = 0
        self.latency_histogram.reset()
        self.last_print_count = 0
        self.last_print_time = unix_timestamp_millis()

    def set_shutting_down(self) -> None:
        self.shutting_down = True

    def get_qps(self) -> float:
        """Requests per second since the previous call."""
        now = unix_timestamp_millis()
        current = self.total_requests
        last_time, self.last_print_time = self.last_print_time, now
        last_count, self.last_print_count = self.last_print_count, current

        elapsed = (now - last_time) / 1000.0
        delta = current - last_count
        if elapsed == 0:
            return math.inf if delta > 0 else math.nan
        return delta / elapsed