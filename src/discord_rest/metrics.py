from __future__ import annotations

import statistics
from collections import Counter, deque


class Metrics:
    """Request lifecycle counters plus a rolling window of transport latencies."""

    def __init__(self, window: int = 5000) -> None:
        self.counters: Counter[str] = Counter()
        self.status_codes: Counter[int] = Counter()
        self.requeues_by_bucket: Counter[str] = Counter()
        self.latency_ms: deque[float] = deque(maxlen=window)

    def inc(self, key: str, n: int = 1) -> None:
        self.counters[key] += n

    def observe_response(self, status: int | None, elapsed_ms: float) -> None:
        self.latency_ms.append(elapsed_ms)
        if status is not None:
            self.status_codes[status] += 1

    def record_requeue(self, bucket: str, scope: str) -> None:
        self.counters[f"requeued_{scope}"] += 1
        self.requeues_by_bucket[bucket] += 1

    def hottest_buckets(self, n: int = 5) -> list[tuple[str, int]]:
        return self.requeues_by_bucket.most_common(n)

    def _share(self, key: str) -> float:
        dispatched = self.counters["dispatched"]
        return self.counters[key] / dispatched if dispatched else 0.0

    def summary(self) -> dict[str, float]:
        out = {k: float(v) for k, v in self.counters.items()}
        samples = list(self.latency_ms)
        if len(samples) > 1:
            cuts = statistics.quantiles(samples, n=100, method="inclusive")
            out["transport_p50"] = cuts[49]
            out["transport_p95"] = cuts[94]
            out["transport_p99"] = cuts[98]
        elif samples:
            out["transport_p50"] = out["transport_p95"] = out["transport_p99"] = samples[0]
        if samples:
            out["transport_mean"] = statistics.fmean(samples)
        for status, count in self.status_codes.items():
            out[f"status_{status}"] = float(count)
        out["requeue_ratio"] = self._share("requeued_route") + self._share("requeued_global")
        out["failure_ratio"] = self._share("failed")
        return out
