"""
Query Performance Monitor

Records per query-kind latency samples in a fixed-size ring buffer and
flags slow queries.

Usage:
    monitor = QueryMonitor()
    stop = monitor.start_timer("user:profile")
    ...  # run the query
    stop()

    monitor.get_stats("user:profile")  # QueryStats(avg, min, max, count)
"""

import logging
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Callable, Deque, Dict, List, Optional


logger = logging.getLogger(__name__)


@dataclass
class QueryStats:
    """Latency summary of one query kind, in milliseconds."""
    avg: float
    min: float
    max: float
    count: int

    def as_dict(self) -> Dict:
        return asdict(self)


class QueryMonitor:
    """Ring-buffered latency samples keyed by query kind."""

    def __init__(
        self,
        max_samples: int = 100,
        slow_query_threshold_ms: float = 1000.0,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.max_samples = max_samples
        self.slow_query_threshold_ms = slow_query_threshold_ms
        self._clock = clock
        self._samples: Dict[str, Deque[float]] = {}

    def start_timer(self, query_kind: str) -> Callable[[], float]:
        """Start timing a query. The returned function records and returns elapsed ms."""
        started = self._clock()

        def stop() -> float:
            elapsed_ms = (self._clock() - started) * 1000
            self.record(query_kind, elapsed_ms)
            return elapsed_ms

        return stop

    def record(self, query_kind: str, elapsed_ms: float):
        samples = self._samples.get(query_kind)
        if samples is None:
            samples = self._samples[query_kind] = deque(maxlen=self.max_samples)
        samples.append(elapsed_ms)

        if elapsed_ms > self.slow_query_threshold_ms:
            logger.warning(f"Slow query detected: {query_kind} took {elapsed_ms:.2f}ms")

    def get_stats(self, query_kind: str) -> Optional[QueryStats]:
        samples = self._samples.get(query_kind)
        if not samples:
            return None
        return QueryStats(
            avg=sum(samples) / len(samples),
            min=min(samples),
            max=max(samples),
            count=len(samples),
        )

    def get_all_stats(self) -> Dict[str, QueryStats]:
        return {kind: self.get_stats(kind) for kind in self._samples if self._samples[kind]}

    def get_slow_queries(self, threshold_ms: Optional[float] = None) -> List[Dict]:
        """Query kinds whose average exceeds the threshold, slowest first."""
        threshold = self.slow_query_threshold_ms if threshold_ms is None else threshold_ms
        slow = [
            {"query": kind, **stats.as_dict()}
            for kind, stats in self.get_all_stats().items()
            if stats.avg > threshold
        ]
        return sorted(slow, key=lambda item: item["avg"], reverse=True)

    def get_performance_summary(self) -> Dict:
        all_stats = self.get_all_stats()
        total_queries = sum(stats.count for stats in all_stats.values())
        total_time = sum(stats.avg * stats.count for stats in all_stats.values())

        return {
            "total_queries": total_queries,
            "query_kinds": len(all_stats),
            "avg_query_time_ms": round(total_time / total_queries, 2) if total_queries else 0.0,
            "slow_queries": self.get_slow_queries(),
            "queries": {kind: stats.as_dict() for kind, stats in all_stats.items()},
        }

    def reset(self):
        self._samples.clear()
