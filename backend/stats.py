"""Safe Scroll - Protection Stats
Copyright (c) 2026 beautifulplanet
Licensed under MIT License
"""

import threading
from collections import Counter

from models import AnalysisResult

STATS_VERSION = "1.0"


class ProtectionStats:
    """Counters updated after each pipeline cycle. snapshot() returns a copy."""

    def __init__(self):
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        with self._lock:
            self._total_analyzed = 0
            self._total_blocked = 0
            self._total_latency_ms = 0
            self._throttled = 0
            self._dropped_in_flight = 0
            self._short_circuited = 0
            self._extraction_failures = 0
            self._blocked_by_category: Counter = Counter()

    def record_result(self, result: AnalysisResult) -> None:
        with self._lock:
            self._total_analyzed += 1
            self._total_latency_ms += result.latency_ms
            if result.should_block:
                self._total_blocked += 1
                self._blocked_by_category[result.primary_category] += 1

    def record_throttled(self) -> None:
        with self._lock:
            self._throttled += 1

    def record_dropped_in_flight(self) -> None:
        with self._lock:
            self._dropped_in_flight += 1

    def record_short_circuit(self) -> None:
        with self._lock:
            self._short_circuited += 1

    def record_extraction_failure(self) -> None:
        with self._lock:
            self._extraction_failures += 1

    def snapshot(self) -> dict:
        with self._lock:
            analyzed = self._total_analyzed
            return {
                "totalAnalyzed": analyzed,
                "totalBlocked": self._total_blocked,
                "avgLatencyMs": round(self._total_latency_ms / analyzed, 2) if analyzed else 0.0,
                "version": STATS_VERSION,
                "throttledEvents": self._throttled,
                "droppedInFlight": self._dropped_in_flight,
                "shortCircuited": self._short_circuited,
                "extractionFailures": self._extraction_failures,
                "blockedByCategory": dict(self._blocked_by_category),
            }
