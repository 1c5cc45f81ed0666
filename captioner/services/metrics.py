# ─────────────────────────────────────────────────────────────────────────────
# Caption Metrics — thread-safe request outcome tracking
# ─────────────────────────────────────────────────────────────────────────────
# Counts every caption request by outcome and keeps recent upstream latency.
# Exposed via GET /metrics and bridged into GET /metrics/prometheus.
#
# Bounded: latency history uses deque(maxlen=1000), auto-evicts oldest.
# ─────────────────────────────────────────────────────────────────────────────

from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any

OUTCOMES = (
    "caption",
    "answer",
    "rate_limited",
    "invalid",
    "flagged",
    "upstream_error",
    "error",
)


@dataclass
class CaptionMetrics:
    """Thread-safe caption request metrics."""

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    requests_total: int = 0
    captions_completed: int = 0  # image requests answered
    answers_completed: int = 0  # text-only requests answered
    rate_limited: int = 0
    invalid_inputs: int = 0
    flagged_inputs: int = 0
    upstream_failures: int = 0
    errors_total: int = 0

    # Only latencies of requests that reached the upstream model
    _latency_history: deque[float] = field(default_factory=lambda: deque(maxlen=1000), repr=False)

    _start_time: float = field(default_factory=time.time, repr=False)

    def record_request(self, outcome: str, latency_ms: float | None = None) -> None:
        """Record one finished request under its outcome."""
        if outcome not in OUTCOMES:
            raise ValueError(f"Unknown outcome: {outcome}")

        with self._lock:
            self.requests_total += 1
            if outcome == "caption":
                self.captions_completed += 1
            elif outcome == "answer":
                self.answers_completed += 1
            elif outcome == "rate_limited":
                self.rate_limited += 1
            elif outcome == "invalid":
                self.invalid_inputs += 1
            elif outcome == "flagged":
                self.flagged_inputs += 1
            elif outcome == "upstream_error":
                self.upstream_failures += 1
                self.errors_total += 1
            else:
                self.errors_total += 1

            if latency_ms is not None:
                self._latency_history.append(latency_ms)

    def to_dict(self) -> dict[str, Any]:
        """Serialize metrics for the /metrics endpoint."""
        with self._lock:
            latencies = sorted(self._latency_history)
            n = len(latencies)
            return {
                "requests_total": self.requests_total,
                "captions_completed": self.captions_completed,
                "answers_completed": self.answers_completed,
                "rate_limited": self.rate_limited,
                "invalid_inputs": self.invalid_inputs,
                "flagged_inputs": self.flagged_inputs,
                "upstream_failures": self.upstream_failures,
                "errors_total": self.errors_total,
                "latency_p50_ms": round(latencies[n // 2], 1) if n else 0,
                "latency_p95_ms": round(latencies[int(n * 0.95)], 1) if n else 0,
                "latency_mean_ms": round(sum(latencies) / n, 1) if n else 0,
                "uptime_seconds": int(time.time() - self._start_time),
            }
