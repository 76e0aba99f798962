"""
Metrics Collection for the Legal RAG pipeline

Tracks conversation turns, which answer backend produced each answer,
backend failures by kind, retrieval failures and turn latency.
"""

import time
import logging
from dataclasses import dataclass, field
from collections import defaultdict
from typing import Optional
from datetime import datetime, timedelta

from .errors import FailureKind

logger = logging.getLogger(__name__)


@dataclass
class TurnMetrics:
    """Metrics for a single conversation turn."""
    session_id: str
    query_text: str
    start_time: float
    end_time: float = 0
    latency_ms: float = 0
    candidates_count: int = 0
    backend: Optional[str] = None  # None when the apology was returned
    retrieval_failed: bool = False
    error: Optional[str] = None


@dataclass
class SystemMetrics:
    """Aggregated pipeline metrics."""
    total_turns: int = 0
    grounded_turns: int = 0
    fallback_turns: int = 0
    retrieval_failures: int = 0

    # Latency tracking (in ms)
    total_latency_ms: float = 0
    latencies: list = field(default_factory=list)

    answers_by_backend: dict = field(default_factory=lambda: defaultdict(int))
    failures_by_kind: dict = field(default_factory=lambda: defaultdict(int))
    errors_by_type: dict = field(default_factory=lambda: defaultdict(int))

    # Indexing
    statutes_indexed: int = 0
    indexing_failures: int = 0

    @property
    def avg_latency_ms(self) -> float:
        if self.total_turns == 0:
            return 0
        return self.total_latency_ms / self.total_turns

    @property
    def p95_latency_ms(self) -> float:
        """95th percentile turn latency."""
        if not self.latencies:
            return 0
        sorted_latencies = sorted(self.latencies)
        index = int(len(sorted_latencies) * 0.95)
        return sorted_latencies[min(index, len(sorted_latencies) - 1)]

    @property
    def fallback_rate(self) -> float:
        if self.total_turns == 0:
            return 0
        return self.fallback_turns / self.total_turns

    def to_dict(self) -> dict:
        """Convert to dictionary for display."""
        return {
            "turns": {
                "total": self.total_turns,
                "grounded": self.grounded_turns,
                "fallback": self.fallback_turns,
                "fallback_rate": f"{self.fallback_rate:.2%}",
                "retrieval_failures": self.retrieval_failures,
            },
            "latency_ms": {
                "avg": round(self.avg_latency_ms, 2),
                "p95": round(self.p95_latency_ms, 2),
            },
            "backends": {
                "answers": dict(self.answers_by_backend),
                "failures": dict(self.failures_by_kind),
            },
            "indexing": {
                "statutes": self.statutes_indexed,
                "failures": self.indexing_failures,
            },
            "errors": dict(self.errors_by_type),
        }


class MetricsCollector:
    """
    Collects and aggregates pipeline metrics.

    Usage:
        collector = get_metrics_collector()

        with collector.track_turn(session_id, query) as tracker:
            ...
            tracker.set_candidates(len(candidates))
            tracker.set_backend(answer.backend)

        metrics = collector.get_metrics()
    """

    _instance = None

    def __new__(cls):
        """Singleton pattern for global metrics collection."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return

        self.metrics = SystemMetrics()
        self._turn_history: list[TurnMetrics] = []
        self._max_history = 1000
        self._start_time = datetime.now()
        self._initialized = True

    def reset(self):
        """Reset all metrics (for testing)."""
        self.metrics = SystemMetrics()
        self._turn_history = []
        self._start_time = datetime.now()

    class TurnTracker:
        """Context manager for tracking one conversation turn."""

        def __init__(self, collector: 'MetricsCollector', session_id: str, query_text: str):
            self.collector = collector
            self.turn = TurnMetrics(
                session_id=session_id,
                query_text=query_text[:200],
                start_time=time.time(),
            )

        def __enter__(self):
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            self.turn.end_time = time.time()
            self.turn.latency_ms = (self.turn.end_time - self.turn.start_time) * 1000

            if exc_type:
                self.turn.error = str(exc_val)
                self.collector._record_error(exc_type.__name__)

            self.collector._record_turn(self.turn)
            return False

        def set_candidates(self, count: int):
            self.turn.candidates_count = count

        def set_backend(self, backend: Optional[str]):
            self.turn.backend = backend

        def set_retrieval_failed(self):
            self.turn.retrieval_failed = True

    def track_turn(self, session_id: str, query_text: str) -> TurnTracker:
        return self.TurnTracker(self, session_id, query_text)

    def _record_turn(self, turn: TurnMetrics):
        self.metrics.total_turns += 1

        if turn.backend:
            self.metrics.answers_by_backend[turn.backend] += 1
        else:
            self.metrics.fallback_turns += 1
        if turn.candidates_count:
            self.metrics.grounded_turns += 1
        if turn.retrieval_failed:
            self.metrics.retrieval_failures += 1

        self.metrics.total_latency_ms += turn.latency_ms
        self.metrics.latencies.append(turn.latency_ms)
        if len(self.metrics.latencies) > self._max_history:
            self.metrics.latencies = self.metrics.latencies[-self._max_history:]

        self._turn_history.append(turn)
        if len(self._turn_history) > self._max_history:
            self._turn_history = self._turn_history[-self._max_history:]

    def _record_error(self, error_type: str):
        self.metrics.errors_by_type[error_type] += 1

    def record_backend_failure(self, backend: str, kind: FailureKind):
        """Record one failed backend attempt."""
        self.metrics.failures_by_kind[kind.value] += 1
        logger.debug(f"Backend failure recorded: {backend} ({kind.value})")

    def record_indexing(self, processed: int, failed: int):
        self.metrics.statutes_indexed += processed
        self.metrics.indexing_failures += failed

    def get_metrics(self) -> SystemMetrics:
        return self.metrics

    def get_metrics_dict(self) -> dict:
        return self.metrics.to_dict()

    def get_recent_turns(self, limit: int = 10) -> list[TurnMetrics]:
        return self._turn_history[-limit:]

    def get_uptime(self) -> timedelta:
        return datetime.now() - self._start_time


# Global metrics collector instance
_collector = None


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    global _collector
    if _collector is None:
        _collector = MetricsCollector()
    return _collector
