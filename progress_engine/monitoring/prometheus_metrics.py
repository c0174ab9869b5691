"""Prometheus metrics definitions and helpers"""
import logging
import time
from contextlib import contextmanager

from prometheus_client import Counter, Histogram

from progress_engine.config import ENABLE_PROMETHEUS

logger = logging.getLogger(__name__)


class PrometheusMetrics:
    """Container for all Prometheus metrics"""

    def __init__(self, enabled: bool = ENABLE_PROMETHEUS):
        self._enabled = enabled
        if not enabled:
            logger.info("Prometheus metrics disabled")
            return

        # HTTP Request Metrics
        self.http_requests_total = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status']
        )

        self.http_request_duration_seconds = Histogram(
            'http_request_duration_seconds',
            'HTTP request latency',
            ['method', 'endpoint'],
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0]
        )

        # Database Metrics
        self.db_queries_total = Counter(
            'db_queries_total',
            'Total database queries',
            ['query_type', 'table']
        )

        self.db_query_duration_seconds = Histogram(
            'db_query_duration_seconds',
            'Database query latency',
            ['query_type'],
            buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0]
        )

        # Session Lifecycle Metrics
        self.session_transitions_total = Counter(
            'session_transitions_total',
            'Session lifecycle transitions',
            ['transition']
        )

        self.achievements_unlocked_total = Counter(
            'achievements_unlocked_total',
            'Achievements unlocked',
            ['achievement_id']
        )

        # Progress Concurrency Metrics
        self.progress_update_retries_total = Counter(
            'progress_update_retries_total',
            'Progress updates retried after a lock conflict'
        )

        self.progress_contention_failures_total = Counter(
            'progress_contention_failures_total',
            'Progress updates abandoned after exhausting retries'
        )

        self.session_completion_duration_seconds = Histogram(
            'session_completion_duration_seconds',
            'Time to close a session and apply it to progress',
            buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0]
        )

        logger.info("Prometheus metrics initialized")

    @property
    def enabled(self) -> bool:
        """Check if metrics are enabled"""
        return self._enabled


# Global metrics instance
metrics = PrometheusMetrics()


@contextmanager
def track_request(method: str, endpoint: str):
    """Track HTTP request metrics"""
    if not metrics.enabled:
        yield
        return

    start_time = time.time()
    status_code = 500  # Default to error

    try:
        yield
        status_code = 200
    finally:
        duration = time.time() - start_time
        metrics.http_request_duration_seconds.labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

        metrics.http_requests_total.labels(
            method=method,
            endpoint=endpoint,
            status=status_code
        ).inc()


@contextmanager
def track_completion():
    """Time a session completion, including the progress update"""
    if not metrics.enabled:
        yield
        return

    start_time = time.time()

    try:
        yield
    finally:
        metrics.session_completion_duration_seconds.observe(time.time() - start_time)


@contextmanager
def track_database_query(query_type: str, table: str = ""):
    """Track database query metrics"""
    if not metrics.enabled:
        yield
        return

    start_time = time.time()

    try:
        yield
    finally:
        duration = time.time() - start_time
        metrics.db_query_duration_seconds.labels(
            query_type=query_type
        ).observe(duration)

        metrics.db_queries_total.labels(
            query_type=query_type,
            table=table
        ).inc()


def track_session_transition(transition: str) -> None:
    """Count a session lifecycle transition (opened, in_progress, completed, abandoned)"""
    if not metrics.enabled:
        return
    metrics.session_transitions_total.labels(transition=transition).inc()


def track_achievement_unlock(achievement_id: str) -> None:
    """Count an achievement unlock"""
    if not metrics.enabled:
        return
    metrics.achievements_unlocked_total.labels(achievement_id=achievement_id).inc()


def track_progress_retry() -> None:
    """Count a retried progress update"""
    if not metrics.enabled:
        return
    metrics.progress_update_retries_total.inc()


def track_contention_failure() -> None:
    """Count a progress update that gave up"""
    if not metrics.enabled:
        return
    metrics.progress_contention_failures_total.inc()
