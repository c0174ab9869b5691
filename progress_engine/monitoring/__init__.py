"""Monitoring infrastructure for the progress engine"""
from progress_engine.monitoring.prometheus_metrics import (
    metrics,
    track_request,
    track_database_query,
    track_completion,
    track_session_transition,
    track_achievement_unlock,
    track_progress_retry,
    track_contention_failure,
)

__all__ = [
    "metrics",
    "track_request",
    "track_database_query",
    "track_completion",
    "track_session_transition",
    "track_achievement_unlock",
    "track_progress_retry",
    "track_contention_failure",
]
