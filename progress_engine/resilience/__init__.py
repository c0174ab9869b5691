"""Retry helpers for contended storage operations"""
from progress_engine.resilience.retry import (
    is_retryable_error,
    calculate_backoff,
    retry_with_backoff,
)

__all__ = [
    "is_retryable_error",
    "calculate_backoff",
    "retry_with_backoff",
]
