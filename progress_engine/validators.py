"""
Input validation for engine operations

Rejected input raises ValidationError before any state is touched.
"""

import logging
from typing import Optional

from progress_engine import config
from progress_engine.exceptions import ValidationError
from progress_engine.models.session import SessionKind

logger = logging.getLogger(__name__)


def validate_score(score: int, max_score: int, user_id: Optional[str] = None) -> int:
    """Score must be a whole number between 0 and max_score"""
    if isinstance(score, bool) or not isinstance(score, int):
        raise ValidationError(
            message="Score must be a whole number",
            field="score",
            value=score,
            user_id=user_id,
            operation="validate_score"
        )
    if score < 0:
        raise ValidationError(
            message="Score must not be negative",
            field="score",
            value=score,
            user_id=user_id,
            operation="validate_score"
        )
    if score > max_score:
        raise ValidationError(
            message=f"Score must not exceed the maximum of {max_score}",
            field="score",
            value=score,
            user_id=user_id,
            operation="validate_score"
        )
    return score


def validate_duration(duration_seconds: int) -> int:
    if duration_seconds < 0:
        raise ValidationError(
            message="Duration must not be negative",
            field="duration_seconds",
            value=duration_seconds,
            operation="validate_duration"
        )
    return duration_seconds


def validate_limit(limit: Optional[int]) -> int:
    """Result limit defaults to DEFAULT_RESULT_LIMIT and must be 1..MAX_RESULT_LIMIT"""
    if limit is None:
        return config.DEFAULT_RESULT_LIMIT
    if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= config.MAX_RESULT_LIMIT:
        raise ValidationError(
            message=f"Limit must be between 1 and {config.MAX_RESULT_LIMIT}",
            field="limit",
            value=limit,
            operation="validate_limit"
        )
    return limit


def validate_session_kind(session_type, user_id: Optional[str] = None) -> SessionKind:
    """Session type must be one of the SessionKind values"""
    try:
        return SessionKind(session_type)
    except ValueError:
        raise ValidationError(
            message=f"Session type must be one of: {', '.join(k.value for k in SessionKind)}",
            field="session_type",
            value=session_type,
            user_id=user_id,
            operation="validate_session_kind"
        )
