"""
Standardized exception hierarchy for the progress engine
Provides rich context, consistent logging, and user-friendly error messages

Caller-facing kinds:
- NotFoundError: app/session/progress does not exist or is not visible to the caller
- InvalidStateError: operation not legal in the entity's current lifecycle state
- ContentionError: atomic progress update failed after bounded retries (retriable)
- ValidationError: rejected input (negative score, score above max, bad limit)
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class ProgressEngineError(Exception):
    """
    Base exception for all progress engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise ProgressEngineError(
            message="Failed to record session",
            user_id="user-1",
            operation="complete_session",
            context={"session_id": "abc-123"}
        )
    """

    retriable: bool = False
    log_level: int = logging.ERROR

    def __init__(
        self,
        message: str,
        user_id: Optional[str] = None,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.user_id = user_id
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "An error occurred. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "user_id": self.user_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "retriable": self.retriable,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (User Input)
# ==========================================

class ValidationError(ProgressEngineError):
    """
    Raised when caller input fails validation

    Examples:
    - Negative score
    - Score above the session's max score
    - Result limit outside the allowed range

    Example:
        raise ValidationError(
            message="Score must not be negative",
            field="score",
            value=-5,
            user_id="user-1"
        )
    """

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        **kwargs
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=message,
            user_message=f"Invalid {field}: {message}" if field else message,
            context={"field": field, "value": value},
            **kwargs
        )


# ==========================================
# Lifecycle Errors
# ==========================================

class NotFoundError(ProgressEngineError):
    """Referenced app, session or progress record does not exist (or is not visible to the caller)"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        record_type: Optional[str] = None,
        record_id: Optional[str] = None,
        **kwargs
    ):
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(
            message=message,
            user_message=f"{record_type or 'Record'} not found.",
            context={"record_type": record_type, "record_id": record_id},
            **kwargs
        )


class InvalidStateError(ProgressEngineError):
    """Operation is not legal in the entity's current lifecycle state"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        current_state: Optional[str] = None,
        attempted: Optional[str] = None,
        **kwargs
    ):
        self.current_state = current_state
        self.attempted = attempted
        super().__init__(
            message=message,
            user_message="This activity has already been submitted.",
            context={"current_state": current_state, "attempted": attempted},
            **kwargs
        )


class ContentionError(ProgressEngineError):
    """
    Atomic progress update could not be completed after bounded retries

    The session stays completed but unscored; retrying the whole
    complete call resumes scoring.
    """

    retriable = True

    def __init__(
        self,
        message: str,
        progress_key: Optional[tuple] = None,
        attempts: Optional[int] = None,
        **kwargs
    ):
        self.progress_key = progress_key
        self.attempts = attempts
        super().__init__(
            message=message,
            user_message="We couldn't save your progress right now. Please try again.",
            context={"progress_key": list(progress_key) if progress_key else None, "attempts": attempts},
            **kwargs
        )


# ==========================================
# Database Errors
# ==========================================

class DatabaseError(ProgressEngineError):
    """
    Base class for database-related errors
    """
    pass


class ConnectionError(DatabaseError):
    """Database connection failed"""

    def __init__(self, message: str = "Database connection failed", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble connecting to the database. Please try again in a moment.",
            **kwargs
        )


class QueryError(DatabaseError):
    """Database query execution failed"""

    def __init__(
        self,
        message: str,
        query: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        self.query = query
        super().__init__(
            message=message,
            user_message="We encountered an issue saving your data. Please try again.",
            context={**(context or {}), "query": query},
            **kwargs
        )


# ==========================================
# Authentication & Configuration
# ==========================================

class AuthenticationError(ProgressEngineError):
    """Caller identity missing or rejected"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str = "Authentication failed",
        **kwargs
    ):
        super().__init__(
            message=message,
            user_message="Authentication failed. Please check your credentials.",
            **kwargs
        )


class ConfigurationError(ProgressEngineError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message="The system is not properly configured. Please contact support.",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> ProgressEngineError:
    """
    Wrap psycopg exceptions into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate ProgressEngineError subclass

    Example:
        try:
            await cur.execute(query)
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation="open_session", user_id="user-1")
    """
    import psycopg

    if isinstance(error, psycopg.OperationalError):
        return ConnectionError(
            message=f"Database connection failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )
    elif isinstance(error, psycopg.Error):
        return QueryError(
            message=f"Database query failed: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    return ProgressEngineError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
