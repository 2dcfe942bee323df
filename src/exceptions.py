"""
Standardized exception hierarchy for the gamification engine
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class GamificationError(Exception):
    """
    Base exception for all gamification engine errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise GamificationError(
            message="Failed to persist profile",
            user_id="user-123",
            operation="apply_event",
            context={"event_type": "lesson_completed"}
        )
    """

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
            "error_context": self.context,  # Avoid conflict with logging's 'context'
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.log(
                self.log_level,
                f"{self.__class__.__name__}: {self.message}",
                extra=log_data,
                exc_info=self.cause
            )
        else:
            logger.log(self.log_level, f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for API responses"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Validation Errors (Caller Input)
# ==========================================

class ValidationError(GamificationError):
    """
    Raised when input fails validation, before any mutation happens

    Examples:
    - Negative XP
    - Accuracy outside [0, 1]
    - Unknown event type

    Example:
        raise ValidationError(
            message="Accuracy must be within [0, 1]",
            field="accuracy",
            value=1.2
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
# Store Errors
# ==========================================

class DatabaseError(GamificationError):
    """
    Base class for document store errors
    """
    pass


class RecordNotFoundError(DatabaseError):
    """Requested document does not exist"""

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


class VersionConflictError(DatabaseError):
    """A write carried a version that no longer matches the stored document"""

    log_level = logging.INFO

    def __init__(
        self,
        message: str,
        collection: Optional[str] = None,
        document_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        actual_version: Optional[int] = None,
        **kwargs
    ):
        self.collection = collection
        self.document_id = document_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            message=message,
            user_message="Your progress was updated elsewhere. Please try again.",
            context={
                "collection": collection,
                "document_id": document_id,
                "expected_version": expected_version,
                "actual_version": actual_version,
            },
            **kwargs
        )


class StoreUnavailableError(DatabaseError):
    """Transient store failure; retried by the caller, not by the engine"""

    def __init__(self, message: str = "Document store unavailable", **kwargs):
        super().__init__(
            message=message,
            user_message="We're having trouble saving your progress. Please try again in a moment.",
            **kwargs
        )


# ==========================================
# Business Outcomes
# ==========================================

class ConflictError(GamificationError):
    """Concurrent updates kept colliding after the bounded number of retries"""

    log_level = logging.WARNING

    def __init__(
        self,
        message: str,
        attempts: Optional[int] = None,
        **kwargs
    ):
        self.attempts = attempts
        super().__init__(
            message=message,
            user_message="Your progress is being updated from another device. Please try again.",
            context={"attempts": attempts},
            **kwargs
        )


class InsufficientTokensError(GamificationError):
    """User has no streak freeze tokens left"""

    log_level = logging.INFO

    def __init__(
        self,
        message: str = "No freeze tokens available",
        tokens: int = 0,
        **kwargs
    ):
        self.tokens = tokens
        super().__init__(
            message=message,
            user_message="You don't have any streak freezes left.",
            context={"tokens": tokens},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(GamificationError):
    """Engine configuration is invalid or missing"""

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

def wrap_store_exception(
    error: Exception,
    operation: str,
    user_id: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> GamificationError:
    """
    Wrap foreign store exceptions into our exception hierarchy

    Errors that already belong to the hierarchy are returned unchanged.

    Args:
        error: Original exception
        operation: What operation was being performed
        user_id: User ID if applicable
        context: Additional context

    Returns:
        Appropriate GamificationError subclass

    Example:
        try:
            await store.commit_batch(writes)
        except Exception as e:
            raise wrap_store_exception(e, operation="apply_event", user_id="user-1")
    """
    if isinstance(error, GamificationError):
        return error

    if isinstance(error, (TimeoutError, OSError)):
        return StoreUnavailableError(
            message=f"Store unavailable during {operation}: {str(error)}",
            user_id=user_id,
            operation=operation,
            context=context,
            cause=error
        )

    if isinstance(error, KeyError):
        return RecordNotFoundError(
            message=f"{operation} failed: missing {str(error)}",
            user_id=user_id,
            operation=operation,
            cause=error
        )

    # Generic fallback
    return DatabaseError(
        message=f"{operation} failed: {str(error)}",
        user_id=user_id,
        operation=operation,
        context=context,
        cause=error
    )
