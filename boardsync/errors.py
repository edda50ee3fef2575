"""
boardsync Error Hierarchy

Base error and specific error types for all boardsync components.
Errors carry metadata for structured logging and a user-facing message
for notifications.
"""

from typing import Any, Dict, Optional


class BoardSyncError(RuntimeError):
    """
    Base error for boardsync components. Carries metadata for structured logging.

    Attributes:
        category: Error category for classification (e.g., "backend", "validation")
        retryable: Whether the operation can be retried
        metadata: Additional context for logging and debugging
    """

    category: str = "runtime"
    retryable: bool = True

    def __init__(
        self,
        message: str,
        *,
        metadata: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.metadata = metadata or {}
        if retryable is not None:
            self.retryable = retryable

    @property
    def user_message(self) -> str:
        """Message suitable for a notification."""
        return str(self)


# Validation Errors
class ValidationError(BoardSyncError):
    """Raised when input validation fails before any cache write."""

    category = "validation"
    retryable = False


class TemporaryIdError(BoardSyncError):
    """
    Raised when an operation needs a persisted id but got a placeholder.

    Attributes:
        entity: "lane" or "board"
        entity_id: The placeholder id that was rejected
    """

    category = "temporary_id"
    retryable = True

    def __init__(
        self,
        entity: str,
        entity_id: str,
        *,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            f"Cannot modify {entity} with temporary ID {entity_id}. "
            "Please wait for creation to complete.",
            metadata=metadata,
        )
        self.entity = entity
        self.entity_id = entity_id

    @property
    def user_message(self) -> str:
        return f"Please wait for {self.entity} creation to complete"


# Configuration Errors
class ConfigError(BoardSyncError):
    """Raised when configuration is invalid or missing."""

    category = "config"
    retryable = False


# Backend Errors
class BackendError(BoardSyncError):
    """Base class for failures reported by the backing store."""

    category = "backend"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message, metadata=metadata, retryable=retryable)
        self.status_code = status_code


class BackendRejectedError(BackendError):
    """Raised when the store refuses a change (duplicate name, foreign reference)."""

    category = "backend"
    retryable = False


class BackendUnavailableError(BackendError):
    """Raised when the store cannot be reached or fails unexpectedly."""

    category = "backend"
    retryable = True


class EntityNotFoundError(BackendError):
    """Raised when a requested entity is not found in the store or cache."""

    category = "backend"
    retryable = False
