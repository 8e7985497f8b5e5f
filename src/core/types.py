"""
Core types and protocols used across modules.

This module provides base types, enums, and protocol definitions that are
shared across the core library to ensure consistency and type safety.
"""

from enum import Enum
from typing import Protocol


class ErrorCategory(Enum):
    """
    Classification of error types for handling decisions.

    This enum is used throughout the pipeline to classify errors and determine
    whether a failed message is retried with backoff or dead-lettered at once.

    Categories:
        TRANSIENT: Temporary failures that should retry with backoff
                   (e.g., broker timeouts, downstream unavailable)
        AUTH: Authentication failures, retried after credential refresh
        PERMANENT: Non-retriable failures that won't succeed on retry
                   (e.g., schema violations, validation errors)
        UNKNOWN: Unclassified errors, retried conservatively
    """

    TRANSIENT = "transient"
    AUTH = "auth"
    PERMANENT = "permanent"
    UNKNOWN = "unknown"

    @property
    def is_retryable(self) -> bool:
        return self is not ErrorCategory.PERMANENT


class ErrorClassifier(Protocol):
    """
    Protocol for error classification implementations.

    The message processing pipeline never inspects exceptions itself; it asks
    a classifier, which maps a failure to a category.
    """

    def classify_error(self, error: Exception) -> ErrorCategory:
        """
        Classify an exception into an error category.

        Args:
            error: Exception to classify

        Returns:
            ErrorCategory indicating how to handle this error
        """
        ...


__all__ = [
    "ErrorCategory",
    "ErrorClassifier",
]
