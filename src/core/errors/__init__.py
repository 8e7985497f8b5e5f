"""Exception hierarchy and failure classification."""

from core.errors.classifiers import DEFAULT_NOT_RETRYABLE, ExceptionClassifier
from core.errors.exceptions import (
    AuthError,
    DeadLetterPublishError,
    DeserializationError,
    ErrorCategory,
    PermanentError,
    PipelineError,
    TransientError,
    UnsupportedEventError,
    ValidationError,
    classify_exception,
)

__all__ = [
    "ErrorCategory",
    "PipelineError",
    "TransientError",
    "AuthError",
    "PermanentError",
    "ValidationError",
    "DeserializationError",
    "UnsupportedEventError",
    "DeadLetterPublishError",
    "classify_exception",
    "ExceptionClassifier",
    "DEFAULT_NOT_RETRYABLE",
]
