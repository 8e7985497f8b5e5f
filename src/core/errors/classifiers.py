"""
Error classification for message processing failures.

Maps arbitrary handler exceptions onto ErrorCategory so the message
processing pipeline can choose between backoff and immediate dead-lettering
without knowing anything about the handler.
"""

from pydantic import ValidationError as SchemaValidationError

from core.errors.exceptions import (
    DeserializationError,
    PipelineError,
    ValidationError,
    classify_exception,
)
from core.types import ErrorCategory

# Failures that can never succeed on redelivery of the same payload
DEFAULT_NOT_RETRYABLE: tuple[type[Exception], ...] = (
    ValidationError,
    DeserializationError,
    SchemaValidationError,
)


class ExceptionClassifier:
    """
    Classifies handler failures as retryable or not.

    Resolution order:
        1. Exception types in not_retryable -> PERMANENT
        2. PipelineError subclasses -> their own category
        3. Anything else -> TRANSIENT (retry everything not explicitly fatal)
           unless classify_unknown=True, in which case message markers
           from classify_exception() are consulted first

    The cause chain is walked so that a wrapped ValidationError is still
    recognized as fatal.

    Example:
        >>> classifier = ExceptionClassifier(not_retryable=(KeyError,))
        >>> classifier.classify_error(KeyError("missing")).value
        'permanent'
    """

    def __init__(
        self,
        not_retryable: tuple[type[Exception], ...] = DEFAULT_NOT_RETRYABLE,
        classify_unknown: bool = False,
    ):
        self._not_retryable = tuple(not_retryable)
        self._classify_unknown = classify_unknown

    @staticmethod
    def _cause_chain(error: BaseException):
        seen = set()
        current: BaseException | None = error
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            yield current
            nxt = getattr(current, "cause", None) if isinstance(current, PipelineError) else None
            current = nxt or current.__cause__

    def classify_error(self, error: Exception) -> ErrorCategory:
        if self._not_retryable and any(
            isinstance(exc, self._not_retryable) for exc in self._cause_chain(error)
        ):
            return ErrorCategory.PERMANENT

        if isinstance(error, PipelineError):
            return error.category

        if self._classify_unknown:
            category = classify_exception(error)
            if category != ErrorCategory.UNKNOWN:
                return category

        return ErrorCategory.TRANSIENT

    def is_retryable(self, error: Exception) -> bool:
        return self.classify_error(error).is_retryable


__all__ = ["ExceptionClassifier", "DEFAULT_NOT_RETRYABLE"]
