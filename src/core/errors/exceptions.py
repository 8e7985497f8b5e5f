"""
Typed exceptions raised by listeners, the codec and the dead-letter publisher.

Each exception class carries an ErrorCategory, which is all the message
processing pipeline needs to decide between backoff and dead-lettering.
"""

from core.types import ErrorCategory


class PipelineError(Exception):
    """
    Base exception for admin pipeline failures.

    Attributes:
        message: Human-readable description
        category: How the failure is handled (class attribute)
        cause: Underlying exception, when wrapping one
        context: Extra fields for logs and dead-letter headers
    """

    category: ErrorCategory = ErrorCategory.UNKNOWN

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = dict(context or {})

    @property
    def is_retryable(self) -> bool:
        return self.category.is_retryable

    def __str__(self) -> str:
        if self.cause is None:
            return self.message
        return f"{self.message} | Caused by: {self.cause}"


class TransientError(PipelineError):
    """Worth retrying: broker hiccups, downstream timeouts."""

    category = ErrorCategory.TRANSIENT


class AuthError(PipelineError):
    """SASL or credential failure."""

    category = ErrorCategory.AUTH


class PermanentError(PipelineError):
    """Retrying the same payload cannot succeed."""

    category = ErrorCategory.PERMANENT


class ValidationError(PermanentError):
    """Payload failed field or business validation."""


class DeserializationError(PermanentError):
    """Payload could not be decoded into a known event type."""


class UnsupportedEventError(PermanentError):
    """A listener received an event type it does not handle."""


class DeadLetterPublishError(PipelineError):
    """
    Publishing a failed message to its dead-letter topic failed.

    The pipeline never retries this; it reaches the consumer, which leaves
    the offset uncommitted so the message is redelivered.
    """


# Substring markers for exceptions raised by third-party code. Checked in
# order, first match wins.
_MESSAGE_MARKERS: tuple[tuple[ErrorCategory, tuple[str, ...]], ...] = (
    (ErrorCategory.AUTH, ("401", "unauthorized", "authentication", "sasl")),
    (
        ErrorCategory.TRANSIENT,
        (
            "429",
            "502",
            "503",
            "504",
            "timeout",
            "timed out",
            "connection",
            "temporarily unavailable",
            "not enough replicas",
            "leader not available",
        ),
    ),
    (ErrorCategory.PERMANENT, ("400", "404", "422", "invalid", "validation", "malformed", "schema")),
)


def classify_exception(exc: Exception) -> ErrorCategory:
    """
    Best-effort category for any exception.

    PipelineErrors report their own category. OSErrors (which include the
    builtin TimeoutError and ConnectionError) and exception types named
    like timeouts or connection failures are transient. Everything else is
    matched against message markers, falling back to UNKNOWN.
    """
    if isinstance(exc, PipelineError):
        return exc.category
    if isinstance(exc, OSError):
        return ErrorCategory.TRANSIENT

    type_name = type(exc).__name__.lower()
    if "timeout" in type_name or "connection" in type_name:
        return ErrorCategory.TRANSIENT

    text = str(exc).lower()
    for category, markers in _MESSAGE_MARKERS:
        if any(marker in text for marker in markers):
            return category
    return ErrorCategory.UNKNOWN


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
]
