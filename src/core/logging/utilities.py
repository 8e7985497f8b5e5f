"""Helpers for emitting structured log records."""

import logging
from typing import Any

# Attributes every LogRecord already has; passing them in extra raises KeyError
_RESERVED_LOG_KEYS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

MAX_ERROR_MESSAGE_CHARS = 500


def _extra(fields: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if k not in _RESERVED_LOG_KEYS}


def log_with_context(
    logger: logging.Logger,
    level: int,
    msg: str,
    **kwargs: Any,
) -> None:
    """
    Log msg with keyword arguments as structured fields.

    exc_info is forwarded to the logger; reserved LogRecord names are dropped.

    Example:
        log_with_context(
            logger, logging.INFO, "Received income calculated event",
            event_id=str(event.event_id),
            currency=event.income.currency,
        )
    """
    exc_info = kwargs.pop("exc_info", None)
    logger.log(level, msg, exc_info=exc_info, extra=_extra(kwargs))


def _category_value(exc: Exception, explicit: Any) -> Any:
    category = explicit if explicit is not None else getattr(exc, "category", None)
    return getattr(category, "value", category)


def log_exception(
    logger: logging.Logger,
    exc: Exception,
    msg: str,
    level: int = logging.ERROR,
    include_traceback: bool = True,
    **kwargs: Any,
) -> None:
    """
    Log a failure with error_type, error_message and error_category fields.

    The category comes from the error_category keyword, or from the
    exception's own category (PipelineError). Messages longer than
    MAX_ERROR_MESSAGE_CHARS are truncated.
    """
    category = _category_value(exc, kwargs.pop("error_category", None))
    if category is not None:
        kwargs["error_category"] = category

    text = str(exc)
    if len(text) > MAX_ERROR_MESSAGE_CHARS:
        text = f"{text[:MAX_ERROR_MESSAGE_CHARS]}..."
    kwargs["error_message"] = text
    kwargs.setdefault("error_type", type(exc).__name__)

    if include_traceback:
        logger.log(level, msg, exc_info=exc, extra=_extra(kwargs))
    else:
        logger.log(level, msg, extra=_extra(kwargs))
