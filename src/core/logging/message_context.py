"""Per-message transport fields attached to every log record."""

from contextvars import ContextVar, Token
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class _MessageFields:
    topic: str = ""
    partition: int = -1
    offset: int = -1
    key: str = ""
    consumer_group: str = ""


_EMPTY = _MessageFields()
_current: ContextVar[_MessageFields] = ContextVar("message_fields", default=_EMPTY)


def _merged(**fields: Any) -> _MessageFields:
    updates = {name: value for name, value in fields.items() if value is not None}
    return replace(_current.get(), **updates)


def set_message_context(
    topic: Optional[str] = None,
    partition: Optional[int] = None,
    offset: Optional[int] = None,
    key: Optional[str] = None,
    consumer_group: Optional[str] = None,
) -> None:
    """Update the fields of the record being processed. None leaves a field as is."""
    _current.set(
        _merged(
            topic=topic,
            partition=partition,
            offset=offset,
            key=key,
            consumer_group=consumer_group,
        )
    )


def get_message_context() -> Dict[str, Any]:
    """Fields for the formatter, prefixed with ``message_``; empty outside a record."""
    fields = _current.get()
    if not fields.topic:
        return {}

    context: Dict[str, Any] = {
        "message_topic": fields.topic,
        "message_partition": fields.partition,
        "message_offset": fields.offset,
    }
    if fields.key:
        context["message_key"] = fields.key
    if fields.consumer_group:
        context["message_consumer_group"] = fields.consumer_group
    return context


def clear_message_context() -> None:
    _current.set(_EMPTY)


class MessageLogContext:
    """
    Scope log records to one consumed message.

    The previous fields are restored on exit, so nesting (e.g. reading a
    dead-letter record while handling another) behaves as expected.

    Usage:
        with MessageLogContext(topic="senik.events", partition=0, offset=12345):
            await processor.process(message, handler)
    """

    def __init__(
        self,
        topic: Optional[str] = None,
        partition: Optional[int] = None,
        offset: Optional[int] = None,
        key: Optional[str] = None,
        consumer_group: Optional[str] = None,
    ):
        self._fields = {
            "topic": topic,
            "partition": partition,
            "offset": offset,
            "key": key,
            "consumer_group": consumer_group,
        }
        self._token: Optional[Token] = None

    def __enter__(self) -> "MessageLogContext":
        self._token = _current.set(_merged(**self._fields))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token is not None:
            _current.reset(self._token)
            self._token = None
        return False
