"""
Tagged-union JSON codec for domain events.

Events travel as JSON objects with a ``className`` discriminant naming the
concrete event type. The set of decodable types is closed: only classes
registered with the codec are accepted. Both the short name
("IncomeCalculated") and the fully qualified name written by older producers
("gr.senik.admin.domain.model.IncomeCalculated") resolve to the same type.

The consumer, the dead-letter CLI and any producer share one codec instance
(see get_codec()) so every path decodes the same way.
"""

import json
import logging
from collections.abc import Iterable
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from core.errors.exceptions import DeserializationError, ValidationError
from senik_admin.domain.events import DomainEvent, IncomeCalculated

logger = logging.getLogger(__name__)

CLASS_NAME_PROPERTY = "className"

DEFAULT_EVENT_TYPES: tuple[type[DomainEvent], ...] = (IncomeCalculated,)


class EventValidationError(ValidationError):
    """A well-formed event payload failed field validation."""

    def __init__(self, message: str, cause: Exception | None = None, context: dict | None = None):
        super().__init__(message, cause=cause, context=context)
        self.errors: list[dict[str, Any]] = []
        if isinstance(cause, PydanticValidationError):
            self.errors = cause.errors(include_url=False)


class EventCodec:
    """
    Encodes and decodes domain events keyed by their className tag.

    Example:
        >>> codec = EventCodec()
        >>> event = codec.decode(b'{"className": "IncomeCalculated", ...}')
        >>> codec.encode(event)
        b'{"className": "gr.senik.admin.domain.model.IncomeCalculated", ...}'
    """

    def __init__(
        self,
        event_types: Iterable[type[DomainEvent]] = DEFAULT_EVENT_TYPES,
        qualified_names: bool = True,
    ):
        """
        Args:
            event_types: Event classes the codec accepts
            qualified_names: Write the fully qualified className on encode
                (readable by every existing consumer). Short names are
                always accepted on decode.
        """
        self._registry: dict[str, type[DomainEvent]] = {}
        self._qualified_names = qualified_names
        for event_type in event_types:
            self.register(event_type)

    def register(self, event_type: type[DomainEvent]) -> None:
        if not event_type.event_name:
            raise ValueError(f"{event_type.__name__} has no event_name")

        for name in (event_type.event_name, event_type.qualified_name()):
            existing = self._registry.get(name)
            if existing is not None and existing is not event_type:
                raise ValueError(
                    f"className '{name}' already registered to {existing.__name__}"
                )
            self._registry[name] = event_type

    @property
    def event_names(self) -> list[str]:
        return sorted({event_type.event_name for event_type in self._registry.values()})

    def resolve(self, class_name: str) -> type[DomainEvent]:
        event_type = self._registry.get(class_name)
        if event_type is None:
            raise DeserializationError(
                f"Unknown event type '{class_name}'",
                context={"class_name": class_name, "known": self.event_names},
            )
        return event_type

    def decode(self, data: bytes | str | None) -> DomainEvent:
        """
        Decode a JSON payload into its registered event type.

        Raises:
            DeserializationError: Empty payload, invalid UTF-8 or JSON, a
                non-object document, or a missing/unknown className
            EventValidationError: The payload failed field validation
        """
        if data is None or len(data) == 0:
            raise DeserializationError("Empty event payload")

        try:
            payload = json.loads(data)
        except ValueError as e:
            # Covers JSONDecodeError and UnicodeDecodeError
            raise DeserializationError("Event payload is not valid JSON", cause=e) from e

        if not isinstance(payload, dict):
            raise DeserializationError(
                f"Event payload must be a JSON object, got {type(payload).__name__}"
            )

        class_name = payload.pop(CLASS_NAME_PROPERTY, None)
        if not isinstance(class_name, str) or not class_name:
            raise DeserializationError(
                f"Event payload has no '{CLASS_NAME_PROPERTY}' property"
            )

        event_type = self.resolve(class_name)

        try:
            return event_type.model_validate(payload)
        except PydanticValidationError as e:
            raise EventValidationError(
                f"Invalid {event_type.event_name} payload: {e.error_count()} validation error(s)",
                cause=e,
                context={"class_name": class_name},
            ) from e

    def encode(self, event: DomainEvent) -> bytes:
        event_type = type(event)
        if self._registry.get(event_type.event_name) is not event_type:
            raise ValueError(f"Event type {event_type.__name__} is not registered")

        class_name = event_type.qualified_name() if self._qualified_names else event_type.event_name
        payload = {CLASS_NAME_PROPERTY: class_name}
        payload.update(event.model_dump(mode="json", by_alias=True))
        return json.dumps(payload).encode("utf-8")


_codec: EventCodec | None = None


def get_codec() -> EventCodec:
    """Get the process-wide codec shared by every decode path."""
    global _codec
    if _codec is None:
        _codec = EventCodec()
    return _codec


__all__ = [
    "CLASS_NAME_PROPERTY",
    "DEFAULT_EVENT_TYPES",
    "EventCodec",
    "EventValidationError",
    "get_codec",
]
