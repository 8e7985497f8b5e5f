"""``default=`` hook for json.dumps, shared by log formatting and dead-letter payloads."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from pathlib import PurePath
from typing import Any


def json_serializer(obj: Any) -> Any:
    """
    Convert a value json cannot encode natively.

    Amounts (Decimal) become strings so no precision is lost to float
    rounding. Bytes are decoded as UTF-8 with replacement characters, enums
    give their value, plain objects their __dict__, anything else str().
    """
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, (Decimal, PurePath)):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.decode("utf-8", errors="replace")
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "__dict__"):
        return vars(obj)
    return str(obj)


__all__ = ["json_serializer"]
