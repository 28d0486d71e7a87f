"""Field definitions and type coercion.

All types are pydantic models so collections round-trip through JSON schema files.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic import Field as Attr

from switchyard.exceptions import ValidationError

_TRUE_STRINGS = {"true", "yes", "on", "1"}
_FALSE_STRINGS = {"false", "no", "off", "0"}


class FieldType(StrEnum):
    """Semantic field types understood by every backend."""

    STRING = "str"
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    TIME = "time"
    BYTES = "bytes"
    OBJECT = "object"
    ARRAY = "array"

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid field type values."""
        return [t.value for t in cls]


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{value!r} is not an integral number")
        return int(value)
    if isinstance(value, (str, bytes)):
        text = value.decode() if isinstance(value, bytes) else value
        try:
            return int(text.strip())
        except ValueError:
            return _to_int(float(text))
    raise ValueError(f"cannot convert {type(value).__name__} to int")


def _to_float(value: Any) -> float:
    if isinstance(value, (bool, int, float)):
        return float(value)
    if isinstance(value, (str, bytes)):
        return float(value.decode() if isinstance(value, bytes) else value)
    raise ValueError(f"cannot convert {type(value).__name__} to float")


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    raise ValueError(f"{value!r} is not a boolean")


def _to_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, bool):
        raise ValueError("booleans are not timestamps")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=UTC)
    if isinstance(value, str):
        return datetime.fromisoformat(value.strip())
    raise ValueError(f"cannot convert {type(value).__name__} to time")


def _to_json(value: Any, expected: type) -> Any:
    if isinstance(value, (str, bytes)):
        value = json.loads(value)
    if expected is list and isinstance(value, (tuple, set, frozenset)):
        value = list(value)
    if not isinstance(value, expected):
        raise ValueError(f"expected {expected.__name__}, got {type(value).__name__}")
    return value


def _to_string(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return value.encode("utf-8")
    raise ValueError(f"cannot convert {type(value).__name__} to bytes")


_CONVERTERS: dict[FieldType, Callable[[Any], Any]] = {
    FieldType.STRING: _to_string,
    FieldType.INT: _to_int,
    FieldType.FLOAT: _to_float,
    FieldType.BOOL: _to_bool,
    FieldType.TIME: _to_time,
    FieldType.BYTES: _to_bytes,
    FieldType.OBJECT: lambda v: _to_json(v, dict),
    FieldType.ARRAY: lambda v: _to_json(v, list),
}


def convert_value(field_type: FieldType | str, value: Any) -> Any:
    """Coerce a value to the given field type.

    Raises:
        ValueError: If the value cannot be represented as that type
    """
    if value is None:
        return None
    try:
        return _CONVERTERS[FieldType(field_type)](value)
    except (TypeError, json.JSONDecodeError) as e:
        raise ValueError(str(e)) from e


class Field(BaseModel):
    """A single column of a collection."""

    name: str = Attr(..., description="Field name, unique within its collection")
    type: FieldType = Attr(default=FieldType.STRING, description="Semantic value type")
    length: int = Attr(default=0, description="Maximum length hint (0 = backend default)")
    required: bool = Attr(default=False, description="Whether a value must be present")
    identity: bool = Attr(default=False, description="Whether this field is the identity")
    unique: bool = Attr(default=False, description="Whether values must be unique")
    default: Any = Attr(default=None, description="Value used when none is given")
    description: str | None = None
    validator: Callable[[Any], Any] | None = Attr(default=None, exclude=True, repr=False)

    model_config = ConfigDict(frozen=True)

    def convert_value(self, value: Any) -> Any:
        """Coerce a value to this field's type (see ``convert_value``)."""
        return convert_value(self.type, value)

    def check_value(self, value: Any) -> Any:
        """Prepare a value for storage.

        Applies the default, enforces ``required``, coerces the type and runs the
        validator, in that order.

        Raises:
            ValidationError: If any step rejects the value
        """
        if value is None:
            value = self.default

        if value is None:
            if self.required:
                raise ValidationError(
                    f"Field '{self.name}' is required.", {self.name: "required"}
                )
            return None

        try:
            value = self.convert_value(value)
        except ValueError as e:
            raise ValidationError(
                f"Field '{self.name}' expects type '{self.type}': {e}", {self.name: str(e)}
            ) from e

        if self.validator is not None:
            try:
                result = self.validator(value)
            except (ValueError, TypeError) as e:
                raise ValidationError(
                    f"Field '{self.name}' failed validation: {e}", {self.name: str(e)}
                ) from e
            if result is not None:
                value = result

        return value
