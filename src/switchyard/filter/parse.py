"""Filter grammar: path strings and flat mappings.

Path grammar::

    all                              every record, no implicit limit
    status/is/active                 one condition
    status/eq/active/age/gt/21       conditions are ANDed
    status/is/active|pending         alternatives (IN)
    int:zip/prefix/94                type hint for the values

Mapping grammar::

    {"status": "active", "age": "gt:21", "tags": ["a", "b"], "deleted_at": None}
"""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import unquote

from switchyard.dal.field import FieldType, convert_value
from switchyard.exceptions import ParseError
from switchyard.filter.filter import Condition, Filter, Operator, lookup_operator

MATCH_ALL_QUERIES = {"", "all", "*"}
VALUE_SEPARATOR = "|"

_INT_PATTERN = re.compile(r"^-?\d+$")
_FLOAT_PATTERN = re.compile(r"^-?(\d+\.\d*|\.\d+|\d+)([eE][-+]?\d+)?$")


def autotype(value: str) -> Any:
    """Guess the scalar a query string value stands for."""
    lowered = value.lower()
    if lowered == "null":
        return None
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    if _INT_PATTERN.match(value):
        return int(value)
    if _FLOAT_PATTERN.match(value):
        return float(value)
    return value


def _split_field(raw: str, query: Any) -> tuple[str, FieldType | None]:
    if ":" in raw:
        prefix, name = raw.split(":", 1)
        if prefix in FieldType.values():
            if not name:
                raise ParseError(f"Missing field name after type '{prefix}'", query)
            return name, FieldType(prefix)
    if not raw:
        raise ParseError("Empty field name", query)
    return raw, None


def _typed(value: Any, field_type: FieldType | None, query: Any) -> Any:
    if field_type is None or value is None:
        return value
    try:
        return convert_value(field_type, value)
    except ValueError as e:
        raise ParseError(f"Value {value!r} is not a valid {field_type}: {e}", query) from e


def _parse_values(raw: str, field_type: FieldType | None, query: Any) -> tuple[Any, ...]:
    values = []
    for part in raw.split(VALUE_SEPARATOR):
        text = unquote(part)
        if text.lower() == "null":
            values.append(None)
        elif field_type is not None:
            values.append(_typed(text, field_type, query))
        else:
            values.append(autotype(text))
    return tuple(values)


def parse(query: str) -> Filter:
    """Parse the path grammar into a Filter.

    Raises:
        ParseError: On a dangling segment, an unknown operator or an untypeable value
    """
    if query is None:
        raise ParseError("Filter query must be a string, got None")

    text = query.strip().strip("/")
    if text in MATCH_ALL_QUERIES:
        return Filter.all()

    segments = text.split("/")
    if len(segments) % 3 != 0:
        raise ParseError(
            f"Filter query must be groups of field/operator/value, got {len(segments)} segments",
            query,
        )

    criteria = []
    for i in range(0, len(segments), 3):
        raw_field, raw_op, raw_value = segments[i : i + 3]
        name, field_type = _split_field(unquote(raw_field), query)

        operator = lookup_operator(raw_op)
        if operator is None:
            raise ParseError(f"Unknown operator '{raw_op}'", query)

        criteria.append(
            Condition(name, operator, _parse_values(raw_value, field_type, query), field_type)
        )

    return Filter(criteria=criteria)


def _condition_from_item(key: str, value: Any, data: Any) -> Condition:
    name, field_type = _split_field(key, data)
    operator = Operator.IS

    if isinstance(value, str) and ":" in value:
        prefix, rest = value.split(":", 1)
        if op := lookup_operator(prefix):
            operator = op
            value = autotype(rest) if field_type is None else rest

    if isinstance(value, (list, tuple, set, frozenset)):
        values = tuple(_typed(v, field_type, data) for v in value)
        if not values:
            raise ParseError(f"Empty value list for field '{name}'", data)
    elif isinstance(value, dict):
        raise ParseError(f"Nested mappings are not supported (field '{name}')", data)
    else:
        values = (_typed(value, field_type, data),)

    return Condition(name, operator, values, field_type)


def from_map(data: dict[str, Any]) -> Filter:
    """Build a Filter from a flat ``field -> value`` mapping.

    Raises:
        ParseError: On non-mapping input or unsupported value shapes
    """
    if not isinstance(data, dict):
        raise ParseError(f"Filter mapping must be a dict, got {type(data).__name__}", data)
    if not data:
        return Filter.all()

    return Filter(criteria=[_condition_from_item(str(k), v, data) for k, v in data.items()])
