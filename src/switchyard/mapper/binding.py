"""Declarative binding tables between application types and collection records.

A binding maps application attributes to collection field names. Tables are built
once per type, either explicitly with ``register_binding`` or from dataclass field
metadata the first time an instance of that dataclass is mapped::

    @dataclass
    class User:
        key: int = field(default=0, metadata={"name": "id", "identity": True})
        email: str = ""
        nickname: str = field(default="", metadata={"omit_empty": True})
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import typing
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from switchyard.dal.record import Record
from switchyard.exceptions import InvalidInputError, PopulationError

if TYPE_CHECKING:
    from switchyard.dal.collection import Collection

logger = logging.getLogger(__name__)

# Attribute name that is treated as the identity when nothing else claims it
FALLBACK_IDENTITY_ATTRIBUTE = "ID"

_ZERO_VALUES: dict[Any, Any] = {
    int: 0,
    float: 0.0,
    str: "",
    bool: False,
    bytes: b"",
    list: [],
    dict: {},
    tuple: (),
}


def zero_value(annotation: Any) -> Any:
    """Zero value for a declared type; None for optionals and unknown types."""
    origin = typing.get_origin(annotation) or annotation
    return _ZERO_VALUES.get(origin)


@dataclass(frozen=True)
class FieldBinding:
    """One attribute <-> field name pair."""

    attribute: str
    name: str
    identity: bool = False
    omit_empty: bool = False
    zero: Any = None

    def is_empty(self, value: Any) -> bool:
        return value is None or value == self.zero


class Binding:
    """The binding table for one application type."""

    def __init__(self, target_type: type, fields: Iterable[FieldBinding]) -> None:
        self.target_type = target_type
        self.fields: tuple[FieldBinding, ...] = tuple(fields)
        self._by_name = {fb.name: fb for fb in self.fields}

    def __repr__(self) -> str:
        return f"Binding({self.target_type.__name__}, {[fb.name for fb in self.fields]})"

    def by_name(self, name: str) -> FieldBinding | None:
        return self._by_name.get(name)

    def identity_binding(self, collection: Collection) -> FieldBinding | None:
        """Resolve which attribute carries the identity.

        Precedence: explicit ``identity=True``, then the attribute bound to the
        collection's identity field name, then an attribute literally named ``ID``.
        """
        for fb in self.fields:
            if fb.identity:
                return fb
        if collection.identity_field:
            if fb := self.by_name(collection.identity_field):
                return fb
        for fb in self.fields:
            if fb.attribute == FALLBACK_IDENTITY_ATTRIBUTE:
                return fb
        return None

    def new_instance(self) -> Any:
        """Create a zero-valued instance of the bound type."""
        return self.target_type()

    @classmethod
    def from_dataclass(cls, target_type: type) -> Binding:
        """Build a table from dataclass fields and their ``metadata``.

        Recognised metadata keys: ``name`` (defaults to the attribute name),
        ``identity``, ``omit_empty``, and ``skip`` to leave the attribute unbound.
        """
        if not dataclasses.is_dataclass(target_type):
            raise InvalidInputError(
                target_type, f"Type '{target_type.__name__}' is not a dataclass"
            )

        hints = typing.get_type_hints(target_type)
        bindings = []

        for dc_field in dataclasses.fields(target_type):
            meta = dc_field.metadata
            if meta.get("skip"):
                continue
            bindings.append(
                FieldBinding(
                    attribute=dc_field.name,
                    name=meta.get("name", dc_field.name),
                    identity=bool(meta.get("identity", False)),
                    omit_empty=bool(meta.get("omit_empty", False)),
                    zero=zero_value(hints.get(dc_field.name)),
                )
            )

        return cls(target_type, bindings)


class BindingRegistry:
    """Process-wide binding tables, keyed by application type."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._bindings: dict[type, Binding] = {}

    def register(self, binding: Binding) -> Binding:
        with self._lock:
            self._bindings[binding.target_type] = binding
        logger.debug("Registered %r", binding)
        return binding

    def lookup(self, target_type: type) -> Binding | None:
        binding = self._bindings.get(target_type)
        if binding is None and dataclasses.is_dataclass(target_type):
            binding = self.register(Binding.from_dataclass(target_type))
        return binding


_registry = BindingRegistry()


def register_binding(target_type: type, *fields: FieldBinding) -> Binding:
    """Register an explicit binding table for ``target_type``.

    Without ``fields`` the type must be a dataclass and its metadata is used.
    """
    if fields:
        binding = Binding(target_type, fields)
    else:
        binding = Binding.from_dataclass(target_type)
    return _registry.register(binding)


def binding_for(target_type: type) -> Binding | None:
    return _registry.lookup(target_type)


def make_record(collection: Collection, value: Any) -> Record:
    """Convert an application value into a Record for ``collection``.

    Raises:
        InvalidInputError: If the value is None or of a type with no binding
    """
    if value is None or isinstance(value, type):
        raise InvalidInputError(value)

    if isinstance(value, Record):
        fields = {k: v for k, v in value.fields.items() if not collection.is_identity(k)}
        return Record(id=value.id, fields=fields)

    if isinstance(value, Mapping):
        return _record_from_mapping(collection, value)

    binding = binding_for(type(value))
    if binding is None:
        raise InvalidInputError(value)

    record = Record()
    for fb in binding.fields:
        field_value = getattr(value, fb.attribute)
        if fb.omit_empty and fb.is_empty(field_value):
            continue
        if collection.has_field(fb.name):
            record.fields[fb.name] = field_value

    identity = binding.identity_binding(collection)
    if identity is not None:
        identity_value = getattr(value, identity.attribute)
        if not (identity.omit_empty and identity.is_empty(identity_value)):
            record.id = identity_value
        record.fields.pop(identity.name, None)

    return record


def _record_from_mapping(collection: Collection, value: Mapping[str, Any]) -> Record:
    record = Record()
    for key, field_value in value.items():
        if collection.has_field(key) and not collection.is_identity(key):
            record.fields[key] = field_value

    if collection.identity_field and collection.identity_field in value:
        record.id = value[collection.identity_field]
    elif FALLBACK_IDENTITY_ATTRIBUTE in value:
        record.id = value[FALLBACK_IDENTITY_ATTRIBUTE]

    return record


def _coerce(collection: Collection, name: str, value: Any, target: Any) -> Any:
    field = collection.get_field(name)
    if field is None:
        if not collection.is_identity(name):
            return value
        field = collection.identity_as_field()
    try:
        return field.convert_value(value)
    except ValueError as e:
        raise PopulationError(name, target, str(e)) from e


def populate(record: Record, target: Any, collection: Collection) -> Any:
    """Fill ``target`` with the values of ``record``.

    ``target`` may be a bound instance, a mutable mapping or another Record.

    Raises:
        PopulationError: If a value cannot be coerced to the field's type
        InvalidInputError: If the target cannot be written to
    """
    if target is None or isinstance(target, type):
        raise InvalidInputError(target, "Populate target must be an instance, not a type")

    if isinstance(target, Record):
        target.id = record.id
        target.fields.update(record.fields)
        return target

    if isinstance(target, dict):
        for key, value in record.fields.items():
            target[key] = _coerce(collection, key, value, target)
        if collection.identity_field:
            target[collection.identity_field] = _coerce(
                collection, collection.identity_field, record.id, target
            )
        return target

    binding = binding_for(type(target))
    if binding is None:
        raise InvalidInputError(target)

    identity = binding.identity_binding(collection)

    for key, value in record.fields.items():
        fb = binding.by_name(key)
        if fb is None or fb is identity:
            continue
        setattr(target, fb.attribute, _coerce(collection, key, value, target))

    if identity is not None and record.id is not None:
        id_name = collection.identity_field or identity.name
        setattr(target, identity.attribute, _coerce(collection, id_name, record.id, target))

    return target
