"""Mapping between application values and records."""

from switchyard.mapper.binding import (
    Binding,
    FieldBinding,
    binding_for,
    make_record,
    populate,
    register_binding,
)
from switchyard.mapper.model import Model

__all__ = [
    "Binding",
    "FieldBinding",
    "Model",
    "binding_for",
    "make_record",
    "populate",
    "register_binding",
]
