"""Schema and record types shared by every backend."""

from switchyard.dal.collection import (
    DEFAULT_IDENTITY_FIELD,
    DEFAULT_IDENTITY_FIELD_TYPE,
    Collection,
    CollectionOptions,
)
from switchyard.dal.delta import DeltaType, SchemaDelta
from switchyard.dal.field import Field, FieldType, convert_value
from switchyard.dal.record import Record, RecordSet

__all__ = [
    "DEFAULT_IDENTITY_FIELD",
    "DEFAULT_IDENTITY_FIELD_TYPE",
    "Collection",
    "CollectionOptions",
    "DeltaType",
    "Field",
    "FieldType",
    "Record",
    "RecordSet",
    "SchemaDelta",
    "convert_value",
]
