"""Switchyard - a backend-agnostic data access layer.

Collections describe records once; the same filter grammar then queries a SQL
database, an in-process store or an Elasticsearch index.

Example:
    from switchyard import Collection, DataService, Field, FieldType, Filter

    service = DataService("sqlite:///./app.db")
    users = service.model(
        Collection(
            name="users",
            fields=(
                Field(name="email", type=FieldType.STRING, required=True),
                Field(name="age", type=FieldType.INT),
            ),
        )
    )
    users.migrate()
    users.create({"email": "a@example.com", "age": 30})

    adults = users.find(Filter.parse("age/gte/21"))
    total = users.count()
"""

from switchyard.backends import (
    Backend,
    Capability,
    MemoryBackend,
    MetaIndex,
    SqlBackend,
    new_backend,
    parse_join_spec,
)
from switchyard.dal import (
    Collection,
    CollectionOptions,
    DeltaType,
    Field,
    FieldType,
    Record,
    RecordSet,
    SchemaDelta,
)
from switchyard.exceptions import (
    BatchError,
    CollectionExistsError,
    CollectionNotFoundError,
    ExistsError,
    InvalidInputError,
    InvalidJoinError,
    NotFoundError,
    ParseError,
    PopulationError,
    QueryError,
    RecordNotFoundError,
    SchemaMismatchError,
    SwitchyardError,
    UnknownFieldError,
    UnsupportedOperationError,
    ValidationError,
)
from switchyard.filter import (
    Aggregate,
    Aggregation,
    CompiledQuery,
    Condition,
    Filter,
    Operator,
    render,
)
from switchyard.mapper import FieldBinding, Model, register_binding
from switchyard.service import DataService, load_schemata

__version__ = "0.1.0"

__all__ = [
    # Service
    "DataService",
    "load_schemata",
    # Schema and records
    "Collection",
    "CollectionOptions",
    "DeltaType",
    "Field",
    "FieldType",
    "Record",
    "RecordSet",
    "SchemaDelta",
    # Filters
    "Aggregate",
    "Aggregation",
    "CompiledQuery",
    "Condition",
    "Filter",
    "Operator",
    "render",
    # Mapping
    "FieldBinding",
    "Model",
    "register_binding",
    # Backends
    "Backend",
    "Capability",
    "MemoryBackend",
    "MetaIndex",
    "SqlBackend",
    "new_backend",
    "parse_join_spec",
    # Exceptions
    "SwitchyardError",
    "NotFoundError",
    "CollectionNotFoundError",
    "RecordNotFoundError",
    "ExistsError",
    "CollectionExistsError",
    "InvalidInputError",
    "UnknownFieldError",
    "UnsupportedOperationError",
    "SchemaMismatchError",
    "PopulationError",
    "ParseError",
    "InvalidJoinError",
    "ValidationError",
    "QueryError",
    "BatchError",
]
