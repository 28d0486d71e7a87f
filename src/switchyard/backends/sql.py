"""Relational backend on top of SQLAlchemy.

Tables are created from collection definitions with SQLAlchemy Core, and the actual
schema is read back through the inspector so it can be diffed against the desired one.
Filtered reads and aggregates go through the SQL generator.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    LargeBinary,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    bindparam,
    func,
    inspect,
    select,
    text,
)
from sqlalchemy.engine import CursorResult
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.sql.elements import TextClause
from sqlalchemy.types import TypeEngine

from switchyard.backends.base import Backend, Migratable, Search, as_records
from switchyard.backends.sql_aggregator import SqlAggregator
from switchyard.core.connection import DatabaseConnection
from switchyard.dal.collection import Collection
from switchyard.dal.delta import DeltaType, SchemaDelta
from switchyard.dal.field import Field, FieldType
from switchyard.dal.record import Record, RecordSet
from switchyard.exceptions import (
    CollectionExistsError,
    CollectionNotFoundError,
    ExistsError,
    InvalidInputError,
    QueryError,
    RecordNotFoundError,
    SchemaMismatchError,
    SwitchyardError,
)
from switchyard.filter.filter import Filter
from switchyard.filter.generators import CompiledQuery, SqlGenerator, render
from switchyard.filter.plan import plan

logger = logging.getLogger(__name__)
querylog = logging.getLogger("switchyard.query")

# Mapping from field types to SQLAlchemy column types
FIELD_TYPE_MAP: dict[FieldType, Callable[[Field], TypeEngine[Any]]] = {
    FieldType.STRING: lambda f: String(f.length) if f.length else Text(),
    FieldType.INT: lambda f: Integer(),
    FieldType.FLOAT: lambda f: Float(),
    FieldType.BOOL: lambda f: Boolean(),
    FieldType.TIME: lambda f: DateTime(timezone=True),
    FieldType.BYTES: lambda f: LargeBinary(),
    FieldType.OBJECT: lambda f: JSON(),
    FieldType.ARRAY: lambda f: JSON(),
}

# Reflected column classes, most specific first, with the field types each can hold
_STORAGE_CLASSES: list[tuple[type[TypeEngine[Any]], FieldType, set[FieldType]]] = [
    (Boolean, FieldType.BOOL, {FieldType.BOOL}),
    (Integer, FieldType.INT, {FieldType.INT, FieldType.BOOL}),
    (Numeric, FieldType.FLOAT, {FieldType.FLOAT}),
    (DateTime, FieldType.TIME, {FieldType.TIME}),
    (LargeBinary, FieldType.BYTES, {FieldType.BYTES}),
    (JSON, FieldType.OBJECT, {FieldType.OBJECT, FieldType.ARRAY}),
    (String, FieldType.STRING, {FieldType.STRING}),
]


def reflect_field_type(column_type: TypeEngine[Any], hint: FieldType | None = None) -> FieldType:
    """Map a reflected column type to a field type.

    ``hint`` is the registered type; it wins whenever the column can hold it, since
    several field types share one storage class (e.g. object and array in JSON).
    """
    for storage_class, field_type, holds in _STORAGE_CLASSES:
        if isinstance(column_type, storage_class):
            if hint is not None and hint in holds:
                return hint
            return field_type
    return hint or FieldType.STRING


def _column_type(field: Field) -> TypeEngine[Any]:
    return FIELD_TYPE_MAP.get(field.type, FIELD_TYPE_MAP[FieldType.STRING])(field)


def _identity_column_type(collection: Collection) -> TypeEngine[Any]:
    # keys need a bounded length on MySQL
    if collection.identity_field_type == FieldType.STRING:
        return String(255)
    return _column_type(collection.identity_as_field())


def _statement(compiled: CompiledQuery) -> TextClause:
    """Wrap rendered SQL so bound values go through their column type's processors."""
    typed = [
        bindparam(name, type_=_column_type(field))
        for name, field in compiled.typed().items()
        if field.type not in (FieldType.OBJECT, FieldType.ARRAY)
    ]
    statement = text(compiled.statement)
    return statement.bindparams(*typed) if typed else statement


class SqlBackend(SqlAggregator, Search, Migratable, Backend):
    """Stores each collection in its own table."""

    def __init__(self, url: str, echo: bool = False) -> None:
        super().__init__()
        self._connection = DatabaseConnection(url, echo=echo)
        self._generator: SqlGenerator | None = None

    def __repr__(self) -> str:
        return f"SqlBackend({self._connection.url!r})"

    @property
    def connection(self) -> DatabaseConnection:
        return self._connection

    @property
    def generator(self) -> SqlGenerator:
        if self._generator is None:
            self._generator = SqlGenerator(self._connection.dialect)
        return self._generator

    def initialize(self) -> None:
        self._connection.test_connection()

    def close(self) -> None:
        self._connection.close()

    # --- schema -------------------------------------------------------------

    def _table_exists(self, name: str) -> bool:
        return inspect(self._connection.engine).has_table(name)

    def _build_table(self, collection: Collection) -> Table:
        columns: list[Column[Any]] = []

        if collection.identity_field:
            if collection.identity_field_type == FieldType.INT:
                columns.append(
                    Column(collection.identity_field, Integer, primary_key=True, autoincrement=True)
                )
            else:
                columns.append(
                    Column(
                        collection.identity_field,
                        _identity_column_type(collection),
                        primary_key=True,
                    )
                )

        for field in collection.fields:
            if collection.is_identity(field.name):
                continue
            columns.append(
                Column(
                    field.name,
                    _column_type(field),
                    nullable=not field.required,
                    unique=field.unique or None,
                )
            )

        # fresh metadata per table avoids cross-collection conflicts
        return Table(collection.name, MetaData(), *columns)

    def create_collection(self, collection: Collection) -> None:
        if self._table_exists(collection.name):
            raise CollectionExistsError(collection.name)

        table = self._build_table(collection)
        try:
            with self._connection.engine.begin() as conn:
                table.create(conn)
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to create collection '{collection.name}': {e}") from e

        self.register_collection(collection)
        logger.info("Created collection '%s'", collection.name)

    def get_collection(self, name: str) -> Collection:
        """Read the actual schema of a table.

        Index settings and field metadata that tables do not store (defaults,
        validators, descriptions) come from the registered definition, if any.
        """
        inspector = inspect(self._connection.engine)
        if not inspector.has_table(name):
            raise CollectionNotFoundError(name, self.list_collections())

        registered = self.registry.get(name)
        pk_columns = inspector.get_pk_constraint(name).get("constrained_columns") or []
        identity_field = pk_columns[0] if pk_columns else ""
        identity_type = FieldType.INT

        fields = []
        for column in inspector.get_columns(name):
            registered_field = registered.get_field(column["name"]) if registered else None
            hint = registered_field.type if registered_field else None

            if column["name"] == identity_field:
                identity_hint = registered.identity_field_type if registered else None
                identity_type = reflect_field_type(column["type"], identity_hint)
                continue

            extras = {}
            if registered_field is not None:
                extras = registered_field.model_dump(
                    include={"length", "unique", "default", "description", "identity"}
                )
                extras["validator"] = registered_field.validator

            fields.append(
                Field(
                    name=column["name"],
                    type=reflect_field_type(column["type"], hint),
                    required=not column.get("nullable", True),
                    **extras,
                )
            )

        actual = {
            "fields": tuple(fields),
            "identity_field": identity_field,
            "identity_field_type": identity_type,
        }
        if registered is not None:
            return registered.model_copy(update=actual)
        return Collection(name=name, **actual)

    def delete_collection(self, name: str) -> None:
        if not self._table_exists(name):
            raise CollectionNotFoundError(name, self.list_collections())

        table = Table(name, MetaData())
        with self._connection.engine.begin() as conn:
            table.drop(conn)
        self.registry.unregister(name)
        logger.info("Dropped collection '%s'", name)

    def list_collections(self) -> list[str]:
        return sorted(inspect(self._connection.engine).get_table_names())

    def migrate(self, collection: Collection, deltas: list[SchemaDelta]) -> None:
        """Apply deltas that can be applied without rewriting data.

        Only missing, nullable fields can be added. If any delta is of another
        kind nothing is applied.

        Raises:
            SchemaMismatchError: Listing the deltas that cannot be applied
        """
        unsupported = [
            d
            for d in deltas
            if d.type is not DeltaType.FIELD_MISSING or (d.desired or {}).get("required")
        ]
        if unsupported:
            raise SchemaMismatchError(collection.name, unsupported)

        engine = self._connection.engine
        with engine.begin() as conn:
            for delta in deltas:
                field = collection.require_field(delta.field or "")
                column_type = _column_type(field).compile(dialect=engine.dialect)
                statement = (
                    f"ALTER TABLE {self.generator.quote(collection.name)} "
                    f"ADD COLUMN {self.generator.quote(field.name)} {column_type}"
                )
                querylog.debug("[%r] %s", self, statement)
                conn.execute(text(statement))
                logger.info("Added column '%s' to '%s'", field.name, collection.name)

        self.register_collection(collection)

    # --- records ------------------------------------------------------------

    def _collection(self, name: str) -> Collection:
        return self.registry.get(name) or self.get_collection(name)

    def _identity_column(self, table: Table, collection: Collection) -> Column[Any]:
        if not collection.identity_field:
            raise InvalidInputError(
                collection.name, f"Collection '{collection.name}' has no identity field"
            )
        return table.c[collection.identity_field]

    def _convert_id(self, collection: Collection, record_id: Any) -> Any:
        try:
            return collection.identity_as_field().convert_value(record_id)
        except ValueError as e:
            raise InvalidInputError(
                record_id, f"Identity {record_id!r} is not a valid {collection.identity_field_type}"
            ) from e

    def row_to_record(
        self, collection: Collection, row: dict[str, Any], fields: list[str] | None = None
    ) -> Record:
        """Build a Record from a result row, coercing values to field types."""
        record = Record()
        for key, value in row.items():
            if collection.is_identity(key):
                record.id = collection.identity_as_field().convert_value(value)
                continue
            if fields and key not in fields:
                continue
            field = collection.get_field(key)
            try:
                record.fields[key] = field.convert_value(value) if field else value
            except ValueError as e:
                raise QueryError(
                    f"Column '{key}' of '{collection.name}' holds {value!r}, "
                    f"which is not a valid {field.type if field else 'value'}: {e}"
                ) from e
        return record

    def insert(self, name: str, records: RecordSet | Record | Iterable[Record]) -> None:
        collection = self._collection(name)
        table = self._build_table(collection)
        originals = as_records(records)
        prepared = [collection.prepare_record(r) for r in originals]

        assigned: list[tuple[Record, Any]] = []
        try:
            with self._connection.engine.begin() as conn:
                for original, record in zip(originals, prepared, strict=True):
                    values = dict(record.fields)
                    if collection.identity_field:
                        if record.id is None and collection.identity_field_type == FieldType.STRING:
                            record.id = str(uuid4())
                        if record.id is not None:
                            values[collection.identity_field] = record.id

                    result = conn.execute(table.insert().values(values))

                    if collection.identity_field:
                        new_id = record.id
                        if new_id is None:
                            new_id = result.inserted_primary_key[0]
                        assigned.append((original, new_id))
        except IntegrityError as e:
            raise ExistsError(f"Insert into '{name}' violates a constraint: {e.orig}") from e
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to insert into '{name}': {e}") from e

        # ids reach the caller only once the whole batch is committed
        for original, new_id in assigned:
            original.id = new_id

    def update(self, name: str, records: RecordSet | Record | Iterable[Record]) -> None:
        collection = self._collection(name)
        table = self._build_table(collection)
        id_column = self._identity_column(table, collection)

        prepared = []
        for record in as_records(records):
            if record.id is None:
                raise InvalidInputError(record, f"Cannot update a record of '{name}' without an id")
            prepared.append(collection.prepare_record(record, partial=True))

        try:
            with self._connection.engine.begin() as conn:
                for record in prepared:
                    if not record.fields:
                        continue
                    result: CursorResult[Any] = conn.execute(
                        table.update().where(id_column == record.id).values(record.fields)
                    )
                    if result.rowcount == 0:
                        raise RecordNotFoundError(record.id, name)
        except SwitchyardError:
            raise
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to update '{name}': {e}") from e

    def retrieve(self, name: str, record_id: Any, fields: list[str] | None = None) -> Record:
        collection = self._collection(name)
        table = self._build_table(collection)
        id_column = self._identity_column(table, collection)

        columns = [id_column]
        if fields:
            columns.extend(
                table.c[collection.require_field(f).name]
                for f in fields
                if not collection.is_identity(f)
            )
        else:
            columns = list(table.c)

        try:
            with self._connection.engine.connect() as conn:
                row = conn.execute(
                    select(*columns).where(id_column == self._convert_id(collection, record_id))
                ).mappings().first()
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to retrieve from '{name}': {e}") from e

        if row is None:
            raise RecordNotFoundError(record_id, name)
        return self.row_to_record(collection, dict(row))

    def exists(self, name: str, record_id: Any) -> bool:
        collection = self._collection(name)
        table = self._build_table(collection)
        id_column = self._identity_column(table, collection)

        try:
            with self._connection.engine.connect() as conn:
                count = conn.execute(
                    select(func.count())
                    .select_from(table)
                    .where(id_column == self._convert_id(collection, record_id))
                ).scalar()
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to check '{name}': {e}") from e
        return bool(count)

    def delete(self, name: str, *ids: Any) -> None:
        """Delete records by identity, or every record matching a single Filter."""
        collection = self._collection(name)

        if len(ids) == 1 and isinstance(ids[0], Filter):
            self.delete_where(collection, ids[0])
            return

        table = self._build_table(collection)
        id_column = self._identity_column(table, collection)
        converted = [self._convert_id(collection, i) for i in ids]
        if not converted:
            return

        try:
            with self._connection.engine.begin() as conn:
                conn.execute(table.delete().where(id_column.in_(converted)))
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to delete from '{name}': {e}") from e

    def delete_where(self, collection: Collection, flt: Filter) -> None:
        compiled = self.generator.render_delete(plan(collection, flt))
        querylog.debug("[%r] %s %r", self, compiled.statement, compiled.params)
        try:
            with self._connection.engine.begin() as conn:
                conn.execute(_statement(compiled), compiled.bind())
        except SQLAlchemyError as e:
            raise QueryError(f"Failed to delete from '{collection.name}': {e}") from e

    # --- search -------------------------------------------------------------

    def execute(
        self,
        compiled: CompiledQuery,
        extract: Callable[[CursorResult[Any]], Any] | None = None,
    ) -> Any:
        """Run a rendered statement; ``extract`` reads the open cursor.

        Without ``extract`` all rows are returned as dicts.
        """
        querylog.debug("[%r] %s %r", self, compiled.statement, compiled.params)
        try:
            with self._connection.engine.connect() as conn:
                result = conn.execute(_statement(compiled), compiled.bind())
                if extract is not None:
                    return extract(result)
                return [dict(row) for row in result.mappings()]
        except SwitchyardError:
            raise
        except SQLAlchemyError as e:
            raise QueryError(
                f"Failed to execute query: {e}", {"statement": compiled.statement}
            ) from e

    def query(self, collection: Collection, flt: Filter) -> RecordSet:
        compiled = render(self.generator, collection, flt)
        rows = self.execute(compiled)

        recordset = RecordSet.of(*(self.row_to_record(collection, row) for row in rows))
        limit = flt.effective_limit()
        if limit:
            recordset.records_per_page = limit
            recordset.page = flt.offset // limit + 1
        return recordset

    def list_values(
        self, collection: Collection, field_names: list[str], flt: Filter
    ) -> dict[str, list[Any]]:
        query_plan = plan(collection, flt)
        values: dict[str, list[Any]] = {}

        for name in field_names:
            field = collection.require_field(name)
            compiled = self.generator.render_distinct(query_plan, field.name)
            rows = self.execute(compiled, lambda result: [row[0] for row in result])
            values[name] = [field.convert_value(v) for v in rows]

        return values
