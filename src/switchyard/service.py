"""Service boundary: one backend plus the request-shaped operations on top of it.

This is what a transport layer (or the CLI) calls. Query strings and parameter
mappings arrive here and are turned into filters, overlays and joins.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from switchyard.backends import Backend, Capability, MetaIndex, new_backend, parse_join_spec
from switchyard.backends.meta_index import is_join_spec
from switchyard.dal.collection import Collection
from switchyard.dal.delta import SchemaDelta
from switchyard.dal.record import Record, RecordSet
from switchyard.exceptions import (
    BatchError,
    CollectionNotFoundError,
    InvalidInputError,
    SwitchyardError,
)
from switchyard.filter.filter import Aggregate, Aggregation, Filter
from switchyard.filter.generators import CompiledQuery, get_generator, render
from switchyard.mapper.model import Model

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///./switchyard.db"
DEFAULT_RESULT_LIMIT = 25


def get_backend_url(url: str | None = None) -> str:
    """Resolve the backend URL.

    Priority:
    1. Explicit URL argument
    2. SWITCHYARD_URL environment variable
    3. Default: sqlite:///./switchyard.db
    """
    if url:
        return url
    if env_url := os.getenv("SWITCHYARD_URL"):
        return env_url
    return DEFAULT_DATABASE_URL


def _split(value: str | Iterable[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    return [str(v) for v in value]


def load_schemata(path: str | Path) -> list[Collection]:
    """Load collection definitions from a JSON file or a directory of them.

    A file holds either one collection object or a list of them.

    Raises:
        InvalidInputError: If a file cannot be read or does not describe collections
    """
    path = Path(path)
    files = sorted(path.glob("*.json")) if path.is_dir() else [path]

    collections: list[Collection] = []
    for file in files:
        try:
            data = json.loads(file.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise InvalidInputError(str(file), f"Cannot read schema file '{file}': {e}") from e

        items = data if isinstance(data, list) else [data]
        for item in items:
            try:
                collections.append(Collection.model_validate(item))
            except PydanticValidationError as e:
                raise InvalidInputError(
                    str(file), f"Invalid collection definition in '{file}': {e}"
                ) from e

        logger.info("Loaded %d collection(s) from %s", len(items), file)

    return collections


class DataService:
    """Request-level operations against a single backend.

    Example:
        service = DataService("sqlite:///./app.db", schema_path="schema/")
        users = service.query("users", "age/gt/30", {"sort": "-age"})
    """

    def __init__(
        self,
        url: str | None = None,
        echo: bool = False,
        schema_path: str | Path | None = None,
        backend: Backend | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            url: Backend URL; see ``get_backend_url``
            echo: Echo SQL statements (SQL backends only)
            schema_path: Optional schema file or directory to register at startup
            backend: Use this backend instead of creating one from ``url``
        """
        self.backend = backend or new_backend(get_backend_url(url), echo=echo)
        self.backend.initialize()

        schema_path = schema_path or os.getenv("SWITCHYARD_SCHEMA")
        if schema_path:
            for collection in load_schemata(schema_path):
                self.backend.register_collection(collection)

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> DataService:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    # --- collections --------------------------------------------------------

    def collection(
        self,
        name: str,
        index: str | None = None,
        keys: str | list[str] | None = None,
        joiner: str | None = None,
    ) -> Collection:
        """Look up a collection, with optional request-scoped index overrides.

        The registered definition is preferred; otherwise the backend is asked.

        Raises:
            CollectionNotFoundError: If the backend has no such collection
        """
        collection = self.backend.registry.get(name) or self.backend.get_collection(name)
        return collection.overlay(
            index_name=index,
            index_compound_fields=_split(keys) or None,
            index_compound_field_joiner=joiner,
        )

    def list_collections(self) -> list[str]:
        return self.backend.list_collections()

    def create_collections(self, collections: list[Collection]) -> list[str]:
        """Create several collections.

        With exactly one collection its error is raised as-is. With more, every
        collection is attempted; created ones stay created and the failures are
        raised together.

        Returns:
            Names of the created collections

        Raises:
            BatchError: If any collection of a batch failed
        """
        if len(collections) == 1:
            self.backend.create_collection(collections[0])
            return [collections[0].name]

        created: list[str] = []
        errors: dict[str, SwitchyardError] = {}
        for collection in collections:
            try:
                self.backend.create_collection(collection)
                created.append(collection.name)
            except SwitchyardError as e:
                logger.warning("Failed to create collection '%s': %s", collection.name, e)
                errors[collection.name] = e

        if errors:
            raise BatchError(errors, created)
        return created

    def drop_collection(self, name: str) -> None:
        self.backend.delete_collection(name)

    def migrate(self, name: str, apply: bool = False) -> list[SchemaDelta]:
        """Compare the registered definition of ``name`` with the backend.

        A missing collection is created. With ``apply`` the deltas are handed to the
        backend's migrator, which raises if it cannot apply all of them.

        Returns:
            The deltas found (before applying)

        Raises:
            CollectionNotFoundError: If no definition is registered under ``name``
            UnsupportedOperationError: If ``apply`` is set and the backend cannot migrate
        """
        desired = self.backend.registry.get(name)
        if desired is None:
            raise CollectionNotFoundError(name, self.backend.registry.names())

        try:
            actual = self.backend.get_collection(name)
        except CollectionNotFoundError:
            self.backend.create_collection(desired)
            logger.info("Created collection '%s'", name)
            return []

        deltas = desired.diff(actual) or []
        if deltas and apply:
            migrator = self.backend.require(Capability.MIGRATABLE)
            migrator.migrate(desired, deltas)
            logger.info("Applied %d change(s) to '%s'", len(deltas), name)
        return deltas

    def model(self, collection: Collection | str) -> Model:
        if isinstance(collection, str):
            collection = self.collection(collection)
        return Model(self.backend, collection)

    # --- records ------------------------------------------------------------

    def retrieve(self, name: str, record_id: Any, fields: list[str] | None = None) -> Record:
        return self.backend.retrieve(name, record_id, fields)

    def insert(self, name: str, values: list[Any]) -> RecordSet:
        collection = self.collection(name)
        records = RecordSet.of(*(collection.make_record(v) for v in values))
        self.backend.insert(name, records)
        return records

    def delete(self, name: str, *ids: Any) -> None:
        self.backend.delete(name, *ids)

    # --- queries ------------------------------------------------------------

    def filter_from_params(
        self,
        query: str | Mapping[str, Any] | Filter | None = None,
        params: Mapping[str, Any] | None = None,
        default_limit: int | None = DEFAULT_RESULT_LIMIT,
    ) -> Filter:
        """Build a filter from a query and request parameters.

        ``query`` is a path-grammar string, a flat mapping or a Filter. Recognised
        params: ``limit``, ``offset``, ``sort`` and ``fields`` (comma-separated or
        lists) and ``identity_only``.
        """
        params = params or {}

        if isinstance(query, Filter):
            flt = query.copy()
        elif isinstance(query, Mapping):
            flt = Filter.from_map(dict(query))
        else:
            flt = Filter.parse(query or "")

        changes: dict[str, Any] = {}
        try:
            if params.get("limit") is not None:
                changes["limit"] = int(params["limit"])
            if params.get("offset") is not None:
                changes["offset"] = int(params["offset"])
        except (TypeError, ValueError) as e:
            raise InvalidInputError(params, f"limit and offset must be integers: {e}") from e
        if sort := _split(params.get("sort")):
            changes["sort"] = sort
        if fields := _split(params.get("fields")):
            changes["fields"] = fields
        if params.get("identity_only"):
            changes["identity_only"] = True

        if changes:
            flt = flt.copy(**changes)
        return flt.with_default_limit(default_limit)

    def query(
        self,
        spec: str,
        query: str | Mapping[str, Any] | Filter | None = None,
        params: Mapping[str, Any] | None = None,
    ) -> RecordSet:
        """Query one collection, or two joined ones with ``"left.x:right.y"``.

        Raises:
            InvalidJoinError: If the join names more than two collections
            UnsupportedOperationError: If the backend cannot search
        """
        params = params or {}

        if is_join_spec(spec):
            # validated before anything reaches the backend
            join = parse_join_spec(spec)
            left = self.collection(join.left.collection)
            right = self.collection(join.right.collection)
            search = self.backend.require(Capability.SEARCH)
            index = MetaIndex(join, search, search, right)
            return index.query(left, self.filter_from_params(query, params))

        collection = self.collection(
            spec, params.get("index"), params.get("keys"), params.get("joiner")
        )
        search = self.backend.require(Capability.SEARCH)
        return search.query(collection, self.filter_from_params(query, params))

    def aggregate(
        self,
        name: str,
        fields: list[str],
        functions: list[str] | None = None,
        query: str | Mapping[str, Any] | Filter | None = None,
    ) -> dict[str, dict[str, float]]:
        """Scalar aggregates of several fields.

        Returns:
            ``{field: {function: value}}``

        Raises:
            UnsupportedOperationError: If the backend cannot aggregate
        """
        collection = self.collection(name)
        aggregator = self.backend.require(Capability.AGGREGATOR)
        flt = self.filter_from_params(query, default_limit=None)

        try:
            aggregations = [Aggregation(fn) for fn in (functions or Aggregation.values())]
        except ValueError as e:
            raise InvalidInputError(
                functions, f"Unknown aggregation. Use one of: {', '.join(Aggregation.values())}"
            ) from e

        results: dict[str, dict[str, float]] = {}
        for field in fields:
            collection.require_field(field)
            values: dict[str, float] = {}
            for aggregation in aggregations:
                match aggregation:
                    case Aggregation.COUNT:
                        values[aggregation.value] = aggregator.count(collection, flt)
                    case Aggregation.SUM:
                        values[aggregation.value] = aggregator.sum(collection, field, flt)
                    case Aggregation.MINIMUM:
                        values[aggregation.value] = aggregator.minimum(collection, field, flt)
                    case Aggregation.MAXIMUM:
                        values[aggregation.value] = aggregator.maximum(collection, field, flt)
                    case Aggregation.AVERAGE:
                        values[aggregation.value] = aggregator.average(collection, field, flt)
            results[field] = values
        return results

    def group_by(
        self,
        name: str,
        group_by: list[str],
        aggregates: list[Aggregate],
        query: str | Mapping[str, Any] | Filter | None = None,
    ) -> RecordSet:
        collection = self.collection(name)
        aggregator = self.backend.require(Capability.AGGREGATOR)
        return aggregator.group_by(
            collection, group_by, aggregates, self.filter_from_params(query, default_limit=None)
        )

    def list_values(
        self,
        name: str,
        fields: list[str],
        query: str | Mapping[str, Any] | Filter | None = None,
    ) -> dict[str, list[Any]]:
        collection = self.collection(name)
        search = self.backend.require(Capability.SEARCH)
        return search.list_values(
            collection, fields, self.filter_from_params(query, default_limit=None)
        )

    def explain(
        self,
        name: str,
        query: str | Mapping[str, Any] | Filter | None = None,
        dialect: str = "sqlite",
        params: Mapping[str, Any] | None = None,
    ) -> CompiledQuery:
        """Render a query for a generator without executing it."""
        collection = self.collection(name)
        flt = self.filter_from_params(query, params)
        return render(get_generator(dialect), collection, flt)
