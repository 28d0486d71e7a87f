"""Backend-specific statement generators."""

from __future__ import annotations

import logging

from switchyard.dal.collection import Collection
from switchyard.exceptions import UnsupportedOperationError
from switchyard.filter.filter import Filter
from switchyard.filter.generators.base import CompiledQuery, Generator
from switchyard.filter.generators.elasticsearch import ElasticsearchGenerator
from switchyard.filter.generators.sql import SUPPORTED_DIALECTS, SqlGenerator
from switchyard.filter.plan import plan

querylog = logging.getLogger("switchyard.query")


def get_generator(name: str) -> Generator:
    """Look up a generator by SQL dialect or backend family name."""
    if name in SUPPORTED_DIALECTS:
        return SqlGenerator(name)
    if name in ("sql",):
        return SqlGenerator()
    if name in ("elasticsearch", "es"):
        return ElasticsearchGenerator()
    raise ValueError(
        f"Unknown generator '{name}'. Use one of: {', '.join(SUPPORTED_DIALECTS)}, elasticsearch"
    )


def render(
    generator: Generator,
    collection: Collection,
    flt: Filter,
    default_limit: int | None = None,
) -> CompiledQuery:
    """Compile ``flt`` for ``collection`` with the given generator.

    Raises:
        UnsupportedOperationError: If the filter aggregates and the generator cannot
        UnknownFieldError: If the filter references undeclared fields
    """
    if flt.aggregates and not generator.supports_aggregation:
        raise UnsupportedOperationError(generator, "aggregation")
    if flt.group_by and not generator.supports_grouping:
        raise UnsupportedOperationError(generator, "grouping")

    compiled = generator.render(plan(collection, flt, default_limit))
    querylog.debug("[%r] %s %r", generator, compiled.statement, compiled.params)
    return compiled


__all__ = [
    "CompiledQuery",
    "ElasticsearchGenerator",
    "Generator",
    "SqlGenerator",
    "get_generator",
    "render",
]
