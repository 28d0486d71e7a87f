"""Backend-neutral filters and their compilation.

Example:
    flt = Filter.parse("status/is/active/age/gte/21")
    compiled = render(SqlGenerator("sqlite"), users, flt, default_limit=25)
    compiled.statement  # 'SELECT * FROM "users" WHERE "status" = :p0 AND "age" >= :p1 LIMIT 25'
"""

from switchyard.filter.filter import (
    ROW_COUNT_FIELD,
    Aggregate,
    Aggregation,
    Condition,
    Filter,
    Operator,
)
from switchyard.filter.generators import (
    CompiledQuery,
    ElasticsearchGenerator,
    Generator,
    SqlGenerator,
    get_generator,
    render,
)
from switchyard.filter.parse import from_map, parse
from switchyard.filter.plan import QueryPlan, plan

__all__ = [
    "ROW_COUNT_FIELD",
    "Aggregate",
    "Aggregation",
    "CompiledQuery",
    "Condition",
    "ElasticsearchGenerator",
    "Filter",
    "Generator",
    "Operator",
    "QueryPlan",
    "SqlGenerator",
    "from_map",
    "get_generator",
    "parse",
    "plan",
    "render",
]
