"""Elasticsearch query DSL generator.

The statement is the JSON request body for ``POST /<index>/_search``; the
parameter list is always empty because values are inlined into the DSL.
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any

from switchyard.filter.filter import ROW_COUNT_FIELD, Aggregate, Aggregation, Operator
from switchyard.filter.generators.base import CompiledQuery, Generator
from switchyard.filter.plan import PlannedCondition, QueryPlan

# Elasticsearch refuses result windows larger than this without scrolling
MAX_RESULT_WINDOW = 10000

_RANGE_KEYS = {
    Operator.GT: "gt",
    Operator.GTE: "gte",
    Operator.LT: "lt",
    Operator.LTE: "lte",
}

_METRICS = {
    Aggregation.COUNT: "value_count",
    Aggregation.SUM: "sum",
    Aggregation.MINIMUM: "min",
    Aggregation.MAXIMUM: "max",
    Aggregation.AVERAGE: "avg",
}


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _wildcard_escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace("*", "\\*").replace("?", "\\?")


class ElasticsearchGenerator(Generator):
    """Renders query plans as Elasticsearch search bodies."""

    family = "elasticsearch"
    supports_aggregation = True
    supports_grouping = True

    def render(self, plan: QueryPlan) -> CompiledQuery:
        return CompiledQuery(json.dumps(self.body(plan), sort_keys=True))

    def body(self, plan: QueryPlan) -> dict[str, Any]:
        body: dict[str, Any] = {"query": self._query(plan)}

        if plan.aggregates:
            body["size"] = 0
            body["aggs"] = self._aggregations(plan)
            return body

        if plan.limit is not None:
            body["size"] = plan.limit
        else:
            body["size"] = max(0, MAX_RESULT_WINDOW - plan.offset)
        if plan.offset:
            body["from"] = plan.offset

        if plan.sort:
            body["sort"] = [
                {self._field(plan, key.field): {"order": "desc" if key.descending else "asc"}}
                for key in plan.sort
            ]

        if plan.identity_only:
            body["_source"] = False
        elif plan.projection:
            body["_source"] = list(plan.projection)

        return body

    @staticmethod
    def _field(plan: QueryPlan, name: str) -> str:
        return "_id" if plan.collection.is_identity(name) else name

    def _query(self, plan: QueryPlan) -> dict[str, Any]:
        if not plan.conditions:
            return {"match_all": {}}

        must: list[dict[str, Any]] = []
        must_not: list[dict[str, Any]] = []

        for condition in plan.conditions:
            clause, negated = self._condition(plan, condition)
            (must_not if negated else must).append(clause)

        query: dict[str, Any] = {}
        if must:
            query["filter"] = must
        if must_not:
            query["must_not"] = must_not
        return {"bool": query}

    def _condition(self, plan: QueryPlan, condition: PlannedCondition) -> tuple[dict, bool]:
        name = self._field(plan, condition.name)
        op = condition.operator
        present = [_json_value(v) for v in condition.values if v is not None]
        has_null = len(present) != len(condition.values)

        if op in (Operator.IS, Operator.NOT):
            options: list[dict[str, Any]] = []
            if len(present) == 1:
                options.append({"term": {name: present[0]}})
            elif present:
                options.append({"terms": {name: present}})
            if has_null:
                options.append({"bool": {"must_not": [{"exists": {"field": name}}]}})
            return self._any(options), op is Operator.NOT

        if op.is_comparison:
            key = _RANGE_KEYS[op]
            return self._any([{"range": {name: {key: v}}} for v in present]), False

        options = []
        for value in present:
            text = str(value)
            if op is Operator.PREFIX:
                options.append({"prefix": {name: text}})
            elif op is Operator.CONTAINS:
                options.append({"wildcard": {name: f"*{_wildcard_escape(text)}*"}})
            elif op is Operator.SUFFIX:
                options.append({"wildcard": {name: f"*{_wildcard_escape(text)}"}})
            else:
                options.append({"wildcard": {name: text}})
        return self._any(options), op is Operator.UNLIKE

    @staticmethod
    def _any(options: list[dict[str, Any]]) -> dict[str, Any]:
        if len(options) == 1:
            return options[0]
        return {"bool": {"should": options, "minimum_should_match": 1}}

    def _metric(self, plan: QueryPlan, agg: Aggregate) -> dict[str, Any]:
        name = "_id" if agg.field == ROW_COUNT_FIELD else self._field(plan, agg.field)
        return {_METRICS[agg.aggregation]: {"field": name}}

    def _aggregations(self, plan: QueryPlan) -> dict[str, Any]:
        metrics = {agg.alias: self._metric(plan, agg) for agg in plan.aggregates}
        if not plan.group_by:
            return metrics

        sources = [{name: {"terms": {"field": self._field(plan, name)}}} for name in plan.group_by]
        composite: dict[str, Any] = {"sources": sources}
        if plan.limit is not None:
            composite["size"] = plan.limit

        return {"groups": {"composite": composite, "aggs": metrics}}
