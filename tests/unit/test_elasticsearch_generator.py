"""Tests for the Elasticsearch search body generator."""

import json
from typing import Any

from switchyard import Aggregate, Aggregation, Collection, Filter, render
from switchyard.filter import ElasticsearchGenerator
from switchyard.filter.generators.elasticsearch import MAX_RESULT_WINDOW


def body(collection: Collection, flt: Filter, limit: int | None = None) -> dict[str, Any]:
    compiled = render(ElasticsearchGenerator(), collection, flt, default_limit=limit)
    assert compiled.params == []
    return json.loads(compiled.statement)


class TestQueries:
    """Test query clauses."""

    def test_match_all(self, users: Collection) -> None:
        data = body(users, Filter.all(), limit=25)

        assert data["query"] == {"match_all": {}}
        assert data["size"] == MAX_RESULT_WINDOW

    def test_term_and_terms(self, users: Collection) -> None:
        data = body(users, Filter.parse("name/is/Ann/age/is/1|2"))

        assert data["query"] == {
            "bool": {"filter": [{"term": {"name": "Ann"}}, {"terms": {"age": [1, 2]}}]}
        }

    def test_identity_uses_id_field(self, users: Collection) -> None:
        data = body(users, Filter.parse("id/is/7"))
        assert data["query"]["bool"]["filter"] == [{"term": {"_id": 7}}]

    def test_negation_and_null(self, users: Collection) -> None:
        data = body(users, Filter.parse("name/not/Ann/email/is/null"))

        assert data["query"]["bool"]["must_not"] == [{"term": {"name": "Ann"}}]
        assert data["query"]["bool"]["filter"] == [
            {"bool": {"must_not": [{"exists": {"field": "email"}}]}}
        ]

    def test_ranges_are_ored(self, users: Collection) -> None:
        data = body(users, Filter.parse("age/lt/10|60"))

        assert data["query"]["bool"]["filter"] == [
            {
                "bool": {
                    "should": [{"range": {"age": {"lt": 10}}}, {"range": {"age": {"lt": 60}}}],
                    "minimum_should_match": 1,
                }
            }
        ]

    def test_patterns(self, users: Collection) -> None:
        clauses = body(users, Filter.parse("name/prefix/An/email/contains/a*b"))["query"]["bool"][
            "filter"
        ]

        assert clauses[0] == {"prefix": {"name": "An"}}
        assert clauses[1] == {"wildcard": {"email": "*a\\*b*"}}

    def test_unlike_is_negated(self, users: Collection) -> None:
        data = body(users, Filter.parse("name/unlike/A*"))
        assert data["query"]["bool"]["must_not"] == [{"wildcard": {"name": "A*"}}]


class TestBody:
    """Test paging, sorting and projection."""

    def test_paging_and_sort(self, users: Collection) -> None:
        data = body(users, Filter(sort=["-age", "id"], limit=10, offset=30))

        assert data["size"] == 10
        assert data["from"] == 30
        assert data["sort"] == [{"age": {"order": "desc"}}, {"_id": {"order": "asc"}}]

    def test_offset_beyond_window(self, users: Collection) -> None:
        data = body(users, Filter(offset=MAX_RESULT_WINDOW + 5))

        assert data["size"] == 0
        assert data["from"] == MAX_RESULT_WINDOW + 5

    def test_projection(self, users: Collection) -> None:
        assert body(users, Filter(fields=["name"]))["_source"] == ["name"]
        assert body(users, Filter(identity_only=True))["_source"] is False

    def test_composite_group_aggregation(self, users: Collection) -> None:
        flt = Filter(limit=50).with_aggregation(
            ["active"], [Aggregate(Aggregation.AVERAGE, "score")]
        )

        data = body(users, flt)

        assert data["size"] == 0
        assert data["aggs"] == {
            "groups": {
                "composite": {"sources": [{"active": {"terms": {"field": "active"}}}], "size": 50},
                "aggs": {"avg_score": {"avg": {"field": "score"}}},
            }
        }

    def test_ungrouped_metrics(self, users: Collection) -> None:
        flt = Filter.all().with_aggregation([], [Aggregate(Aggregation.COUNT, "1")])
        assert body(users, flt)["aggs"] == {"count_1": {"value_count": {"field": "_id"}}}
