"""Tests for query planning and SQL rendering."""

import pytest

from switchyard import (
    Aggregate,
    Aggregation,
    Collection,
    CompiledQuery,
    Filter,
    ParseError,
    UnknownFieldError,
    UnsupportedOperationError,
    render,
)
from switchyard.filter import Generator, QueryPlan, get_generator, plan
from switchyard.filter.generators import SqlGenerator


def sql(
    collection: Collection, query: str, dialect: str = "sqlite", limit: int | None = None
) -> CompiledQuery:
    return render(SqlGenerator(dialect), collection, Filter.parse(query), default_limit=limit)


class TestPlan:
    """Test normalization before rendering."""

    def test_values_coerced_to_field_type(self, users: Collection) -> None:
        query_plan = plan(users, Filter.parse("age/is/21|22.0/active/is/yes"))

        assert query_plan.conditions[0].values == (21, 22)
        assert query_plan.conditions[1].values == (True,)

    def test_uncoercible_value(self, users: Collection) -> None:
        with pytest.raises(ParseError, match="age"):
            plan(users, Filter.parse("age/is/old"))

    def test_comparison_against_null(self, users: Collection) -> None:
        with pytest.raises(ParseError, match="null"):
            plan(users, Filter.parse("age/gt/null"))

    @pytest.mark.parametrize(
        "flt",
        [
            Filter.parse("nickname/is/x"),
            Filter(sort=["-nickname"]),
            Filter(fields=["nickname"]),
        ],
    )
    def test_unknown_fields(self, users: Collection, flt: Filter) -> None:
        with pytest.raises(UnknownFieldError):
            plan(users, flt)

    def test_sum_of_text_rejected(self, users: Collection) -> None:
        flt = Filter().with_aggregation([], [Aggregate(Aggregation.SUM, "name")])
        with pytest.raises(ParseError, match="non-numeric"):
            plan(users, flt)

    def test_plan_is_frozen(self, users: Collection) -> None:
        query_plan = plan(users, Filter.all())
        assert isinstance(query_plan, QueryPlan)
        with pytest.raises(AttributeError):
            query_plan.limit = 5  # type: ignore[misc]


class TestSqlGenerator:
    """Test SQL statements."""

    def test_equality_and_comparison(self, users: Collection) -> None:
        compiled = sql(users, "name/is/Ann/age/gte/21", limit=25)

        assert compiled.statement == (
            'SELECT * FROM "users" WHERE "name" = :p0 AND "age" >= :p1 LIMIT 25'
        )
        assert compiled.params == ["Ann", 21]
        assert compiled.bind() == {"p0": "Ann", "p1": 21}

    def test_compared_values_carry_their_field(self, users: Collection) -> None:
        compiled = sql(users, "age/gt/3/name/prefix/A")

        typed = compiled.typed()

        assert list(typed) == ["p0"]
        assert typed["p0"].name == "age"
        assert compiled.fields[1] is None

    def test_match_all_is_unbounded(self, users: Collection) -> None:
        assert sql(users, "all", limit=25).statement == 'SELECT * FROM "users"'

    def test_in_and_not_in(self, users: Collection) -> None:
        assert sql(users, "name/is/Ann|Bob").statement == (
            'SELECT * FROM "users" WHERE "name" IN (:p0, :p1)'
        )
        assert sql(users, "name/not/Ann|Bob").statement == (
            'SELECT * FROM "users" WHERE "name" NOT IN (:p0, :p1)'
        )

    def test_nulls(self, users: Collection) -> None:
        assert sql(users, "email/is/null").statement == (
            'SELECT * FROM "users" WHERE "email" IS NULL'
        )
        assert sql(users, "email/not/null").statement == (
            'SELECT * FROM "users" WHERE "email" IS NOT NULL'
        )
        compiled = sql(users, "name/is/Ann|null")
        assert compiled.statement == (
            'SELECT * FROM "users" WHERE ("name" = :p0 OR "name" IS NULL)'
        )
        assert compiled.params == ["Ann"]

    def test_comparison_alternatives_are_ored(self, users: Collection) -> None:
        assert sql(users, "age/lt/10|60").statement == (
            'SELECT * FROM "users" WHERE ("age" < :p0 OR "age" < :p1)'
        )

    def test_patterns_escape_wildcards(self, users: Collection) -> None:
        compiled = sql(users, "name/contains/a_b%25")

        assert compiled.statement == "SELECT * FROM \"users\" WHERE \"name\" LIKE :p0 ESCAPE '\\'"
        assert compiled.params == ["%a\\_b\\%%"]
        assert sql(users, "name/prefix/An").params == ["An%"]
        assert sql(users, "name/suffix/nn").params == ["%nn"]

    def test_like_and_unlike(self, users: Collection) -> None:
        assert sql(users, "name/like/A*n").params == ["A%n"]
        assert "NOT LIKE" in sql(users, "name/unlike/A*").statement

    def test_sort_projection_and_paging(self, users: Collection) -> None:
        flt = Filter(sort=["-age", "name"], fields=["name", "id"], limit=10, offset=20)

        compiled = render(SqlGenerator(), users, flt)

        assert compiled.statement == (
            'SELECT "id", "name" FROM "users" ORDER BY "age" DESC, "name" ASC LIMIT 10 OFFSET 20'
        )

    def test_identity_only(self, users: Collection) -> None:
        compiled = render(SqlGenerator(), users, Filter(identity_only=True))
        assert compiled.statement == 'SELECT "id" FROM "users"'

    @pytest.mark.parametrize(
        ("dialect", "paging"),
        [
            ("sqlite", "LIMIT -1 OFFSET 5"),
            ("postgresql", "OFFSET 5"),
            ("mysql", "LIMIT 18446744073709551615 OFFSET 5"),
        ],
    )
    def test_offset_without_limit(self, users: Collection, dialect: str, paging: str) -> None:
        compiled = render(SqlGenerator(dialect), users, Filter.all().copy(offset=5))
        assert compiled.statement.endswith(paging)

    def test_mysql_quoting(self, users: Collection) -> None:
        assert sql(users, "name/is/Ann", dialect="mysql").statement == (
            "SELECT * FROM `users` WHERE `name` = :p0"
        )

    def test_postgresql_casts_non_text_patterns(self, users: Collection) -> None:
        compiled = sql(users, "age/prefix/4", dialect="postgresql")
        assert 'CAST("age" AS TEXT) LIKE :p0' in compiled.statement
        assert compiled.params == ["4%"]

    def test_group_by_with_aggregates(self, users: Collection) -> None:
        flt = Filter(sort=["-active", "age"]).with_aggregation(
            ["active"],
            [Aggregate(Aggregation.COUNT, "1"), Aggregate(Aggregation.SUM, "age")],
        )

        compiled = render(SqlGenerator(), users, flt)

        assert compiled.statement == (
            'SELECT "active", COUNT(1) AS "count_1", SUM("age") AS "sum_age" '
            'FROM "users" GROUP BY "active" ORDER BY "active" DESC'
        )

    def test_delete_and_distinct(self, users: Collection) -> None:
        generator = SqlGenerator()
        query_plan = plan(users, Filter.parse("age/lt/18"))

        assert generator.render_delete(query_plan).statement == (
            'DELETE FROM "users" WHERE "age" < :p0'
        )
        assert generator.render_distinct(query_plan, "name").statement == (
            'SELECT DISTINCT "name" FROM "users" WHERE "age" < :p0 ORDER BY "name" ASC'
        )

    def test_overlay_index_does_not_change_table(self, users: Collection) -> None:
        compiled = render(SqlGenerator(), users.overlay(index_name="people"), Filter())
        assert compiled.statement == 'SELECT * FROM "users"'

    def test_unsupported_dialect(self) -> None:
        with pytest.raises(ValueError, match="Unsupported SQL dialect"):
            SqlGenerator("oracle")


class _LookupOnly(Generator):
    family = "lookup"

    def render(self, plan: QueryPlan) -> CompiledQuery:
        return CompiledQuery("lookup")


class TestGenerators:
    """Test generator selection and capability checks."""

    def test_get_generator(self) -> None:
        assert get_generator("postgresql").dialect == "postgresql"  # type: ignore[attr-defined]
        assert get_generator("es").family == "elasticsearch"
        with pytest.raises(ValueError):
            get_generator("cassandra")

    def test_aggregation_requires_support(self, users: Collection) -> None:
        flt = Filter().with_aggregation([], [Aggregate(Aggregation.COUNT, "1")])

        with pytest.raises(UnsupportedOperationError) as exc_info:
            render(_LookupOnly(), users, flt)

        assert exc_info.value.backend_type == "_LookupOnly"
        assert "_LookupOnly" in exc_info.value.message
