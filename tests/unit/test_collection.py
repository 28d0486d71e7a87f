"""Tests for collections, record preparation and schema diffs."""

import pytest

from switchyard import (
    Collection,
    DeltaType,
    Field,
    FieldType,
    Record,
    UnknownFieldError,
    ValidationError,
)


class TestCollection:
    """Test collection construction and lookups."""

    def test_defaults(self) -> None:
        collection = Collection(name="things")
        assert collection.identity_field == "id"
        assert collection.identity_field_type == FieldType.INT
        assert collection.index_compound_field_joiner == ":"
        assert collection.get_index_name() == "things"

    def test_duplicate_field_names_rejected(self) -> None:
        with pytest.raises(ValidationError, match="declared twice"):
            Collection(name="things", fields=(Field(name="a"), Field(name="a")))

    def test_require_field_knows_identity(self, users: Collection) -> None:
        identity = users.require_field("id")
        assert identity.identity is True
        assert identity.type == FieldType.INT

    def test_require_field_unknown(self, users: Collection) -> None:
        with pytest.raises(UnknownFieldError) as exc_info:
            users.require_field("nickname")
        assert exc_info.value.status_code == 400
        assert "name" in exc_info.value.available

    def test_overlay_does_not_mutate(self, users: Collection) -> None:
        overlay = users.overlay(index_name="users-v2", index_compound_fields=["name", "email"])

        assert overlay.get_index_name() == "users-v2"
        assert overlay.index_compound_fields == ("name", "email")
        assert users.index_name is None
        assert users.index_compound_fields == ()

    def test_overlay_without_changes_returns_same(self, users: Collection) -> None:
        assert users.overlay() is users

    def test_with_fields_returns_copy(self, users: Collection) -> None:
        extended = users.with_fields(Field(name="nickname"))
        assert extended.has_field("nickname")
        assert not users.has_field("nickname")

    def test_frozen(self, users: Collection) -> None:
        with pytest.raises(Exception):  # noqa: B017
            users.name = "people"  # type: ignore[misc]


class TestPrepareRecord:
    """Test record validation before writes."""

    def test_applies_defaults_and_coerces(self, users: Collection) -> None:
        prepared = users.prepare_record(Record(id="5", fields={"name": "Ann", "age": "41"}))

        assert prepared.id == 5
        assert prepared.fields["age"] == 41
        assert prepared.fields["active"] is True

    def test_collects_every_error(self, users: Collection) -> None:
        with pytest.raises(ValidationError) as exc_info:
            users.prepare_record(Record(fields={"age": "old", "nickname": "x"}))

        errors = exc_info.value.field_errors
        assert set(errors) == {"name", "age", "nickname"}
        assert errors["nickname"] == "unknown field"

    def test_partial_skips_absent_fields(self, users: Collection) -> None:
        prepared = users.prepare_record(Record(id=1, fields={"age": 7}), partial=True)
        assert prepared.fields == {"age": 7}


class TestDiff:
    """Test Collection.diff."""

    def test_identical_collections_have_no_deltas(self, users: Collection) -> None:
        assert users.diff(users.model_copy()) is None

    def test_missing_field(self, users: Collection) -> None:
        actual = users.model_copy(
            update={"fields": tuple(f for f in users.fields if f.name != "email")}
        )

        deltas = users.diff(actual)

        assert deltas is not None
        assert len(deltas) == 1
        assert deltas[0].type is DeltaType.FIELD_MISSING
        assert deltas[0].field == "email"
        assert "missing" in str(deltas[0])

    def test_mismatch_per_parameter(self) -> None:
        desired = Collection(name="t", fields=(Field(name="a", type=FieldType.INT, required=True),))
        actual = Collection(name="t", fields=(Field(name="a", type=FieldType.STRING),))

        deltas = desired.diff(actual)

        assert deltas is not None
        assert {d.parameter for d in deltas} == {"type", "required"}
        assert all(d.type is DeltaType.FIELD_MISMATCH for d in deltas)
        type_delta = next(d for d in deltas if d.parameter == "type")
        assert type_delta.desired == FieldType.INT
        assert type_delta.actual == FieldType.STRING

    def test_identity_mismatch(self) -> None:
        desired = Collection(name="t", identity_field_type=FieldType.STRING)
        actual = Collection(name="t")

        deltas = desired.diff(actual)

        assert deltas is not None
        assert deltas[0].type is DeltaType.IDENTITY_MISMATCH
        assert deltas[0].parameter == "identity_field_type"

    def test_extra_actual_fields_tolerated(self, users: Collection) -> None:
        actual = users.with_fields(Field(name="legacy_column"))
        assert users.diff(actual) is None

    def test_delta_to_dict(self, users: Collection) -> None:
        actual = users.model_copy(update={"fields": ()})
        deltas = users.diff(actual) or []

        data = deltas[0].to_dict()
        assert data["type"] == "field_missing"
        assert data["collection"] == "users"
        assert data["desired"]["name"] == "name"
        assert "message" in data

    def test_declared_identity_field_is_not_missing(self, users: Collection) -> None:
        declared = users.with_fields(Field(name="id", type=FieldType.INT, identity=True))

        assert declared.diff(users) is None

    def test_declared_identity_type_still_compared(self, users: Collection) -> None:
        declared = users.model_copy(
            update={
                "identity_field_type": FieldType.STRING,
                "fields": (Field(name="id", identity=True), *users.fields),
            }
        )

        deltas = declared.diff(users) or []

        assert [d.parameter for d in deltas] == ["identity_field_type"]


class TestRecord:
    """Test Record field access."""

    def test_set_routes_identity_to_id(self, users: Collection) -> None:
        record = Record().set("name", "Ann", users).set("id", 7, users)

        assert record.id == 7
        assert record.fields == {"name": "Ann"}

    def test_set_without_collection_writes_field(self) -> None:
        assert Record().set("id", 7).fields == {"id": 7}

    def test_from_dict_moves_identity(self, users: Collection) -> None:
        record = Record.from_dict({"id": 3, "name": "Ann"}, users)

        assert record.id == 3
        assert record.fields == {"name": "Ann"}
