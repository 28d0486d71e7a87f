"""Collection schema descriptors."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, model_validator
from pydantic import Field as Attr

from switchyard.dal.delta import DeltaType, SchemaDelta
from switchyard.dal.field import Field, FieldType
from switchyard.exceptions import UnknownFieldError, ValidationError

if TYPE_CHECKING:
    from switchyard.dal.record import Record

DEFAULT_IDENTITY_FIELD = "id"
DEFAULT_IDENTITY_FIELD_TYPE = FieldType.INT

# Field attributes compared by Collection.diff
DIFF_PARAMETERS = ("type", "required", "identity")


class CollectionOptions(BaseModel):
    """Backend hints that are not part of the schema proper."""

    fields_unordered: bool = False

    model_config = ConfigDict(frozen=True)


class Collection(BaseModel):
    """Backend-neutral schema descriptor for one entity type.

    Collections are immutable. Per-request variations are derived with
    ``overlay()``, which leaves the registered instance untouched.
    """

    name: str
    fields: tuple[Field, ...] = ()
    identity_field: str = DEFAULT_IDENTITY_FIELD
    identity_field_type: FieldType = DEFAULT_IDENTITY_FIELD_TYPE
    index_name: str | None = None
    index_compound_fields: tuple[str, ...] = ()
    index_compound_field_joiner: str = ":"
    options: CollectionOptions = Attr(default_factory=CollectionOptions)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_unique_names(self) -> Collection:
        seen: set[str] = set()
        for field in self.fields:
            if field.name in seen:
                raise ValidationError(
                    f"Field '{field.name}' is declared twice in collection '{self.name}'.",
                    {field.name: "duplicate"},
                )
            seen.add(field.name)
        return self

    @property
    def field_names(self) -> list[str]:
        return [f.name for f in self.fields]

    def get_field(self, name: str) -> Field | None:
        """Get a declared field by name."""
        for field in self.fields:
            if field.name == name:
                return field
        return None

    def has_field(self, name: str) -> bool:
        return self.get_field(name) is not None

    def is_identity(self, name: str) -> bool:
        return bool(self.identity_field) and name == self.identity_field

    def require_field(self, name: str) -> Field:
        """Get a declared field, or a synthetic one for the identity field.

        Raises:
            UnknownFieldError: If the name is neither declared nor the identity
        """
        if field := self.get_field(name):
            return field
        if self.is_identity(name):
            return self.identity_as_field()
        raise UnknownFieldError(name, self.name, self.field_names)

    def identity_as_field(self) -> Field:
        return Field(
            name=self.identity_field,
            type=self.identity_field_type,
            identity=True,
            required=True,
        )

    def convert_value(self, name: str, value: Any) -> Any:
        """Coerce a value using the named field's type rules."""
        return self.require_field(name).convert_value(value)

    def get_index_name(self) -> str:
        return self.index_name or self.name

    def with_fields(self, *fields: Field) -> Collection:
        """Return a copy with the given fields appended."""
        return self.model_copy(update={"fields": (*self.fields, *fields)})

    def overlay(
        self,
        index_name: str | None = None,
        index_compound_fields: list[str] | tuple[str, ...] | None = None,
        index_compound_field_joiner: str | None = None,
    ) -> Collection:
        """Derive a request-scoped copy with index settings overridden."""
        update: dict[str, Any] = {}
        if index_name:
            update["index_name"] = index_name
        if index_compound_fields:
            update["index_compound_fields"] = tuple(index_compound_fields)
        if index_compound_field_joiner:
            update["index_compound_field_joiner"] = index_compound_field_joiner
        return self.model_copy(update=update) if update else self

    def make_record(self, value: Any) -> Record:
        """Build a Record from an application value (see ``switchyard.mapper``)."""
        from switchyard.mapper.binding import make_record

        return make_record(self, value)

    def prepare_record(self, record: Record, partial: bool = False) -> Record:
        """Return a copy of the record with defaults applied and values checked.

        With ``partial`` only the fields present on the record are checked, which is
        what an update of some columns needs.

        Raises:
            ValidationError: With every failing field collected
        """
        from switchyard.dal.record import Record

        prepared = Record(id=record.id)
        errors: dict[str, str] = {}

        for name in record.fields:
            if not self.has_field(name):
                errors[name] = "unknown field"

        for field in self.fields:
            if self.is_identity(field.name):
                continue
            if partial and field.name not in record.fields:
                continue
            try:
                value = field.check_value(record.fields.get(field.name))
            except ValidationError as e:
                errors.update(e.field_errors)
                continue
            if value is not None or field.name in record.fields:
                prepared.fields[field.name] = value

        if errors:
            raise ValidationError(
                f"Record for '{self.name}' is invalid: "
                + ", ".join(f"{k} ({v})" for k, v in errors.items()),
                errors,
            )

        if prepared.id is not None and self.identity_field:
            try:
                prepared.id = self.identity_as_field().convert_value(prepared.id)
            except ValueError as e:
                raise ValidationError(
                    f"Identity '{self.identity_field}' expects type "
                    f"'{self.identity_field_type}': {e}",
                    {self.identity_field: str(e)},
                ) from e

        return prepared

    def diff(self, actual: Collection) -> list[SchemaDelta] | None:
        """Compare this (desired) collection against an observed one.

        Fields that exist only in ``actual`` are tolerated.

        Returns:
            The discrepancies, or None when the schemas agree
        """
        deltas: list[SchemaDelta] = []

        for parameter in ("identity_field", "identity_field_type"):
            desired_value = getattr(self, parameter)
            actual_value = getattr(actual, parameter)
            if desired_value != actual_value:
                deltas.append(
                    SchemaDelta(
                        type=DeltaType.IDENTITY_MISMATCH,
                        collection=self.name,
                        parameter=parameter,
                        desired=desired_value,
                        actual=actual_value,
                    )
                )

        for desired_field in self.fields:
            # a declared identity is covered by the identity parameters above
            if self.is_identity(desired_field.name):
                continue
            actual_field = actual.get_field(desired_field.name)

            if actual_field is None:
                deltas.append(
                    SchemaDelta(
                        type=DeltaType.FIELD_MISSING,
                        collection=self.name,
                        field=desired_field.name,
                        desired=desired_field.model_dump(mode="json"),
                    )
                )
                continue

            for parameter in DIFF_PARAMETERS:
                desired_value = getattr(desired_field, parameter)
                actual_value = getattr(actual_field, parameter)
                if desired_value != actual_value:
                    deltas.append(
                        SchemaDelta(
                            type=DeltaType.FIELD_MISMATCH,
                            collection=self.name,
                            field=desired_field.name,
                            parameter=parameter,
                            desired=desired_value,
                            actual=actual_value,
                        )
                    )

        return deltas or None
