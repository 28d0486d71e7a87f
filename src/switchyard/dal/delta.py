"""Schema discrepancies found by diffing a desired collection against an actual one."""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel


class DeltaType(StrEnum):
    """Kinds of schema discrepancy."""

    FIELD_MISSING = "field_missing"
    FIELD_MISMATCH = "field_mismatch"
    IDENTITY_MISMATCH = "identity_mismatch"


class SchemaDelta(BaseModel):
    """One difference between the desired and the actual schema."""

    type: DeltaType
    collection: str
    field: str | None = None
    parameter: str | None = None
    desired: Any = None
    actual: Any = None

    model_config = {"frozen": True}

    def __str__(self) -> str:
        match self.type:
            case DeltaType.FIELD_MISSING:
                return f"field '{self.field}' is missing"
            case DeltaType.FIELD_MISMATCH:
                return (
                    f"field '{self.field}' {self.parameter}: "
                    f"expected {self.desired!r}, got {self.actual!r}"
                )
            case _:
                return (
                    f"identity {self.parameter}: expected {self.desired!r}, got {self.actual!r}"
                )

    def to_dict(self) -> dict[str, Any]:
        return {**self.model_dump(mode="json"), "message": str(self)}
