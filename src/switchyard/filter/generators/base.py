"""Generator contract shared by every backend family."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from switchyard.dal.field import Field
from switchyard.filter.plan import QueryPlan

PARAM_PREFIX = "p"


@dataclass(frozen=True)
class CompiledQuery:
    """Statement text plus the parameters to bind, in placeholder order.

    ``fields`` runs parallel to ``params`` and names the field each value is
    compared against, or None for derived values such as LIKE patterns.
    """

    statement: str
    params: list[Any] = field(default_factory=list)
    fields: list[Field | None] = field(default_factory=list, compare=False)

    def bind(self) -> dict[str, Any]:
        """Parameters keyed by their placeholder names (``p0``, ``p1``, ...)."""
        return {f"{PARAM_PREFIX}{i}": value for i, value in enumerate(self.params)}

    def typed(self) -> dict[str, Field]:
        """Placeholder names of the parameters that carry a field type."""
        return {
            f"{PARAM_PREFIX}{i}": typed_field
            for i, typed_field in enumerate(self.fields)
            if typed_field is not None
        }

    def __str__(self) -> str:
        return self.statement


class Generator(ABC):
    """Renders a QueryPlan into a backend-specific statement.

    Generators are stateless: ``render`` is a pure function of the plan.
    """

    family: str = "abstract"
    supports_aggregation: bool = False
    supports_grouping: bool = False

    @abstractmethod
    def render(self, plan: QueryPlan) -> CompiledQuery:
        """Render a select (or aggregate) statement for the plan."""
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
