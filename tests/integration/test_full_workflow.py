"""Integration tests for the full Switchyard workflow."""

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from switchyard import (
    Aggregate,
    Aggregation,
    Collection,
    DataService,
    Field,
    FieldType,
    Filter,
    SchemaMismatchError,
    UnsupportedOperationError,
    load_schemata,
)

CUSTOMERS = Collection(
    name="customers",
    fields=(
        Field(name="name", type=FieldType.STRING, required=True),
        Field(name="email", type=FieldType.STRING, unique=True),
        Field(name="tier", type=FieldType.STRING, default="free"),
    ),
)

ORDERS = Collection(
    name="orders",
    fields=(
        Field(name="customer_id", type=FieldType.INT, required=True),
        Field(name="total", type=FieldType.FLOAT),
        Field(name="status", type=FieldType.STRING),
        Field(name="items", type=FieldType.ARRAY),
    ),
)


@dataclass
class Customer:
    id: int = field(default=0, metadata={"omit_empty": True})
    name: str = ""
    email: str = ""
    tier: str = field(default="", metadata={"omit_empty": True})


class TestFullWorkflow:
    """End-to-end tests over a SQLite file."""

    def test_complete_workflow(self, tmp_path: Path) -> None:
        """Define, populate, query, join, aggregate and evolve a schema."""
        url = f"sqlite:///{tmp_path / 'shop.db'}"

        with DataService(url) as service:
            # 1. Create both collections as one batch
            assert service.create_collections([CUSTOMERS, ORDERS]) == ["customers", "orders"]

            # 2. Insert through a model with application values
            customers = service.model(CUSTOMERS)
            ann = Customer(name="Ann", email="ann@example.com")
            customers.create(ann)
            bob = Customer(name="Bob", email="bob@example.com", tier="pro")
            customers.create(bob)
            assert (ann.id, bob.id) == (1, 2)
            assert customers.get(ann.id, into=Customer).tier == "free"

            # 3. Insert raw values through the service
            orders = service.insert(
                "orders",
                [
                    {"customer_id": ann.id, "total": 20.0, "status": "paid", "items": ["a"]},
                    {"customer_id": ann.id, "total": 5.0, "status": "open", "items": []},
                    {"customer_id": bob.id, "total": 75.0, "status": "paid", "items": ["b", "c"]},
                ],
            )
            assert orders.ids() == [1, 2, 3]

            # 4. Query with the path grammar and request params
            paid = service.query("orders", "status/is/paid", {"sort": "-total"})
            assert paid.values("total") == [75.0, 20.0]

            # 5. Join orders to their customers
            joined = service.query(
                "orders.customer_id:customers.id", "total/gte/10", {"sort": "total"}
            )
            assert joined.values("customers.name") == ["Ann", "Bob"]

            # 6. Aggregate
            totals = service.aggregate("orders", ["total"], ["sum", "max"], "status/is/paid")
            assert totals == {"total": {"sum": 95.0, "max": 75.0}}
            groups = service.group_by(
                "orders",
                ["customer_id"],
                [Aggregate(Aggregation.SUM, "total")],
                Filter(sort=["customer_id"]),
            )
            assert [(g.get("customer_id"), g.get("sum_total")) for g in groups] == [
                (1, 25.0),
                (2, 75.0),
            ]

            # 7. Evolve the schema: report, then apply
            service.backend.register_collection(
                ORDERS.with_fields(Field(name="note", type=FieldType.STRING))
            )
            assert [d.field for d in service.migrate("orders")] == ["note"]
            service.migrate("orders", apply=True)
            assert service.migrate("orders") == []

        # 8. A new process reads the tables back
        with DataService(url) as service:
            assert service.list_collections() == ["customers", "orders"]
            assert service.collection("orders").has_field("note")
            # JSON columns need the definition to tell arrays from objects
            service.backend.register_collection(ORDERS)
            assert service.retrieve("orders", 3).get("items") == ["b", "c"]

    def test_model_rejects_drifted_schema(self, tmp_path: Path) -> None:
        url = f"sqlite:///{tmp_path / 'drift.db'}"
        with DataService(url) as service:
            service.create_collections([CUSTOMERS])

        with DataService(url) as service:
            drifted = CUSTOMERS.with_fields(Field(name="phone", required=True))
            with pytest.raises(SchemaMismatchError):
                service.model(drifted).migrate()

    def test_schema_directory_bootstrap(self, tmp_path: Path) -> None:
        schema_dir = tmp_path / "schema"
        schema_dir.mkdir()
        (schema_dir / "customers.json").write_text(CUSTOMERS.model_dump_json())
        (schema_dir / "orders.json").write_text(ORDERS.model_dump_json())

        with DataService("memory://", schema_path=schema_dir) as service:
            for collection in load_schemata(schema_dir):
                assert service.migrate(collection.name) == []

            service.insert("customers", [{"name": "Ann"}])
            assert service.query("customers", "tier/is/free").result_count == 1

            # aggregation is not available in memory
            with pytest.raises(UnsupportedOperationError):
                service.aggregate("customers", ["name"], ["count"])
