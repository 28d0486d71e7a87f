"""CLI command tests for Switchyard."""

import json
import os
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest
from typer.testing import CliRunner

from switchyard.cli.main import app

runner = CliRunner()

USERS_SCHEMA = {
    "name": "users",
    "fields": [
        {"name": "name", "type": "str", "required": True},
        {"name": "age", "type": "int"},
        {"name": "active", "type": "bool", "default": True},
    ],
}


@pytest.fixture
def temp_db() -> Generator[str, None, None]:
    """Create a temporary SQLite database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield f"sqlite:///{db_path}"
    # Cleanup
    for suffix in ("", "-wal", "-shm"):
        if os.path.exists(db_path + suffix):
            os.remove(db_path + suffix)


@pytest.fixture
def schema_file(tmp_path: Path) -> str:
    """Write the users definition to a JSON file."""
    path = tmp_path / "users.json"
    path.write_text(json.dumps(USERS_SCHEMA))
    return str(path)


@pytest.fixture
def users_db(temp_db: str, schema_file: str) -> str:
    """A database with the users collection and two records."""
    result = runner.invoke(app, ["-d", temp_db, "--json", "schema", "create", schema_file])
    assert result.exit_code == 0, result.stdout
    result = runner.invoke(
        app,
        [
            "-d",
            temp_db,
            "--json",
            "data",
            "insert",
            "users",
            '[{"name": "Ann", "age": 40}, {"name": "Bob", "age": 30, "active": false}]',
        ],
    )
    assert result.exit_code == 0, result.stdout
    return temp_db


def invoke_json(*args: str) -> object:
    result = runner.invoke(app, ["--json", *args])
    assert result.exit_code == 0, f"Failed with: {result.stdout}"
    return json.loads(result.stdout)


class TestVersionCommand:
    """Test the version command."""

    def test_version_output(self) -> None:
        """Test that version command shows version info."""
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "Switchyard v" in result.stdout


class TestSchemaCommands:
    """Test schema management commands."""

    def test_schema_list_empty(self, temp_db: str) -> None:
        """Test listing collections when none exist."""
        result = runner.invoke(app, ["-d", temp_db, "schema", "list"])
        assert result.exit_code == 0

    def test_schema_list_json_empty(self, temp_db: str) -> None:
        assert invoke_json("-d", temp_db, "schema", "list") == []

    def test_schema_create(self, temp_db: str, schema_file: str) -> None:
        """Test creating collections from a definition file."""
        data = invoke_json("-d", temp_db, "schema", "create", schema_file)

        assert data["success"] is True  # type: ignore[index]
        assert data["collections"] == ["users"]  # type: ignore[index]
        assert invoke_json("-d", temp_db, "schema", "list") == ["users"]

    def test_schema_create_twice(self, temp_db: str, schema_file: str) -> None:
        runner.invoke(app, ["-d", temp_db, "schema", "create", schema_file])

        result = runner.invoke(app, ["-d", temp_db, "--json", "schema", "create", schema_file])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "CollectionExistsError"

    def test_schema_show(self, users_db: str) -> None:
        """Test showing the actual schema."""
        data = invoke_json("-d", users_db, "schema", "show", "users")

        assert data["name"] == "users"  # type: ignore[index]
        fields = data["fields"]  # type: ignore[index]
        assert [f["name"] for f in fields] == ["name", "age", "active"]

    def test_schema_show_nonexistent(self, temp_db: str) -> None:
        result = runner.invoke(app, ["-d", temp_db, "schema", "show", "ghosts"])
        assert result.exit_code == 1

    def test_schema_migrate(self, users_db: str, tmp_path: Path) -> None:
        """Test reporting and then applying a missing field."""
        extended = dict(USERS_SCHEMA, fields=[*USERS_SCHEMA["fields"], {"name": "nickname"}])
        schema = tmp_path / "extended.json"
        schema.write_text(json.dumps(extended))
        base = ["--json", "-d", users_db, "-s", str(schema), "schema", "migrate", "users"]

        result = runner.invoke(app, base)
        assert result.exit_code == 2
        deltas = json.loads(result.stdout)["deltas"]
        assert [d["field"] for d in deltas] == ["nickname"]

        assert runner.invoke(app, [*base, "--apply"]).exit_code == 0

        result = runner.invoke(app, base)
        assert result.exit_code == 0
        assert json.loads(result.stdout)["deltas"] == []

    def test_schema_drop(self, users_db: str) -> None:
        """Test dropping with --force."""
        result = runner.invoke(app, ["-d", users_db, "schema", "drop", "users", "--force"])

        assert result.exit_code == 0
        assert invoke_json("-d", users_db, "schema", "list") == []

    def test_schema_drop_aborted(self, users_db: str) -> None:
        result = runner.invoke(app, ["-d", users_db, "schema", "drop", "users"], input="n\n")

        assert result.exit_code != 0
        assert invoke_json("-d", users_db, "schema", "list") == ["users"]


class TestDataCommands:
    """Test record commands."""

    def test_data_insert_returns_ids(self, temp_db: str, schema_file: str) -> None:
        runner.invoke(app, ["-d", temp_db, "schema", "create", schema_file])

        data = invoke_json("-d", temp_db, "data", "insert", "users", '{"name": "Ann"}')

        assert data["count"] == 1  # type: ignore[index]
        assert data["ids"] == [1]  # type: ignore[index]

    def test_data_insert_from_file(self, temp_db: str, schema_file: str, tmp_path: Path) -> None:
        runner.invoke(app, ["-d", temp_db, "schema", "create", schema_file])
        records = tmp_path / "records.json"
        records.write_text(json.dumps([{"name": "Ann"}, {"name": "Bob"}]))

        data = invoke_json("-d", temp_db, "data", "insert", "users", "--from-file", str(records))

        assert data["count"] == 2  # type: ignore[index]

    def test_data_insert_invalid_record(self, users_db: str) -> None:
        """Test that a missing required field is reported."""
        result = runner.invoke(
            app, ["-d", users_db, "--json", "data", "insert", "users", '{"age": 3}']
        )

        assert result.exit_code == 1
        error = json.loads(result.stdout)
        assert error["error"] == "ValidationError"
        assert "name" in error["context"]["field_errors"]

    def test_data_get(self, users_db: str) -> None:
        data = invoke_json("-d", users_db, "data", "get", "users", "1")
        assert data == {"id": 1, "name": "Ann", "age": 40, "active": True}

    def test_data_get_fields(self, users_db: str) -> None:
        data = invoke_json("-d", users_db, "data", "get", "users", "2", "--fields", "name")
        assert data == {"id": 2, "name": "Bob"}

    def test_data_get_nonexistent(self, users_db: str) -> None:
        result = runner.invoke(app, ["-d", users_db, "--json", "data", "get", "users", "99"])

        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "RecordNotFoundError"

    def test_data_query(self, users_db: str) -> None:
        """Test querying with filter, sort and limit."""
        data = invoke_json(
            "-d", users_db, "data", "query", "users", "age/gte/30", "--sort", "-age", "--limit", "1"
        )

        assert [r["name"] for r in data["records"]] == ["Ann"]  # type: ignore[index]
        assert data["records_per_page"] == 1  # type: ignore[index]

    def test_data_query_table(self, users_db: str) -> None:
        result = runner.invoke(app, ["-d", users_db, "data", "query", "users"])

        assert result.exit_code == 0
        assert "Ann" in result.stdout

    def test_data_query_bad_filter(self, users_db: str) -> None:
        result = runner.invoke(
            app, ["-d", users_db, "--json", "data", "query", "users", "age/near/3"]
        )

        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "ParseError"

    def test_data_query_three_way_join(self, users_db: str) -> None:
        result = runner.invoke(
            app, ["-d", users_db, "--json", "data", "query", "a.x:b.y:c.z"]
        )

        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"] == "InvalidJoinError"

    def test_data_aggregate(self, users_db: str) -> None:
        data = invoke_json("-d", users_db, "data", "aggregate", "users", "age", "--fn", "sum,max")
        assert data == {"age": {"sum": 70.0, "max": 40.0}}

    def test_data_values(self, users_db: str) -> None:
        data = invoke_json("-d", users_db, "data", "values", "users", "active")
        assert data == {"active": [False, True]}

    def test_data_explain(self, users_db: str) -> None:
        """Test rendering a query without running it."""
        data = invoke_json("-d", users_db, "data", "explain", "users", "age/gt/30")

        assert data == {
            "statement": 'SELECT * FROM "users" WHERE "age" > :p0 LIMIT 25',
            "params": {"p0": 30},
        }

    def test_data_explain_elasticsearch(self, users_db: str) -> None:
        data = invoke_json(
            "-d", users_db, "data", "explain", "users", "age/gt/30", "--dialect", "elasticsearch"
        )

        body = json.loads(data["statement"])  # type: ignore[index]
        assert body["query"] == {"bool": {"filter": [{"range": {"age": {"gt": 30}}}]}}

    def test_data_delete(self, users_db: str) -> None:
        result = runner.invoke(app, ["-d", users_db, "data", "delete", "users", "1"])

        assert result.exit_code == 0
        data = invoke_json("-d", users_db, "data", "query", "users")
        assert [r["name"] for r in data["records"]] == ["Bob"]  # type: ignore[index]


class TestGlobalOptions:
    """Test global CLI options."""

    def test_env_database_fallback(self, temp_db: str) -> None:
        """Test that SWITCHYARD_URL is used when -d is absent."""
        result = runner.invoke(
            app, ["--json", "schema", "list"], env={"SWITCHYARD_URL": temp_db}
        )

        assert result.exit_code == 0
        assert json.loads(result.stdout) == []

    def test_memory_backend(self) -> None:
        assert invoke_json("-d", "memory://", "schema", "list") == []

    def test_invalid_json_data(self, users_db: str) -> None:
        result = runner.invoke(app, ["-d", users_db, "data", "insert", "users", "{not json"])
        assert result.exit_code == 1

    def test_missing_data(self, users_db: str) -> None:
        result = runner.invoke(app, ["-d", users_db, "data", "insert", "users"])
        assert result.exit_code == 1
