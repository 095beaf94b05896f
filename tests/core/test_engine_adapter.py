from __future__ import annotations

import logging
import typing as t
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlglot import exp, parse_one

from sqlunit.core.config import DuckDBConnectionConfig
from sqlunit.core.dialect import relation
from sqlunit.core.engine_adapter import EngineAdapter
from sqlunit.utils.errors import ExecutionError


@pytest.fixture
def adapter() -> t.Iterator[EngineAdapter]:
    adapter = DuckDBConnectionConfig(concurrent_tasks=1).create_engine_adapter()
    yield adapter
    adapter.close()


def test_create_view_from_values(adapter: EngineAdapter):
    view = relation("orders", "fixtures")

    adapter.create_schema("fixtures")
    adapter.create_view(
        view,
        [(1, "new"), (2, None)],
        {"id": exp.DataType.build("int"), "status": exp.DataType.build("varchar")},
    )

    assert adapter.table_exists(view)
    assert not adapter.table_exists(relation("orders", "main"))
    assert adapter.fetchall("SELECT id, status FROM fixtures.orders ORDER BY id") == [
        (1, "new"),
        (2, None),
    ]

    columns = adapter.columns(view)
    assert list(columns) == ["id", "status"]
    assert columns["id"].is_type("int")
    assert columns["status"].sql("duckdb") == "TEXT"

    adapter.drop_schema("fixtures", cascade=True)
    assert not adapter.table_exists(view)


def test_create_view_requires_types(adapter: EngineAdapter):
    with pytest.raises(ExecutionError, match="columns_to_types must be provided"):
        adapter.create_view(relation("v"), [(1,)])


def test_tables(adapter: EngineAdapter):
    table = relation("events", "analytics")
    adapter.create_schema("analytics")
    adapter.create_table(
        table, {"id": exp.DataType.build("bigint"), "at": exp.DataType.build("date")}
    )
    # Creating the same table again is a no-op
    adapter.create_table(table, {"id": exp.DataType.build("bigint")})
    assert list(adapter.columns(table)) == ["id", "at"]

    adapter.insert_append(table, parse_one("SELECT 1 AS id, DATE '2020-01-01' AS at"))
    adapter.insert_append(table, parse_one("SELECT 2 AS id, DATE '2020-01-02' AS at"))
    assert adapter.fetchdf("SELECT id FROM analytics.events ORDER BY id")["id"].tolist() == [1, 2]

    adapter.ctas(table, parse_one("SELECT 3 AS id"))
    assert adapter.fetchall(exp.select("*").from_(table)) == [(3,)]


def test_execution_error(adapter: EngineAdapter):
    with pytest.raises(ExecutionError, match="SQL: SELECT \\* FROM missing"):
        adapter.execute("SELECT * FROM missing")


def test_values_are_redacted_in_logs(adapter: EngineAdapter, caplog):
    with caplog.at_level(logging.DEBUG, logger="sqlunit.core.engine_adapter.base"):
        adapter.create_view(
            relation("secrets"), [("hunter2",)], {"password": exp.DataType.build("varchar")}
        )

    assert "Executing SQL" in caplog.text
    assert "<REDACTED VALUES>" in caplog.text
    assert "hunter2" not in caplog.text


def test_release(adapter: EngineAdapter):
    adapter.execute("CREATE TABLE t AS SELECT 1 AS a")
    cursor = adapter.cursor

    adapter.release()

    assert adapter.cursor is not cursor
    assert adapter.fetchall("SELECT a FROM t") == [(1,)]


def test_multithreaded_adapter_shares_the_database():
    adapter = DuckDBConnectionConfig(concurrent_tasks=4).create_engine_adapter()
    adapter.execute("CREATE TABLE t AS SELECT * FROM range(10) AS r(a)")

    def count() -> int:
        try:
            return adapter.fetchall("SELECT count(*) FROM t")[0][0]
        finally:
            adapter.release()

    try:
        with ThreadPoolExecutor(max_workers=4) as executor:
            assert list(executor.map(lambda _: count(), range(8))) == [10] * 8
    finally:
        adapter.close()
