"""
# EngineAdapter

Engine adapters are how sqlunit connects and interacts with the query engine. They provide the
small set of operations unit testing needs: creating and dropping schemas, creating the fixture
views, introspecting relations, building models and fetching query results as pandas DataFrames.
"""

from __future__ import annotations

import logging
import typing as t

from sqlglot import exp
from sqlglot.helper import ensure_list

from sqlunit.core.dialect import select_from_values
from sqlunit.utils.connection_pool import create_connection_pool
from sqlunit.utils.errors import ExecutionError

if t.TYPE_CHECKING:
    import pandas as pd

    TableName = t.Union[str, exp.Table]
    Query = t.Union[exp.Query, str]

logger = logging.getLogger(__name__)


class EngineAdapter:
    """Base class wrapping a Database API compliant connection.

    The EngineAdapter is an easily-subclassable interface that interacts
    with the underlying engine and data store.

    Args:
        connection_factory: a callable which produces a new Database API-compliant
            connection on every call.
        dialect: The dialect with which this adapter is associated.
        multithreaded: Indicates whether this adapter will be used by more than one thread.
        pretty_sql: Whether the generated SQL should be pretty-printed.
    """

    DIALECT = ""
    ENGINE_ERRORS: t.Tuple[t.Type[Exception], ...] = ()

    def __init__(
        self,
        connection_factory: t.Callable[[], t.Any],
        dialect: str = "",
        multithreaded: bool = False,
        pretty_sql: bool = False,
    ):
        self.dialect = dialect.lower() or self.DIALECT
        self._connection_pool = create_connection_pool(connection_factory, multithreaded)
        self._pretty_sql = pretty_sql
        self._execute_log_level = logging.DEBUG

    @property
    def cursor(self) -> t.Any:
        return self._connection_pool.get_cursor()

    @property
    def connection(self) -> t.Any:
        return self._connection_pool.get()

    def execute(
        self,
        expressions: t.Union[str, exp.Expression, t.Sequence[exp.Expression]],
        quote_identifiers: bool = True,
    ) -> None:
        """Execute a sql query."""
        for e in ensure_list(expressions):
            if isinstance(e, exp.Expression):
                sql = self._to_sql(e, quote=quote_identifiers)
            else:
                sql = t.cast(str, e)

            self._log_sql(
                sql,
                expression=e if isinstance(e, exp.Expression) else None,
                quote_identifiers=quote_identifiers,
            )
            self._execute(sql)

    def fetchall(self, query: Query, quote_identifiers: bool = False) -> t.List[t.Tuple]:
        self.execute(query, quote_identifiers=quote_identifiers)
        return self.cursor.fetchall()

    def fetchdf(self, query: Query, quote_identifiers: bool = False) -> pd.DataFrame:
        """Fetches a Pandas DataFrame from a SQL query."""
        self.execute(query, quote_identifiers=quote_identifiers)
        return self._fetch_native_df()

    def create_schema(self, schema_name: str, ignore_if_exists: bool = True) -> None:
        self.execute(
            exp.Create(this=exp.to_table(schema_name), kind="SCHEMA", exists=ignore_if_exists)
        )

    def drop_schema(
        self, schema_name: str, ignore_if_not_exists: bool = True, cascade: bool = False
    ) -> None:
        self._drop_object(schema_name, exists=ignore_if_not_exists, kind="SCHEMA", cascade=cascade)

    def create_view(
        self,
        view_name: TableName,
        query_or_values: t.Union[exp.Query, t.List[t.Tuple[t.Any, ...]]],
        columns_to_types: t.Optional[t.Dict[str, t.Optional[exp.DataType]]] = None,
        replace: bool = True,
    ) -> None:
        """Create a view with a query or a list of rows.

        If rows are passed in, they will be converted into a literal values statement.
        This should only be done if there are very few of them!

        Args:
            view_name: The view name.
            query_or_values: A query or a list of row tuples.
            columns_to_types: The columns of the rows and their types. Required for rows.
            replace: Whether or not to replace an existing view, defaults to True.
        """
        if isinstance(query_or_values, exp.Query):
            query = query_or_values
        else:
            if not columns_to_types:
                raise ExecutionError("columns_to_types must be provided for rows")
            query = select_from_values(query_or_values, columns_to_types)

        self.execute(
            exp.Create(
                this=exp.to_table(view_name) if isinstance(view_name, str) else view_name,
                kind="VIEW",
                replace=replace,
                expression=query,
            )
        )

    def ctas(self, table_name: TableName, query: exp.Query, replace: bool = True) -> None:
        """Create a table using a CTAS statement."""
        self.execute(
            exp.Create(
                this=exp.to_table(table_name) if isinstance(table_name, str) else table_name,
                kind="TABLE",
                replace=replace,
                expression=query,
            )
        )

    def create_table(
        self, table_name: TableName, columns_to_types: t.Dict[str, exp.DataType]
    ) -> None:
        """Create an empty table with the given columns if it doesn't exist."""
        table = exp.to_table(table_name) if isinstance(table_name, str) else table_name
        schema = exp.Schema(
            this=table,
            expressions=[
                exp.ColumnDef(this=exp.to_identifier(column), kind=kind)
                for column, kind in columns_to_types.items()
            ],
        )
        self.execute(exp.Create(this=schema, kind="TABLE", exists=True))

    def insert_append(self, table_name: TableName, query: exp.Query) -> None:
        table = exp.to_table(table_name) if isinstance(table_name, str) else table_name
        self.execute(exp.insert(query, table))

    def columns(self, table_name: TableName) -> t.Dict[str, exp.DataType]:
        """Fetches column names and types for the target table or view."""
        table = exp.to_table(table_name) if isinstance(table_name, str) else table_name
        query = (
            exp.select("column_name", "data_type")
            .from_("information_schema.columns")
            .where(exp.column("table_name").eq(table.name))
            .order_by("ordinal_position")
        )
        if table.db:
            query = query.where(exp.column("table_schema").eq(table.db))

        return {
            column_name: exp.DataType.build(data_type, dialect=self.dialect, udt=True)
            for column_name, data_type in self.fetchall(query)
        }

    def table_exists(self, table_name: TableName) -> bool:
        table = exp.to_table(table_name) if isinstance(table_name, str) else table_name
        query = (
            exp.select("1")
            .from_("information_schema.tables")
            .where(exp.column("table_name").eq(table.name))
        )
        if table.db:
            query = query.where(exp.column("table_schema").eq(table.db))
        return bool(self.fetchall(query))

    def release(self) -> None:
        """Releases the current thread's cursor."""
        self._connection_pool.close_cursor()

    def cancel(self) -> None:
        """Interrupts every running query."""
        self._connection_pool.interrupt_all()

    def close(self) -> t.Any:
        """Closes all open connections and releases all allocated resources."""
        self._connection_pool.close_all()

    def _drop_object(
        self,
        name: TableName,
        exists: bool = True,
        kind: str = "TABLE",
        cascade: bool = False,
    ) -> None:
        """Drops an object.

        Args:
            name: The name of the object to drop.
            exists: If exists, defaults to True.
            kind: What kind of object to drop. Defaults to TABLE
            cascade: Whether or not to DROP ... CASCADE.
        """
        self.execute(exp.Drop(this=exp.to_table(name), kind=kind, exists=exists, cascade=cascade))

    def _fetch_native_df(self) -> pd.DataFrame:
        return self.cursor.fetchdf()

    def _log_sql(
        self,
        sql: str,
        expression: t.Optional[exp.Expression] = None,
        quote_identifiers: bool = True,
    ) -> None:
        if not logger.isEnabledFor(self._execute_log_level):
            return

        sql_to_log = sql
        if expression is not None:
            expression = expression.copy()
            values = expression.find(exp.Values)
            if values:
                values.set("expressions", [exp.to_identifier("<REDACTED VALUES>")])
                sql_to_log = self._to_sql(expression, quote=quote_identifiers)

        logger.log(self._execute_log_level, "Executing SQL: %s", sql_to_log)

    def _execute(self, sql: str) -> None:
        try:
            self.cursor.execute(sql)
        except self.ENGINE_ERRORS as e:
            raise ExecutionError(f"{e}\n\nSQL: {sql}") from e

    def _to_sql(self, expression: exp.Expression, quote: bool = True, **kwargs: t.Any) -> str:
        """
        Converts an expression to a SQL string. Has a set of default kwargs to apply, and then
        kwargs provided by the user when calling this method.
        """
        sql_gen_kwargs = {
            "dialect": self.dialect,
            "pretty": self._pretty_sql,
            "comments": False,
            **kwargs,
        }

        expression = expression.copy()

        if quote:
            from sqlglot.optimizer.qualify_columns import quote_identifiers

            expression = quote_identifiers(expression, dialect=self.dialect)

        return expression.sql(**sql_gen_kwargs, copy=False)  # type: ignore
