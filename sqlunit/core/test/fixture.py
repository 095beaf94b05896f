from __future__ import annotations

import csv
import logging
import typing as t
from io import StringIO
from pathlib import Path

from sqlglot import exp
from sqlglot.errors import ParseError

from sqlunit.core.dialect import infer_type, relation
from sqlunit.core.model import Model, ModelRef, SourceRef, SourceTable
from sqlunit.core.test.definition import THIS, InputReference, RowSet
from sqlunit.utils import type_is_known
from sqlunit.utils.errors import FixtureFormatError, SQLUnitError
from sqlunit.utils.yaml import load as yaml_load

if t.TYPE_CHECKING:
    from sqlglot.dialects.dialect import DialectType

    from sqlunit.core.engine_adapter import EngineAdapter
    from sqlunit.core.loader import LoadedProject

    Row = t.Dict[str, t.Any]

logger = logging.getLogger(__name__)


class FixtureData(t.NamedTuple):
    """The canonical form of a row set: either rows with their columns, or a query."""

    columns: t.List[str]
    rows: t.List[Row]
    query: t.Optional[exp.Query] = None


def load_row_set(row_set: RowSet, name: str, dialect: DialectType = None) -> FixtureData:
    """Reads the rows of a given input or of the expected output into their canonical form.

    Args:
        row_set: The row set to read.
        name: A label for error messages.
        dialect: The dialect of `sql` row sets.

    Returns:
        The rows or the query of the row set.
    """
    if row_set.rows is not None and row_set.fixture:
        raise FixtureFormatError(f"Cannot set both 'rows' and 'fixture' for '{name}'")

    if row_set.fixture:
        source: t.Any = _read_fixture(t.cast(Path, row_set.fixture_path), row_set, name)
    elif row_set.rows is None:
        raise FixtureFormatError(f"Missing 'rows' or 'fixture' for '{name}'")
    else:
        source = row_set.rows

    if row_set.format.is_csv:
        return _csv_rows(source, name)
    if row_set.format.is_sql:
        return _sql_query(source, name, dialect)
    return _dict_rows(source, name)


def _read_fixture(path: Path, row_set: RowSet, name: str) -> t.Any:
    if row_set.format.is_dict:
        try:
            contents = yaml_load(path, raise_if_empty=False, render_jinja=False)
        except SQLUnitError as e:
            raise FixtureFormatError(f"Invalid fixture for '{name}': {e}") from e
        if isinstance(contents, dict) and "rows" in contents:
            contents = contents["rows"]
        return [] if contents == {} else contents
    return path.read_text(encoding="utf-8")


def _dict_rows(rows: t.Any, name: str) -> FixtureData:
    if not isinstance(rows, list):
        raise FixtureFormatError(f"Rows of '{name}' must be a list of mappings")

    columns: t.Dict[str, None] = {}
    normalized = []
    for index, row in enumerate(rows):
        if not isinstance(row, dict):
            raise FixtureFormatError(
                f"Row {index + 1} of '{name}' must be a mapping of column names to values, got: {row!r}"
            )
        for column in row:
            columns[str(column)] = None
        normalized.append({str(column): value for column, value in row.items()})

    return FixtureData(columns=list(columns), rows=normalized)


def _csv_rows(text: t.Any, name: str) -> FixtureData:
    import pandas as pd

    if not isinstance(text, str):
        raise FixtureFormatError(f"Rows of '{name}' must be CSV text")

    records = [
        record
        for record in csv.reader(StringIO(text.strip()), skipinitialspace=True)
        if len(record) > 1 or (record and record[0].strip())
    ]
    if not records or not any(field.strip() for field in records[0]):
        raise FixtureFormatError(f"The CSV rows of '{name}' must start with a header row")

    header = [field.strip() for field in records[0]]
    null_tokens = {""}
    for index, record in enumerate(records[1:], start=2):
        if len(record) != len(header):
            raise FixtureFormatError(
                f"Line {index} of the CSV rows of '{name}' has {len(record)} field(s) but the header has {len(header)}"
            )
        null_tokens.update(field for field in record if field.strip().lower() == "null")

    df = pd.read_csv(
        StringIO(text.strip()),
        skipinitialspace=True,
        keep_default_na=False,
        na_values=sorted(null_tokens),
        skip_blank_lines=True,
        # Integer columns with NULLs stay integers
        dtype_backend="numpy_nullable",
    )
    df.columns = header
    df = df.astype(object).where(df.notna(), None)
    return FixtureData(columns=header, rows=df.to_dict(orient="records"))


def _sql_query(sql: t.Any, name: str, dialect: DialectType = None) -> FixtureData:
    if not isinstance(sql, str) or not sql.strip():
        raise FixtureFormatError(f"Rows of '{name}' must be a SQL query")
    try:
        query = exp.maybe_parse(sql.strip().rstrip(";"), dialect=dialect)
    except ParseError as e:
        raise FixtureFormatError(f"Failed to parse the SQL rows of '{name}': {e}") from e
    if not isinstance(query, exp.Query):
        raise FixtureFormatError(f"The SQL rows of '{name}' must be a SELECT query")
    return FixtureData(columns=list(query.named_selects), rows=[], query=query)


class FixtureMaterializer:
    """Creates the fixture views of a single test case in its own schema.

    Args:
        engine_adapter: The engine adapter to create the views with.
        project: The loaded project, used to find the columns of upstream relations.
        schema: The schema of the test case's fixture views.
        dialect: The dialect of the project.
    """

    def __init__(
        self,
        engine_adapter: EngineAdapter,
        project: LoadedProject,
        schema: str,
        dialect: DialectType = None,
    ) -> None:
        self.engine_adapter = engine_adapter
        self.project = project
        self.schema = schema
        self.dialect = dialect

    def materialize(
        self, reference: InputReference, row_set: RowSet, label: str, target: Model
    ) -> exp.Table:
        """Creates the fixture view of a given input.

        Args:
            reference: The resolved reference of the input.
            row_set: The input's mock rows.
            label: The input as written in the test, used in error messages.
            target: The model version under test, which `this` refers to.

        Returns:
            The fixture view that replaces the reference when compiling the target model.
        """
        data = load_row_set(row_set, label, self.dialect)
        upstream = target if reference is THIS else self.project.resolve(t.cast(t.Any, reference))
        columns_to_types = self.upstream_columns(upstream)

        for column in data.columns:
            if column not in columns_to_types:
                columns_to_types[column] = None

        if not columns_to_types:
            raise FixtureFormatError(
                f"Cannot determine the columns of '{label}'. Declare its columns or provide at least one row."
            )

        table = relation(self._fixture_name(reference, target), self.schema)

        if data.query is not None:
            self.engine_adapter.create_view(
                table, self._add_missing_columns(data.query, columns_to_types)
            )
            return table

        for column, kind in columns_to_types.items():
            if kind is None or not type_is_known(kind):
                value = next(
                    (row[column] for row in data.rows if row.get(column) is not None), None
                )
                columns_to_types[column] = (
                    infer_type(value, self.dialect) if value is not None else None
                )

        values = [tuple(row.get(column) for column in columns_to_types) for row in data.rows]
        self.engine_adapter.create_view(table, values, columns_to_types)
        return table

    def upstream_columns(
        self, upstream: t.Optional[t.Union[Model, SourceTable]]
    ) -> t.Dict[str, t.Optional[exp.DataType]]:
        """The full column list of an upstream relation.

        Declared columns win, then the columns of the relation in the warehouse.
        """
        if upstream is None:
            return {}

        declared = upstream.columns_to_types(self.dialect)
        if declared:
            return declared

        if isinstance(upstream, Model) and upstream.materialized.is_ephemeral:
            return {}

        if self.engine_adapter.table_exists(upstream.relation):
            logger.debug("Using the columns of '%s' in the warehouse", upstream.relation.sql())
            return dict(self.engine_adapter.columns(upstream.relation))

        return {}

    def _fixture_name(self, reference: InputReference, target: Model) -> str:
        if reference is THIS:
            return f"this__{target.relation_name}"
        if isinstance(reference, SourceRef):
            return f"source__{reference.source_name}__{reference.table_name}"
        reference = t.cast(ModelRef, reference)
        if reference.version:
            return f"model__{reference.name}_v{reference.version}"
        return f"model__{reference.name}"

    def _add_missing_columns(
        self, query: exp.Query, all_columns: t.Dict[str, t.Optional[exp.DataType]]
    ) -> exp.Query:
        if not all_columns or query.is_star:
            return query

        query_columns = set(query.named_selects)
        missing_columns = [col for col in all_columns if col not in query_columns]
        if not missing_columns:
            return query

        nulls = [
            exp.alias_(exp.cast(exp.null(), to=kind) if kind else exp.null(), col)
            for col, kind in all_columns.items()
            if col in missing_columns
        ]
        if isinstance(query, exp.Select):
            return query.select(*nulls, copy=True)
        return exp.select("*", *nulls).from_(query.subquery("_q"))
