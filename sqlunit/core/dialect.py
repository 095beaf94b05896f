from __future__ import annotations

import datetime
import typing as t
from decimal import Decimal

from sqlglot import exp
from sqlglot.optimizer.annotate_types import annotate_types

from sqlunit.utils import type_is_known

if t.TYPE_CHECKING:
    from sqlglot.dialects.dialect import DialectType


def select_from_values(
    values: t.List[t.Tuple[t.Any, ...]],
    columns_to_types: t.Dict[str, t.Optional[exp.DataType]],
    alias: str = "t",
) -> exp.Select:
    """Generate a VALUES expression that has a select wrapped around it to cast the values to their correct types.

    Columns without a known type are selected as they are.

    Args:
        values: List of values to use for the VALUES expression.
        columns_to_types: Mapping of column names to the types to assign to the values.
        alias: The alias to assign to the values expression. If not provided then will default to "t"

    Returns:
        The SELECT expression.
    """
    casted_columns = [
        exp.alias_(
            exp.cast(exp.column(column), to=kind) if kind else exp.column(column),
            column,
            copy=False,
        )
        for column, kind in columns_to_types.items()
    ]

    if not values:
        # Ensures we don't generate an empty VALUES clause & forces a zero-row output
        where: t.Optional[exp.Expression] = exp.false()
        expressions = [
            tuple(
                exp.cast(exp.null(), to=kind) if kind else exp.null()
                for kind in columns_to_types.values()
            )
        ]
    else:
        where = None
        expressions = [tuple(to_sql_value(v) for v in row) for row in values]

    values_exp = exp.values(expressions, alias=alias, columns=list(columns_to_types))
    return exp.select(*casted_columns).from_(values_exp, copy=False).where(where, copy=False)


def to_sql_value(value: t.Any) -> exp.Expression:
    """Converts a python scalar coming from YAML, CSV or a DataFrame into a SQL literal."""
    import numpy as np
    import pandas as pd

    if isinstance(value, np.generic):
        value = value.item()
    if value is None or (isinstance(value, float) and value != value) or value is pd.NaT:
        return exp.null()
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, Decimal):
        return exp.Literal.number(str(value))
    if isinstance(value, datetime.time):
        return exp.cast(exp.Literal.string(value.isoformat()), to="time")
    return exp.convert(value)


def infer_type(value: t.Any, dialect: DialectType = None) -> t.Optional[exp.DataType]:
    """Infers the SQL type of a python scalar, returning None if it can't be determined."""
    v_type = annotate_types(to_sql_value(value)).type
    if v_type is None:
        return None
    v_type = exp.DataType.build(v_type, dialect=dialect)
    return v_type if type_is_known(v_type) else None


def relation(name: str, schema: t.Optional[str] = None) -> exp.Table:
    """Builds a table expression for `schema.name`."""
    return exp.table_(name, db=schema, quoted=True)
