from __future__ import annotations

import typing as t

from pydantic import Field

from sqlunit.core import constants as c
from sqlunit.core.config.connection import (
    ConnectionConfig,
    DuckDBConnectionConfig,
    connection_config_validator,
)
from sqlunit.utils.pydantic import ListOfStrings, PositiveInt, PydanticModel, field_validator


class Config(PydanticModel):
    """The main configuration of a sqlunit project.

    Args:
        dialect: The SQL dialect the models are written in.
        default_schema: The schema of models and sources that don't set one.
        variables: Values returned by `var()` while rendering models.
        connection: The connection used to build models.
        test_connection: The connection used to run unit tests. Defaults to `connection`.
        model_paths: Directories, relative to the project, holding models and property files.
        macro_paths: Directories, relative to the project, holding Jinja macros.
        test_paths: Directories, relative to the project, holding more unit test property files.
        fixture_paths: Directories, relative to the project, searched for external fixture files.
        diff_preview_rows: The maximum number of rows shown per table of a failing test's diff.
    """

    dialect: str = c.DEFAULT_DIALECT
    default_schema: str = c.DEFAULT_SCHEMA
    variables: t.Dict[str, t.Any] = {}
    connection: ConnectionConfig = DuckDBConnectionConfig()
    test_connection_: t.Optional[ConnectionConfig] = Field(alias="test_connection", default=None)
    model_paths: ListOfStrings = [c.MODELS]
    macro_paths: ListOfStrings = [c.MACROS]
    test_paths: ListOfStrings = [c.TESTS]
    fixture_paths: ListOfStrings = [f"{c.TESTS}/{c.FIXTURES}"]
    diff_preview_rows: PositiveInt = c.DEFAULT_DIFF_PREVIEW_ROWS

    _connection_config_validator = connection_config_validator

    @field_validator("dialect", mode="before")
    @classmethod
    def _validate_dialect(cls, v: t.Any) -> str:
        from sqlglot import Dialect

        dialect = str(v).lower()
        try:
            Dialect.get_or_raise(dialect)
        except ValueError as e:
            raise ValueError(f"Unknown dialect '{v}'.") from e
        return dialect

    @property
    def test_connection(self) -> ConnectionConfig:
        return self.test_connection_ or self.connection
