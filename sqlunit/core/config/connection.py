from __future__ import annotations

import abc
import typing as t
from functools import partial

import pydantic
from pydantic import Field

from sqlunit.core import engine_adapter
from sqlunit.core.engine_adapter import EngineAdapter
from sqlunit.utils.errors import ConfigError
from sqlunit.utils.pydantic import (
    Bool,
    PositiveInt,
    PydanticModel,
    field_validator,
    validation_error_message,
)


class ConnectionConfig(abc.ABC, PydanticModel):
    type_: str
    concurrent_tasks: PositiveInt
    pretty_sql: Bool = False

    @property
    @abc.abstractmethod
    def _connection_kwargs_keys(self) -> t.Set[str]:
        """keywords that should be passed into the connection"""

    @property
    @abc.abstractmethod
    def _engine_adapter(self) -> t.Type[EngineAdapter]:
        """The engine adapter for this connection"""

    @property
    @abc.abstractmethod
    def _connection_factory(self) -> t.Callable:
        """A function that is called to return a connection object for the given Engine Adapter"""

    @property
    def _static_connection_kwargs(self) -> t.Dict[str, t.Any]:
        """The static connection kwargs for this connection"""
        return {}

    @property
    def _connection_factory_with_kwargs(self) -> t.Callable[[], t.Any]:
        """A function that is called to return a connection object for the given Engine Adapter"""
        return partial(
            self._connection_factory,
            **{
                **self._static_connection_kwargs,
                **{
                    k: v
                    for k, v in self.dict().items()
                    if k in self._connection_kwargs_keys and v is not None
                },
            },
        )

    def create_engine_adapter(self, concurrent_tasks: t.Optional[int] = None) -> EngineAdapter:
        """Returns a new instance of the Engine Adapter."""
        concurrent_tasks = concurrent_tasks or self.concurrent_tasks
        return self._engine_adapter(
            self._connection_factory_with_kwargs,
            multithreaded=concurrent_tasks > 1,
            pretty_sql=self.pretty_sql,
        )


class DuckDBConnectionConfig(ConnectionConfig):
    """Configuration for the DuckDB connection.

    Args:
        database: The optional database name. If not specified, the in-memory database will be used.
        connector_config: Additional configuration passed to `duckdb.connect`.
        concurrent_tasks: The maximum number of tests that can run concurrently.
    """

    database: t.Optional[str] = None
    connector_config: t.Dict[str, t.Any] = {}

    concurrent_tasks: PositiveInt = 4
    type_: t.Literal["duckdb"] = Field(alias="type", default="duckdb")

    @property
    def _engine_adapter(self) -> t.Type[EngineAdapter]:
        return engine_adapter.DuckDBEngineAdapter

    @property
    def _connection_kwargs_keys(self) -> t.Set[str]:
        return {"database"}

    @property
    def _connection_factory(self) -> t.Callable:
        import duckdb

        return duckdb.connect

    @property
    def _static_connection_kwargs(self) -> t.Dict[str, t.Any]:
        return {"database": ":memory:", "config": self.connector_config}


CONNECTION_CONFIG_TO_TYPE: t.Dict[str, t.Type[ConnectionConfig]] = {
    "duckdb": DuckDBConnectionConfig,
}


def parse_connection_config(v: t.Dict[str, t.Any]) -> ConnectionConfig:
    if "type" not in v:
        raise ConfigError("Missing connection type.")

    connection_type = v["type"]
    if connection_type not in CONNECTION_CONFIG_TO_TYPE:
        raise ConfigError(f"Unknown connection type '{connection_type}'.")

    return CONNECTION_CONFIG_TO_TYPE[connection_type](**v)


def _connection_config_validator(
    cls: t.Type, v: ConnectionConfig | t.Dict[str, t.Any] | None
) -> ConnectionConfig | None:
    if v is None or isinstance(v, ConnectionConfig):
        return v

    try:
        return parse_connection_config(v)
    except pydantic.ValidationError as e:
        raise ConfigError(
            validation_error_message(e, f"Invalid '{v['type']}' connection config:")
        )


connection_config_validator: t.Callable = field_validator(
    "connection",
    "test_connection_",
    mode="before",
    check_fields=False,
)(_connection_config_validator)
