from sqlunit.core.engine_adapter.base import EngineAdapter as EngineAdapter
from sqlunit.core.engine_adapter.duckdb import DuckDBEngineAdapter as DuckDBEngineAdapter
