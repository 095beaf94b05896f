from __future__ import annotations

import duckdb

from sqlunit.core.engine_adapter.base import EngineAdapter


class DuckDBEngineAdapter(EngineAdapter):
    DIALECT = "duckdb"
    ENGINE_ERRORS = (duckdb.Error,)
