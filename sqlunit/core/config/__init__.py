from sqlunit.core.config.connection import (
    ConnectionConfig as ConnectionConfig,
    DuckDBConnectionConfig as DuckDBConnectionConfig,
    parse_connection_config as parse_connection_config,
)
from sqlunit.core.config.loader import load_config_from_paths as load_config_from_paths
from sqlunit.core.config.root import Config as Config
