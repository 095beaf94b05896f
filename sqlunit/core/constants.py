from __future__ import annotations

SQLUNIT = "sqlunit"

CONFIG_FILE_NAMES = ("config.yaml", "config.yml")
"""Project configuration file names, in lookup order"""

MODELS = "models"
MACROS = "macros"
TESTS = "tests"
FIXTURES = "fixtures"

YAML_EXTENSIONS = (".yaml", ".yml")

DEFAULT_DIALECT = "duckdb"
DEFAULT_SCHEMA = "main"

FIXTURE_SCHEMA_PREFIX = f"{SQLUNIT}_test_"
"""Prefix of the transient schemas that hold a test's fixture views"""

DEFAULT_DIFF_PREVIEW_ROWS = 50
"""The default maximum number of rows shown per table of a failing test's diff"""

DEFAULT_LOG_LIMIT = 20
"""The default number of logs to keep."""

DEFAULT_LOG_FILE_DIR = "logs"
"""The default directory for log files."""

THIS = "this"

# Keys of the unit test YAML schema
UNIT_TESTS = "unit_tests"
SOURCES = "sources"
