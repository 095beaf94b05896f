from __future__ import annotations

import typing as t
from pathlib import Path


class SQLUnitError(Exception):
    pass


class ConfigError(SQLUnitError):
    location: t.Optional[Path] = None

    def __init__(self, message: str | Exception, location: t.Optional[Path] = None) -> None:
        super().__init__(message)
        if location:
            self.location = Path(location) if isinstance(location, str) else location


class DefinitionError(ConfigError):
    """Raised when a unit test definition is malformed, ambiguous or unresolvable."""

    __test__ = False  # prevent pytest trying to collect this as a test class

    def __init__(
        self, message: str, location: t.Optional[Path] = None, test_name: t.Optional[str] = None
    ) -> None:
        self.test_name = test_name
        prefix = f"Invalid unit test '{test_name}'" if test_name else "Invalid unit test"
        suffix = f" at {location}" if location else ""
        super().__init__(f"{prefix}{suffix}:\n{message}", location)


class FixtureFormatError(SQLUnitError):
    """Raised when the mock rows of a given input or an expected output are malformed."""


class CompilationError(SQLUnitError):
    """Raised when a model's query fails to render or parse."""


class ExecutionError(SQLUnitError):
    """Raised when the query engine fails, as opposed to the model's logic being wrong."""


class ComparisonFailure(AssertionError):
    """The actual rows of a model differ from the expected ones.

    The first argument is a plain-text description of the mismatch, the remaining arguments
    are rich tables that render the same diff for the console.
    """
