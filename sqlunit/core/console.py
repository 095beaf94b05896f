from __future__ import annotations

import abc
import logging
import typing as t
import unittest
from itertools import zip_longest

from rich.console import Console as RichConsole
from rich.markup import escape
from rich.syntax import Syntax

from sqlunit.utils import Verbosity
from sqlunit.utils import rich as srich

if t.TYPE_CHECKING:
    from sqlunit.core.test.result import ModelTextTestResult

logger = logging.getLogger(__name__)


class Console(abc.ABC):
    """Abstract base class for defining classes used for displaying information to the user."""

    @abc.abstractmethod
    def log_test_results(self, result: ModelTextTestResult, target_dialect: str) -> None:
        """Display the test result and output.

        Args:
            result: The unittest test result that contains metrics like num success, fails, ect.
            target_dialect: The dialect that tests were run against.
        """

    @abc.abstractmethod
    def log_status_update(self, message: str) -> None:
        """Display general status update to the user."""

    @abc.abstractmethod
    def log_error(self, message: str) -> None:
        """Display error info to the user."""

    @abc.abstractmethod
    def log_warning(self, short_message: str, long_message: t.Optional[str] = None) -> None:
        """Display warning info to the user.

        Args:
            short_message: The warning message to print to console.
            long_message: The warning message to log to file. If not provided, `short_message` is used.
        """

    @abc.abstractmethod
    def log_success(self, message: str) -> None:
        """Display a general successful message to the user."""

    @abc.abstractmethod
    def show_sql(self, sql: str) -> None:
        """Display to the user SQL."""


class NoopConsole(Console):
    def log_test_results(self, result: ModelTextTestResult, target_dialect: str) -> None:
        pass

    def log_status_update(self, message: str) -> None:
        pass

    def log_error(self, message: str) -> None:
        pass

    def log_warning(self, short_message: str, long_message: t.Optional[str] = None) -> None:
        logger.warning(long_message or short_message)

    def log_success(self, message: str) -> None:
        pass

    def show_sql(self, sql: str) -> None:
        pass


class TerminalConsole(Console):
    """A rich based implementation of the console."""

    def __init__(
        self,
        console: t.Optional[RichConsole] = None,
        verbosity: Verbosity = Verbosity.DEFAULT,
        ignore_warnings: bool = False,
        **kwargs: t.Any,
    ) -> None:
        self.console: RichConsole = console or srich.console
        self.verbosity = verbosity
        self.ignore_warnings = ignore_warnings

    def _print(self, value: t.Any, **kwargs: t.Any) -> None:
        self.console.print(value, **kwargs)

    def log_test_results(self, result: ModelTextTestResult, target_dialect: str) -> None:
        # We don't log the test results if no tests were ran
        if not result.testsRun:
            return

        divider_length = 70

        self._log_test_details(result)

        message = (
            f"Ran {result.testsRun} tests against {target_dialect} in {result.duration} seconds."
        )
        counts = (
            f"[passed]PASS={len(result.successes)}[/passed] "
            f"[failed]FAIL={len(result.failures)}[/failed] "
            f"[errored]ERROR={len(result.errors)}[/errored] "
            f"[skipped]SKIP={len(result.skipped)}[/skipped]"
        )
        if result.wasSuccessful():
            self._print("=" * divider_length)
            self._print(
                f"Successfully {message}",
                style="green",
            )
            self._print(counts)
            self._print("-" * divider_length)
        else:
            self._print("-" * divider_length)
            self._print("Test Failure Summary", style="red")
            self._print("=" * divider_length)
            fail_and_error_tests = result.get_fail_and_error_tests()
            self._print(f"{message} \n")
            self._print(counts)

            self._print(f"Failed tests ({len(fail_and_error_tests)}):")
            for test in fail_and_error_tests:
                self._print(f" • {getattr(test, 'path', None)}::{getattr(test, 'test_name', test)}")
            self._print("=" * divider_length, end="\n\n")

    def log_status_update(self, message: str) -> None:
        self._print(message)

    def log_error(self, message: str) -> None:
        self._print(f"[red]{message}[/red]")

    def log_warning(self, short_message: str, long_message: t.Optional[str] = None) -> None:
        logger.warning(long_message or short_message)
        if not self.ignore_warnings:
            if long_message:
                file_path = None
                for handler in logger.root.handlers:
                    if isinstance(handler, logging.FileHandler):
                        file_path = handler.baseFilename
                        break
                file_path_msg = f" Learn more in logs: {file_path}\n" if file_path else ""
                short_message = f"{short_message}{file_path_msg}"
            message_lstrip = short_message.lstrip()
            leading_ws = short_message[: -len(message_lstrip)]
            message_formatted = f"{leading_ws}[yellow]\\[WARNING] {message_lstrip}[/yellow]"
            self._print(message_formatted)

    def log_success(self, message: str) -> None:
        self._print(f"[green]{message}[/green]\n")

    def show_sql(self, sql: str) -> None:
        self._print(Syntax(sql, "sql", word_wrap=True), crop=False)

    def _log_test_details(self, result: ModelTextTestResult) -> None:
        """Print the diff tables of failing tests and the messages of erroring ones.

        Args:
            result: The unittest test result that contains metrics like num success, fails, ect.
        """
        if result.wasSuccessful():
            self._print("\n", end="")
            if self.verbosity >= Verbosity.VERBOSE:
                for test_case, reason in result.skipped:
                    self._print(f"[skipped]SKIP: {escape(str(test_case))} ({escape(reason)})[/skipped]")
            return

        self._print(f"\n{unittest.TextTestResult.separator1}\n\n", end="")

        for (test_case, failure), test_failure_tables in zip_longest(  # type: ignore
            result.failures, result.failure_tables
        ):
            self._print(unittest.TextTestResult.separator2)
            self._print(f"FAIL: {test_case}")

            if test_description := test_case.shortDescription():
                self._print(test_description)
            self._print(f"{unittest.TextTestResult.separator2}")

            if not test_failure_tables:
                self._print(failure)
            else:
                for failure_table in test_failure_tables:
                    self._print(failure_table)
                    self._print("\n", end="")

        for test_case, error in result.errors:
            self._print(unittest.TextTestResult.separator2)
            self._print(f"ERROR: {test_case}")
            self._print(f"{unittest.TextTestResult.separator2}")
            self._print(error)

        if self.verbosity >= Verbosity.VERBOSE:
            for test_case, reason in result.skipped:
                self._print(f"[skipped]SKIP: {escape(str(test_case))} ({escape(reason)})[/skipped]")


_CONSOLE: Console = NoopConsole()


def set_console(console: Console) -> None:
    """Sets the console instance."""
    global _CONSOLE
    _CONSOLE = console


def configure_console(**kwargs: t.Any) -> None:
    """Configures the console instance."""
    global _CONSOLE
    _CONSOLE = create_console(**kwargs)


def get_console() -> Console:
    """Returns the console instance or creates a new one if it hasn't been created yet."""
    return _CONSOLE


def create_console(**kwargs: t.Any) -> TerminalConsole:
    """Creates a new terminal console using the sqlunit theme."""
    return TerminalConsole(**{"console": RichConsole(theme=srich.theme), **kwargs})
