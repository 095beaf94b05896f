from __future__ import annotations

import threading
import typing as t
import unittest
from io import StringIO

import pytest
from rich.table import Table

from sqlunit.core.test import ModelTextTestResult, run_tests
from sqlunit.utils.errors import ComparisonFailure


class _Passing(unittest.TestCase):
    __test__ = False

    def runTest(self) -> None:
        pass


class _Failing(unittest.TestCase):
    __test__ = False

    def __init__(self, title: str) -> None:
        self.title = title
        super().__init__()

    def runTest(self) -> None:
        raise ComparisonFailure(f"Data mismatch in {self.title}", Table(title=self.title))


class _Erroring(unittest.TestCase):
    __test__ = False

    def runTest(self) -> None:
        raise ValueError("boom")


class _Skipped(unittest.TestCase):
    __test__ = False

    def runTest(self) -> None:
        self.skipTest("nothing to run")


class _Interrupted(unittest.TestCase):
    __test__ = False

    def runTest(self) -> None:
        raise KeyboardInterrupt


class _Barrier(unittest.TestCase):
    """Only passes when all of its siblings run at the same time."""

    __test__ = False

    def __init__(self, barrier: threading.Barrier) -> None:
        self.barrier = barrier
        super().__init__()

    def runTest(self) -> None:
        self.barrier.wait(timeout=10)


def test_run_tests_combines_results(mocker):
    tests: t.List[unittest.TestCase] = [
        _Passing(),
        _Failing("first"),
        _Erroring(),
        _Skipped(),
        _Failing("second"),
        _Passing(),
    ]

    result = run_tests(tests, mocker.Mock(), concurrent_tasks=4)

    assert isinstance(result, ModelTextTestResult)
    assert result.testsRun == 6
    assert len(result.successes) == 2
    assert len(result.failures) == 2
    assert len(result.errors) == 1
    assert len(result.skipped) == 1
    assert result.duration is not None
    assert not result.wasSuccessful()

    # Failure messages and their tables stay aligned
    for (test, message), tables in zip(result.failures, result.failure_tables):
        title = t.cast(_Failing, test).title
        assert f"Data mismatch in {title}" in message
        assert [table.title for table in tables] == [title]

    assert {type(test) for test in result.get_fail_and_error_tests()} == {_Failing, _Erroring}


def test_run_tests_concurrently(mocker):
    barrier = threading.Barrier(3)

    result = run_tests([_Barrier(barrier) for _ in range(3)], mocker.Mock(), concurrent_tasks=3)

    assert result.testsRun == 3
    assert result.wasSuccessful()


def test_run_no_tests(mocker):
    result = run_tests([], mocker.Mock(), concurrent_tasks=4)

    assert result.testsRun == 0
    assert result.wasSuccessful()


def test_interrupt_cancels_running_queries(mocker):
    engine_adapter = mocker.Mock()

    with pytest.raises(KeyboardInterrupt):
        run_tests([_Interrupted()], engine_adapter, concurrent_tasks=1)

    engine_adapter.cancel.assert_called_once()


def _result() -> ModelTextTestResult:
    return ModelTextTestResult(
        stream=unittest.runner._WritelnDecorator(StringIO()),  # type: ignore
        descriptions=True,
        verbosity=0,
    )


def test_merge():
    failing = _Failing("merged")

    other = _result()
    other.addSuccess(_Passing())
    try:
        failing.runTest()
    except ComparisonFailure as e:
        other.addFailure(failing, (type(e), e, e.__traceback__))
    other.testsRun = 2

    combined = _result()
    combined.merge(other)

    assert combined.testsRun == 2
    assert len(combined.successes) == 1
    assert len(combined.failures) == 1
    assert len(combined.failure_tables) == 1
    (merged_table,) = combined.failure_tables[0]
    assert merged_table.title == "merged"
