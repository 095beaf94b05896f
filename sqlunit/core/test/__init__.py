from __future__ import annotations

from sqlunit.core.test.case import (
    InvalidUnitTest as InvalidUnitTest,
    ModelTest as ModelTest,
    SkippedUnitTest as SkippedUnitTest,
    create_tests as create_tests,
)
from sqlunit.core.test.discovery import (
    UnitTestMetadata as UnitTestMetadata,
    filter_tests_by_models as filter_tests_by_models,
    filter_tests_by_patterns as filter_tests_by_patterns,
    filter_tests_by_selectors as filter_tests_by_selectors,
)
from sqlunit.core.test.result import ModelTextTestResult as ModelTextTestResult
from sqlunit.core.test.runner import run_tests as run_tests
