"""
# Context

A sqlunit context encapsulates a project: its configuration, its models, sources, macros and
unit tests, and the engine adapter they run against. It is the entry point of both the CLI and
the python API.

```python
from sqlunit import Context

context = Context(paths="path/to/project")
result = context.test(select=["tag:pii"])
```
"""

from __future__ import annotations

import fnmatch
import logging
import typing as t
import unittest
from pathlib import Path

from sqlglot import exp

from sqlunit.core.config import Config, load_config_from_paths
from sqlunit.core.console import Console, get_console
from sqlunit.core.loader import LoadedProject, Loader
from sqlunit.core.renderer import ModelRenderer
from sqlunit.core.test import (
    ModelTextTestResult,
    UnitTestMetadata,
    create_tests,
    filter_tests_by_models,
    filter_tests_by_patterns,
    filter_tests_by_selectors,
    run_tests,
)
from sqlunit.utils import Verbosity, type_is_known
from sqlunit.utils.errors import SQLUnitError

if t.TYPE_CHECKING:
    from sqlunit.core.engine_adapter import EngineAdapter
    from sqlunit.core.model import SourceTable

logger = logging.getLogger(__name__)


class Context:
    """Encapsulates a sqlunit project.

    Args:
        paths: The directory of the project.
        config: A configuration to use instead of the project's config file.
        config_overrides: Values that override the ones of the project's config file.
        console: The console to display information to the user with.
        load: Whether to load the project right away.
    """

    def __init__(
        self,
        paths: t.Union[str, Path] = "",
        config: t.Optional[Config] = None,
        config_overrides: t.Optional[t.Dict[str, t.Any]] = None,
        console: t.Optional[Console] = None,
        load: bool = True,
    ):
        self.path = Path(paths or ".").absolute()
        self.config = config or load_config_from_paths(self.path, overrides=config_overrides)
        self.console = console or get_console()

        self._engine_adapter: t.Optional[EngineAdapter] = None
        self._project: t.Optional[LoadedProject] = None

        if load:
            self.load()

    def load(self) -> LoadedProject:
        """Loads the models, sources, macros and unit tests of the project."""
        self._project = Loader(self.path, self.config).load()
        logger.info(
            "Loaded %s model(s), %s source table(s) and %s unit test(s) from '%s'",
            len(self._project.models),
            len(self._project.sources),
            len(self._project.unit_tests),
            self.path,
        )
        return self._project

    @property
    def project(self) -> LoadedProject:
        if self._project is None:
            return self.load()
        return self._project

    @property
    def engine_adapter(self) -> EngineAdapter:
        """The engine adapter of the project's connection."""
        if self._engine_adapter is None:
            self._engine_adapter = self.config.connection.create_engine_adapter()
        return self._engine_adapter

    def select_tests(
        self,
        tests: t.Optional[t.List[str]] = None,
        match_patterns: t.Optional[t.List[str]] = None,
        select: t.Optional[t.List[str]] = None,
        models: t.Optional[t.List[str]] = None,
    ) -> t.List[UnitTestMetadata]:
        """Selects the unit tests to run.

        Each kind of filter narrows the selection down and a test is kept by a filter when it
        matches any of its values.

        Args:
            tests: Property files or directories, optionally suffixed with `::<test>`.
            match_patterns: Substrings or glob patterns matched against `<path>::<model>.<test>`.
            select: Test names, `<model>.<test>` or `tag:<tag>`.
            models: Names or glob patterns of the models under test.

        Returns:
            The selected tests.
        """
        selected = list(self.project.unit_tests)
        if tests:
            selected = self._filter_tests_by_paths(selected, tests)
        if match_patterns:
            selected = filter_tests_by_patterns(selected, match_patterns)
        if select:
            selected = filter_tests_by_selectors(selected, select)
        if models:
            selected = filter_tests_by_models(selected, models)
        return selected

    def test(
        self,
        tests: t.Optional[t.List[str]] = None,
        match_patterns: t.Optional[t.List[str]] = None,
        select: t.Optional[t.List[str]] = None,
        models: t.Optional[t.List[str]] = None,
        verbosity: Verbosity = Verbosity.DEFAULT,
        preserve_fixtures: bool = False,
        stream: t.Optional[t.TextIO] = None,
    ) -> ModelTextTestResult:
        """Discover and run unit tests"""
        if verbosity >= Verbosity.VERBOSE:
            import pandas as pd

            pd.set_option("display.max_columns", None)

        test_meta = self.select_tests(
            tests=tests, match_patterns=match_patterns, select=select, models=models
        )

        test_connection = self.config.test_connection
        owns_adapter = self.config.test_connection_ is not None
        # Without a dedicated test connection, tests see the relations built by `build`
        engine_adapter = (
            test_connection.create_engine_adapter() if owns_adapter else self.engine_adapter
        )

        try:
            test_cases: t.List[unittest.TestCase] = [
                case
                for metadata in test_meta
                for case in create_tests(
                    metadata,
                    self.project,
                    engine_adapter,
                    preserve_fixtures=preserve_fixtures,
                    verbosity=verbosity,
                )
            ]

            result = run_tests(
                test_cases,
                engine_adapter,
                concurrent_tasks=test_connection.concurrent_tasks,
                verbosity=verbosity,
                stream=stream,
            )
        finally:
            if owns_adapter:
                engine_adapter.close()

        self.console.log_test_results(result, engine_adapter.dialect)

        return result

    def render(
        self, model_name: str, version: t.Optional[str] = None, is_incremental: t.Optional[bool] = None
    ) -> exp.Query:
        """Renders the query of a model against the project's real relations.

        Unless set, `is_incremental()` is true for an incremental model whose relation exists.
        """
        model = self.project.get_model(model_name, version)
        if model is None:
            raise SQLUnitError(f"Model '{model_name}' was not found.")
        if is_incremental is None:
            is_incremental = model.materialized.is_incremental and self.engine_adapter.table_exists(
                model.relation
            )
        return ModelRenderer(self.project).render(model, is_incremental=is_incremental)

    def build_empty(
        self, select: t.Optional[t.List[str]] = None, full_refresh: bool = False
    ) -> t.List[str]:
        """Builds every model with zero rows, upstream first.

        Sources with fully typed declared columns are created too when they don't exist yet, so
        that models reading from them can be built. Unit tests then discover the columns of
        upstream relations from the warehouse.

        Args:
            select: Names or glob patterns of the models to build, along with their upstream.
            full_refresh: Whether to rebuild incremental models that already exist.

        Returns:
            The display names of the models that were built.
        """
        project = self.project
        adapter = self.engine_adapter

        for source in project.sources.values():
            self._create_source(source)

        dag = project.dag
        if select:
            dag = dag.subdag(
                *(
                    ref
                    for ref in dag
                    if any(fnmatch.fnmatchcase(ref.name, pattern) for pattern in select)
                )
            )

        renderer = ModelRenderer(project)
        built = []
        for ref in dag:
            model = project.get_model(ref.name, ref.version)
            if model is None or model.materialized.is_ephemeral:
                continue

            adapter.create_schema(model.schema_name)
            exists = adapter.table_exists(model.relation)

            if model.materialized.is_incremental and exists and not full_refresh:
                query = renderer.render(model, is_incremental=True)
                adapter.insert_append(model.relation, _empty(query))
            elif model.materialized.is_view:
                query = renderer.render(model, is_incremental=False)
                adapter.create_view(model.relation, _empty(query))
            else:
                query = renderer.render(model, is_incremental=False)
                adapter.ctas(model.relation, _empty(query))

            self.console.log_status_update(f"Built {model.materialized} {model.display_name}")
            built.append(model.display_name)

        self.console.log_success(f"Built {len(built)} model(s) with zero rows.")
        return built

    def close(self) -> None:
        """Releases all resources allocated by this context."""
        if self._engine_adapter:
            self._engine_adapter.close()
            self._engine_adapter = None

    def _create_source(self, source: SourceTable) -> None:
        columns_to_types = source.columns_to_types(self.config.dialect)
        if not columns_to_types:
            return
        if not all(kind and type_is_known(kind) for kind in columns_to_types.values()):
            logger.info(
                "Not creating source table %s since some of its columns have no data type",
                source.ref,
            )
            return
        if self.engine_adapter.table_exists(source.relation):
            return

        self.engine_adapter.create_schema(source.schema_name)
        self.engine_adapter.create_table(
            source.relation, t.cast(t.Dict[str, exp.DataType], columns_to_types)
        )
        self.console.log_status_update(f"Created source table {source.ref}")

    def _filter_tests_by_paths(
        self, tests: t.List[UnitTestMetadata], paths: t.List[str]
    ) -> t.List[UnitTestMetadata]:
        def _matches(test: UnitTestMetadata, selector: str) -> bool:
            path_str, _, name = selector.partition("::")
            path = Path(path_str)
            path = (path if path.is_absolute() else self.path / path).resolve()
            test_path = test.path.resolve()
            if test_path != path and path not in test_path.parents:
                return False
            return not name or name in (test.test_name, f"{test.model_name}.{test.test_name}")

        return [test for test in tests if any(_matches(test, selector) for selector in paths)]


def _empty(query: exp.Query) -> exp.Select:
    return exp.select("*").from_(query.subquery("_q")).limit(0)
