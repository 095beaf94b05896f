"""
# Renderer

Renders the Jinja SQL of a model into a sqlglot query. References made through `ref`,
`source` and `this` are resolved against a table mapping first, which is how a unit test
swaps upstream relations for its fixture views, and fall back to the real relations.
"""

from __future__ import annotations

import logging
import typing as t

import sqlglot
from jinja2 import TemplateError
from sqlglot import exp
from sqlglot.errors import SqlglotError

from sqlunit.core.model import Model, ModelRef, Reference, SourceRef, version_str
from sqlunit.utils.errors import CompilationError
from sqlunit.utils.jinja import strict_environment

if t.TYPE_CHECKING:
    from sqlglot.dialects.dialect import DialectType

    from sqlunit.core.loader import LoadedProject
    from sqlunit.core.test.overrides import OverrideSet

logger = logging.getLogger(__name__)

EPHEMERAL_PREFIX = "__sqlunit_ephemeral__"


class Relation:
    """What `ref`, `source` and `this` return inside a model's template.

    Rendering a relation produces its fully qualified, quoted name.
    """

    def __init__(self, table: exp.Table, dialect: DialectType = None):
        self.table = table
        self.dialect = dialect

    @property
    def database(self) -> t.Optional[str]:
        return self.table.catalog or None

    @property
    def schema(self) -> t.Optional[str]:
        return self.table.db or None

    @property
    def identifier(self) -> str:
        return self.table.name

    name = identifier

    def __str__(self) -> str:
        return self.table.sql(dialect=self.dialect)

    def __repr__(self) -> str:
        return f"Relation({self})"


class _RenderState:
    """The references and ephemeral queries collected while rendering a single model."""

    def __init__(self) -> None:
        self.ctes: t.Dict[str, exp.Query] = {}
        self.stack: t.List[str] = []


class ModelRenderer:
    """Renders the models of a project.

    Args:
        project: The loaded project.
        dialect: The dialect models are written in.
        table_mapping: Replacement relations keyed by the reference they stand in for.
        overrides: The macros, variables and environment variables to override.
        testing: Whether the model is rendered for a unit test. References without a
            replacement relation are logged when testing.
    """

    def __init__(
        self,
        project: LoadedProject,
        dialect: DialectType = None,
        table_mapping: t.Optional[t.Dict[Reference, exp.Table]] = None,
        overrides: t.Optional[OverrideSet] = None,
        testing: bool = False,
    ):
        self.project = project
        self.dialect = dialect if dialect is not None else project.config.dialect
        self.table_mapping = table_mapping or {}
        if overrides is None:
            from sqlunit.core.test.overrides import OverrideSet

            overrides = OverrideSet()
        self.overrides = overrides
        self.testing = testing

    def render(self, model: Model, is_incremental: t.Optional[bool] = None) -> exp.Query:
        """Renders the query of a model version.

        Args:
            model: The model version to render.
            is_incremental: What `is_incremental()` returns, unless a macro override replaces it.
                Defaults to False when testing and to whether the model is incremental otherwise.

        Returns:
            The parsed query, with the queries of referenced ephemeral models inlined as CTEs.
        """
        if is_incremental is None:
            is_incremental = not self.testing and model.materialized.is_incremental

        state = _RenderState()
        query = self._render(model, is_incremental, state)

        if not state.ctes:
            return query

        ctes = [
            exp.CTE(this=cte_query, alias=exp.TableAlias(this=exp.to_identifier(name)))
            for name, cte_query in state.ctes.items()
        ]
        if query.ctes:
            with_ = query.ctes[0].parent
            with_.set("expressions", [*ctes, *with_.expressions])  # type: ignore
        else:
            for cte in ctes:
                query = query.with_(cte.alias, as_=cte.this, copy=False)
        return query

    def _render(self, model: Model, is_incremental: bool, state: _RenderState) -> exp.Query:
        if model.display_name in state.stack:
            raise CompilationError(
                f"Ephemeral models reference each other in a cycle: {' -> '.join([*state.stack, model.display_name])}"
            )
        state.stack.append(model.display_name)

        try:
            sql = self._render_jinja(model, is_incremental, state)
        finally:
            state.stack.pop()

        try:
            query = sqlglot.parse_one(sql, read=self.dialect)
        except SqlglotError as e:
            raise CompilationError(f"Failed to parse the query of model '{model.display_name}': {e}") from e

        if not isinstance(query, exp.Query):
            raise CompilationError(
                f"The query of model '{model.display_name}' must be a SELECT statement, got: {query.sql(dialect=self.dialect)}"
            )
        return query

    def _render_jinja(self, model: Model, is_incremental: bool, state: _RenderState) -> str:
        overridden_macros = self.overrides.overridden_macro_names
        prelude = "\n".join(
            macro.source
            for name, macro in self.project.macros.items()
            if name not in overridden_macros
        )

        def _ref(*args: t.Any, version: t.Any = None, v: t.Any = None) -> Relation:
            if len(args) not in (1, 2):
                raise CompilationError("ref() takes a model name and an optional package name")
            return self._resolve_model(
                str(args[-1]), version_str(version if version is not None else v), state
            )

        def _source(source_name: t.Any, table_name: t.Any) -> Relation:
            return self._resolve_source(SourceRef(str(source_name), str(table_name)))

        env = strict_environment()
        env.globals.update(
            {
                "ref": _ref,
                "source": _source,
                "this": Relation(self.table_mapping.get(model.ref, model.relation), self.dialect),
                "var": self.overrides.var(self.project.config.variables),
                "env_var": self.overrides.env_var(),
                "is_incremental": lambda: is_incremental,
                "config": lambda *args, **kwargs: "",
                **self.overrides.macro_stubs(),
            }
        )

        try:
            return env.from_string(f"{prelude}\n{model.raw_sql}" if prelude else model.raw_sql).render()
        except TemplateError as e:
            raise CompilationError(
                f"Failed to render the Jinja of model '{model.display_name}' at '{model.path}': {e}"
            ) from e

    def _resolve_model(
        self, name: str, version: t.Optional[str], state: _RenderState
    ) -> Relation:
        if not self.project.models.get(name):
            raise CompilationError(f"Model '{name}' referenced by ref('{name}') doesn't exist")
        if version is not None and not self.project.is_versioned(name):
            raise CompilationError(f"Model '{name}' is not versioned but version '{version}' was requested")

        model = self.project.get_model(name, version)
        if model is None:
            raise CompilationError(f"Version '{version}' of model '{name}' is not declared")

        if model.ref in self.table_mapping:
            return Relation(self.table_mapping[model.ref], self.dialect)

        if model.materialized.is_ephemeral:
            cte_name = f"{EPHEMERAL_PREFIX}{model.relation_name}"
            if cte_name not in state.ctes:
                query = self._render(model, is_incremental=False, state=state)
                state.ctes[cte_name] = query
            return Relation(exp.to_table(cte_name), self.dialect)

        self._warn_unmocked(ModelRef(model.name, model.version), model.relation)
        return Relation(model.relation, self.dialect)

    def _resolve_source(self, reference: SourceRef) -> Relation:
        if reference in self.table_mapping:
            return Relation(self.table_mapping[reference], self.dialect)

        source = self.project.get_source(*reference)
        if source is None:
            raise CompilationError(f"Source table {reference} doesn't exist")

        self._warn_unmocked(reference, source.relation)
        return Relation(source.relation, self.dialect)

    def _warn_unmocked(self, reference: Reference, table: exp.Table) -> None:
        if self.testing:
            logger.warning(
                "No input is given for %s, reading from '%s' instead",
                reference,
                table.sql(dialect=self.dialect),
            )
