from __future__ import annotations

import logging
import sys
import typing as t

import click

from sqlunit import __version__, configure_logging, remove_excess_logs
from sqlunit.cli import error_handler
from sqlunit.cli import options as opt
from sqlunit.core.console import configure_console
from sqlunit.core.context import Context
from sqlunit.utils import Verbosity

logger = logging.getLogger(__name__)


@click.group(no_args_is_help=True)
@click.version_option(version=__version__, message="%(version)s")
@opt.paths
@click.option(
    "--ignore-warnings",
    is_flag=True,
    help="Ignore warnings.",
    envvar="SQLUNIT_IGNORE_WARNINGS",
)
@click.option(
    "--debug",
    is_flag=True,
    help="Enable debug mode.",
)
@click.option(
    "--log-to-stdout",
    is_flag=True,
    help="Display logs in stdout.",
)
@click.option(
    "--log-file-dir",
    type=str,
    help="The directory to write log files to.",
)
@click.pass_context
@error_handler
def cli(
    ctx: click.Context,
    paths: str,
    ignore_warnings: bool = False,
    debug: bool = False,
    log_to_stdout: bool = False,
    log_file_dir: t.Optional[str] = None,
) -> None:
    """sqlunit command line tool."""
    if "--help" in sys.argv:
        return

    configure_logging(
        debug,
        log_to_stdout,
        log_file_dir=log_file_dir,
        ignore_warnings=ignore_warnings,
    )
    configure_console(ignore_warnings=ignore_warnings)
    remove_excess_logs(log_file_dir)

    try:
        context = Context(paths=paths)
    except Exception:
        if debug:
            logger.exception("Failed to initialize sqlunit context")
        raise

    if not context.project.models:
        raise click.ClickException(
            f"`{paths}` doesn't seem to have any models... cd into the proper directory or specify the path with -p."
        )

    ctx.obj = context


@cli.command("test")
@opt.match_pattern
@opt.select
@opt.model
@opt.verbose
@click.option(
    "--preserve-fixtures",
    is_flag=True,
    default=False,
    help="Preserve the fixture views in the testing database, useful for debugging.",
)
@click.argument("tests", nargs=-1)
@click.pass_obj
@error_handler
def test(
    obj: Context,
    k: t.List[str],
    select: t.List[str],
    models: t.List[str],
    verbose: int,
    preserve_fixtures: bool,
    tests: t.List[str],
) -> None:
    """Run model unit tests."""
    result = obj.test(
        tests=list(tests),
        match_patterns=list(k),
        select=list(select),
        models=list(models),
        verbosity=Verbosity(min(verbose, Verbosity.VERY_VERBOSE)),
        preserve_fixtures=preserve_fixtures,
    )
    if not result.wasSuccessful():
        exit(1)


@cli.command("build")
@click.option(
    "--empty",
    is_flag=True,
    help="Build every model with zero rows.",
)
@click.option(
    "--select",
    multiple=True,
    help="Only build the given model(s) and their upstream. Glob patterns are supported.",
)
@click.option(
    "--full-refresh",
    is_flag=True,
    help="Recreate incremental models that already exist.",
)
@click.pass_obj
@error_handler
def build(
    obj: Context,
    empty: bool,
    select: t.List[str],
    full_refresh: bool,
) -> None:
    """Materialize models in dependency order."""
    if not empty:
        raise click.UsageError("Only empty builds are supported, pass --empty.")
    obj.build_empty(select=list(select), full_refresh=full_refresh)


@cli.command("render")
@click.argument("model")
@click.option(
    "--version",
    "model_version",
    type=str,
    help="The version of a versioned model. Defaults to its latest version.",
)
@click.option(
    "--dialect",
    type=str,
    help="The SQL dialect to render the query as.",
)
@click.pass_obj
@error_handler
def render(
    obj: Context,
    model: str,
    model_version: t.Optional[str] = None,
    dialect: t.Optional[str] = None,
) -> None:
    """Render a model's query."""
    rendered = obj.render(model, version=model_version)
    obj.console.show_sql(
        rendered.sql(pretty=True, dialect=obj.config.dialect if dialect is None else dialect)
    )


if __name__ == "__main__":
    cli()
