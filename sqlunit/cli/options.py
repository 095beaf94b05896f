from __future__ import annotations

import os

import click

paths = click.option(
    "-p",
    "--paths",
    default=os.getcwd(),
    help="Path to the sqlunit project.",
)

match_pattern = click.option(
    "-k",
    multiple=True,
    help="Only run tests that match the pattern of substring.",
)

select = click.option(
    "--select",
    multiple=True,
    help="Only run the given tests. A test is selected by its name, by <model>.<test> or by tag:<tag>.",
)

model = click.option(
    "--model",
    "models",
    multiple=True,
    help="Only run the tests of the given model(s). Glob patterns are supported.",
)

verbose = click.option(
    "-v",
    "--verbose",
    count=True,
    help="Verbose output. Use -vv for very verbose output.",
)
