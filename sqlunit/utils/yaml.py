from __future__ import annotations

import io
import typing as t
from decimal import Decimal
from os import getenv
from pathlib import Path

from ruamel import yaml

from sqlunit.utils.errors import SQLUnitError
from sqlunit.utils.jinja import ENVIRONMENT

JINJA_METHODS = {
    "env_var": lambda key, default=None: getenv(key, default),
}


def YAML(typ: t.Optional[str] = "safe") -> yaml.YAML:
    yaml_obj = yaml.YAML(typ=typ)

    # Ruamel doesn't know how to serialize Decimal values, so they are written as strings
    yaml_obj.representer.add_representer(
        Decimal, lambda dumper, data: dumper.represent_str(str(data))
    )

    return yaml_obj


def load(
    source: str | Path,
    raise_if_empty: bool = True,
    render_jinja: bool = True,
) -> t.Any:
    """Loads a YAML object from either a raw string or a file."""
    path: t.Optional[Path] = None

    if isinstance(source, Path):
        path = source
        with open(source, "r", encoding="utf-8") as file:
            source = file.read()

    if render_jinja:
        source = ENVIRONMENT.from_string(source).render(JINJA_METHODS)

    try:
        contents = YAML().load(source)
    except yaml.YAMLError as e:
        error_path = f" '{path}'" if path else ""
        raise SQLUnitError(f"Failed to parse YAML source{error_path}: {e}") from e

    if contents is None:
        if raise_if_empty:
            error_path = f" '{path}'" if path else ""
            raise SQLUnitError(f"YAML source{error_path} can't be empty.")
        return {}

    return contents


@t.overload
def dump(value: t.Any, stream: io.IOBase) -> None: ...


@t.overload
def dump(value: t.Any) -> str: ...


def dump(value: t.Any, stream: t.Optional[io.IOBase] = None) -> t.Optional[str]:
    """Dumps a ruamel.yaml loaded object and converts it into a string or writes it to a stream."""
    result = io.StringIO()
    YAML(typ=None).dump(value, stream or result)
    return None if stream else result.getvalue()
