from __future__ import annotations

import typing as t
from pathlib import Path

from pydantic import ValidationError

from sqlunit.core import constants as c
from sqlunit.core.config.root import Config
from sqlunit.utils.errors import ConfigError
from sqlunit.utils.pydantic import validation_error_message
from sqlunit.utils.yaml import load as yaml_load


def load_config_from_paths(
    project_path: Path, overrides: t.Optional[t.Dict[str, t.Any]] = None
) -> Config:
    """Loads the configuration of the project located at `project_path`.

    The first existing file among `config.yaml` and `config.yml` is used. A project without
    a configuration file gets the default configuration.

    Args:
        project_path: The project's root directory.
        overrides: Top-level settings that replace the ones read from the file.

    Returns:
        The project's configuration.
    """
    config_dict: t.Dict[str, t.Any] = {}
    config_path: t.Optional[Path] = None

    for name in c.CONFIG_FILE_NAMES:
        path = project_path / name
        if path.exists():
            config_path = path
            config_dict = load_config_from_yaml(path)
            break

    config_dict.update(overrides or {})

    try:
        return Config.parse_obj(config_dict)
    except ValidationError as e:
        raise ConfigError(
            validation_error_message(e, f"Invalid project config '{config_path or project_path}':"),
            config_path,
        )


def load_config_from_yaml(path: Path) -> t.Dict[str, t.Any]:
    content = yaml_load(path, raise_if_empty=False)
    if not isinstance(content, dict):
        raise ConfigError(f"Invalid config file '{path}'. Expected a mapping at the top level.", path)
    return dict(content)
