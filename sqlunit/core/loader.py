from __future__ import annotations

import logging
import re
import typing as t
from dataclasses import dataclass, field
from pathlib import Path

from jinja2 import TemplateSyntaxError
from pydantic import ValidationError

from sqlunit.core import constants as c
from sqlunit.core.config import Config
from sqlunit.core.model import (
    MacroDefinition,
    Model,
    ModelProperties,
    ModelRef,
    Reference,
    SourceProperties,
    SourceRef,
    SourceTable,
    version_str,
)
from sqlunit.core.test.discovery import UnitTestMetadata
from sqlunit.utils import UniqueKeyDict
from sqlunit.utils.dag import DAG
from sqlunit.utils.errors import ConfigError
from sqlunit.utils.jinja import constant_call_args, extract_call_names
from sqlunit.utils.pydantic import validation_error_message
from sqlunit.utils.yaml import load as yaml_load

logger = logging.getLogger(__name__)

MACRO_PATTERN = re.compile(
    r"{%-?\s*macro\s+(?P<name>\w+)\s*\(.*?{%-?\s*endmacro\s*-?%}", re.DOTALL
)


@dataclass
class LoadedProject:
    path: Path
    config: Config
    models: t.Dict[str, t.Dict[t.Optional[str], Model]] = field(default_factory=dict)
    sources: t.Dict[SourceRef, SourceTable] = field(default_factory=dict)
    macros: t.Dict[str, MacroDefinition] = field(default_factory=dict)
    unit_tests: t.List[UnitTestMetadata] = field(default_factory=list)

    def get_model(self, name: str, version: t.Optional[t.Any] = None) -> t.Optional[Model]:
        """Returns the model named `name`, resolving an unpinned version to the latest one."""
        versions = self.models.get(name)
        if not versions:
            return None
        if None in versions:
            return versions[None]

        version = version_str(version)
        if version is None:
            any_version = next(iter(versions.values()))
            version = any_version.latest_version or max(versions, key=_version_sort_key)  # type: ignore
        return versions.get(version)

    def get_source(self, source_name: str, table_name: str) -> t.Optional[SourceTable]:
        return self.sources.get(SourceRef(source_name, table_name))

    def model_versions(self, name: str) -> t.List[str]:
        """The declared versions of a model, in declaration order."""
        return [version for version in self.models.get(name, {}) if version is not None]

    def is_versioned(self, name: str) -> bool:
        return bool(self.model_versions(name))

    @property
    def all_models(self) -> t.List[Model]:
        return [model for versions in self.models.values() for model in versions.values()]

    def resolve(self, reference: Reference) -> t.Optional[t.Union[Model, SourceTable]]:
        if isinstance(reference, SourceRef):
            return self.get_source(*reference)
        return self.get_model(reference.name, reference.version)

    @property
    def dag(self) -> DAG[ModelRef]:
        dag: DAG[ModelRef] = DAG()
        for model in self.all_models:
            upstream = []
            for reference in model.depends_on:
                if isinstance(reference, ModelRef):
                    resolved = self.get_model(reference.name, reference.version)
                    if resolved:
                        upstream.append(resolved.ref)
            dag.add(model.ref, upstream)
        return dag


class Loader:
    """Loads the models, sources, macros and unit tests of a project.

    Args:
        path: The project's root directory.
        config: The project's configuration.
    """

    def __init__(self, path: Path, config: Config) -> None:
        self.path = path
        self.config = config

    def load(self) -> LoadedProject:
        project = LoadedProject(path=self.path, config=self.config)
        project.macros = self._load_macros()

        sql_files = self._load_sql_files()
        model_properties: UniqueKeyDict[str, t.Tuple[Path, ModelProperties]] = UniqueKeyDict(
            "model_properties"
        )

        for path, contents in self._load_property_files():
            for entry in contents.get(c.MODELS) or []:
                properties = self._parse(ModelProperties, entry, path)
                if properties.name in model_properties:
                    raise ConfigError(
                        f"Model '{properties.name}' is declared more than once in property files.",
                        path,
                    )
                model_properties[properties.name] = (path, properties)

            for entry in contents.get(c.SOURCES) or []:
                self._add_source(project, self._parse(SourceProperties, entry, path), path)

            for index, entry in enumerate(contents.get(c.UNIT_TESTS) or []):
                project.unit_tests.append(self._unit_test_metadata(entry, index, path))

        used_files: t.Set[str] = set()
        for name, (path, properties) in model_properties.items():
            project.models[name] = self._load_model_versions(
                properties, path, sql_files, used_files
            )

        for name, sql_path in sql_files.items():
            if name not in used_files:
                project.models[name] = {None: self._create_model(name, sql_path, None)}

        self._validate_unit_test_names(project.unit_tests)
        return project

    def _load_sql_files(self) -> t.Dict[str, Path]:
        sql_files: t.Dict[str, Path] = {}
        for path in self._glob(self.config.model_paths, ".sql"):
            if path.stem in sql_files:
                raise ConfigError(
                    f"Duplicate model file name '{path.stem}' found at '{path}' and '{sql_files[path.stem]}'.",
                    path,
                )
            sql_files[path.stem] = path
        return sql_files

    def _load_property_files(self) -> t.Iterator[t.Tuple[Path, t.Dict[str, t.Any]]]:
        seen: t.Set[Path] = set()
        for extension in c.YAML_EXTENSIONS:
            for path in self._glob([*self.config.model_paths, *self.config.test_paths], extension):
                if path in seen or self._is_fixture(path):
                    continue
                seen.add(path)

                contents = yaml_load(path, raise_if_empty=False, render_jinja=False)
                if not isinstance(contents, dict):
                    raise ConfigError(f"Invalid property file '{path}'. Expected a mapping.", path)
                yield path, contents

    def _load_model_versions(
        self,
        properties: ModelProperties,
        path: Path,
        sql_files: t.Dict[str, Path],
        used_files: t.Set[str],
    ) -> t.Dict[t.Optional[str], Model]:
        if not properties.versions:
            sql_path = sql_files.get(properties.name)
            if not sql_path:
                raise ConfigError(
                    f"Model '{properties.name}' is declared in '{path}' but no file named '{properties.name}.sql' exists.",
                    path,
                )
            used_files.add(properties.name)
            return {None: self._create_model(properties.name, sql_path, properties)}

        if properties.latest_version and properties.latest_version not in {
            version.v for version in properties.versions
        }:
            raise ConfigError(
                f"The latest version '{properties.latest_version}' of model '{properties.name}' is not one of its declared versions.",
                path,
            )

        versions: UniqueKeyDict[t.Optional[str], Model] = UniqueKeyDict(properties.name)
        for version in properties.versions:
            file_name = version.defined_in or f"{properties.name}_v{version.v}"
            sql_path = sql_files.get(file_name)
            if not sql_path:
                raise ConfigError(
                    f"Version '{version.v}' of model '{properties.name}' must be defined in a file named '{file_name}.sql'.",
                    path,
                )
            if version.v in versions:
                raise ConfigError(
                    f"Version '{version.v}' of model '{properties.name}' is declared more than once.",
                    path,
                )
            used_files.add(file_name)
            versions[version.v] = self._create_model(
                properties.name,
                sql_path,
                properties,
                version=version.v,
                columns=version.columns,
            )
        return versions

    def _create_model(
        self,
        name: str,
        sql_path: Path,
        properties: t.Optional[ModelProperties],
        version: t.Optional[str] = None,
        columns: t.Optional[t.List[t.Any]] = None,
    ) -> Model:
        raw_sql = sql_path.read_text(encoding="utf-8")
        settings: t.Dict[str, t.Any] = {}
        if properties:
            settings = {
                "materialized": properties.materialized,
                "schema_name": properties.schema_name,
                "tags": properties.tags,
                "description": properties.description,
                "latest_version": properties.latest_version,
                **_config_settings(properties.config),
            }

        depends_on, in_model_config = _static_analysis(raw_sql, sql_path)
        settings.update(_config_settings(in_model_config))

        try:
            return Model(
                name=name,
                raw_sql=raw_sql,
                path=sql_path,
                version=version,
                columns=columns if columns is not None else (properties.columns if properties else []),
                depends_on=depends_on,
                **{
                    "schema_name": self.config.default_schema,
                    **{k: v for k, v in settings.items() if v is not None},
                },
            )
        except ValidationError as e:
            raise ConfigError(
                validation_error_message(e, f"Failed to load model from file '{sql_path}':"),
                sql_path,
            )

    def _add_source(self, project: LoadedProject, source: SourceProperties, path: Path) -> None:
        for table in source.tables:
            reference = SourceRef(source.name, table.name)
            if reference in project.sources:
                raise ConfigError(f"Duplicate source table {reference} found.", path)
            project.sources[reference] = SourceTable(
                source_name=source.name,
                name=table.name,
                schema_name=source.schema_name or source.name,
                identifier=table.identifier,
                columns=table.columns,
            )

    def _load_macros(self) -> t.Dict[str, MacroDefinition]:
        macros: UniqueKeyDict[str, MacroDefinition] = UniqueKeyDict("macros")
        for path in self._glob(self.config.macro_paths, ".sql"):
            source = path.read_text(encoding="utf-8")
            for match in MACRO_PATTERN.finditer(source):
                name = match.group("name")
                if name in macros:
                    raise ConfigError(
                        f"Macro '{name}' defined in '{path}' is already defined in '{macros[name].path}'.",
                        path,
                    )
                macros[name] = MacroDefinition(name=name, path=path, source=match.group(0))
        return macros

    def _unit_test_metadata(self, entry: t.Any, index: int, path: Path) -> UnitTestMetadata:
        if not isinstance(entry, dict):
            entry = {}
        name = entry.get("name")
        model_name = entry.get("model")
        return UnitTestMetadata(
            path=path,
            test_name=str(name) if name else f"unit_test_{index + 1}",
            model_name=str(model_name) if model_name else "",
            body=entry,
        )

    def _validate_unit_test_names(self, unit_tests: t.List[UnitTestMetadata]) -> None:
        seen: t.Dict[t.Tuple[str, str], Path] = {}
        for metadata in unit_tests:
            key = (metadata.model_name, metadata.test_name)
            if key in seen:
                raise ConfigError(
                    f"Unit test '{metadata.test_name}' of model '{metadata.model_name}' is defined in both '{seen[key]}' and '{metadata.path}'.",
                    metadata.path,
                )
            seen[key] = metadata.path

    def _parse(self, model_type: t.Type[t.Any], entry: t.Any, path: Path) -> t.Any:
        try:
            return model_type.parse_obj(entry)
        except ValidationError as e:
            raise ConfigError(validation_error_message(e, f"Invalid property file '{path}':"), path)

    def _glob(self, directories: t.List[str], extension: str) -> t.List[Path]:
        return sorted(
            path
            for directory in directories
            for path in (self.path / directory).glob(f"**/*{extension}")
            if path.is_file()
        )

    def _is_fixture(self, path: Path) -> bool:
        return any(
            (self.path / fixture_path) in path.parents for fixture_path in self.config.fixture_paths
        )


def _static_analysis(
    raw_sql: str, path: Path
) -> t.Tuple[t.Set[Reference], t.Dict[str, t.Any]]:
    """Extracts the constant `ref`, `source` and `config` calls of a model's Jinja SQL."""
    depends_on: t.Set[Reference] = set()
    config: t.Dict[str, t.Any] = {}

    try:
        call_names = extract_call_names(raw_sql)
    except TemplateSyntaxError as e:
        # The error is raised again when the model is rendered
        logger.debug("Failed to parse the Jinja of model '%s': %s", path, e)
        return depends_on, config

    for name, call in call_names:
        arguments = constant_call_args(call)
        if arguments is None or len(name) != 1:
            continue

        args, kwargs = arguments
        if name[0] == "ref" and args:
            depends_on.add(ModelRef(args[-1], version_str(kwargs.get("version", kwargs.get("v")))))
        elif name[0] == "source" and len(args) == 2:
            depends_on.add(SourceRef(*args))
        elif name[0] == "config":
            config.update(kwargs)

    return depends_on, config


def _config_settings(config: t.Dict[str, t.Any]) -> t.Dict[str, t.Any]:
    settings = {
        "materialized": config.get("materialized"),
        "schema_name": config.get("schema"),
        "tags": config.get("tags"),
    }
    return {k: v for k, v in settings.items() if v is not None}


def _version_sort_key(version: str) -> t.Tuple[int, t.Union[float, str]]:
    try:
        return (0, float(version))
    except ValueError:
        return (1, version)
