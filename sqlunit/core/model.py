from __future__ import annotations

import typing as t
from enum import Enum
from pathlib import Path

from pydantic import ConfigDict, Field
from sqlglot import exp

from sqlunit.core.dialect import relation
from sqlunit.utils.pydantic import ListOfStrings, PydanticModel, field_validator

if t.TYPE_CHECKING:
    from sqlglot.dialects.dialect import DialectType


class Materialization(str, Enum):
    """How a model is stored in the warehouse."""

    VIEW = "view"
    TABLE = "table"
    INCREMENTAL = "incremental"
    EPHEMERAL = "ephemeral"

    @property
    def is_view(self) -> bool:
        return self == Materialization.VIEW

    @property
    def is_table(self) -> bool:
        return self == Materialization.TABLE

    @property
    def is_incremental(self) -> bool:
        return self == Materialization.INCREMENTAL

    @property
    def is_ephemeral(self) -> bool:
        return self == Materialization.EPHEMERAL

    def __str__(self) -> str:
        return self.value


class ModelRef(t.NamedTuple):
    """A reference to a model, with the version resolved when the model is versioned."""

    name: str
    version: t.Optional[str] = None

    def __str__(self) -> str:
        return f"ref('{self.name}', v={self.version})" if self.version else f"ref('{self.name}')"


class SourceRef(t.NamedTuple):
    """A reference to a table of a source."""

    source_name: str
    table_name: str

    def __str__(self) -> str:
        return f"source('{self.source_name}', '{self.table_name}')"


Reference = t.Union[ModelRef, SourceRef]


def version_str(v: t.Any) -> t.Optional[str]:
    """Versions are compared as strings, so that `2`, `2.0` (when integral) and `"2"` all match."""
    if v is None:
        return None
    if isinstance(v, float) and v.is_integer():
        v = int(v)
    return str(v).strip()


class ColumnDefinition(PydanticModel):
    name: str
    data_type: t.Optional[str] = None
    description: t.Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    def to_type(self, dialect: DialectType = None) -> t.Optional[exp.DataType]:
        if not self.data_type:
            return None
        return exp.DataType.build(self.data_type, dialect=dialect, udt=True)


def columns_to_types(
    columns: t.Iterable[ColumnDefinition], dialect: DialectType = None
) -> t.Dict[str, t.Optional[exp.DataType]]:
    return {column.name: column.to_type(dialect) for column in columns}


class Model(PydanticModel):
    """A single version of a model, ready to be rendered.

    Args:
        name: The model's name, the stem of its file.
        raw_sql: The Jinja SQL of the model.
        path: The file the model's query was read from.
        schema_name: The schema the model's relation lives in.
        materialized: How the model is stored.
        version: The version of the model, None if the model is not versioned.
        latest_version: The version an unpinned reference resolves to.
        columns: The declared columns of the model.
        tags: Tags used to select the model and its tests.
        depends_on: The references the model's query makes statically.
    """

    name: str
    raw_sql: str
    path: Path
    schema_name: str
    materialized: Materialization = Materialization.VIEW
    version: t.Optional[str] = None
    latest_version: t.Optional[str] = None
    columns: t.List[ColumnDefinition] = []
    tags: ListOfStrings = []
    description: t.Optional[str] = None
    depends_on: t.Set[t.Any] = Field(default_factory=set)

    @field_validator("materialized", mode="before")
    @classmethod
    def _materialized_validator(cls, v: t.Any) -> t.Any:
        return v.lower() if isinstance(v, str) else v

    @property
    def ref(self) -> ModelRef:
        return ModelRef(self.name, self.version)

    @property
    def is_versioned(self) -> bool:
        return self.version is not None

    @property
    def relation_name(self) -> str:
        return f"{self.name}_v{self.version}" if self.is_versioned else self.name

    @property
    def relation(self) -> exp.Table:
        return relation(self.relation_name, self.schema_name)

    @property
    def display_name(self) -> str:
        return f"{self.name} (v{self.version})" if self.is_versioned else self.name

    def columns_to_types(self, dialect: DialectType = None) -> t.Dict[str, t.Optional[exp.DataType]]:
        return columns_to_types(self.columns, dialect)

    def __str__(self) -> str:
        return self.display_name


class SourceTable(PydanticModel):
    source_name: str
    name: str
    schema_name: str
    identifier: t.Optional[str] = None
    columns: t.List[ColumnDefinition] = []

    @property
    def ref(self) -> SourceRef:
        return SourceRef(self.source_name, self.name)

    @property
    def relation(self) -> exp.Table:
        return relation(self.identifier or self.name, self.schema_name)

    def columns_to_types(self, dialect: DialectType = None) -> t.Dict[str, t.Optional[exp.DataType]]:
        return columns_to_types(self.columns, dialect)


class MacroDefinition(PydanticModel):
    name: str
    path: Path
    source: str


class ModelVersionProperties(PydanticModel):
    v: str
    defined_in: t.Optional[str] = None
    columns: t.Optional[t.List[ColumnDefinition]] = None
    description: t.Optional[str] = None

    model_config = ConfigDict(extra="ignore")

    @field_validator("v", mode="before")
    @classmethod
    def _version_validator(cls, v: t.Any) -> t.Optional[str]:
        return version_str(v)


class ModelProperties(PydanticModel):
    """The `models:` entry of a property file."""

    name: str
    description: t.Optional[str] = None
    materialized: t.Optional[Materialization] = None
    schema_name: t.Optional[str] = Field(alias="schema", default=None)
    tags: ListOfStrings = []
    columns: t.List[ColumnDefinition] = []
    latest_version: t.Optional[str] = None
    versions: t.List[ModelVersionProperties] = []
    config: t.Dict[str, t.Any] = {}

    model_config = ConfigDict(extra="ignore")

    @field_validator("latest_version", mode="before")
    @classmethod
    def _latest_version_validator(cls, v: t.Any) -> t.Optional[str]:
        return version_str(v)

    @field_validator("materialized", mode="before")
    @classmethod
    def _materialized_validator(cls, v: t.Any) -> t.Any:
        return v.lower() if isinstance(v, str) else v


class SourceTableProperties(PydanticModel):
    name: str
    identifier: t.Optional[str] = None
    columns: t.List[ColumnDefinition] = []

    model_config = ConfigDict(extra="ignore")


class SourceProperties(PydanticModel):
    """The `sources:` entry of a property file."""

    name: str
    schema_name: t.Optional[str] = Field(alias="schema", default=None)
    tables: t.List[SourceTableProperties] = []

    model_config = ConfigDict(extra="ignore")
