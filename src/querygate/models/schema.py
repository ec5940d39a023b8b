"""Pydantic models for the table definitions the registry is built from.

a table definition is the whitelist: a column that is not declared here can
never reach the sql text. the identifier pattern is enforced at parse time so
the compiler can interpolate registry names without quoting them.
"""

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_identifier(value: str) -> str:
    if not IDENTIFIER_PATTERN.match(value):
        raise ValueError(f"Invalid identifier: {value!r}")
    return value


class ColumnType(str, Enum):
    """Logical column types, used for introspection and sample table ddl."""

    STRING = "string"
    NUMBER = "number"
    DATETIME = "datetime"
    ENUM = "enum"


class ColumnDefinition(BaseModel):
    """A queryable column and what it may be used for."""

    model_config = ConfigDict(frozen=True)

    name: str
    type: ColumnType = ColumnType.STRING
    aggregatable: bool = False  # sum/avg/min/max allowed
    filterable: bool = True
    description: str | None = None

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        return check_identifier(value)


class TableDefinition(BaseModel):
    """A queryable table in the analytics store.

    client_id_field scopes every query to one tenant and primary_time_field is
    what the date range applies to - both must be declared columns.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    database: str
    client_id_field: str
    primary_time_field: str
    description: str | None = None
    columns: dict[str, ColumnDefinition] = Field(default_factory=dict)

    @field_validator("name", "database")
    @classmethod
    def _check_identifiers(cls, value: str) -> str:
        return check_identifier(value)

    @field_validator("columns", mode="before")
    @classmethod
    def _columns_from_list(cls, value):
        # yaml reads more naturally as a list of columns, keyed here by name
        if isinstance(value, list):
            columns = {}
            for item in value:
                data = item.model_dump() if isinstance(item, ColumnDefinition) else dict(item)
                if data["name"] in columns:
                    raise ValueError(f"Duplicate column: {data['name']}")
                columns[data["name"]] = data
            return columns
        return value

    @model_validator(mode="after")
    def _check_scoping_columns(self) -> "TableDefinition":
        for key, column in self.columns.items():
            if key != column.name:
                raise ValueError(f"Column key '{key}' does not match name '{column.name}'")
        if self.client_id_field not in self.columns:
            raise ValueError(
                f"Table '{self.name}' client_id_field '{self.client_id_field}' is not a column"
            )
        if self.primary_time_field not in self.columns:
            raise ValueError(
                f"Table '{self.name}' primary_time_field '{self.primary_time_field}' is not a column"
            )
        return self

    @property
    def qualified_name(self) -> str:
        return f"{self.database}.{self.name}"

    def get_column(self, name: str) -> ColumnDefinition | None:
        return self.columns.get(name)
