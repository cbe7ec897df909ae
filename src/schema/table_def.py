from typing import Optional, Tuple

from pydantic import BaseModel, model_validator

from schema.column_def import ColumnSpec
from schema.foreign_key_def import ForeignKeySpec
from schema.identifiers import Identifier


class TableSpec(BaseModel):
    """Expected shape of a blueprint table. Never describes the live database."""

    name: Identifier
    columns: Tuple[ColumnSpec, ...]
    primary_key: Identifier
    foreign_keys: Tuple[ForeignKeySpec, ...] = ()

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_columns(self) -> "TableSpec":
        names = [column.name for column in self.columns]
        if not names:
            raise ValueError(f"table '{self.name}' has no columns")
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            raise ValueError(f"table '{self.name}' repeats columns: {', '.join(duplicates)}")
        if self.primary_key not in names:
            raise ValueError(f"primary key '{self.primary_key}' is not a column of '{self.name}'")
        for fk in self.foreign_keys:
            if fk.column not in names:
                raise ValueError(f"foreign key column '{fk.column}' is not a column of '{self.name}'")
        return self

    @property
    def column_names(self) -> Tuple[str, ...]:
        return tuple(column.name for column in self.columns)

    def column(self, name: str) -> Optional[ColumnSpec]:
        for column in self.columns:
            if column.name == name:
                return column
        return None
