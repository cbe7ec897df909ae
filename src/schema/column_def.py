"""Blueprint column definitions and their type-specific shape additions."""

from __future__ import annotations

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from schema.identifiers import Identifier

TEXT_TYPES = frozenset({"CHAR", "VARCHAR", "NCHAR", "NVARCHAR", "BINARY", "VARBINARY"})
DECIMAL_TYPES = frozenset({"DECIMAL", "NUMERIC"})
TEMPORAL_TYPES = frozenset({"DATETIME2", "TIME", "DATETIMEOFFSET"})

# INFORMATION_SCHEMA reports (MAX) lengths as -1.
MAX_LENGTH = -1


class TextShape(BaseModel):
    """Fixed or variable length text/binary column."""

    kind: Literal["text"] = "text"
    max_length: int

    model_config = {"frozen": True}

    @field_validator("max_length")
    @classmethod
    def _check_length(cls, value: int) -> int:
        if value != MAX_LENGTH and value < 1:
            raise ValueError("max_length must be positive or -1 for MAX")
        return value


class DecimalShape(BaseModel):
    """Exact numeric column with precision and scale."""

    kind: Literal["decimal"] = "decimal"
    precision: int = Field(ge=1, le=38)
    scale: int = Field(ge=0, le=38)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_scale(self) -> "DecimalShape":
        if self.scale > self.precision:
            raise ValueError("scale cannot exceed precision")
        return self


class TemporalShape(BaseModel):
    """Temporal column with sub-second precision and an optional default expression.

    The default is compared verbatim against ``COLUMN_DEFAULT``, so it must be
    written the way the catalog reports it, e.g. ``(getutcdate())``.
    """

    kind: Literal["temporal"] = "temporal"
    precision: int = Field(ge=0, le=7)
    default: Optional[str] = None

    model_config = {"frozen": True}


ColumnShape = Annotated[Union[TextShape, DecimalShape, TemporalShape], Field(discriminator="kind")]

_SHAPE_FAMILIES = {
    "text": TEXT_TYPES,
    "decimal": DECIMAL_TYPES,
    "temporal": TEMPORAL_TYPES,
}


class ColumnSpec(BaseModel):
    """Expected shape of one column of a blueprint table."""

    name: Identifier
    data_type: str
    is_nullable: bool
    shape: Optional[ColumnShape] = None
    identity: bool = False

    model_config = {"frozen": True}

    @field_validator("data_type", mode="before")
    @classmethod
    def _normalize_type(cls, value):
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def _check_shape_family(self) -> "ColumnSpec":
        if self.shape is not None and self.data_type not in _SHAPE_FAMILIES[self.shape.kind]:
            raise ValueError(
                f"{self.shape.kind} shape is not applicable to {self.data_type} column '{self.name}'"
            )
        return self

    @property
    def has_default(self) -> bool:
        return isinstance(self.shape, TemporalShape) and self.shape.default is not None
