"""Blueprint container, the bundled City/Country blueprint, and the JSON loader."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from pydantic import BaseModel, model_validator

from schema.column_def import ColumnSpec, DecimalShape, TemporalShape, TextShape
from schema.foreign_key_def import ForeignKeySpec
from schema.permission import PermissionAction, PermissionRequirement, PermissionScope
from schema.table_def import TableSpec

logger = logging.getLogger(__name__)

TABLE_SCOPES = frozenset({PermissionScope.OBJECT, PermissionScope.COLUMN})


class Blueprint(BaseModel):
    """Expected tables and required permissions supplied by the caller."""

    tables: Tuple[TableSpec, ...]
    permissions: Tuple[PermissionRequirement, ...] = ()

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_references(self) -> "Blueprint":
        by_name = {}
        for table in self.tables:
            if table.name in by_name:
                raise ValueError(f"table '{table.name}' is defined twice")
            by_name[table.name] = table
        for table in self.tables:
            for fk in table.foreign_keys:
                referenced = by_name.get(fk.referenced_table)
                if referenced is None:
                    raise ValueError(
                        f"foreign key {table.name}.{fk.column} references unknown table "
                        f"'{fk.referenced_table}'"
                    )
                if referenced.column(fk.referenced_column) is None:
                    raise ValueError(
                        f"foreign key {table.name}.{fk.column} references unknown column "
                        f"'{fk.referenced_table}.{fk.referenced_column}'"
                    )
        for requirement in self.permissions:
            if requirement.scope not in TABLE_SCOPES:
                continue
            table = by_name.get(requirement.target)
            if table is None:
                raise ValueError(f"permission targets unknown table '{requirement.target}'")
            if requirement.column is not None and table.column(requirement.column) is None:
                raise ValueError(
                    f"permission targets unknown column '{table.name}.{requirement.column}'"
                )
        return self

    @property
    def interaction_permissions(self) -> Tuple[PermissionRequirement, ...]:
        """Table and column requirements, checked per table."""
        return tuple(r for r in self.permissions if r.scope in TABLE_SCOPES)

    @property
    def provisioning_permissions(self) -> Tuple[PermissionRequirement, ...]:
        """Server, database and schema requirements, checked before provisioning."""
        return tuple(r for r in self.permissions if r.scope not in TABLE_SCOPES)

    def table(self, name: str) -> Optional[TableSpec]:
        for table in self.tables:
            if table.name == name:
                return table
        return None


def default_tables() -> List[TableSpec]:
    """City/Country tables the application works with."""
    city = TableSpec(
        name="City",
        columns=(
            ColumnSpec(name="ID", data_type="INT", is_nullable=False, identity=True),
            ColumnSpec(
                name="Name",
                data_type="NVARCHAR",
                is_nullable=False,
                shape=TextShape(max_length=100),
            ),
        ),
        primary_key="ID",
    )
    country = TableSpec(
        name="Country",
        columns=(
            ColumnSpec(name="ID", data_type="INT", is_nullable=False, identity=True),
            ColumnSpec(
                name="Name",
                data_type="NVARCHAR",
                is_nullable=False,
                shape=TextShape(max_length=100),
            ),
            ColumnSpec(
                name="Alpha3Code",
                data_type="CHAR",
                is_nullable=False,
                shape=TextShape(max_length=3),
            ),
            ColumnSpec(name="CapitalCityID", data_type="INT", is_nullable=False),
            ColumnSpec(name="Population", data_type="INT", is_nullable=True),
            ColumnSpec(
                name="Area",
                data_type="DECIMAL",
                is_nullable=True,
                shape=DecimalShape(precision=10, scale=2),
            ),
            ColumnSpec(
                name="UpdatedOn",
                data_type="DATETIME2",
                is_nullable=False,
                shape=TemporalShape(precision=3, default="(getutcdate())"),
            ),
        ),
        primary_key="ID",
        foreign_keys=(
            ForeignKeySpec(column="CapitalCityID", referenced_table="City", referenced_column="ID"),
        ),
    )
    return [city, country]


def default_interaction_permissions() -> List[PermissionRequirement]:
    """Permissions the application needs to read and maintain City/Country."""
    requirements = [PermissionRequirement.on_column("City", name) for name in ("ID", "Name")]
    # Country.ID is never read by the application.
    requirements.extend(
        PermissionRequirement.on_column("Country", name)
        for name in ("Name", "Alpha3Code", "CapitalCityID", "Population", "Area", "UpdatedOn")
    )
    requirements.extend(
        [
            PermissionRequirement.on_table("City", PermissionAction.INSERT),
            PermissionRequirement.on_table("City", PermissionAction.DELETE),
            PermissionRequirement.on_table("Country", PermissionAction.INSERT),
            PermissionRequirement.on_table("Country", PermissionAction.DELETE),
            PermissionRequirement.on_table("Country", PermissionAction.UPDATE),
            PermissionRequirement.on_table("Country", PermissionAction.ALTER),
        ]
    )
    return requirements


def default_provisioning_permissions() -> List[PermissionRequirement]:
    """Permissions needed to create the application database."""
    return [
        PermissionRequirement.on_database("master", PermissionAction.CREATE_DATABASE),
        PermissionRequirement.on_server(PermissionAction.CREATE_ANY_DATABASE),
        PermissionRequirement.on_schema("dbo", PermissionAction.ALTER),
    ]


def default_blueprint() -> Blueprint:
    permissions = default_interaction_permissions() + default_provisioning_permissions()
    return Blueprint(tables=tuple(default_tables()), permissions=tuple(permissions))


def load_blueprint(path: Union[str, Path]) -> Blueprint:
    """Load a blueprint from a JSON document.

    Raises:
        FileNotFoundError: if the path does not exist.
        pydantic.ValidationError: if the document does not describe a valid blueprint.
    """
    path = Path(path)
    blueprint = Blueprint.model_validate_json(path.read_text(encoding="utf-8"))
    logger.info(
        "Loaded blueprint from %s: %d tables, %d permissions",
        path,
        len(blueprint.tables),
        len(blueprint.permissions),
    )
    return blueprint
