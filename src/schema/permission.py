"""Required-permission descriptions checked by the permission pipelines."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, model_validator

from schema.identifiers import Identifier


class PermissionScope(str, Enum):
    """Securable class a permission is evaluated against."""

    SERVER = "SERVER"
    DATABASE = "DATABASE"
    SCHEMA = "SCHEMA"
    OBJECT = "OBJECT"
    COLUMN = "COLUMN"


class PermissionAction(str, Enum):
    """Fixed permission vocabulary understood by the fragment library."""

    SELECT = "SELECT"
    INSERT = "INSERT"
    DELETE = "DELETE"
    UPDATE = "UPDATE"
    ALTER = "ALTER"
    CREATE_DATABASE = "CREATE DATABASE"
    CREATE_ANY_DATABASE = "CREATE ANY DATABASE"

    @property
    def token_part(self) -> str:
        """Form used inside outcome tokens (spaces become underscores)."""
        return self.value.replace(" ", "_")


class PermissionRequirement(BaseModel):
    """A (scope, action) pair the executing principal must hold.

    ``target`` names the database, schema or table; it is absent for
    server-wide permissions. ``column`` is set only for column scope.
    """

    scope: PermissionScope
    action: PermissionAction
    target: Optional[Identifier] = None
    column: Optional[Identifier] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_scope(self) -> "PermissionRequirement":
        if self.scope == PermissionScope.SERVER:
            if self.target is not None:
                raise ValueError("server-scoped permissions take no target")
        elif self.target is None:
            raise ValueError(f"{self.scope.value} permissions need a target")
        if self.scope == PermissionScope.COLUMN:
            if self.column is None:
                raise ValueError("column permissions need a column")
            if self.action != PermissionAction.SELECT:
                raise ValueError("only SELECT is checked at column scope")
        elif self.column is not None:
            raise ValueError(f"{self.scope.value} permissions take no column")
        return self

    @classmethod
    def on_server(cls, action: PermissionAction) -> "PermissionRequirement":
        return cls(scope=PermissionScope.SERVER, action=action)

    @classmethod
    def on_database(cls, database: str, action: PermissionAction) -> "PermissionRequirement":
        return cls(scope=PermissionScope.DATABASE, action=action, target=database)

    @classmethod
    def on_schema(cls, schema: str, action: PermissionAction) -> "PermissionRequirement":
        return cls(scope=PermissionScope.SCHEMA, action=action, target=schema)

    @classmethod
    def on_table(cls, table: str, action: PermissionAction) -> "PermissionRequirement":
        return cls(scope=PermissionScope.OBJECT, action=action, target=table)

    @classmethod
    def on_column(cls, table: str, column: str) -> "PermissionRequirement":
        return cls(
            scope=PermissionScope.COLUMN,
            action=PermissionAction.SELECT,
            target=table,
            column=column,
        )
