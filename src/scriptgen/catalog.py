"""In-memory snapshot of a live catalog.

The snapshot carries just enough of ``INFORMATION_SCHEMA``/``sys`` metadata and
of the principal's grants to evaluate fragments without a server. Values are
recorded the way SQL Server reports them (e.g. ``nvarchar`` for DATA_TYPE,
``(getutcdate())`` for COLUMN_DEFAULT, -1 for MAX lengths).
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel

from schema.permission import PermissionAction, PermissionScope

# Actions HAS_PERMS_BY_NAME accepts per securable class; anything else yields NULL.
VALID_ACTIONS = {
    PermissionScope.SERVER: frozenset({PermissionAction.CREATE_ANY_DATABASE}),
    PermissionScope.DATABASE: frozenset(
        {
            PermissionAction.CREATE_DATABASE,
            PermissionAction.ALTER,
            PermissionAction.SELECT,
            PermissionAction.INSERT,
            PermissionAction.DELETE,
            PermissionAction.UPDATE,
        }
    ),
    PermissionScope.SCHEMA: frozenset(
        {
            PermissionAction.ALTER,
            PermissionAction.SELECT,
            PermissionAction.INSERT,
            PermissionAction.DELETE,
            PermissionAction.UPDATE,
        }
    ),
    PermissionScope.OBJECT: frozenset(
        {
            PermissionAction.ALTER,
            PermissionAction.SELECT,
            PermissionAction.INSERT,
            PermissionAction.DELETE,
            PermissionAction.UPDATE,
        }
    ),
    PermissionScope.COLUMN: frozenset({PermissionAction.SELECT, PermissionAction.UPDATE}),
}


class LiveColumn(BaseModel):
    name: str
    data_type: str
    is_nullable: bool
    character_maximum_length: Optional[int] = None
    numeric_precision: Optional[int] = None
    numeric_scale: Optional[int] = None
    datetime_precision: Optional[int] = None
    column_default: Optional[str] = None

    model_config = {"frozen": True}


class LivePrimaryKey(BaseModel):
    name: str
    columns: Tuple[str, ...]

    model_config = {"frozen": True}


class LiveForeignKey(BaseModel):
    column: str
    referenced_table: str
    referenced_column: str

    model_config = {"frozen": True}


class LiveTable(BaseModel):
    name: str
    schema_name: str = "dbo"
    columns: Tuple[LiveColumn, ...] = ()
    primary_key: Optional[LivePrimaryKey] = None
    foreign_keys: Tuple[LiveForeignKey, ...] = ()

    model_config = {"frozen": True}

    def column(self, name: str) -> Optional[LiveColumn]:
        for column in self.columns:
            if column.name == name:
                return column
        return None


class Grant(BaseModel):
    """A permission held by the executing principal."""

    scope: PermissionScope
    action: PermissionAction
    target: Optional[str] = None
    column: Optional[str] = None

    model_config = {"frozen": True}


class CatalogSnapshot(BaseModel):
    """Tables visible in one database plus the principal's effective grants."""

    tables: Tuple[LiveTable, ...] = ()
    grants: Tuple[Grant, ...] = ()

    model_config = {"frozen": True}

    def tables_named(self, name: str) -> List[LiveTable]:
        return [table for table in self.tables if table.name == name]

    def table(self, name: str) -> Optional[LiveTable]:
        """First table with this name, in schema order."""
        matches = sorted(self.tables_named(name), key=lambda table: table.schema_name)
        return matches[0] if matches else None

    def schema_of(self, name: str) -> Optional[str]:
        table = self.table(name)
        return table.schema_name if table else None

    def _granted(
        self,
        scope: PermissionScope,
        action: PermissionAction,
        target: Optional[str],
        column: Optional[str] = None,
    ) -> bool:
        return any(
            grant.scope == scope
            and grant.action == action
            and grant.target == target
            and grant.column == column
            for grant in self.grants
        )

    def has_permission(
        self,
        scope: PermissionScope,
        action: PermissionAction,
        target: Optional[str] = None,
        column: Optional[str] = None,
    ) -> Optional[bool]:
        """Mirror HAS_PERMS_BY_NAME: True/False, or None when indeterminate.

        Indeterminate results come from actions that are not valid for the
        securable class and from objects that do not exist.
        """
        if action not in VALID_ACTIONS[scope]:
            return None
        if scope in (PermissionScope.SERVER, PermissionScope.DATABASE, PermissionScope.SCHEMA):
            return self._granted(scope, action, target)

        table = self.table(target) if target else None
        if table is None:
            return None
        if scope == PermissionScope.COLUMN and table.column(column) is None:
            return None
        if self._granted(PermissionScope.SCHEMA, action, table.schema_name):
            return True
        if self._granted(PermissionScope.OBJECT, action, table.name):
            return True
        if scope == PermissionScope.COLUMN:
            return self._granted(PermissionScope.COLUMN, action, table.name, column)
        return False

    def is_visible(self, name: str) -> bool:
        """Metadata of a table is visible when the principal holds anything on it."""
        table = self.table(name)
        if table is None:
            return False
        return any(
            (grant.scope in (PermissionScope.OBJECT, PermissionScope.COLUMN) and grant.target == name)
            or (grant.scope == PermissionScope.SCHEMA and grant.target == table.schema_name)
            for grant in self.grants
        )

    def column_select_rows(self, name: str, columns: Sequence[str]) -> List[Tuple[str, bool]]:
        """Rows the column-permission fragment collects: (column, has SELECT)."""
        if not self.is_visible(name):
            return []
        table = self.table(name)
        return [
            (
                column,
                bool(
                    self.has_permission(
                        PermissionScope.COLUMN, PermissionAction.SELECT, name, column
                    )
                ),
            )
            for column in columns
            if table.column(column) is not None
        ]
