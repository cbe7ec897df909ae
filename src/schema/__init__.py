from .blueprint import (
    Blueprint,
    default_blueprint,
    default_interaction_permissions,
    default_provisioning_permissions,
    default_tables,
    load_blueprint,
)
from .column_def import ColumnSpec, DecimalShape, TemporalShape, TextShape
from .foreign_key_def import ForeignKeySpec
from .permission import PermissionAction, PermissionRequirement, PermissionScope
from .table_def import TableSpec

__all__ = [
    "Blueprint",
    "ColumnSpec",
    "DecimalShape",
    "ForeignKeySpec",
    "PermissionAction",
    "PermissionRequirement",
    "PermissionScope",
    "TableSpec",
    "TemporalShape",
    "TextShape",
    "default_blueprint",
    "default_interaction_permissions",
    "default_provisioning_permissions",
    "default_tables",
    "load_blueprint",
]
