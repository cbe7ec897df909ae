"""One-shot script creating the application database and its tables."""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

from common.sql.quoting import is_plain_identifier, quote_identifier, string_literal
from schema.blueprint import default_tables
from schema.column_def import ColumnSpec, DecimalShape, TemporalShape, TextShape
from schema.table_def import TableSpec
from scriptgen.namespace import NamespaceAllocator
from scriptgen.outcome import SuccessToken, render_success

logger = logging.getLogger(__name__)

BATCH_SEPARATOR = "GO"
PROVISIONING_KIND = "provisioning"


def _type_declaration(column: ColumnSpec) -> str:
    shape = column.shape
    if isinstance(shape, TextShape):
        length = "MAX" if shape.max_length == -1 else str(shape.max_length)
        return f"{column.data_type} ({length})"
    if isinstance(shape, DecimalShape):
        return f"{column.data_type} ({shape.precision}, {shape.scale})"
    if isinstance(shape, TemporalShape):
        return f"{column.data_type} ({shape.precision})"
    return column.data_type


def column_definition(column: ColumnSpec) -> str:
    """Render one column of a CREATE TABLE statement."""
    parts = [quote_identifier(column.name), _type_declaration(column)]
    if column.identity:
        parts.append("IDENTITY (1, 1)")
    if column.has_default:
        parts.append(f"DEFAULT {column.shape.default}")
    parts.append("NULL" if column.is_nullable else "NOT NULL")
    return " ".join(parts)


def create_table_statement(table: TableSpec) -> str:
    lines = [column_definition(column) for column in table.columns]
    lines.append(f"PRIMARY KEY CLUSTERED ({quote_identifier(table.primary_key)} ASC)")
    for fk in table.foreign_keys:
        lines.append(
            f"CONSTRAINT {quote_identifier(fk.constraint_name(table.name))} "
            f"FOREIGN KEY ({quote_identifier(fk.column)}) "
            f"REFERENCES {quote_identifier(fk.referenced_table)} "
            f"({quote_identifier(fk.referenced_column)})"
        )
    body = ",\n".join(f"    {line}" for line in lines)
    return f"CREATE TABLE {quote_identifier(table.name)} (\n{body}\n)"


def creation_order(tables: Sequence[TableSpec]) -> List[TableSpec]:
    """Order tables so every referenced table is created before its referrers.

    Raises:
        ValueError: if foreign keys between the tables form a cycle.
    """
    pending = list(tables)
    names = {table.name for table in tables}
    created: set = set()
    ordered: List[TableSpec] = []
    while pending:
        for table in pending:
            references = {
                fk.referenced_table
                for fk in table.foreign_keys
                if fk.referenced_table != table.name and fk.referenced_table in names
            }
            if references <= created:
                break
        else:
            raise ValueError(
                "Foreign keys form a cycle between: " + ", ".join(t.name for t in pending)
            )
        pending.remove(table)
        created.add(table.name)
        ordered.append(table)
    return ordered


def _file_growth_block(ns: NamespaceAllocator, database: str, file_growth_mb: int) -> str:
    data_file = ns.allocate("db_file_name", database, kind=PROVISIONING_KIND)
    log_file = ns.allocate("db_log_file_name", database, kind=PROVISIONING_KIND)
    query = ns.allocate("file_growth_query", database, kind=PROVISIONING_KIND)
    quoted_database = quote_identifier(database)
    growth = f"FILEGROWTH = {file_growth_mb}MB"
    alter_prefix = string_literal(f"ALTER DATABASE {quoted_database} MODIFY FILE ( NAME = ")
    alter_suffix = string_literal(f", {growth} );")

    return f"""DECLARE {data_file} NVARCHAR(128);
DECLARE {log_file} NVARCHAR(128);

SET {data_file} = (
    SELECT name FROM sys.database_files
        WHERE type_desc = 'ROWS'
    )

SET {log_file} = (
    SELECT name FROM sys.database_files
        WHERE type_desc = 'LOG'
    )

DECLARE {query} NVARCHAR(MAX)

SET {query} = {alter_prefix} + QUOTENAME({data_file}) + {alter_suffix}
    + {alter_prefix} + QUOTENAME({log_file}) + {alter_suffix}

EXEC({query})"""


def build_create_database_script(
    database_name: str,
    tables: Optional[Sequence[TableSpec]] = None,
    *,
    file_growth_mb: int = 1,
) -> str:
    """Build the script creating a database with the blueprint tables.

    Failures are left to the engine's own error handling; reaching the end
    selects ``success``.

    Raises:
        ValueError: if the database name is not a plain identifier, the growth
            increment is not positive, or the tables reference each other in a cycle.
    """
    if not is_plain_identifier(database_name):
        raise ValueError(f"Invalid database name: {database_name!r}")
    if file_growth_mb < 1:
        raise ValueError(f"file_growth_mb must be positive, got {file_growth_mb}")

    tables = default_tables() if tables is None else tables
    ns = NamespaceAllocator()
    database = quote_identifier(database_name)

    sections = [
        f"CREATE DATABASE {database}\n{BATCH_SEPARATOR}",
        f"USE {database}\n{BATCH_SEPARATOR}",
    ]
    sections.extend(create_table_statement(table) for table in creation_order(tables))
    sections.append(_file_growth_block(ns, database_name, file_growth_mb))
    sections.append(
        "-- Database creation is successful if execution reached here.\n"
        + render_success(SuccessToken.SUCCESS)
    )
    logger.info("Built creation script for %s with %d tables", database_name, len(tables))
    return "\n\n".join(sections) + "\n"
