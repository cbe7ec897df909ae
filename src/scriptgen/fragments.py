"""Self-contained T-SQL validation fragments.

Every builder is a pure function of its entities and the procedure's
:class:`~scriptgen.namespace.NamespaceAllocator`. A fragment carries its text,
the scratch variables it declares, the facts it establishes once it ran
without aborting, the facts it relies on, and a probe that evaluates the same
check against a :class:`~scriptgen.catalog.CatalogSnapshot`.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, FrozenSet, Optional, Sequence, Tuple

from common.sql.quoting import string_list, string_literal
from schema.column_def import ColumnSpec, DecimalShape, TemporalShape, TextShape
from schema.foreign_key_def import ForeignKeySpec
from schema.permission import PermissionAction, PermissionRequirement, PermissionScope
from scriptgen.catalog import CatalogSnapshot
from scriptgen.errors import CompositionError
from scriptgen.namespace import NamespaceAllocator
from scriptgen.outcome import ErrorCategory, Outcome, error_token, render_abort, render_case


class FragmentKind(str, Enum):
    """Fragment families; values double as the variable-name kind suffix."""

    TABLE_EXISTS = "table_exists_unique"
    SCHEMA_RESOLUTION = "schema_resolution"
    SAME_SCHEMA = "same_schema"
    COLUMN_SHAPE = "column_shape"
    EXTRA_COLUMNS = "extra_columns"
    PRIMARY_KEY = "primary_key"
    FOREIGN_KEY = "foreign_key"
    OBJECT_PERMISSION = "object_permission"
    COLUMN_PERMISSION = "column_permission"
    DATABASE_PERMISSION = "database_permission"


# Kinds whose facts a fragment of the key kind may depend on.
KIND_PRECONDITIONS: Dict[FragmentKind, FrozenSet[FragmentKind]] = {
    FragmentKind.TABLE_EXISTS: frozenset(),
    FragmentKind.SCHEMA_RESOLUTION: frozenset(),
    FragmentKind.SAME_SCHEMA: frozenset({FragmentKind.TABLE_EXISTS, FragmentKind.SCHEMA_RESOLUTION}),
    FragmentKind.COLUMN_SHAPE: frozenset({FragmentKind.TABLE_EXISTS}),
    FragmentKind.EXTRA_COLUMNS: frozenset({FragmentKind.TABLE_EXISTS}),
    FragmentKind.PRIMARY_KEY: frozenset({FragmentKind.TABLE_EXISTS}),
    FragmentKind.FOREIGN_KEY: frozenset({FragmentKind.SAME_SCHEMA, FragmentKind.TABLE_EXISTS}),
    FragmentKind.OBJECT_PERMISSION: frozenset({FragmentKind.SCHEMA_RESOLUTION}),
    FragmentKind.COLUMN_PERMISSION: frozenset({FragmentKind.SCHEMA_RESOLUTION}),
    FragmentKind.DATABASE_PERMISSION: frozenset(),
}

Fact = Tuple[FragmentKind, Tuple[str, ...]]
Probe = Callable[[CatalogSnapshot], Optional[Outcome]]

SCHEMA_NAME_PURPOSE = "schema_name_for_table"


def fact(kind: FragmentKind, *entities: str) -> Fact:
    return (kind, tuple(entities))


def same_schema_fact(table1: str, table2: str) -> Fact:
    """Co-location is symmetric, so the pair is keyed in sorted order."""
    return fact(FragmentKind.SAME_SCHEMA, *sorted((table1, table2)))


def _never_fails(catalog: CatalogSnapshot) -> Optional[Outcome]:
    return None


@dataclass(frozen=True)
class Fragment:
    name: str
    kind: FragmentKind
    text: str
    declares: FrozenSet[str] = frozenset()
    provides: FrozenSet[Fact] = frozenset()
    requires: FrozenSet[Fact] = frozenset()
    probe: Probe = field(default=_never_fails, compare=False, repr=False)

    def evaluate(self, catalog: CatalogSnapshot) -> Optional[Outcome]:
        """Evaluate the check offline; ``None`` means the fragment passes."""
        outcome = self.probe(catalog)
        if outcome is None:
            return None
        return dataclasses.replace(outcome, fragment=self.name)


def _fragment_name(kind: FragmentKind, *entities: str) -> str:
    return f"{kind.value}:{'.'.join(entities)}"


def _failure(token: str, category: ErrorCategory) -> Outcome:
    return Outcome.failure(token, category=category)


def _qualified_name(schema_variable: str, table: str) -> str:
    return f"QUOTENAME({schema_variable}) + '.' + QUOTENAME({string_literal(table)})"


def table_exists_unique(ns: NamespaceAllocator, table: str) -> Fragment:
    """Check that the table exists in exactly one schema.

    Missing and ambiguous tables are reported with distinct tokens; every
    table-level check that follows relies on resolving the name to one table.
    """
    kind = FragmentKind.TABLE_EXISTS
    count = ns.allocate("table_count_with_name", table, kind=kind.value)
    missing = error_token("NOT_EXISTS_TABLE", table)
    ambiguous = error_token("MULTIPLE_SCHEMAS_CONTAIN_TABLE", table)
    guard = render_abort(f"{count} != 1", render_case(f"{count} = 0", missing, ambiguous))

    text = f"""-- Check table {table} exists and no other schema has a table with the same name.

DECLARE {count} INT = 0;

SET {count} = (
    SELECT COUNT(*) FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_NAME = {string_literal(table)}
    )

{guard}"""

    def probe(catalog: CatalogSnapshot) -> Optional[Outcome]:
        matches = len(catalog.tables_named(table))
        if matches == 0:
            return _failure(missing, ErrorCategory.EXISTENCE)
        if matches > 1:
            return _failure(ambiguous, ErrorCategory.MULTIPLICITY)
        return None

    return Fragment(
        name=_fragment_name(kind, table),
        kind=kind,
        text=text,
        declares=frozenset({count}),
        provides=frozenset({fact(kind, table)}),
        probe=probe,
    )


def resolve_table_schema(ns: NamespaceAllocator, table: str) -> Fragment:
    """Declare and fill the shared schema-name variable of a table.

    Never aborts; ``TOP (1)`` keeps the assignment defined when the name is
    ambiguous and the variable stays NULL when the table is missing.
    """
    kind = FragmentKind.SCHEMA_RESOLUTION
    schema = ns.shared(SCHEMA_NAME_PURPOSE, table)

    text = f"""-- Resolve the schema of table {table}.

DECLARE {schema} NVARCHAR(128);

SET {schema} = (
    SELECT TOP (1) TABLE_SCHEMA FROM INFORMATION_SCHEMA.TABLES
        WHERE TABLE_NAME = {string_literal(table)}
        ORDER BY TABLE_SCHEMA
    )"""

    return Fragment(
        name=_fragment_name(kind, table),
        kind=kind,
        text=text,
        declares=frozenset({schema}),
        provides=frozenset({fact(kind, table)}),
    )


def tables_same_schema(ns: NamespaceAllocator, table1: str, table2: str) -> Fragment:
    """Check two tables live in the same schema.

    Assumes both tables were already checked for existence and uniqueness.
    """
    kind = FragmentKind.SAME_SCHEMA
    schema1 = ns.shared(SCHEMA_NAME_PURPOSE, table1)
    schema2 = ns.shared(SCHEMA_NAME_PURPOSE, table2)
    token = error_token("DIFFERENT_SCHEMAS_TABLES", table1, table2)

    guard = render_abort(f"{schema1} != {schema2}", string_literal(token))
    text = f"-- Check tables {table1} and {table2} are in the same schema.\n\n{guard}"

    def probe(catalog: CatalogSnapshot) -> Optional[Outcome]:
        if catalog.schema_of(table1) != catalog.schema_of(table2):
            return _failure(token, ErrorCategory.SHAPE)
        return None

    return Fragment(
        name=_fragment_name(kind, table1, table2),
        kind=kind,
        text=text,
        provides=frozenset({same_schema_fact(table1, table2)}),
        requires=frozenset(
            {
                fact(FragmentKind.TABLE_EXISTS, table1),
                fact(FragmentKind.TABLE_EXISTS, table2),
                fact(FragmentKind.SCHEMA_RESOLUTION, table1),
                fact(FragmentKind.SCHEMA_RESOLUTION, table2),
            }
        ),
        probe=probe,
    )


def _shape_conditions(column: ColumnSpec) -> list[str]:
    shape = column.shape
    if isinstance(shape, TextShape):
        return [f"AND CHARACTER_MAXIMUM_LENGTH = {shape.max_length}"]
    if isinstance(shape, DecimalShape):
        return [f"AND NUMERIC_PRECISION = {shape.precision}", f"AND NUMERIC_SCALE = {shape.scale}"]
    if isinstance(shape, TemporalShape):
        default = (
            "AND COLUMN_DEFAULT IS NULL"
            if shape.default is None
            else f"AND COLUMN_DEFAULT = {string_literal(shape.default)}"
        )
        return [f"AND DATETIME_PRECISION = {shape.precision}", default]
    return []


def _shape_matches(expected: ColumnSpec, live) -> bool:
    # DATA_TYPE comparisons run under the catalog's case-insensitive collation.
    if live.data_type.upper() != expected.data_type or live.is_nullable != expected.is_nullable:
        return False
    shape = expected.shape
    if isinstance(shape, TextShape):
        return live.character_maximum_length == shape.max_length
    if isinstance(shape, DecimalShape):
        return live.numeric_precision == shape.precision and live.numeric_scale == shape.scale
    if isinstance(shape, TemporalShape):
        return live.datetime_precision == shape.precision and live.column_default == shape.default
    return True


def column_shape(ns: NamespaceAllocator, table: str, column: ColumnSpec) -> Fragment:
    """Check a column has exactly the declared type, nullability and shape.

    Assumes the table was already checked for existence and uniqueness.
    """
    kind = FragmentKind.COLUMN_SHAPE
    token = error_token("INVALID_COLUMN", f"{table}.{column.name}")
    conditions = [
        f"WHERE TABLE_NAME = {string_literal(table)}",
        f"AND COLUMN_NAME = {string_literal(column.name)}",
        f"AND DATA_TYPE = {string_literal(column.data_type)}",
        f"AND IS_NULLABLE = {string_literal('YES' if column.is_nullable else 'NO')}",
        *_shape_conditions(column),
    ]
    where = "\n        ".join(conditions)
    condition = f"""NOT EXISTS (
    SELECT * FROM INFORMATION_SCHEMA.COLUMNS
        {where}
    )"""
    guard = render_abort(condition, string_literal(token))
    text = f"-- Check column {table}.{column.name}.\n\n{guard}"

    def probe(catalog: CatalogSnapshot) -> Optional[Outcome]:
        live_table = catalog.table(table)
        live = live_table.column(column.name) if live_table else None
        if live is None or not _shape_matches(column, live):
            return _failure(token, ErrorCategory.SHAPE)
        return None

    return Fragment(
        name=_fragment_name(kind, table, column.name),
        kind=kind,
        text=text,
        provides=frozenset({fact(kind, table, column.name)}),
        requires=frozenset({fact(FragmentKind.TABLE_EXISTS, table)}),
        probe=probe,
    )


def extra_columns(
    ns: NamespaceAllocator, table: str, required_columns: Sequence[str]
) -> Fragment:
    """Check every column outside the required set is nullable or has a default.

    Any other column would make each insert issued by the application fail.
    Assumes the table was already checked for existence and uniqueness.
    """
    if not required_columns:
        raise CompositionError(f"extra-columns check for '{table}' needs the required columns")
    kind = FragmentKind.EXTRA_COLUMNS
    token = error_token("INVALID_EXTRA_COLUMNS")
    required = tuple(required_columns)
    known = {name.casefold() for name in required}

    condition = f"""EXISTS (
    SELECT * FROM INFORMATION_SCHEMA.COLUMNS
        WHERE TABLE_NAME = {string_literal(table)}
        AND COLUMN_NAME NOT IN ({string_list(required)})
        AND IS_NULLABLE = 'NO'
        AND COLUMN_DEFAULT IS NULL
    )"""
    guard = render_abort(condition, string_literal(token))
    text = f"-- Check extra columns in {table}. They must be nullable or have a default.\n\n{guard}"

    def probe(catalog: CatalogSnapshot) -> Optional[Outcome]:
        live_table = catalog.table(table)
        if live_table is None:
            return None
        for live in live_table.columns:
            if live.name.casefold() in known:
                continue
            if not live.is_nullable and live.column_default is None:
                return _failure(token, ErrorCategory.EXTRANEOUS)
        return None

    return Fragment(
        name=_fragment_name(kind, table),
        kind=kind,
        text=text,
        provides=frozenset({fact(kind, table)}),
        requires=frozenset({fact(FragmentKind.TABLE_EXISTS, table)}),
        probe=probe,
    )


def primary_key(ns: NamespaceAllocator, table: str, column: str) -> Fragment:
    """Check the table has a primary key and that it includes the expected column.

    Assumes the table was already checked for existence and uniqueness.
    """
    kind = FragmentKind.PRIMARY_KEY
    pk_id = ns.allocate("pk_id_for_table", table, kind=kind.value)
    missing = error_token("NOT_EXISTS_PK_TABLE", table)
    invalid = error_token("INVALID_PK_TABLE", table)
    missing_guard = render_abort(f"{pk_id} IS NULL", string_literal(missing))
    anchored = f"""NOT EXISTS (
    SELECT * FROM INFORMATION_SCHEMA.CONSTRAINT_COLUMN_USAGE
        WHERE CONSTRAINT_NAME = OBJECT_NAME({pk_id})
        AND TABLE_NAME = {string_literal(table)}
        AND COLUMN_NAME = {string_literal(column)}
        AND TABLE_CATALOG = CONSTRAINT_CATALOG
        AND TABLE_SCHEMA = CONSTRAINT_SCHEMA
    )"""
    invalid_guard = render_abort(anchored, string_literal(invalid))

    text = f"""-- Check PK for table {table}.

DECLARE {pk_id} INT;

SET {pk_id} = (
    SELECT object_id FROM sys.key_constraints kc
        WHERE type = 'PK'
        AND OBJECT_NAME(kc.parent_object_id) = {string_literal(table)}
    )

{missing_guard}

{invalid_guard}"""

    def probe(catalog: CatalogSnapshot) -> Optional[Outcome]:
        live_table = catalog.table(table)
        pk = live_table.primary_key if live_table else None
        if pk is None:
            return _failure(missing, ErrorCategory.EXISTENCE)
        if column not in pk.columns:
            return _failure(invalid, ErrorCategory.SHAPE)
        return None

    return Fragment(
        name=_fragment_name(kind, table),
        kind=kind,
        text=text,
        declares=frozenset({pk_id}),
        provides=frozenset({fact(kind, table)}),
        requires=frozenset({fact(FragmentKind.TABLE_EXISTS, table)}),
        probe=probe,
    )


def foreign_key(ns: NamespaceAllocator, table: str, fk: ForeignKeySpec) -> Fragment:
    """Check a foreign key links exactly the given parent and referenced columns.

    Assumes both tables were already checked to share a schema.
    """
    kind = FragmentKind.FOREIGN_KEY
    token = error_token(
        "NOT_EXISTS_OR_INVALID_FK",
        f"{table}.{fk.column}",
        f"{fk.referenced_table}.{fk.referenced_column}",
    )
    if fk.referenced_table == table:
        precondition = fact(FragmentKind.TABLE_EXISTS, table)
    else:
        precondition = same_schema_fact(table, fk.referenced_table)

    condition = f"""NOT EXISTS (
    SELECT * FROM sys.foreign_key_columns
        WHERE OBJECT_NAME(parent_object_id) = {string_literal(table)}
        AND COL_NAME(parent_object_id, parent_column_id) = {string_literal(fk.column)}
        AND OBJECT_NAME(referenced_object_id) = {string_literal(fk.referenced_table)}
        AND COL_NAME(referenced_object_id, referenced_column_id) = {string_literal(fk.referenced_column)}
    )"""
    guard = render_abort(condition, string_literal(token))
    text = (
        f"-- Check FK {table}.{fk.column} references "
        f"{fk.referenced_table}.{fk.referenced_column}.\n\n{guard}"
    )

    def probe(catalog: CatalogSnapshot) -> Optional[Outcome]:
        live_table = catalog.table(table)
        keys = live_table.foreign_keys if live_table else ()
        for key in keys:
            if (key.column, key.referenced_table, key.referenced_column) == (
                fk.column,
                fk.referenced_table,
                fk.referenced_column,
            ):
                return None
        return _failure(token, ErrorCategory.EXISTENCE)

    return Fragment(
        name=_fragment_name(kind, table, fk.column),
        kind=kind,
        text=text,
        provides=frozenset({fact(kind, table, fk.column)}),
        requires=frozenset({precondition}),
        probe=probe,
    )


def object_permission(ns: NamespaceAllocator, table: str, action: PermissionAction) -> Fragment:
    """Check the principal holds an action on a table.

    A definite denial and an indeterminate answer (NULL, e.g. a permission
    name that does not apply to tables) are reported with different tokens.
    """
    kind = FragmentKind.OBJECT_PERMISSION
    schema = ns.shared(SCHEMA_NAME_PURPOSE, table)
    has_perms = ns.allocate("has_perms_on_table", table, action.token_part, kind=kind.value)
    denied = error_token("NO_PERMS", action.token_part, "TABLE", table)
    indeterminate = error_token("CHECK_PERMS_BAD_PERMS", action.token_part)
    guard = render_abort(
        f"{has_perms} IS NULL OR {has_perms} != 1",
        render_case(f"{has_perms} = 0", denied, indeterminate),
    )

    text = f"""-- Check {action.value} permission on table {table}.

DECLARE {has_perms} BIT;

SET {has_perms} =
    HAS_PERMS_BY_NAME({_qualified_name(schema, table)}, 'OBJECT', {string_literal(action.value)})

{guard}"""

    def probe(catalog: CatalogSnapshot) -> Optional[Outcome]:
        allowed = catalog.has_permission(PermissionScope.OBJECT, action, table)
        if allowed is None:
            return _failure(indeterminate, ErrorCategory.AUTHORIZATION)
        if not allowed:
            return _failure(denied, ErrorCategory.AUTHORIZATION)
        return None

    return Fragment(
        name=_fragment_name(kind, table, action.token_part),
        kind=kind,
        text=text,
        declares=frozenset({has_perms}),
        provides=frozenset({fact(kind, table, action.token_part)}),
        requires=frozenset({fact(FragmentKind.SCHEMA_RESOLUTION, table)}),
        probe=probe,
    )


def _column_order_key(name: str) -> Tuple[str, str]:
    return (name.casefold(), name)


def column_select_permission(
    ns: NamespaceAllocator, table: str, columns: Sequence[str]
) -> Fragment:
    """Check SELECT is granted on every listed column of a table.

    Fails when the table yields no rows at all (nothing readable), otherwise
    reports the first column lacking SELECT in ascending name order.
    """
    if not columns:
        raise CompositionError(f"column permission check for '{table}' needs columns")
    kind = FragmentKind.COLUMN_PERMISSION
    schema = ns.shared(SCHEMA_NAME_PURPOSE, table)
    perms = ns.allocate("perms_columns_select", table, kind=kind.value)
    no_perms_column = ns.allocate("no_select_perms_column_name", table, kind=kind.value)
    unreadable = error_token("NO_PERMS_VIEW_TABLE", table)
    column_prefix = error_token("NO_PERMS_SELECT_COLUMN", table)
    qualified = _qualified_name(schema, table)
    wanted = tuple(columns)
    unreadable_guard = render_abort(f"NOT EXISTS (SELECT * FROM {perms})", string_literal(unreadable))
    column_guard = render_abort(
        f"{no_perms_column} IS NOT NULL",
        f"{string_literal(column_prefix)} + '.' + {no_perms_column}",
    )

    text = f"""-- Check SELECT permission on columns of table {table}.

DECLARE {perms} TABLE
(
    ColumnName NVARCHAR (128) NOT NULL,
    HasSelectPerm BIT NOT NULL
)

INSERT INTO {perms} ( ColumnName, HasSelectPerm )
    SELECT name AS ColumnName,
        ISNULL(HAS_PERMS_BY_NAME({qualified}, 'OBJECT', 'SELECT', name, 'COLUMN'), 0)
        AS HasSelectPerm
            FROM sys.columns
            WHERE object_id = OBJECT_ID({qualified})
            AND name IN ( {string_list(wanted)} )

{unreadable_guard}

DECLARE {no_perms_column} NVARCHAR (128)

SET {no_perms_column} = (SELECT TOP (1) ColumnName FROM {perms}
        WHERE HasSelectPerm = 0
        ORDER BY ColumnName)

{column_guard}"""

    def probe(catalog: CatalogSnapshot) -> Optional[Outcome]:
        rows = catalog.column_select_rows(table, wanted)
        if not rows:
            return _failure(unreadable, ErrorCategory.AUTHORIZATION)
        lacking = sorted((name for name, granted in rows if not granted), key=_column_order_key)
        if lacking:
            return _failure(f"{column_prefix}.{lacking[0]}", ErrorCategory.AUTHORIZATION)
        return None

    return Fragment(
        name=_fragment_name(kind, table),
        kind=kind,
        text=text,
        declares=frozenset({perms, no_perms_column}),
        provides=frozenset({fact(kind, table)}),
        requires=frozenset({fact(FragmentKind.SCHEMA_RESOLUTION, table)}),
        probe=probe,
    )


def database_permission(ns: NamespaceAllocator, requirement: PermissionRequirement) -> Fragment:
    """Check a server, database or schema level permission.

    An indeterminate answer counts as a denial.
    """
    kind = FragmentKind.DATABASE_PERMISSION
    action = requirement.action
    scope = requirement.scope
    if scope == PermissionScope.SERVER:
        arguments = f"NULL, NULL, {string_literal(action.value)}"
        token = error_token("NO_PERMS", action.token_part)
        subject = "the server"
    elif scope == PermissionScope.DATABASE:
        arguments = f"{string_literal(requirement.target)}, 'DATABASE', {string_literal(action.value)}"
        token = error_token("NO_PERMS", action.token_part, "IN", requirement.target)
        subject = f"database {requirement.target}"
    elif scope == PermissionScope.SCHEMA:
        arguments = f"{string_literal(requirement.target)}, 'SCHEMA', {string_literal(action.value)}"
        token = error_token("NO_PERMS", action.token_part, "SCHEMA", requirement.target)
        subject = f"schema {requirement.target}"
    else:
        raise CompositionError(f"{scope.value} permissions are checked per table, not here")

    guard = render_abort(f"ISNULL(HAS_PERMS_BY_NAME({arguments}), 0) != 1", string_literal(token))
    text = f"-- Check {action.value} permission on {subject}.\n\n{guard}"

    def probe(catalog: CatalogSnapshot) -> Optional[Outcome]:
        if catalog.has_permission(scope, action, requirement.target) is not True:
            return _failure(token, ErrorCategory.AUTHORIZATION)
        return None

    entities = [scope.value, action.token_part]
    if requirement.target:
        entities.append(requirement.target)
    return Fragment(
        name=_fragment_name(kind, *entities),
        kind=kind,
        text=text,
        provides=frozenset({fact(kind, *entities)}),
        probe=probe,
    )
