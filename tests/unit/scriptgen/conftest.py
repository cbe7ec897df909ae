"""Catalog snapshots mirroring the bundled City/Country blueprint."""

import pytest

from schema.permission import PermissionAction, PermissionScope
from scriptgen.catalog import (
    CatalogSnapshot,
    Grant,
    LiveColumn,
    LiveForeignKey,
    LivePrimaryKey,
    LiveTable,
)


def _city(schema_name="dbo"):
    return LiveTable(
        name="City",
        schema_name=schema_name,
        columns=(
            LiveColumn(name="ID", data_type="int", is_nullable=False, numeric_precision=10),
            LiveColumn(
                name="Name", data_type="nvarchar", is_nullable=False, character_maximum_length=100
            ),
        ),
        primary_key=LivePrimaryKey(name="PK__City", columns=("ID",)),
    )


def _country(schema_name="dbo"):
    return LiveTable(
        name="Country",
        schema_name=schema_name,
        columns=(
            LiveColumn(name="ID", data_type="int", is_nullable=False, numeric_precision=10),
            LiveColumn(
                name="Name", data_type="nvarchar", is_nullable=False, character_maximum_length=100
            ),
            LiveColumn(
                name="Alpha3Code", data_type="char", is_nullable=False, character_maximum_length=3
            ),
            LiveColumn(name="CapitalCityID", data_type="int", is_nullable=False),
            LiveColumn(name="Population", data_type="int", is_nullable=True),
            LiveColumn(
                name="Area",
                data_type="decimal",
                is_nullable=True,
                numeric_precision=10,
                numeric_scale=2,
            ),
            LiveColumn(
                name="UpdatedOn",
                data_type="datetime2",
                is_nullable=False,
                datetime_precision=3,
                column_default="(getutcdate())",
            ),
        ),
        primary_key=LivePrimaryKey(name="PK__Country", columns=("ID",)),
        foreign_keys=(
            LiveForeignKey(column="CapitalCityID", referenced_table="City", referenced_column="ID"),
        ),
    )


def _grants():
    grants = [
        Grant(scope=PermissionScope.SERVER, action=PermissionAction.CREATE_ANY_DATABASE),
        Grant(
            scope=PermissionScope.DATABASE,
            action=PermissionAction.CREATE_DATABASE,
            target="master",
        ),
        Grant(scope=PermissionScope.SCHEMA, action=PermissionAction.ALTER, target="dbo"),
    ]
    for table, actions in (
        ("City", ("SELECT", "INSERT", "DELETE")),
        ("Country", ("SELECT", "INSERT", "DELETE", "UPDATE")),
    ):
        grants.extend(
            Grant(scope=PermissionScope.OBJECT, action=PermissionAction(action), target=table)
            for action in actions
        )
    return tuple(grants)


@pytest.fixture
def city_table():
    return _city()


@pytest.fixture
def country_table():
    return _country()


@pytest.fixture
def valid_catalog():
    """Database matching the blueprint, principal holding every required permission."""
    return CatalogSnapshot(tables=(_city(), _country()), grants=_grants())


@pytest.fixture
def replace_table(valid_catalog):
    """Return a copy of the valid catalog with one table swapped for another."""

    def _replace(table, catalog=None):
        catalog = catalog or valid_catalog
        tables = tuple(t for t in catalog.tables if t.name != table.name) + (table,)
        return catalog.model_copy(update={"tables": tables})

    return _replace


@pytest.fixture
def revoke(valid_catalog):
    """Return a copy of the valid catalog without the grants matching the arguments."""

    def _revoke(scope, action, target=None, catalog=None):
        catalog = catalog or valid_catalog
        grants = tuple(
            grant
            for grant in catalog.grants
            if not (grant.scope == scope and grant.action == action and grant.target == target)
        )
        return catalog.model_copy(update={"grants": grants})

    return _revoke
