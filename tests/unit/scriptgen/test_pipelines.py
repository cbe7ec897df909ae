"""End-to-end behaviour of the three check procedures against catalog snapshots."""

import pytest

from schema.blueprint import default_tables
from schema.permission import PermissionAction, PermissionRequirement, PermissionScope
from scriptgen.catalog import CatalogSnapshot, Grant, LiveColumn
from scriptgen.composer import (
    interaction_permission_pipeline,
    provisioning_permission_pipeline,
    structural_validation_pipeline,
)
from scriptgen.errors import CompositionError, PreconditionError
from scriptgen.outcome import ErrorCategory

CITY, COUNTRY = default_tables()


def test_valid_catalog_passes_every_check(valid_catalog):
    assert structural_validation_pipeline().evaluate(valid_catalog).token == "valid"
    assert interaction_permission_pipeline().evaluate(valid_catalog).token == "allow"
    assert provisioning_permission_pipeline().evaluate(valid_catalog).token == "allow"


def test_nullable_extra_column_is_tolerated(city_table, replace_table):
    region = LiveColumn(name="Region", data_type="nvarchar", is_nullable=True)
    catalog = replace_table(city_table.model_copy(update={"columns": city_table.columns + (region,)}))

    assert structural_validation_pipeline().evaluate(catalog).token == "valid"


def test_first_violation_wins(country_table, replace_table):
    notes = LiveColumn(name="Notes", data_type="nvarchar", is_nullable=False)
    broken = country_table.model_copy(
        update={"columns": country_table.columns + (notes,), "foreign_keys": ()}
    )
    pipeline = structural_validation_pipeline()

    outcome = pipeline.evaluate(replace_table(broken))

    assert outcome.token == "ERR_INVALID_EXTRA_COLUMNS"
    assert outcome.category == ErrorCategory.EXTRANEOUS
    assert outcome.fragment == "extra_columns:Country"
    names = pipeline.fragment_names
    assert names.index("extra_columns:Country") < names.index("foreign_key:Country.CapitalCityID")


def test_missing_foreign_key_is_reported(country_table, replace_table):
    catalog = replace_table(country_table.model_copy(update={"foreign_keys": ()}))

    outcome = structural_validation_pipeline().evaluate(catalog)

    assert outcome.token == "ERR_NOT_EXISTS_OR_INVALID_FK_Country.CapitalCityID_City.ID"


def test_missing_table_stops_before_co_location(valid_catalog):
    catalog = valid_catalog.model_copy(
        update={"tables": tuple(t for t in valid_catalog.tables if t.name != "City")}
    )

    outcome = structural_validation_pipeline().evaluate(catalog)

    assert outcome.token == "ERR_NOT_EXISTS_TABLE_City"
    assert outcome.category == ErrorCategory.EXISTENCE


def test_table_in_two_schemas_is_ambiguous(valid_catalog, city_table):
    duplicate = city_table.model_copy(update={"schema_name": "archive"})
    catalog = valid_catalog.model_copy(update={"tables": valid_catalog.tables + (duplicate,)})

    outcome = structural_validation_pipeline().evaluate(catalog)

    assert outcome.token == "ERR_MULTIPLE_SCHEMAS_CONTAIN_TABLE_City"
    assert outcome.category == ErrorCategory.MULTIPLICITY


def test_tables_in_different_schemas(country_table, replace_table):
    catalog = replace_table(country_table.model_copy(update={"schema_name": "sales"}))

    outcome = structural_validation_pipeline().evaluate(catalog)

    assert outcome.token == "ERR_DIFFERENT_SCHEMAS_TABLES_City_Country"


def test_missing_delete_reported_before_missing_update(valid_catalog, revoke):
    catalog = revoke(PermissionScope.OBJECT, PermissionAction.DELETE, "Country")
    catalog = revoke(PermissionScope.OBJECT, PermissionAction.UPDATE, "Country", catalog=catalog)

    outcome = interaction_permission_pipeline().evaluate(catalog)

    assert outcome.token == "ERR_NO_PERMS_DELETE_TABLE_Country"
    assert outcome.category == ErrorCategory.AUTHORIZATION


def test_missing_column_select_names_first_column(valid_catalog, revoke):
    catalog = revoke(PermissionScope.OBJECT, PermissionAction.SELECT, "Country")
    column_grants = tuple(
        Grant(
            scope=PermissionScope.COLUMN,
            action=PermissionAction.SELECT,
            target="Country",
            column=name,
        )
        for name in ("Name", "CapitalCityID", "Population", "UpdatedOn")
    )
    catalog = catalog.model_copy(update={"grants": catalog.grants + column_grants})

    outcome = interaction_permission_pipeline().evaluate(catalog)

    # Alpha3Code and Area both lack SELECT; names are compared case-insensitively.
    assert outcome.token == "ERR_NO_PERMS_SELECT_COLUMN_Country.Alpha3Code"


def test_interaction_fragment_order():
    names = interaction_permission_pipeline().fragment_names

    assert names == [
        "schema_resolution:City",
        "schema_resolution:Country",
        "column_permission:City",
        "column_permission:Country",
        "object_permission:City.INSERT",
        "object_permission:City.DELETE",
        "object_permission:Country.INSERT",
        "object_permission:Country.DELETE",
        "object_permission:Country.UPDATE",
        "object_permission:Country.ALTER",
    ]


def test_shared_schema_variable_is_declared_once():
    text = interaction_permission_pipeline().render()

    assert text.count("DECLARE @schema_name_for_table_Country NVARCHAR(128);") == 1
    assert text.count("QUOTENAME(@schema_name_for_table_Country)") > 1


def test_interaction_rejects_server_requirements():
    with pytest.raises(CompositionError, match="provisioning"):
        interaction_permission_pipeline(
            requirements=[PermissionRequirement.on_server(PermissionAction.CREATE_ANY_DATABASE)]
        )


def test_provisioning_without_grants_reports_database_permission_first():
    outcome = provisioning_permission_pipeline().evaluate(CatalogSnapshot())

    assert outcome.token == "ERR_NO_PERMS_CREATE_DATABASE_IN_master"


def test_provisioning_without_server_grant(revoke):
    catalog = revoke(PermissionScope.SERVER, PermissionAction.CREATE_ANY_DATABASE)

    outcome = provisioning_permission_pipeline().evaluate(catalog)

    assert outcome.token == "ERR_NO_PERMS_CREATE_ANY_DATABASE"


def test_provisioning_script_text():
    text = provisioning_permission_pipeline().render()

    assert "HAS_PERMS_BY_NAME('master', 'DATABASE', 'CREATE DATABASE')" in text
    assert "HAS_PERMS_BY_NAME(NULL, NULL, 'CREATE ANY DATABASE')" in text
    assert text.rstrip().endswith("SELECT 'allow'")
    assert "NOEXEC OFF" not in text


def test_foreign_key_to_unlisted_table_needs_its_existence_check():
    with pytest.raises(PreconditionError, match="table_exists_unique"):
        structural_validation_pipeline([COUNTRY])


def test_empty_structural_check_is_rejected():
    with pytest.raises(CompositionError):
        structural_validation_pipeline([])


def test_single_table_needs_no_co_location():
    pipeline = structural_validation_pipeline([CITY])

    assert not any(name.startswith("same_schema") for name in pipeline.fragment_names)
    assert not any(name.startswith("schema_resolution") for name in pipeline.fragment_names)
