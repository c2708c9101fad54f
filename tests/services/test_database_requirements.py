from deploykit.services.database_requirements import DatabaseRequirements


def test_adapter_maps_to_driver_package():
    requirements = DatabaseRequirements(
        {
            "development": {"adapter": "sqlite3"},
            "production": {"adapter": "postgresql"},
            "staging": {"adapter": "mysql"},
        }
    )

    assert requirements.requirements() == ["psycopg2", "mysqlclient"]
    assert requirements.requirements_for_group("development") is None


def test_explicit_package_overrides_adapter():
    requirements = DatabaseRequirements(
        {
            "production": {"adapter": "postgresql", "package": "psycopg2-binary"},
            "test": {"adapter": "postgresql", "package": False},
        }
    )

    assert requirements.requirements_for_group("production") == "psycopg2-binary"
    assert requirements.requirements_for_group("test") is None


def test_unknown_adapter_is_used_as_package_name():
    requirements = DatabaseRequirements({"production": {"adapter": "mssql-django"}})

    assert requirements.requirements() == ["mssql-django"]


def test_missing_config_declares_nothing():
    assert DatabaseRequirements(None).requirements() == []
    assert DatabaseRequirements({"production": "not a mapping"}).requirements() == []
