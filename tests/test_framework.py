import os

from deploykit.framework import is_django_app, migrate_command, settings_paths
from deploykit.locator import ResourceLocator
from deploykit.models import ApplicationIdentity, RuntimeIdentity, SystemLayout, UserRecord


class FakeUserDatabase:
    def __init__(self, home_dir):
        self.home_dir = home_dir

    def lookup(self, username):
        return UserRecord(name=username, uid=os.getuid(), gid=os.getgid(), home_dir=self.home_dir)


def test_is_django_app_detects_manage_script(tmp_path):
    assert not is_django_app(str(tmp_path))

    (tmp_path / "manage.py").write_text("import sys\n", encoding="utf-8")
    assert not is_django_app(str(tmp_path))

    (tmp_path / "manage.py").write_text(
        "from django.core.management import execute_from_command_line\n", encoding="utf-8"
    )
    assert is_django_app(str(tmp_path))


def test_migrate_command_runs_manage_script():
    assert migrate_command("/usr/bin/python3", "/srv/shop") == [
        "/usr/bin/python3",
        "/srv/shop/manage.py",
        "migrate",
        "--noinput",
    ]


def test_settings_paths_resolves_database_config_and_log_file(tmp_path):
    source_root = tmp_path / "app"
    (source_root / "config").mkdir(parents=True)
    (source_root / "config" / "database.yml").write_text("production: {}\n", encoding="utf-8")
    identity = ApplicationIdentity(
        app_id="shop",
        app_name="Shop",
        app_version="1.0",
        source_root=str(source_root),
        config_files={"database": "database.yml"},
    )
    runtime = RuntimeIdentity("deploy", user_db=FakeUserDatabase(str(tmp_path / "home")))
    locator = ResourceLocator(identity, runtime, environ={}, layout=SystemLayout())

    paths = settings_paths(locator)

    assert paths["database_config"] == str(source_root / "config" / "database.yml")
    assert paths["log_file"] == str(source_root / "log" / "development.log")
