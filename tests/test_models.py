import signal

import pytest

from deploykit.errors import DeployKitError
from deploykit.models import ApplicationIdentity, CommandResult, RuntimeIdentity, UserRecord


class CountingUserDatabase:
    def __init__(self):
        self.lookups = []

    def lookup(self, username):
        self.lookups.append(username)
        return UserRecord(name=username, uid=1000 + len(self.lookups), gid=100, home_dir=f"/home/{username}")

    def current_username(self):
        return "current"


def test_application_identity_requires_core_fields():
    with pytest.raises(DeployKitError, match="'app_version' option is required"):
        ApplicationIdentity(app_id="shop", app_name="Shop", app_version="", source_root="/srv/shop")


def test_application_identity_from_mapping_resolves_relative_source_root(tmp_path):
    identity = ApplicationIdentity.from_mapping(
        {
            "app_id": "shop",
            "app_name": "Shop",
            "app_version": 2.1,
            "source_root": "app",
            "config_files": {"database": "database.yml"},
            "installer": "shop-installer",
        },
        base_dir=str(tmp_path),
    )

    assert identity.source_root == str(tmp_path / "app")
    assert identity.app_version == "2.1"
    assert identity.config_files == {"database": "database.yml"}
    assert identity.installer == "shop-installer"


def test_application_identity_rejects_non_mapping_config_files():
    with pytest.raises(DeployKitError, match="config_files"):
        ApplicationIdentity.from_mapping(
            {
                "app_id": "shop",
                "app_name": "Shop",
                "app_version": "1",
                "source_root": "/srv/shop",
                "config_files": ["database.yml"],
            }
        )


def test_runtime_identity_caches_record_until_username_changes():
    user_db = CountingUserDatabase()
    runtime = RuntimeIdentity("alice", user_db=user_db)

    assert runtime.home_dir == "/home/alice"
    assert runtime.uid == 1001
    assert user_db.lookups == ["alice"]

    runtime.username = "bob"

    assert runtime.home_dir == "/home/bob"
    assert user_db.lookups == ["alice", "bob"]


def test_runtime_identity_from_environment_precedence():
    user_db = CountingUserDatabase()

    assert RuntimeIdentity.from_environment("explicit", {"DEPLOYKIT_USER": "env"}, user_db).username == "explicit"
    assert RuntimeIdentity.from_environment(None, {"DEPLOYKIT_USER": "env"}, user_db).username == "env"
    assert RuntimeIdentity.from_environment(None, {}, user_db).username == "current"


def test_runtime_identity_privilege_and_copy():
    runtime = RuntimeIdentity("root", user_db=CountingUserDatabase())
    clone = runtime.copy()
    clone.username = "deploy"

    assert runtime.is_privileged
    assert not clone.is_privileged
    assert runtime.username == "root"


def test_command_result_from_returncode():
    assert CommandResult.from_returncode(["true"], 0).succeeded

    failed = CommandResult.from_returncode(["false"], 1)
    assert not failed.succeeded
    assert not failed.interrupted

    interrupted = CommandResult.from_returncode(["sleep"], -signal.SIGINT)
    assert interrupted.interrupted
    assert interrupted.signal == signal.SIGINT

    terminated = CommandResult.from_returncode(["sleep"], -signal.SIGTERM)
    assert not terminated.interrupted
    assert not terminated.succeeded
