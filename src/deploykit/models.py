"""Shared domain models for deploykit."""

import grp
import os
import pwd
import signal
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Union

from deploykit.errors import DeployKitError

PRIVILEGED_USERNAME = "root"
RUNTIME_USER_ENV = "DEPLOYKIT_USER"

InstallerSpec = Union[None, bool, str]


@dataclass(frozen=True)
class ApplicationIdentity:
    """Static description of the application being located and installed."""

    app_id: str
    app_name: str
    app_version: str
    source_root: str
    config_files: Mapping[str, str] = field(default_factory=dict)
    installer: InstallerSpec = None

    REQUIRED_FIELDS = ("app_id", "app_name", "app_version", "source_root")

    def __post_init__(self):
        for name in self.REQUIRED_FIELDS:
            if not getattr(self, name):
                raise DeployKitError(f"The '{name}' option is required.")
        object.__setattr__(self, "config_files", dict(self.config_files or {}))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base_dir: Optional[str] = None):
        source_root = data.get("source_root")
        if source_root and not os.path.isabs(source_root):
            source_root = os.path.abspath(os.path.join(base_dir or os.getcwd(), source_root))

        config_files = data.get("config_files") or {}
        if not isinstance(config_files, Mapping):
            raise DeployKitError("'config_files' must be a mapping of identifier to file name.")

        return cls(
            app_id=data.get("app_id"),
            app_name=data.get("app_name"),
            app_version=str(data["app_version"]) if data.get("app_version") is not None else None,
            source_root=source_root,
            config_files={str(key): str(value) for key, value in config_files.items()},
            installer=data.get("installer"),
        )


@dataclass(frozen=True)
class UserRecord:
    name: str
    uid: int
    gid: int
    home_dir: str


class UserDatabase:
    """Resolves usernames to numeric identities through the system user database."""

    def lookup(self, username: str) -> UserRecord:
        entry = pwd.getpwnam(username)
        return UserRecord(name=entry.pw_name, uid=entry.pw_uid, gid=entry.pw_gid, home_dir=entry.pw_dir)

    def exists(self, username: str) -> bool:
        try:
            self.lookup(username)
        except KeyError:
            return False
        return True

    def group_name(self, gid: int) -> str:
        try:
            return grp.getgrgid(gid).gr_name
        except KeyError:
            return str(gid)

    def current_username(self) -> str:
        return pwd.getpwuid(os.geteuid()).pw_name


class RuntimeIdentity:
    """The user the application runs as, with derived fields cached until reassignment."""

    def __init__(self, username: str, user_db: Optional[UserDatabase] = None):
        self.user_db = user_db or UserDatabase()
        self._username = username
        self._record: Optional[UserRecord] = None

    @classmethod
    def from_environment(
        cls,
        username: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
        user_db: Optional[UserDatabase] = None,
    ) -> "RuntimeIdentity":
        environ = os.environ if environ is None else environ
        user_db = user_db or UserDatabase()
        resolved = username or environ.get(RUNTIME_USER_ENV) or user_db.current_username()
        return cls(resolved, user_db=user_db)

    @property
    def username(self) -> str:
        return self._username

    @username.setter
    def username(self, value: str):
        self._username = value
        self.invalidate()

    def invalidate(self):
        self._record = None

    @property
    def record(self) -> UserRecord:
        if self._record is None:
            self._record = self.user_db.lookup(self._username)
        return self._record

    @property
    def uid(self) -> int:
        return self.record.uid

    @property
    def gid(self) -> int:
        return self.record.gid

    @property
    def home_dir(self) -> str:
        return self.record.home_dir

    @property
    def is_privileged(self) -> bool:
        return self._username == PRIVILEGED_USERNAME

    def copy(self) -> "RuntimeIdentity":
        return RuntimeIdentity(self._username, user_db=self.user_db)

    def __repr__(self):
        return f"RuntimeIdentity(username={self._username!r})"


@dataclass(frozen=True)
class SystemLayout:
    """Roots of the system-wide directories used for privileged installs."""

    config_dir: str = "/etc"
    log_dir: str = "/var/log"
    lib_dir: str = "/usr/lib"
    tmp_dir: str = "/tmp"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external command invocation."""

    command: List[str]
    succeeded: bool
    interrupted: bool = False
    returncode: Optional[int] = None
    signal: Optional[int] = None

    @classmethod
    def from_returncode(cls, command: List[str], returncode: int) -> "CommandResult":
        # subprocess reports death by signal N as returncode -N.
        if returncode < 0:
            signum = -returncode
            return cls(
                command=list(command),
                succeeded=False,
                interrupted=signum == signal.SIGINT,
                returncode=returncode,
                signal=signum,
            )
        return cls(command=list(command), succeeded=returncode == 0, returncode=returncode)


@dataclass
class DependencyStatus:
    found: bool
    detail: Optional[str] = None

