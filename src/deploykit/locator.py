"""Resource location for a packaged web application.

Every path the application needs (configuration files, the log file,
the dependency bundle and the restart directory) is derived from an
``ApplicationIdentity`` plus the ``RuntimeIdentity`` the application
runs as. Developer checkouts, per-user installs and root-owned system
installs each get a different but deterministic layout.
"""

import logging
import os
import re
import sys
from typing import Any, List, Mapping, MutableMapping, Optional

import yaml

from deploykit.errors import ConfigNotFound, DeployKitError, UnknownIdentifier
from deploykit.errors_catalog import actionable_error
from deploykit.models import (
    ApplicationIdentity,
    RuntimeIdentity,
    SystemLayout,
    UserDatabase,
)

logger = logging.getLogger("deploykit")

DEPLOYMENT_ENV_VARIABLES = ("APP_ENV", "ENVIRONMENT")
DEFAULT_DEPLOYMENT_ENV = "development"
LOG_FILE_IDENTIFIER = "log_file"
MANIFEST_NAME = "requirements.txt"
SOURCE_ROOT_ENV = "SOURCE_ROOT"


class ResourceLocator:
    """Resolves one authoritative location for each application resource."""

    def __init__(
        self,
        identity: ApplicationIdentity,
        runtime: RuntimeIdentity,
        environ: Optional[MutableMapping[str, str]] = None,
        layout: Optional[SystemLayout] = None,
    ):
        self.identity = identity
        self.runtime = runtime
        self.environ = os.environ if environ is None else environ
        self.layout = layout or SystemLayout()
        self._runtime_tag: Optional[str] = None

    def with_runtime(self, runtime: RuntimeIdentity) -> "ResourceLocator":
        return ResourceLocator(self.identity, runtime, environ=self.environ, layout=self.layout)

    @property
    def app_id(self) -> str:
        return self.identity.app_id

    @property
    def source_root(self) -> str:
        return self.identity.source_root

    @property
    def config_files(self) -> Mapping[str, str]:
        return self.identity.config_files

    @property
    def is_privileged(self) -> bool:
        return self.runtime.is_privileged

    def env_var_name(self, identifier: str) -> str:
        result = f"{self.app_id}_{identifier}".upper()
        result = re.sub(r"[ \-.]+", "_", result)
        return re.sub(r"__+", "_", result)

    def basename_for(self, identifier: str) -> str:
        try:
            return self.config_files[identifier]
        except KeyError:
            raise UnknownIdentifier(f"Unknown configuration file identifier: {identifier!r}") from None

    # Configuration files

    def config_candidates(self, identifier: str) -> List[Optional[str]]:
        basename = self.basename_for(identifier)
        return [
            self.environ.get(self.env_var_name(identifier)),
            os.path.join(self.source_root, "config", basename),
            os.path.join(self.runtime.home_dir, f".{self.app_id}", basename),
            os.path.join(self.layout.config_dir, self.app_id, basename),
        ]

    def resolve_config_file(self, identifier: str, required: bool = True) -> Optional[str]:
        """Return the first existing candidate for ``identifier``.

        Candidates are checked in order: environment override, source
        tree, the runtime user's home directory, then the system config
        directory. With ``required=False`` a missing file yields ``None``.
        """
        for candidate in self.config_candidates(identifier):
            if candidate and os.path.exists(candidate):
                logger.debug("Resolved config '%s' to %s", identifier, candidate)
                return candidate

        if not required:
            return None

        basename = self.basename_for(identifier)
        raise ConfigNotFound(self._missing_config_message(basename))

    def _missing_config_message(self, basename: str) -> str:
        if self.identity.installer:
            command = self.installer_command
            return actionable_error(
                "config_not_found_installer",
                basename=basename,
                app_name=self.identity.app_name,
                command=f": {command}" if command else "",
            )
        return actionable_error("config_not_found_manual", basename=basename)

    def load_yaml_config(self, identifier: str, required: bool = True) -> Optional[Any]:
        filename = self.resolve_config_file(identifier, required)
        if not filename:
            return None
        with open(filename, "r", encoding="utf-8") as file_obj:
            return yaml.safe_load(file_obj)

    @property
    def preferred_config_dir(self) -> str:
        if self.is_privileged:
            return os.path.join(self.layout.config_dir, self.app_id)
        return os.path.join(self.runtime.home_dir, f".{self.app_id}")

    def preferred_config_filename(self, identifier: str) -> str:
        return os.path.join(self.preferred_config_dir, self.basename_for(identifier))

    # Log file

    @property
    def deployment_environment(self) -> str:
        for name in DEPLOYMENT_ENV_VARIABLES:
            value = self.environ.get(name)
            if value:
                return value
        return DEFAULT_DEPLOYMENT_ENV

    def resolve_log_file(self) -> str:
        """Return a writable log file location.

        ``{source_root}/log`` is only auto-created in development. In
        other environments its existence is the deployer's opt-in, so an
        absent directory is treated as not writable. Writability is probed
        by opening the file for append rather than by inspecting mode bits,
        which are unreliable under ACLs.
        """
        override = self.environ.get(self.env_var_name(LOG_FILE_IDENTIFIER))
        if override:
            return override

        env = self.deployment_environment
        log_dir = os.path.join(self.source_root, "log")
        candidate = os.path.join(log_dir, f"{env}.log")

        try:
            if env == DEFAULT_DEPLOYMENT_ENV and not os.path.exists(log_dir):
                os.mkdir(log_dir)
                os.chown(log_dir, self.runtime.uid, self.runtime.gid)

            if os.path.isdir(log_dir):
                with open(candidate, "a", encoding="utf-8"):
                    pass
                writable = True
            else:
                writable = False
        except PermissionError:
            writable = False

        if writable:
            return candidate

        if self.is_privileged:
            filename = os.path.join(self.layout.log_dir, self.app_id, f"{env}.log")
        else:
            filename = os.path.join(self.runtime.home_dir, f".{self.app_id}", f"{env}.log")

        directory = os.path.dirname(filename)
        if not os.path.exists(directory):
            os.makedirs(directory)
            os.chown(directory, self.runtime.uid, self.runtime.gid)
        logger.debug("Log file %s is not writable, using %s", candidate, filename)
        return filename

    # Dependency bundle

    @property
    def runtime_tag(self) -> str:
        if self._runtime_tag is None:
            self._runtime_tag = (
                f"{sys.implementation.name}-{sys.version_info.major}.{sys.version_info.minor}"
            )
        return self._runtime_tag

    @property
    def preferred_bundle_root(self) -> str:
        if self.is_privileged:
            return os.path.join(self.layout.lib_dir, self.app_id)
        return os.path.join(self.runtime.home_dir, f".{self.app_id}")

    @property
    def preferred_bundle_path(self) -> str:
        return os.path.join(self.preferred_bundle_root, "bundle", self.runtime_tag)

    @property
    def preferred_bundle_config_path(self) -> str:
        return os.path.join(self.preferred_bundle_path, f"config-{self.identity.app_version}")

    @property
    def source_manifest(self) -> str:
        return os.path.join(self.source_root, MANIFEST_NAME)

    @property
    def proxy_manifest(self) -> str:
        return os.path.join(self.preferred_bundle_config_path, MANIFEST_NAME)

    def bundle_path(self) -> Optional[str]:
        if os.path.exists(self.proxy_manifest):
            return self.preferred_bundle_path
        return None

    def activate_bundle(self, sys_path: Optional[List[str]] = None) -> Optional[str]:
        """Make the installed dependency bundle importable.

        Returns the bundle path that was activated, or ``None`` when the
        dependencies are expected in the interpreter's own environment
        (development, or no bundle was ever installed for this runtime).
        A bundle directory without a proxy manifest for the current
        version was installed for another release and is an error
        outside development.
        """
        sys_path = sys.path if sys_path is None else sys_path
        self.environ[SOURCE_ROOT_ENV] = self.source_root

        path = self.bundle_path()
        if path:
            if path not in sys_path:
                sys_path.insert(0, path)
            return path

        if self.deployment_environment == DEFAULT_DEPLOYMENT_ENV or not os.path.isdir(
            self.preferred_bundle_path
        ):
            return None

        command = self.installer_command
        raise DeployKitError(
            actionable_error(
                "bundle_outdated",
                app_name=self.identity.app_name,
                app_version=self.identity.app_version,
                bundle_path=self.preferred_bundle_path,
                command=f": {command}" if command else "",
            )
        )

    # Misc

    @property
    def installer_command(self) -> Optional[str]:
        installer = self.identity.installer
        if not isinstance(installer, str):
            return None
        if "/" in installer:
            command = installer
        else:
            command = os.path.join(self.source_root, "bin", installer)
        return f"{command} -u {self.runtime.username}"

    @property
    def restart_dir(self) -> str:
        if self.is_privileged:
            return os.path.join(self.layout.tmp_dir, self.app_id)
        return os.path.join(self.runtime.home_dir, f".{self.app_id}", "tmp")


_instance: Optional[ResourceLocator] = None


def setup(
    identity: ApplicationIdentity,
    username: Optional[str] = None,
    environ: Optional[MutableMapping[str, str]] = None,
    layout: Optional[SystemLayout] = None,
    user_db: Optional[UserDatabase] = None,
) -> ResourceLocator:
    """Create the process-wide locator. Call once at startup."""
    global _instance
    runtime = RuntimeIdentity.from_environment(username=username, environ=environ, user_db=user_db)
    _instance = ResourceLocator(identity, runtime, environ=environ, layout=layout)
    return _instance


def get_locator() -> ResourceLocator:
    if _instance is None:
        raise DeployKitError(actionable_error("runtime_not_set_up"))
    return _instance


def reset():
    global _instance
    _instance = None
