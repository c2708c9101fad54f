"""Dependency bundle installation for deploykit."""

import os
from typing import List, Sequence

from deploykit.locator import MANIFEST_NAME, SOURCE_ROOT_ENV, ResourceLocator

LOCKFILE_NAME = "pylock.toml"


class BundleService:
    """Installs the application's Python dependencies.

    Development installs update the interpreter's environment straight
    from the real manifest. Every other environment installs into a
    private, versioned bundle directory through a generated proxy
    manifest, so nothing is written next to the real one.
    """

    def __init__(self, logger, console, command_runner, filesystem_service):
        self.logger = logger
        self.console = console
        self.command_runner = command_runner
        self.filesystem_service = filesystem_service

    @staticmethod
    def build_proxy_manifest() -> str:
        return (
            "# Generated by deploykit on every install. Do not edit.\n"
            f"-r ${{{SOURCE_ROOT_ENV}}}/{MANIFEST_NAME}\n"
        )

    def write_proxy_manifest(self, locator: ResourceLocator) -> str:
        path = locator.proxy_manifest
        self.filesystem_service.write_file(path, self.build_proxy_manifest())
        return path

    def lockfile_path(self, locator: ResourceLocator) -> str:
        return os.path.join(locator.preferred_bundle_config_path, LOCKFILE_NAME)

    def install_into_source_environment(
        self, pip: str, locator: ResourceLocator, extra_requirements: Sequence[str] = ()
    ):
        cmd = [pip, "install", "--upgrade", "-r", locator.source_manifest] + list(extra_requirements)
        self.command_runner.run(cmd, check=True)

    def install_into_bundle(
        self, pip: str, locator: ResourceLocator, extra_requirements: Sequence[str] = ()
    ):
        """Install into ``preferred_bundle_path``.

        The lockfile is removed before and after installing so the bundle
        never stays pinned to a previous database adapter choice.
        """
        bundle_path = locator.preferred_bundle_path
        self.filesystem_service.make_dirs(locator.preferred_bundle_config_path)

        proxy = self.write_proxy_manifest(locator)
        lockfile = self.lockfile_path(locator)

        self.filesystem_service.remove_file(lockfile)
        cmd: List[str] = [
            pip,
            "install",
            "--upgrade",
            "--target",
            bundle_path,
            "-r",
            proxy,
        ] + list(extra_requirements)
        self.command_runner.run(cmd, check=True, env={SOURCE_ROOT_ENV: locator.source_root})
        self.filesystem_service.remove_file(lockfile)

        # The installer may run as root while targeting another user's home.
        self.filesystem_service.change_owner(
            locator.preferred_bundle_root,
            locator.runtime.uid,
            locator.runtime.gid,
            recursive=True,
        )
        self.logger.info("Installed dependency bundle into %s", bundle_path)
