"""Filesystem helpers for deploykit."""

import logging
import os
import shlex
import shutil
from typing import Callable

from rich.console import Console
from rich.markup import escape

from deploykit.errors import CommandError


class FileSystemService:
    """Encapsulates file and directory side effects.

    Each operation is echoed as its shell equivalent. Failures behave like
    a failed command: with ``check=True`` they raise ``CommandError``,
    otherwise they are logged and reported as ``False``.
    """

    def __init__(self, logger: logging.Logger, console: Console, error_console: Console):
        self.logger = logger
        self.console = console
        self.error_console = error_console

    def make_dirs(self, path: str, check: bool = True) -> bool:
        return self._attempt(["mkdir", "-p", path], lambda: os.makedirs(path, exist_ok=True), check)

    def copy_file(self, source: str, destination: str, check: bool = True) -> bool:
        return self._attempt(
            ["cp", source, destination], lambda: shutil.copyfile(source, destination), check
        )

    def touch(self, path: str, check: bool = True) -> bool:
        def _touch():
            with open(path, "a", encoding="utf-8"):
                pass
            os.utime(path, None)

        return self._attempt(["touch", path], _touch, check)

    def write_file(self, path: str, content: str, check: bool = True) -> bool:
        def _write():
            with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
                file_obj.write(content)

        return self._attempt(["tee", path], _write, check)

    def change_owner(
        self,
        path: str,
        uid: int,
        gid: int,
        recursive: bool = False,
        check: bool = True,
    ) -> bool:
        def _chown():
            os.chown(path, uid, gid)
            if not recursive or not os.path.isdir(path):
                return
            for current_root, dirs, files in os.walk(path):
                for name in dirs + files:
                    os.chown(os.path.join(current_root, name), uid, gid, follow_symlinks=False)

        args = ["chown"] + (["-R"] if recursive else []) + [f"{uid}:{gid}", path]
        return self._attempt(args, _chown, check)

    def remove_file(self, path: str):
        try:
            os.remove(path)
            self.logger.debug("Removed file: %s", path)
        except FileNotFoundError:
            pass

    def _attempt(self, args, operation: Callable[[], None], check: bool) -> bool:
        description = shlex.join(args)
        self.console.print(f"# {description}", markup=False, highlight=False)
        try:
            operation()
        except OSError as exc:
            if check:
                self.error_console.print(f"[bold red]*** Command failed: {escape(description)}[/bold red]")
                self.logger.error("%s: %s", description, exc)
                raise CommandError(f"Command failed: {description}") from exc
            self.logger.warning("Could not run '%s': %s", description, exc)
            return False
        return True
