"""Locates executables that belong to the running interpreter."""

import os
import shlex
import sys
import sysconfig
from typing import Iterable, Optional

SHELL_LAUNCHER = "/bin/sh"


def _is_executable_file(path: Optional[str]) -> bool:
    return bool(path) and os.path.isfile(path) and os.access(path, os.X_OK)


def _script_interpreter(path: str) -> Optional[str]:
    """Return the interpreter a script runs with, or ``None`` for non-scripts."""
    try:
        with open(path, "rb") as file_obj:
            first = file_obj.readline().decode("utf-8", errors="replace").strip()
            second = file_obj.readline().decode("utf-8", errors="replace").strip()
    except OSError:
        return ""

    if not first.startswith("#!"):
        return None
    parts = first[2:].split()
    if not parts:
        return ""

    # pip writes interpreter paths too long for a shebang as a shell
    # trampoline: #!/bin/sh followed by '''exec' /path/to/python "$0" "$@"
    if parts[0] == SHELL_LAUNCHER and second.startswith("'''exec'"):
        try:
            words = shlex.split(second)
        except ValueError:
            return ""
        if len(words) > 1 and words[0] == "exec":
            return words[1]
    return parts[0]


class RuntimeCommandLocator:
    """Finds commands such as ``pip`` for this interpreter, never another one."""

    def __init__(
        self,
        executable: Optional[str] = None,
        scripts_dir: Optional[str] = None,
        search_path: Optional[str] = None,
    ):
        self.executable = executable or sys.executable
        self.scripts_dir = scripts_dir if scripts_dir is not None else sysconfig.get_path("scripts")
        self.search_path = search_path

    def locate(self, name: str) -> Optional[str]:
        # Distribution packaged interpreters may install scripts outside
        # the interpreter's own bin directory.
        own_directories = [os.path.dirname(self.executable)]
        if self.scripts_dir:
            own_directories.append(self.scripts_dir)

        candidates = [(directory, True) for directory in own_directories]
        candidates.extend((directory, False) for directory in self._path_entries())
        for directory, allow_binary in candidates:
            candidate = os.path.join(directory, name)
            if _is_executable_file(candidate) and self._belongs_to_interpreter(candidate, allow_binary):
                return candidate
        return None

    def _belongs_to_interpreter(self, path: str, allow_binary: bool) -> bool:
        interpreter = _script_interpreter(path)
        # Compiled launchers carry no shebang to compare.
        if interpreter is None:
            return allow_binary
        return interpreter == self.executable

    def _path_entries(self) -> Iterable[str]:
        search_path = self.search_path
        if search_path is None:
            search_path = os.environ.get("PATH", "")
        return [entry for entry in search_path.split(os.pathsep) if entry]
