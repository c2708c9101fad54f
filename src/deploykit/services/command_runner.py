"""Subprocess execution service for deploykit."""

import os
import shlex
import subprocess
from typing import List, Mapping, Optional

from rich.markup import escape

from deploykit.errors import CommandError
from deploykit.models import CommandResult

NOT_FOUND_RETURNCODE = 127


class CommandRunner:
    """Runs external commands and classifies how they ended."""

    def __init__(self, logger, console, error_console, subprocess_module=subprocess):
        self.logger = logger
        self.console = console
        self.error_console = error_console
        self.subprocess = subprocess_module

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
    ) -> CommandResult:
        """Run ``cmd`` synchronously.

        A command killed by SIGINT raises ``KeyboardInterrupt`` so the
        whole run is cancelled. Any other failure raises ``CommandError``
        when ``check`` is set, otherwise the failed result is returned.
        """
        cmd_str = shlex.join(cmd)
        self.console.print(f"# {cmd_str}", markup=False, highlight=False)
        self.logger.debug("Executing: %s", cmd_str)

        effective_env = None
        if env:
            effective_env = dict(os.environ)
            effective_env.update(env)

        try:
            completed = self.subprocess.run(cmd, env=effective_env, cwd=cwd)
        except FileNotFoundError:
            self.logger.debug("Command not found: %s", cmd[0])
            result = CommandResult(command=list(cmd), succeeded=False, returncode=NOT_FOUND_RETURNCODE)
        else:
            result = CommandResult.from_returncode(cmd, completed.returncode)

        if result.interrupted:
            self.logger.info("Command interrupted: %s", cmd_str)
            raise KeyboardInterrupt

        if result.succeeded:
            return result

        if result.signal is not None:
            self.logger.warning("Command killed by signal %s: %s", result.signal, cmd_str)
        else:
            self.logger.warning("Command failed (%s): %s", result.returncode, cmd_str)

        if check:
            self.error_console.print(f"[bold red]*** Command failed: {escape(cmd_str)}[/bold red]")
            raise CommandError(f"Command failed: {cmd_str}")
        return result
