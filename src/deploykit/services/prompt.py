"""Operator prompts for deploykit."""

import select
import sys
from typing import Callable, Optional

from rich.markup import escape

from deploykit.errors import Abort

EXIT_END_OF_INPUT = 2


class PromptService:
    """Blocking prompts with validation and retry."""

    def __init__(self, console, error_console, interactive: bool, input_stream=None):
        self.console = console
        self.error_console = error_console
        self.interactive = interactive
        self.input_stream = input_stream if input_stream is not None else sys.stdin

    def prompt(
        self,
        message: str,
        default: Optional[str] = None,
        validator: Optional[Callable[[str], bool]] = None,
    ) -> str:
        """Ask until a valid answer is entered.

        Empty input selects ``default`` when there is one. In
        non-interactive mode the default is accepted without reading.
        End of input exits the process with status 2.
        """
        while True:
            self.console.print(f"{escape(message)}: ", end="")

            if not self.interactive and default:
                self.console.print(default, markup=False, highlight=False)
                return default

            line = self.input_stream.readline()
            if not line:
                self.console.print()
                raise SystemExit(EXIT_END_OF_INPUT)

            value = line.strip()
            if not value:
                if default:
                    return default
                continue

            if validator is None or validator(value):
                return value

    def confirm(self, message: str) -> bool:
        def _valid(value: str) -> bool:
            if value.lower() in ("y", "n"):
                return True
            self.error(f"Invalid input '{value}'; please enter either 'y' or 'n'.")
            return False

        return self.prompt(f"{message} [y/n]", validator=_valid).lower() == "y"

    def wait(self, timeout: Optional[float] = None):
        """Block until Enter is pressed. Does nothing when non-interactive.

        With ``timeout`` the wait ends silently once it expires. Ctrl-C
        while waiting aborts the installation.
        """
        if not self.interactive:
            return
        try:
            if timeout is not None:
                ready, _, _ = select.select([self.input_stream], [], [], timeout)
                if ready:
                    self.input_stream.readline()
            else:
                self.input_stream.readline()
        except KeyboardInterrupt:
            raise Abort("Cancelled while waiting for input.") from None

    def error(self, text: str):
        self.error_console.print(f"[bold red]{escape(text)}[/bold red]")
