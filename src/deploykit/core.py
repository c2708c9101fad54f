import logging
import os
import sys
from contextlib import contextmanager
from typing import List, Mapping, Optional

import yaml
from rich.console import Console
from rich.markup import escape

from .errors import Abort, CommandError, DeployKitError
from .framework import is_django_app, migrate_command
from .locator import (
    DEFAULT_DEPLOYMENT_ENV,
    DEPLOYMENT_ENV_VARIABLES,
    LOG_FILE_IDENTIFIER,
    ResourceLocator,
)
from .models import PRIVILEGED_USERNAME, RUNTIME_USER_ENV, RuntimeIdentity, UserDatabase
from .services.bundle import BundleService
from .services.command_runner import CommandRunner
from .services.database_requirements import DatabaseRequirements
from .services.dependencies import DependencyRegistry
from .services.filesystem import FileSystemService
from .services.prompt import PromptService
from .services.runtime_commands import RuntimeCommandLocator

default_console = Console()
default_error_console = Console(stderr=True)
logger = logging.getLogger("deploykit")

RESET_TERMINAL = "\x1b[0m"
DATABASE_IDENTIFIER = "database"


class InstallWorkflow:
    STEPS = (
        "check_dependencies",
        "choose_runtime_user",
        "ensure_config_files",
        "install_dependency_packages",
        "migrate_database",
        "restart_application",
    )
    DEPENDENCY_MANAGER = "pip"
    DEFAULT_ENVIRONMENT = "production"

    def __init__(
        self,
        locator: ResourceLocator,
        auto: bool = False,
        username: Optional[str] = None,
        deployment_env: Optional[str] = None,
        root_allowed: bool = False,
        console: Optional[Console] = None,
        error_console: Optional[Console] = None,
        input_stream=None,
        user_db: Optional[UserDatabase] = None,
        command_runner: Optional[CommandRunner] = None,
        filesystem_service: Optional[FileSystemService] = None,
        dependency_registry: Optional[DependencyRegistry] = None,
        runtime_commands: Optional[RuntimeCommandLocator] = None,
        python: Optional[str] = None,
    ):
        self.user_db = user_db or locator.runtime.user_db
        # The workflow reassigns the runtime user; keep the shared locator intact.
        self.locator = locator.with_runtime(RuntimeIdentity(locator.runtime.username, user_db=self.user_db))
        self.auto = auto
        self.desired_username = username
        self.deployment_env = deployment_env
        self.root_allowed = root_allowed

        self.console = console or default_console
        self.error_console = error_console or default_error_console
        self.prompter = PromptService(
            console=self.console,
            error_console=self.error_console,
            interactive=not auto,
            input_stream=input_stream,
        )
        self.command_runner = command_runner or CommandRunner(
            logger=logger,
            console=self.console,
            error_console=self.error_console,
        )
        self.filesystem_service = filesystem_service or FileSystemService(
            logger=logger,
            console=self.console,
            error_console=self.error_console,
        )
        self.bundle_service = BundleService(
            logger=logger,
            console=self.console,
            command_runner=self.command_runner,
            filesystem_service=self.filesystem_service,
        )
        self.dependency_registry = dependency_registry or DependencyRegistry()
        self.runtime_commands = runtime_commands or RuntimeCommandLocator()
        self.python = python or sys.executable

        self.current_step_name: Optional[str] = None
        self.outcome: Optional[str] = None
        self._current_username: Optional[str] = None

    @property
    def app_name(self) -> str:
        return self.locator.identity.app_name

    @property
    def source_root(self) -> str:
        return self.locator.source_root

    @property
    def interactive(self) -> bool:
        return not self.auto

    @property
    def current_username(self) -> str:
        if self._current_username is None:
            self._current_username = self.user_db.current_username()
        return self._current_username

    # Hooks for applications that subclass the workflow.

    def dependencies(self) -> List[str]:
        if os.path.exists(self.locator.source_manifest):
            return ["pip >= 21.0"]
        return []

    def created_default_config_file(self, identifier: str, filename: str):
        pass

    def show_welcome_message(self):
        pass

    def run(self) -> int:
        try:
            self.before_install()
            self.show_welcome_message()
            self.run_steps()
            self.show_completion_message()
            self.outcome = "success"
            return 0
        except Abort as exc:
            self.outcome = "aborted"
            logger.debug("Installation aborted during %s: %s", self.current_step_name or "startup", exc)
            return 1
        except KeyboardInterrupt:
            self.outcome = "interrupted"
            self.console.print()
            logger.debug("Installation interrupted during %s", self.current_step_name or "startup")
            return 1
        finally:
            self.after_install()

    def run_steps(self):
        for name in self.STEPS:
            self._run_step(name)

    def _run_step(self, name: str):
        self.current_step_name = name
        logger.debug("Step started: %s", name)
        getattr(self, name)()
        logger.debug("Step finished: %s", name)
        self.current_step_name = None

    def before_install(self):
        environ = self.locator.environ
        env = self.deployment_env
        if not env:
            env = next((environ[name] for name in DEPLOYMENT_ENV_VARIABLES if environ.get(name)), None)
        env = env or self.DEFAULT_ENVIRONMENT
        for name in DEPLOYMENT_ENV_VARIABLES:
            environ[name] = env
        logger.debug("Deployment environment: %s", env)

    def check_dependencies(self):
        declarations = list(dict.fromkeys(self.dependencies()))
        if not declarations:
            return

        self._new_screen()
        self._banner("Checking for required software...")
        self.console.print()

        missing = []
        for declaration in declarations:
            dependency = self.dependency_registry.find(declaration)
            if dependency is None:
                raise DeployKitError(
                    f"Installer bug: dependency '{declaration}' is not known to the dependency registry."
                )

            self.console.print(f" * {escape(dependency.name)}... ", end="")
            status = dependency.check()
            if status.found:
                self.console.print(f"[green]{escape(status.detail or 'found')}[/green]")
            else:
                self.console.print(f"[red]{escape(status.detail or 'not found')}[/red]")
                missing.append(dependency)

        if not missing:
            return

        with self._use_stderr():
            self.console.print()
            self.console.print("[red]Some required software is not installed.[/red]")
            self.console.print("But don't worry, this installer will tell you how to install them.")
            if self.interactive:
                self.console.print()
                self.console.print("[bold]Press Enter to continue, or Ctrl-C to abort.[/bold]")
                self.prompter.wait()

            self._new_screen()
            self._banner("Installation instructions for required software")
            self.console.print()
            for dependency in missing:
                self.console.print(f" * To install [yellow]{escape(dependency.name)}[/yellow]:")
                for line in dependency.install_instructions.splitlines():
                    self.console.print(f"   {escape(line)}")
                self.console.print()
            raise Abort("Missing required software: " + ", ".join(dep.name for dep in missing))

    def choose_runtime_user(self):
        self._new_screen()
        self._banner(f"Which user do you want {self.app_name} to run as?")
        self.console.print()

        current = self.current_username
        if self.desired_username:
            username = self.desired_username
            self.console.print(f"[bold]'{escape(username)}' specified via command line option.[/bold]")
            if not self.user_db.exists(username):
                self.console.print("[red]This user does not exist.[/red]")
                raise Abort(f"User '{username}' does not exist.")
            if not self.root_allowed and username == PRIVILEGED_USERNAME:
                self.console.print(
                    "[red]However, installing as root is not allowed for security reasons. "
                    "Please specify a different username instead.[/red]"
                )
                raise Abort("Installing as root is not allowed.")
        elif not self.interactive:
            self._error("Please specify a username with --username.")
            raise Abort("No username specified.")
        else:
            if self.root_allowed or current != PRIVILEGED_USERNAME:
                message = f"Please enter the desired username [{current}]"
                default = current
            else:
                message = "Please enter the desired username"
                default = None
            username = self.prompter.prompt(message, default=default, validator=self._validate_username)

        if current != PRIVILEGED_USERNAME and current != username:
            self.console.print()
            if username == PRIVILEGED_USERNAME:
                self.console.print(
                    f"[yellow]In order to install {escape(self.app_name)} as '{escape(username)}', "
                    "please re-run this program as root.[/yellow]"
                )
            else:
                self.console.print(
                    f"[yellow]In order to install {escape(self.app_name)} as '{escape(username)}', "
                    "please re-run this\n"
                    f"installer as either '{escape(username)}' or as 'root'.[/yellow]"
                )
            raise Abort(f"'{current}' cannot install on behalf of '{username}'.")

        self.desired_username = username
        self.locator.runtime.username = username
        logger.info("Installing %s as user '%s'", self.app_name, username)

    def _validate_username(self, value: str) -> bool:
        if not self.user_db.exists(value):
            self._error("This user does not exist.")
            return False
        if not self.root_allowed and value == PRIVILEGED_USERNAME:
            self._error("Installing as root is not allowed for security reasons.")
            return False
        return True

    def ensure_config_files(self):
        self._new_screen()
        self._banner("Checking whether config files are available...")
        self.console.print()

        locator = self.locator
        missing = []
        for identifier, basename in locator.config_files.items():
            self.console.print(f" [bold]* {escape(basename)}...[/bold]", end="")
            filename = locator.resolve_config_file(identifier, required=False)
            if filename:
                self.console.print(f" [green]{escape(filename)}[/green]")
            else:
                self.console.print(" [red]not found[/red]")
                missing.append(identifier)

        if not missing:
            return

        if not self.interactive:
            with self._use_stderr():
                self.console.print()
                if len(missing) > 1:
                    self.console.print("[red]Please create the following config files first:[/red]")
                else:
                    self.console.print("[red]Please create the following config file first:[/red]")
                self.console.print()
                for identifier in missing:
                    filename = locator.preferred_config_filename(identifier)
                    self.console.print(f" [red]* {escape(filename)}[/red]")
                raise Abort("Missing config files: " + ", ".join(missing))

        created = self._create_default_config_files(missing)
        self._confirm_edited_config_files(created)

    def _create_default_config_files(self, missing: List[str]) -> List[str]:
        locator = self.locator
        runtime = locator.runtime
        created = []
        try:
            self.console.print()
            self.console.print("Some config files do not exist. Creating example files...")
            self.console.print()
            config_dir = locator.preferred_config_dir
            self.filesystem_service.make_dirs(config_dir)
            self.filesystem_service.change_owner(config_dir, runtime.uid, runtime.gid)

            for identifier in missing:
                basename = locator.basename_for(identifier)
                filename = locator.preferred_config_filename(identifier)
                example = os.path.join(self.source_root, "config", f"{basename}.example")
                self.filesystem_service.copy_file(example, filename)
                self.filesystem_service.change_owner(filename, runtime.uid, runtime.gid)
                created.append(identifier)
                self.created_default_config_file(identifier, filename)
        except CommandError:
            with self._use_stderr():
                self._new_screen()
                self.console.print("[red]Some example configuration files cannot be created.[/red]")
                self.console.print()
                if self.current_username == PRIVILEGED_USERNAME:
                    self.console.print("You need to create the following configuration files:")
                    self.console.print()
                    for identifier in locator.config_files:
                        self.console.print(f" * {escape(locator.preferred_config_filename(identifier))}")
                    self.console.print()
                    self.console.print("Please use these files as examples:")
                    self.console.print()
                    for basename in locator.config_files.values():
                        example = os.path.join(self.source_root, "config", f"{basename}.example")
                        self.console.print(f" * {escape(example)}")
                    self.console.print()
                    self.console.print(
                        "[yellow]Once you've created the aforementioned configuration files, "
                        "please re-run this\nprogram.[/yellow]"
                    )
                else:
                    self.console.print(
                        "This is probably because you're not running this program as [bold]root[/bold]."
                    )
                    self.console.print("Please re-run this program as root, e.g. with [bold]sudo[/bold].")
                raise
        return created

    def _confirm_edited_config_files(self, created: List[str]):
        if not created:
            return

        locator = self.locator
        self._new_screen()
        self._banner(f"You need to edit some {self.app_name} configuration files")
        self.console.print()
        if len(created) > 1:
            self.console.print("The following example configuration files have been created.")
        else:
            self.console.print("The following example configuration file has been created.")
        self.console.print()
        for identifier in created:
            self.console.print(f" * [bold]{escape(locator.preferred_config_filename(identifier))}[/bold]")
        self.console.print()
        if len(created) > 1:
            self.console.print("Please edit the aforementioned configuration files.")
        else:
            self.console.print("Please edit this configuration file.")
        self.console.print("Once you're done press Enter to continue, or press Ctrl-C to cancel.")
        self.prompter.wait()

        for identifier in created:
            basename = locator.basename_for(identifier)
            filename = locator.preferred_config_filename(identifier)
            self._line()
            self.console.print()
            while not self.prompter.confirm(f"Are you done editing {basename}?"):
                self.console.print(f"Please edit [bold]{escape(filename)}[/bold] and press Enter when you're done.")
                self.prompter.wait()
            self.console.print()

    def install_dependency_packages(self):
        locator = self.locator
        if not os.path.exists(locator.source_manifest):
            return

        self._new_screen()
        self._banner(f"Installing {self.app_name} dependencies...")
        self.console.print()

        pip = self.runtime_commands.locate(self.DEPENDENCY_MANAGER)
        if not pip:
            self._error(f"Cannot find {self.DEPENDENCY_MANAGER} for {self.python}.")
            raise Abort(f"{self.DEPENDENCY_MANAGER} not found.")

        extra_requirements = self.database_requirements()
        if locator.deployment_environment == DEFAULT_DEPLOYMENT_ENV:
            self.bundle_service.install_into_source_environment(pip, locator, extra_requirements)
            return

        try:
            self.bundle_service.install_into_bundle(pip, locator, extra_requirements)
        except CommandError:
            with self._use_stderr():
                self._new_screen()
                self.console.print(f"[red]Cannot install {escape(self.app_name)} dependencies.[/red]")
                self.console.print()
                self.console.print("Possible causes are:")
                self.console.print()
                self.console.print(" * Your Internet connection is down. Please try again after your Internet")
                self.console.print("   connection has been restored.")
                self.console.print(
                    f" * Permission problems. Please ensure that the [bold]{escape(self.current_username)}[/bold]"
                    " user can write to"
                )
                self.console.print(f"   the directory [bold]{escape(locator.preferred_bundle_path)}[/bold].")
                self.console.print()
                self.console.print("Please check the error messages in the backlog for details.")
                raise

    def database_requirements(self) -> List[str]:
        if DATABASE_IDENTIFIER not in self.locator.config_files:
            return []
        basename = self.locator.basename_for(DATABASE_IDENTIFIER)
        try:
            database_config = self.locator.load_yaml_config(DATABASE_IDENTIFIER, required=False)
        except yaml.YAMLError as exc:
            self._error(f"Cannot parse {basename}: {exc}")
            raise Abort("Invalid database configuration.") from exc
        if database_config is not None and not isinstance(database_config, Mapping):
            self._error(
                f"{basename} must map each environment name to its database settings, "
                f"not a {type(database_config).__name__}."
            )
            raise Abort("Invalid database configuration.")
        return DatabaseRequirements(database_config).requirements()

    def migrate_database(self):
        if not is_django_app(self.source_root):
            return

        self._new_screen()
        self._banner("Creating or migrating database schema...")
        self.console.print()

        env = {
            RUNTIME_USER_ENV: self.desired_username,
            self.locator.env_var_name(LOG_FILE_IDENTIFIER): os.devnull,
        }
        self.command_runner.run(
            migrate_command(self.python, self.source_root),
            check=True,
            env=env,
            cwd=self.source_root,
        )

    def restart_application(self):
        self._new_screen()
        self._banner(f"Restarting {self.app_name}...")
        self.console.print()

        runtime = self.locator.runtime
        restart_dir = self.locator.restart_dir
        restart_file = os.path.join(restart_dir, "restart.txt")
        # Failures here are reported but never fatal.
        self.filesystem_service.make_dirs(restart_dir, check=False)
        self.filesystem_service.touch(restart_file, check=False)
        self.filesystem_service.change_owner(restart_dir, runtime.uid, runtime.gid, check=False)
        self.filesystem_service.change_owner(restart_file, runtime.uid, runtime.gid, check=False)

    def show_completion_message(self):
        self._new_screen()
        source_root = escape(self.source_root)
        username = escape(self.desired_username or "")
        restart_dir = escape(self.locator.restart_dir)
        env = escape(self.locator.deployment_environment)
        text = f"""
[green]{escape(self.app_name)} has been installed or upgraded![/green]

To (re-)deploy on Phusion Passenger, use one of the following configuration
snippets. Be sure to remove any old configuration snippets for
{escape(self.app_name)} that you already had.

[yellow]Phusion Passenger for Apache[/yellow]
[bold]
   <VirtualHost *:80>
       ServerName www.example.com
       DocumentRoot {source_root}/public
       PassengerAppType wsgi
       PassengerStartupFile passenger_wsgi.py
       PassengerUser {username}
       PassengerRestartDir {restart_dir}
       PassengerAppEnv {env}
   </VirtualHost>
[/bold]
[yellow]Phusion Passenger for Nginx[/yellow]
[bold]
   server {{
       listen 80;
       server_name www.example.com;
       root {source_root}/public;
       passenger_enabled on;
       passenger_app_type wsgi;
       passenger_startup_file passenger_wsgi.py;
       passenger_user {username};
       passenger_restart_dir {restart_dir};
       passenger_app_env {env};
   }}
[/bold]
Enjoy! :-)
"""
        self.console.print(text.strip(), highlight=False)

    def after_install(self):
        if self.console.is_terminal:
            self.console.file.write(RESET_TERMINAL)
            self.console.file.flush()

    @contextmanager
    def _use_stderr(self):
        previous = (self.console, self.prompter.console)
        self.console = self.error_console
        self.prompter.console = self.error_console
        try:
            yield
        finally:
            self.console, self.prompter.console = previous

    def _new_screen(self):
        self.console.print()
        self._line()
        self.console.print()

    def _line(self):
        self.console.print("-" * 44)

    def _banner(self, text: str):
        self.console.print(f"[bold yellow on blue]{escape(text)}[/]")

    def _error(self, text: str):
        self.error_console.print(f"[bold red]{escape(text)}[/bold red]")
