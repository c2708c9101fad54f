import logging
import os

import click
from rich.logging import RichHandler

from . import locator as locator_module
from .core import InstallWorkflow
from .errors import DeployKitError
from .models import ApplicationIdentity
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def installer_options(func):
    """Add the standard installer flags to a click command."""
    func = click.option(
        "--dev",
        is_flag=True,
        default=None,
        help="Set to development mode. (Users, don't use; for developers of this app only.)",
    )(func)
    func = click.option(
        "-u",
        "--username",
        required=False,
        help="Install this web application as the given user instead of prompting for a username.",
    )(func)
    func = click.option(
        "-a",
        "--auto",
        is_flag=True,
        default=None,
        help="Run installer non-interactively.",
    )(func)
    return func


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help="Path to a YAML file describing the application. Defaults to .deploykit.yml if present.",
)
@installer_options
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
def main(config, auto, username, dev, verbose, log_file):
    """Install or upgrade a packaged web application."""
    logger = logging.getLogger("deploykit")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), ConfigLoader.DEFAULT_FILENAME)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
        base_dir = os.path.dirname(os.path.abspath(resolved_config)) if resolved_config else os.getcwd()
        identity = ApplicationIdentity.from_mapping(config_values, base_dir=base_dir)
    except DeployKitError as exc:
        raise click.ClickException(str(exc)) from exc

    auto = bool(_resolve_option(auto, config_values, "auto", default=False))
    username = _resolve_option(username, config_values, "username")
    dev = bool(_resolve_option(dev, config_values, "dev", default=False))
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    try:
        locator = locator_module.setup(identity)
        workflow = InstallWorkflow(
            locator,
            auto=auto,
            username=username,
            deployment_env="development" if dev else None,
        )
    except DeployKitError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(workflow.run())


if __name__ == "__main__":
    main()
