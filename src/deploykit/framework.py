"""Integration with the web framework of the installed application."""

import os
import re
from typing import Dict, List

from deploykit.locator import ResourceLocator

MANAGE_SCRIPT = "manage.py"


def is_django_app(source_root: str) -> bool:
    path = os.path.join(source_root, MANAGE_SCRIPT)
    if not os.path.isfile(path):
        return False
    with open(path, "r", encoding="utf-8", errors="replace") as file_obj:
        return re.search(r"django", file_obj.read(), re.IGNORECASE) is not None


def migrate_command(python: str, source_root: str) -> List[str]:
    return [python, os.path.join(source_root, MANAGE_SCRIPT), "migrate", "--noinput"]


def settings_paths(locator: ResourceLocator) -> Dict[str, str]:
    """Paths a settings module needs to find its database config and log file.

    Typical use in ``settings.py``::

        paths = settings_paths(deploykit.get_locator())
        DATABASES = load_databases(paths["database_config"])
        LOGGING["handlers"]["file"]["filename"] = paths["log_file"]
    """
    return {
        "database_config": locator.resolve_config_file("database"),
        "log_file": locator.resolve_log_file(),
    }
