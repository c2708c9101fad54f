"""Database driver requirements derived from the application's database config."""

from typing import Any, List, Mapping, Optional

ADAPTER_PACKAGES = {
    "postgresql": "psycopg2",
    "postgres": "psycopg2",
    "mysql": "mysqlclient",
    # Bundled with CPython.
    "sqlite3": None,
}


class DatabaseRequirements:
    """Declares the driver package each database group needs.

    A group may name its package explicitly with ``package`` (a falsy
    value means no package); otherwise the package is derived from
    ``adapter``.
    """

    def __init__(self, database_config: Optional[Mapping[str, Any]]):
        self.database_config = database_config or {}

    def requirements_for_group(self, group_name: str) -> Optional[str]:
        config = self.database_config.get(str(group_name))
        if not isinstance(config, Mapping):
            return None

        if "package" in config:
            return config["package"] or None

        adapter = config.get("adapter")
        if not adapter:
            return None
        return ADAPTER_PACKAGES.get(adapter, adapter)

    def requirements(self) -> List[str]:
        packages: List[str] = []
        for group_name in self.database_config:
            package = self.requirements_for_group(group_name)
            if package and package not in packages:
                packages.append(package)
        return packages
