"""Application descriptor loader for deploykit."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from deploykit.errors import DeployKitError


class ConfigLoader:
    """Loads the YAML file describing the application and installer defaults."""

    DEFAULT_FILENAME = ".deploykit.yml"
    SUPPORTED_KEYS = {
        "app_id",
        "app_name",
        "app_version",
        "source_root",
        "config_files",
        "installer",
        "auto",
        "username",
        "dev",
        "verbose",
        "log_file",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise DeployKitError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise DeployKitError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise DeployKitError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise DeployKitError(f"Unknown configuration keys: {unknown_list}")

        return parsed
