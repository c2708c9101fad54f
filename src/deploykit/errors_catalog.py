"""Actionable error catalog for deploykit."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "config_not_found_installer": {
        "what": "The configuration file '{basename}' cannot be found.",
        "next": "{app_name} is probably not installed properly. Please (re)run the installer{command}.",
    },
    "config_not_found_manual": {
        "what": "The configuration file '{basename}' cannot be found.",
        "next": "Please create it.",
    },
    "bundle_outdated": {
        "what": "The {app_name} dependency bundle in {bundle_path} was not installed for version {app_version}.",
        "next": "Please (re)run the {app_name} installer{command}.",
    },
    "runtime_not_set_up": {
        "what": "The process-wide resource locator has not been set up.",
        "next": "Call deploykit.setup() once at startup before resolving resources.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
