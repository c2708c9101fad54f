"""
deploykit - Resource location and installer workflow for packaged web applications
"""

__version__ = "1.0.0"

from .core import InstallWorkflow
from .errors import Abort, ConfigNotFound, DeployKitError, UnknownIdentifier
from .locator import ResourceLocator, get_locator, setup
from .models import ApplicationIdentity, RuntimeIdentity

__all__ = [
    "Abort",
    "ApplicationIdentity",
    "ConfigNotFound",
    "DeployKitError",
    "InstallWorkflow",
    "ResourceLocator",
    "RuntimeIdentity",
    "UnknownIdentifier",
    "get_locator",
    "setup",
]
