"""Domain errors for deploykit."""


class DeployKitError(RuntimeError):
    """Raised when the application layout cannot be resolved or installed."""


class ConfigNotFound(DeployKitError):
    """Raised when a required configuration file exists in none of its locations."""


class UnknownIdentifier(DeployKitError, LookupError):
    """Raised for a configuration identifier the application never declared."""


class Abort(DeployKitError):
    """Raised by an install step that cannot proceed. Stops the whole run."""


class CommandError(Abort):
    """Raised when an external command or filesystem operation fails."""
