"""
Error taxonomy for the stackwatch daemon.

Setup-fatal errors stop the process before any task starts, run-fatal
errors tear down the supervisor scope, everything else is absorbed by the
component that produced it.
"""


class StackwatchError(Exception):
    """Base class for all stackwatch errors."""


class ConfigurationError(StackwatchError):
    """Invalid configuration or unusable targets file."""


class SecretStoreError(StackwatchError):
    """Secret backend could not be reached or answered unexpectedly."""


class RenewalError(SecretStoreError):
    """The secret lease could not be extended."""


class FetchError(StackwatchError):
    """A git operation for a single target failed."""

    def __init__(self, message: str, target: str = "", stderr: str = ""):
        super().__init__(message)
        self.target = target
        self.stderr = stderr


class AuthenticationError(FetchError):
    """The git remote rejected our credentials."""


class WatcherError(StackwatchError):
    """The watcher hit a condition it cannot recover from."""
