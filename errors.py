# errors.py


class MonkeyError(Exception):
    """Base class for errors raised by the exerciser itself."""


class ConfigurationError(MonkeyError):
    """Startup problem. The run never begins; `exit_code` is what the process returns."""
    exit_code = -1


class NoLaunchableApps(ConfigurationError):
    exit_code = -4


class InvalidDistribution(ConfigurationError):
    """Event weights cannot be turned into a usable distribution."""
    exit_code = -5


class KeySelectionExhausted(MonkeyError):
    """No allowed key code was drawn within the attempt ceiling."""
