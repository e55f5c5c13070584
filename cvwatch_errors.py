# cvwatch_errors.py
"""
Exception types for the conversion-log watcher.

Startup failures (ConfigError, PriceTableError, AuthenticationError) abort the
run before any state is touched. TableNotFoundError aborts mid-run; state is
not saved. DocumentError is transient; readers treat it as "not there yet".
NotificationError fails the process after in-memory updates but before
persistence, so the next run re-notifies the same events.
"""


class CVWatchError(Exception):
    """Base class for all watcher errors."""


class ConfigError(CVWatchError):
    """Missing or malformed configuration value."""


class PriceTableError(CVWatchError):
    """Price table missing, unparseable, or structurally invalid."""


class AuthenticationError(CVWatchError):
    """Post-login location did not match the expected prefix."""


class TableNotFoundError(CVWatchError):
    """The conversion table never reached the expected shape in time."""


class NotificationError(CVWatchError):
    """The notification sink rejected a message."""


class DocumentError(CVWatchError):
    """The page could not be read, typically because a navigation replaced it mid-query."""
