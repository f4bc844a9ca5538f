"""Error kinds surfaced to the scan driver."""


class WifitraceError(Exception):
    """Base for all wifitrace errors."""


class ConfigInvalid(WifitraceError, ValueError):
    """Configuration is missing, malformed, or out of range."""


class NonMonotonicTimestamp(WifitraceError, ValueError):
    """A snapshot arrived with a timestamp earlier than the previous one."""


class ScanUnavailable(WifitraceError):
    """A scan source could not produce a snapshot."""


class PersistenceFailure(WifitraceError):
    """A report or history record could not be written."""
