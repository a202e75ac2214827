class SensorLogsError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SensorLogsError):
    """Missing or malformed request parameter. Never reaches the store."""

    status_code = 400


class UpstreamStoreError(SensorLogsError):
    """The store rejected or failed a query. Carries the driver message."""

    status_code = 500


class ConfigurationError(SensorLogsError):
    """The store cannot be reached at startup; the process must not serve."""
