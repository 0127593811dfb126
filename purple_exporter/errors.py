"""Exception hierarchy for the exporter."""


class ExporterError(Exception):
    """Base exception for all exporter errors."""
    pass


class ConfigurationError(ExporterError):
    """Raised when the exporter configuration is missing or invalid."""
    pass


class FetchError(ExporterError):
    """Raised when a single sensor cannot be fetched or decoded."""

    def __init__(self, address: str, message: str, error_type: str = "other"):
        super().__init__(f"{address}: {message}")
        self.address = address
        self.error_type = error_type


class ExposureServerError(ExporterError):
    """Raised when the metrics HTTP listener cannot be started."""
    pass
