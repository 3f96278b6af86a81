"""Custom exceptions for reportlake ingestion operations."""


class ReportlakeError(Exception):
    """Base exception for all reportlake operations."""
    pass


class ConfigError(ReportlakeError):
    """Raised when the sources configuration is missing or malformed."""
    pass


class UpstreamContractError(ReportlakeError):
    """Raised when the reporting API hands back something we cannot use."""
    pass


class InvalidApiResponseError(UpstreamContractError):
    """Raised when a report listing is malformed or empty."""
    pass


class StorageLocationError(UpstreamContractError):
    """Raised when a storage location URL does not have the expected shape."""
    pass


class ReportNotFoundError(ReportlakeError):
    """Raised when no available report exists for a required download."""
    pass


class StreamStateError(ReportlakeError):
    """Raised on a row stream state transition that is not allowed."""
    pass


class DataIngestionError(ReportlakeError):
    """Raised when writing a report partition fails."""
    pass


class DatabaseOperationError(ReportlakeError):
    """Raised when database operations fail."""
    pass
