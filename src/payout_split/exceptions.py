"""Custom exceptions for PayoutSplit."""


class PayoutSplitError(Exception):
    """Base exception for all PayoutSplit errors."""

    pass


class ConfigurationError(PayoutSplitError):
    """Raised when configuration is invalid."""

    pass


class MalformedInputError(PayoutSplitError):
    """Raised when a command receives input too malformed to degrade to a no-op."""

    pass


class CsvImportError(PayoutSplitError):
    """Base class for CSV import errors. Nothing is applied when one is raised."""

    pass


class ImportFormatError(CsvImportError):
    """Raised when CSV content is empty, oversized, or missing required columns."""

    pass


class ImportIOError(CsvImportError):
    """Raised when a CSV file cannot be read."""

    def __init__(self, path: str, message: str | None = None):
        self.path = path
        super().__init__(message or f"Could not read CSV file: {path}")
