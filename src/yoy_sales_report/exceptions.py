from __future__ import annotations


class DataLoadError(RuntimeError):
    """Raised when reading transactions, products or departments fails."""


class DataQualityError(RuntimeError):
    """Raised when input data does not match the expected schema or quality."""


class TooManyFilesError(DataLoadError):
    """Raised when a GCS prefix holds more transaction files than allowed."""
