"""Shared exceptions for the statement extraction engine."""


class ExtractionError(Exception):
    """Base class for hard extraction failures."""

    pass


class DocumentParseError(ExtractionError):
    """Raised when document bytes cannot be turned into any grid at all."""

    pass


class ProfileError(ExtractionError):
    """Raised when a company profile cannot be loaded or is malformed."""

    pass
