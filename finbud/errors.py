# finbud/errors.py
class FinBudError(Exception):
    """Base class for errors surfaced to API callers."""


class ValidationError(FinBudError):
    """Missing or malformed required input."""


class ConfigurationError(FinBudError):
    """A required setting (usually an API key) is not configured."""


class UpstreamUnavailable(FinBudError):
    """The classifier or remote service could not be reached."""


class InvalidResponse(FinBudError):
    """The classifier replied with something that is not the expected JSON."""


class StoreError(FinBudError):
    """The record store failed to read or write."""
