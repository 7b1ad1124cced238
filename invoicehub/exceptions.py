class InvoiceHubError(Exception):
    """Base class for errors raised inside the service."""


class ConfigurationError(InvoiceHubError):
    """A required setting is missing or unusable (e.g. no JWT key material)."""
