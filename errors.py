class ReconciliationError(Exception):
    """Base class for every failure raised while reconciling contacts."""


class InvalidInput(ReconciliationError):
    """Neither an email nor a phone number was supplied."""


class CorruptLinkage(ReconciliationError):
    """A linkedId chain loops or points at a missing contact."""


class StoreError(ReconciliationError):
    """The contact store failed to read or write."""


class StoreUnavailable(StoreError):
    pass


class StoreConflict(StoreError):
    pass


class ConfigurationError(RuntimeError):
    """Raised when configuration values are invalid."""
