class LedgerError(Exception):
    """Base class for failures raised by the ledger services."""


class ValidationError(LedgerError):
    """Raised when a request is missing a required field or names an invalid value."""


class NotFound(LedgerError):
    """Raised when a product or transaction id is unknown."""


class Conflict(LedgerError):
    """Raised when a request contradicts the current state of the ledger."""


class AlreadyReversed(Conflict):
    """Raised when reversing a transaction that is already reversed."""


class InsufficientStock(Conflict):
    """Raised when a stock change would drive a product below zero pieces."""


class StorageError(LedgerError):
    """Raised when the database keeps failing after the retry budget is spent."""
