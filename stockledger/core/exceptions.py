"""
Custom Application Exceptions
"""


class StockLedgerException(Exception):
    """Base exception for the stock ledger"""
    category = "error"


class ValidationError(StockLedgerException):
    """Raised when input fails validation before anything is stored"""
    category = "validation"


class InsufficientPermissionsError(StockLedgerException):
    """Raised when the caller may not act on the requested company"""
    category = "authorization"


class NotFoundError(StockLedgerException):
    """Raised when a referenced item, audit or audit item does not exist"""
    category = "not_found"


class InvalidStateTransitionError(StockLedgerException):
    """Raised when an operation conflicts with the current state of a record"""
    category = "state_conflict"


class BackdatedTransactionError(InvalidStateTransitionError):
    """Raised when a transaction would land inside an already materialized day"""
    pass


class IntegrationError(StockLedgerException):
    """Raised when a collaborator (catalog, access gate) fails"""
    category = "integration"
