"""Custom exceptions for the print shop order pipeline."""

class ShopError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class BusinessLogicError(ShopError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(ShopError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class UnauthenticatedError(ShopError):
    """Raised when the request carries no valid credential."""
    def __init__(self, message="Unauthorized"):
        super().__init__(message, 401)

class UnauthorizedError(ShopError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Forbidden"):
        super().__init__(message, 403)

class ConflictError(ShopError):
    """Raised when a concurrent writer changed the record first."""
    def __init__(self, message="The record was modified concurrently", payload=None):
        super().__init__(message, 409, payload)

class StoreError(ShopError):
    """Raised when the database rejects or fails an operation."""
    def __init__(self, message="Database operation failed", payload=None):
        super().__init__(message, 500, payload)

class BalanceUpdateError(StoreError):
    """Store-level failure while writing a gift card balance (not a lost race)."""

class InvoiceNumberAllocationError(StoreError):
    """The invoice number sequence could not produce a new number."""
    def __init__(self, message="Failed to generate invoice number", payload=None):
        super().__init__(message, payload)
