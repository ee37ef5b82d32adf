"""Custom exceptions for the Atelier back-office application."""
from decimal import Decimal


class AtelierError(Exception):
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


class InvalidArgumentError(AtelierError):
    """Raised for structurally invalid input (negative amounts, bad discount, id mismatch)."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)


class InsufficientStockError(InvalidArgumentError):
    """Raised when a stock decrement is rejected by the negative stock policy."""
    def __init__(self, product_code, required, available):
        self.product_code = product_code
        self.required = required
        self.available = available
        req_fmt = _format_qty(required)
        avail_fmt = _format_qty(available)
        message = f"Insufficient stock for {product_code}: requested {req_fmt}, available {avail_fmt}"
        super().__init__(message, payload={'productCode': product_code})


class NotFoundError(AtelierError):
    """Raised when a referenced entity does not exist or is inactive."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)


class AlreadyExistsError(AtelierError):
    """Raised when a unique attribute (name, code) is already taken."""
    def __init__(self, message, payload=None):
        super().__init__(message, 409, payload)


class ConflictError(AtelierError):
    """Raised when row locks could not be acquired in time. Safe to retry."""
    def __init__(self, message="The resource is busy, please retry", payload=None):
        rv = dict(payload or ())
        rv['retryable'] = True
        super().__init__(message, 409, rv)


class FatalError(AtelierError):
    """Raised when a transaction was left partially applied. Never swallow."""
    def __init__(self, message, payload=None):
        super().__init__(message, 500, payload)


class UnauthorizedError(AtelierError):
    """Raised when a caller is not authenticated or lacks the required role."""
    def __init__(self, message="Unauthorized access", status_code=403):
        super().__init__(message, status_code)


def _format_qty(value) -> str:
    value = Decimal(str(value))
    if value % 1 == 0:
        return f"{int(value)}"
    return f"{value:.2f}".rstrip('0').rstrip('.')
