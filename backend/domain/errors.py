"""
Custom domain exceptions for consistent error handling.

These exceptions are mapped to HTTP status codes by the global exception handler
in main.py.
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict | None = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class NotFoundError(DomainError):
    """Resource not found (404)."""
    def __init__(self, resource_type: str, identifier: str, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class ValidationError(DomainError):
    """Validation error (400)."""
    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class ConflictError(DomainError):
    """Resource conflict (409)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)


class ProductNotFoundError(NotFoundError):
    """A line item references a product that does not exist (404)."""
    def __init__(self, product_id: int):
        super().__init__("Product", str(product_id), details={"product_id": product_id})
        self.product_id = product_id


class InsufficientStockError(ConflictError):
    """
    Not enough stock to cover a line item (409).

    Carries the figures the caller needs for an itemized rejection.
    """
    def __init__(self, product_id: int, product_name: str, available: int, requested: int):
        message = (
            f"Insufficient stock for {product_name}: "
            f"{available} available, {requested} requested"
        )
        super().__init__(
            message,
            details={
                "product_id": product_id,
                "product": product_name,
                "available": available,
                "requested": requested,
            },
        )
        self.product_id = product_id
        self.product_name = product_name
        self.available = available
        self.requested = requested


class TransactionFailedError(DomainError):
    """Datastore failure while running a unit of work (503)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details)
