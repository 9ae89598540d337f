"""
Jewelry Back-Office - Custom Exceptions
========================================
Business-level exceptions raised by services and converted to JSON
responses by the handler registered in main.py.
"""

from typing import Optional


class JewelryError(Exception):
    """Base exception for all business logic errors."""
    status_code = 400
    kind = "Error"

    def __init__(self, message: str = "An internal error occurred."):
        self.message = message
        super().__init__(self.message)

    def context(self) -> dict:
        """Extra fields added to the error response body."""
        return {}


class InvalidInputError(JewelryError):
    """Raised for malformed or out-of-range input."""
    kind = "InvalidInput"


class InvalidDiscountError(JewelryError):
    """Raised when a discount would make the order total negative."""
    kind = "InvalidDiscount"


class RateWindowInvalidError(JewelryError):
    """Raised when valid_until is not after effective_date."""
    kind = "RateWindowInvalid"


class NoActiveRateError(JewelryError):
    """Raised when no active rate exists for a metal type and purity."""
    status_code = 409
    kind = "NoActiveRate"

    def __init__(self, metal_type: str, purity: str):
        self.metal_type = str(metal_type)
        self.purity = purity
        super().__init__(f"No active rate for {self.metal_type} {purity}")

    def context(self) -> dict:
        return {"metal_type": self.metal_type, "purity": self.purity}


class NotFoundError(JewelryError):
    """Raised when a requested resource doesn't exist."""
    status_code = 404
    kind = "NotFound"


class NotAvailableError(JewelryError):
    """Raised when a stock item is not in the state an operation requires."""
    status_code = 409
    kind = "NotAvailable"

    def __init__(self, item: str, message: Optional[str] = None):
        self.item = item
        super().__init__(message or f"Stock item {item} is not available")

    def context(self) -> dict:
        return {"item": self.item}


class InvalidStateError(JewelryError):
    """Raised when an order is in the wrong lifecycle state."""
    status_code = 409
    kind = "InvalidState"


class ImmutableRecordError(JewelryError):
    """Raised on an attempt to modify or delete an append-only record."""
    status_code = 409
    kind = "ImmutableRecord"


class TransactionTimeoutError(JewelryError):
    """Raised when a unit of work runs past its deadline."""
    status_code = 503
    kind = "TransactionTimeout"
