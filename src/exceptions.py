"""
Custom exceptions for the POS Terminal application.

This module defines application-specific exceptions for the checkout screen.
Every exception is recovered at the operation that raised it: the checkout
controller turns them into operator notifications, none of them is meant to
terminate the application.

Exception hierarchy:
    PosError (base)
    ├── ProductNotFoundError (code is not registered in the product master)
    ├── TransportError (backend unreachable, timeout, non-2xx response)
    ├── AcquisitionError (camera cannot be opened)
    ├── ValidationError (local input rejected, no network call made)
    ├── NoActiveTransactionError (purchase attempted without a transaction)
    └── PurchaseInProgressError (second purchase while one is running)
"""

from typing import Optional


class PosError(Exception):
    """
    Base exception for all POS Terminal errors.

    All application-specific exceptions inherit from this class, so the
    controller can catch every business failure with a single clause:
        try:
            ...
        except PosError as e:
            self._notify(e.get_display_message(), "error")

    Note: This does NOT inherit from built-in errors like ValueError or
    IOError, to keep application and system errors apart.
    """

    def get_display_message(self) -> str:
        """Text shown to the operator. Defaults to the exception message."""
        return str(self)


class ProductNotFoundError(PosError):
    """
    Raised when the backend reports that a product code is not registered.

    This is a business condition, not a failure: the operator corrects it by
    entering or scanning another code.

    Attributes:
        code (str): The code that was looked up.
    """

    def __init__(self, code: str):
        super().__init__(f"Product code '{code}' is not registered")
        self.code = code

    def get_display_message(self) -> str:
        return "Product is not registered"


class TransportError(PosError):
    """
    Raised when a call to the transaction service fails.

    Covers connection errors, timeouts, non-2xx responses (other than the
    product lookup 404) and response bodies that cannot be decoded. The
    operator retries by triggering the action again.

    Attributes:
        status_code (int | None): HTTP status, None when no response arrived.
        url (str | None): The request URL.
    """

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url

    def get_display_message(self) -> str:
        return "Communication with the server failed. Please try again."


class AcquisitionError(PosError):
    """
    Raised when the camera cannot be opened for barcode scanning.

    Scanning stays disabled until the operator presses the scan button again.
    """

    def get_display_message(self) -> str:
        return (
            "Cannot access the camera. "
            "Check that it is connected and that camera access is allowed."
        )


class ValidationError(PosError):
    """
    Raised when local input validation fails.

    Validation happens before any state change and before any network call,
    e.g. a quantity outside 1..99 or editing a line that is already recorded
    on the server.

    Attributes:
        value: The rejected value, if any.
    """

    def __init__(self, message: str, value=None):
        super().__init__(message)
        self.value = value


class NoActiveTransactionError(PosError):
    """Raised when a purchase is attempted before a transaction id exists."""

    def get_display_message(self) -> str:
        return "No transaction is open yet. Purchase is not available."


class PurchaseInProgressError(PosError):
    """Raised when a purchase is triggered while another one is still running."""

    def get_display_message(self) -> str:
        return "A purchase is already being processed."
