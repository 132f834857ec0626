from typing import Optional, Tuple

from PySide6.QtCore import QObject, Signal

from api_client import TransactionApiClient
from cart_ledger import CartLedger
from exceptions import PosError, ProductNotFoundError, TransportError, ValidationError
from logger import get_logger
from models import Product

logger = get_logger(__name__)

NOT_REGISTERED_MESSAGE = "Product is not registered"
LOOKUP_FAILED_MESSAGE = "Product lookup failed. Please try again."


class ProductLookup(QObject):
    """
    Resolves product codes against the product master and feeds the cart.

    The lookup is split in two halves so the network part can run on a
    worker thread while all state changes stay on the UI thread:
        fetch(code)                         network only, no state
        apply_result(code, product, error)  state only, no network

    lookup(code) runs both halves synchronously.

    Status strings returned by lookup()/apply_result():
        "EMPTY_CODE"       blank input, nothing happened
        "FOUND"            product displayed (and added, with auto-add)
        "NOT_FOUND"        code is not registered
        "TRANSPORT_ERROR"  the service could not be reached
        "ADD_REJECTED"     product found but the cart refused it (quantity cap)

    Attributes:
        product_found (Signal): Emitted with the Product on FOUND.
        lookup_failed (Signal): Emitted with (status, message) on failures.
        current_product (Product | None): The product on display.
        error_message (str): The message on display, "" when none.
    """
    product_found = Signal(object)
    lookup_failed = Signal(str, str)

    def __init__(self, client: TransactionApiClient, ledger: CartLedger, auto_add: bool = True):
        super().__init__()
        self.client = client
        self.ledger = ledger
        self.auto_add = auto_add

        self.current_code = ""
        self.current_product: Optional[Product] = None
        self.error_message = ""

    @staticmethod
    def normalize_code(code: Optional[str]) -> str:
        return (code or "").strip()

    def fetch(self, code: str) -> Product:
        """
        Query the product service. Does not touch any state.

        Raises:
            ProductNotFoundError, TransportError
        """
        return self.client.get_product_by_code(code)

    def lookup(self, code: str) -> Tuple[Optional[Product], str]:
        """
        Look up code and, with auto-add, put the product into the cart.

        The cart add happens before this method returns.

        Returns:
            (product or None, status string)
        """
        code = self.normalize_code(code)
        if not code:
            return None, "EMPTY_CODE"

        try:
            product = self.fetch(code)
        except PosError as e:
            return self.apply_result(code, error=e)
        return self.apply_result(code, product=product)

    def apply_result(self, code: str, product: Optional[Product] = None,
                     error: Optional[Exception] = None) -> Tuple[Optional[Product], str]:
        """Apply the outcome of fetch() to the displayed product, message and cart."""
        code = self.normalize_code(code)
        if not code:
            return None, "EMPTY_CODE"

        self.current_code = code

        if isinstance(error, ProductNotFoundError):
            self.current_product = None
            self.error_message = NOT_REGISTERED_MESSAGE
            self.lookup_failed.emit("NOT_FOUND", self.error_message)
            return None, "NOT_FOUND"

        if error is not None or product is None:
            if isinstance(error, TransportError) or error is None:
                logger.error(f"Lookup of {code} failed: {error}")
            else:
                logger.error(f"Lookup of {code} failed unexpectedly: {error}", exc_info=error)
            self.current_product = None
            self.error_message = ""
            self.lookup_failed.emit("TRANSPORT_ERROR", LOOKUP_FAILED_MESSAGE)
            return None, "TRANSPORT_ERROR"

        self.current_product = product
        self.error_message = ""
        logger.info(f"Found product {product.code}: {product.name} ({product.price})")
        self.product_found.emit(product)

        if self.auto_add:
            try:
                self.ledger.add_or_merge(product)
            except ValidationError as e:
                self.error_message = str(e)
                self.lookup_failed.emit("ADD_REJECTED", self.error_message)
                return product, "ADD_REJECTED"

        return product, "FOUND"

    def add_current_to_cart(self):
        """
        Manual add of the displayed product (used when auto-add is off).

        Returns:
            The resulting CartLine, or None if no product is displayed.

        Raises:
            ValidationError: If the cart refuses the add.
        """
        if self.current_product is None:
            return None
        return self.ledger.add_or_merge(self.current_product)

    def reset(self):
        """Clear the entered code, the displayed product and the message."""
        self.current_code = ""
        self.current_product = None
        self.error_message = ""
