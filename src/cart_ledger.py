"""
In-memory purchase list for the checkout screen.

The ledger keeps one line per product code in insertion order. Adding a
product whose code is already in the list increases that line's quantity
instead of creating a second line.
"""

from typing import Dict, Iterable, List, Optional

from PySide6.QtCore import QObject, Signal

from exceptions import ValidationError
from logger import get_logger
from models import CartLine, MAX_QUANTITY, MIN_QUANTITY, Product

logger = get_logger(__name__)


def validate_quantity(value) -> int:
    """
    Check that value is an integer quantity in [MIN_QUANTITY, MAX_QUANTITY].

    Returns:
        The validated quantity.

    Raises:
        ValidationError: If the value is not an int (bools excluded) or is
                         out of range.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(
            f"Quantity must be a whole number between {MIN_QUANTITY} and {MAX_QUANTITY}",
            value=value,
        )
    if not MIN_QUANTITY <= value <= MAX_QUANTITY:
        raise ValidationError(
            f"Quantity must be between {MIN_QUANTITY} and {MAX_QUANTITY}",
            value=value,
        )
    return value


class CartLedger(QObject):
    """
    Ordered collection of cart lines keyed by product code.

    Invariants:
        - at most one line per code
        - every line's quantity is in [1, 99]

    Every mutation that changes the ledger emits cart_changed. Rejected
    operations raise ValidationError and leave the ledger untouched.

    A line can carry a floor: the number of its units already recorded on
    the server by a purchase that has not completed. Quantities below the
    floor and removal of the line are rejected until the cart is cleared.

    Attributes:
        cart_changed (Signal): Emitted after lines were added, changed or removed.
        locked (bool): When True, quantity changes and removals are rejected
                       (lines have already been recorded on the server).
    """
    cart_changed = Signal()

    def __init__(self):
        super().__init__()
        self._lines: List[CartLine] = []
        self._floors: Dict[str, int] = {}
        self.locked = False

    def __len__(self) -> int:
        return len(self._lines)

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def lines(self) -> List[CartLine]:
        """Return copies of the lines in insertion order."""
        return [CartLine(l.product_id, l.code, l.name, l.unit_price, l.quantity) for l in self._lines]

    def _find(self, code: str) -> Optional[CartLine]:
        for line in self._lines:
            if line.code == code:
                return line
        return None

    def get_line(self, code: str) -> Optional[CartLine]:
        line = self._find(code)
        if line is None:
            return None
        return CartLine(line.product_id, line.code, line.name, line.unit_price, line.quantity)

    def add_or_merge(self, product: Product) -> CartLine:
        """
        Add one unit of product to the cart.

        If a line with the same code exists its quantity is increased by one,
        using the same validation as set_quantity, so a line already at 99
        is rejected and stays at 99. Otherwise a new line with quantity 1 is
        appended, copying name and price from the product.

        Returns:
            A copy of the resulting line.

        Raises:
            ValidationError: If merging would exceed the maximum quantity.
        """
        line = self._find(product.code)
        if line is not None:
            line.quantity = validate_quantity(line.quantity + 1)
            logger.info(f"Merged scan of {product.code}: quantity now {line.quantity}")
        else:
            line = CartLine.from_product(product)
            self._lines.append(line)
            logger.info(f"Added {product.code} ({product.name}, {product.price}) to cart")

        self.cart_changed.emit()
        return CartLine(line.product_id, line.code, line.name, line.unit_price, line.quantity)

    def set_quantity(self, code: str, new_qty) -> Optional[CartLine]:
        """
        Replace the quantity of the line with the given code.

        Returns:
            A copy of the updated line, or None if no line has that code
            (nothing changes).

        Raises:
            ValidationError: If new_qty is not an integer in [1, 99], or the
                             ledger is locked. The line keeps its quantity.
        """
        line = self._find(code)
        if line is None:
            logger.debug(f"set_quantity ignored, no line for code {code}")
            return None

        if self.locked:
            raise ValidationError("Items already recorded on the server cannot be changed", value=new_qty)

        try:
            quantity = validate_quantity(new_qty)
        except ValidationError:
            logger.warning(f"Rejected quantity {new_qty!r} for {code}, keeping {line.quantity}")
            raise

        floor = self._floors.get(code, 0)
        if quantity < floor:
            logger.warning(f"Rejected quantity {quantity} for {code}, {floor} unit(s) already recorded")
            raise ValidationError(
                f"{floor} unit(s) of this item are already recorded on the server; "
                f"quantity cannot go below {floor}",
                value=new_qty,
            )

        if quantity != line.quantity:
            line.quantity = quantity
            logger.info(f"Quantity of {code} set to {quantity}")
            self.cart_changed.emit()

        return CartLine(line.product_id, line.code, line.name, line.unit_price, line.quantity)

    def remove(self, code: str) -> bool:
        """
        Remove the line with the given code.

        Returns:
            True if a line was removed, False if none matched.

        Raises:
            ValidationError: If the ledger is locked.
        """
        line = self._find(code)
        if line is None:
            return False

        if self.locked:
            raise ValidationError("Items already recorded on the server cannot be removed")

        if self._floors.get(code, 0) > 0:
            raise ValidationError(
                f"{self._floors[code]} unit(s) of this item are already recorded on the server "
                f"and cannot be removed"
            )

        self._lines.remove(line)
        logger.info(f"Removed {code} from cart")
        self.cart_changed.emit()
        return True

    def set_floor(self, code: str, units: int):
        """
        Keep at least units of code in the cart until the next clear().

        units <= 0 removes the floor.
        """
        if units > 0:
            self._floors[code] = units
            logger.info(f"{units} unit(s) of {code} recorded on the server, locking them in the cart")
        else:
            self._floors.pop(code, None)

    def floor(self, code: str) -> int:
        return self._floors.get(code, 0)

    def subtotal(self) -> int:
        """Sum of unit price x quantity over all lines, before tax."""
        return sum(line.line_total for line in self._lines)

    def item_count(self) -> int:
        """Total number of units in the cart."""
        return sum(line.quantity for line in self._lines)

    def clear(self):
        """Remove every line and unlock the ledger."""
        had_lines = bool(self._lines)
        self._lines = []
        self._floors = {}
        self.locked = False
        if had_lines:
            logger.info("Cart cleared")
            self.cart_changed.emit()

    def restore(self, lines: Iterable[CartLine]):
        """
        Put lines back into the cart, merging quantities by code.

        Used after a purchase to re-queue lines whose details could not be
        recorded. Merged quantities are capped at the maximum.
        """
        restored = 0
        for incoming in lines:
            line = self._find(incoming.code)
            if line is None:
                quantity = min(max(incoming.quantity, MIN_QUANTITY), MAX_QUANTITY)
                self._lines.append(
                    CartLine(incoming.product_id, incoming.code, incoming.name, incoming.unit_price, quantity)
                )
            else:
                line.quantity = min(line.quantity + incoming.quantity, MAX_QUANTITY)
            restored += 1

        if restored:
            logger.info(f"Restored {restored} line(s) to cart")
            self.cart_changed.emit()
