"""
Data objects shared by the checkout modules.

Field names on the wire follow the transaction service schema
(PRD_ID, CODE, NAME, PRICE for products; TRD_ID, DATETIME, EMP_CD, STORE_CD,
POS_NO, TOTAL_AMT for transactions). The from_api constructors are the only
place that knows about them.
"""

from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List

from exceptions import TransportError

MIN_QUANTITY = 1
MAX_QUANTITY = 99


def _require(payload: Dict[str, Any], key: str, kind: str):
    if not isinstance(payload, dict) or key not in payload:
        raise TransportError(f"Malformed {kind} response: missing '{key}'")
    return payload[key]


def _as_int(value: Any, key: str, kind: str) -> int:
    # bool is an int subclass but never a valid amount or id
    if isinstance(value, bool):
        raise TransportError(f"Malformed {kind} response: '{key}' is not an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise TransportError(f"Malformed {kind} response: '{key}' is not an integer")


@dataclass(frozen=True)
class Product:
    """A product master record, as returned by the code lookup."""

    id: int
    code: str
    name: str
    price: int

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "Product":
        price = _as_int(_require(payload, 'PRICE', 'product'), 'PRICE', 'product')
        if price < 0:
            raise TransportError(f"Malformed product response: negative price {price}")
        return cls(
            id=_as_int(_require(payload, 'PRD_ID', 'product'), 'PRD_ID', 'product'),
            code=str(_require(payload, 'CODE', 'product')),
            name=str(_require(payload, 'NAME', 'product')),
            price=price,
        )


@dataclass
class CartLine:
    """
    One line of the purchase list.

    Name and unit price are copied from the product when the line is
    created, later price changes on the backend do not affect the line.
    """

    product_id: int
    code: str
    name: str
    unit_price: int
    quantity: int = 1

    @classmethod
    def from_product(cls, product: Product, quantity: int = 1) -> "CartLine":
        return cls(
            product_id=product.id,
            code=product.code,
            name=product.name,
            unit_price=product.price,
            quantity=quantity,
        )

    @property
    def line_total(self) -> int:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class TransactionInfo:
    """The transaction service's record of one checkout."""

    transaction_id: int
    opened_at: str
    emp_code: str
    store_code: str
    pos_no: str
    total_amount: int

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "TransactionInfo":
        return cls(
            transaction_id=_as_int(_require(payload, 'TRD_ID', 'transaction'), 'TRD_ID', 'transaction'),
            opened_at=str(payload.get('DATETIME', '')),
            emp_code=str(payload.get('EMP_CD', '')),
            store_code=str(payload.get('STORE_CD', '')),
            pos_no=str(payload.get('POS_NO', '')),
            total_amount=_as_int(payload.get('TOTAL_AMT', 0), 'TOTAL_AMT', 'transaction'),
        )


@dataclass(frozen=True)
class DetailWriteFailure:
    """A single per-unit detail write that the backend did not acknowledge."""

    code: str
    name: str
    detail_id: int
    unit_index: int
    reason: str


@dataclass
class PurchaseResult:
    """Outcome of a committed purchase."""

    transaction_id: int
    subtotal: int
    total_amount: int
    tax_included_total: int
    details_written: int = 0
    failed_details: List[DetailWriteFailure] = field(default_factory=list)
    cart_cleared: bool = True
    requeued_lines: List[CartLine] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return bool(self.failed_details)

    def failed_codes(self) -> List[str]:
        """Distinct product codes with at least one failed write, in order."""
        seen: List[str] = []
        for failure in self.failed_details:
            if failure.code not in seen:
                seen.append(failure.code)
        return seen

    def display_message(self) -> str:
        message = f"Purchase completed!\nTotal (tax included): {self.tax_included_total} yen"
        if self.has_failures:
            message += (
                f"\n\n{len(self.failed_details)} item(s) could not be recorded on the server: "
                f"{', '.join(self.failed_codes())}"
            )
        return message


def calculate_tax_included(total: int, tax_rate: Decimal) -> int:
    """
    Return total * (1 + tax_rate) rounded half up to whole currency units.

    Halves round away from zero: 105 * 1.1 is exactly 115.5 and gives 116.

    Examples:
        >>> calculate_tax_included(100, Decimal("0.10"))
        110
        >>> calculate_tax_included(105, Decimal("0.10"))
        116
    """
    amount = Decimal(total) * (Decimal(1) + Decimal(tax_rate))
    return int(amount.quantize(Decimal(1), rounding=ROUND_HALF_UP))
