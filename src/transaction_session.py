"""
Owner of the remote transaction for one activation of the checkout screen.

The transaction is created once when the screen is activated. Whether later
purchases keep using it is a named policy (TransactionPolicy), see
pos_config.py.

Detail ids are allocated here from a counter that starts at 1 for every
transaction, so ids never collide within a transaction.
"""

from datetime import datetime
from typing import Optional

from api_client import TransactionApiClient
from exceptions import NoActiveTransactionError, TransportError
from logger import get_logger, set_transaction_context
from models import TransactionInfo
from pos_config import PosConfig, TransactionPolicy

logger = get_logger(__name__)


class TransactionSession:
    """
    Holds the server-assigned transaction id and allocates detail ids.

    Like ProductLookup, opening is split so the network call can run off
    the UI thread:
        request_open()  network only, returns TransactionInfo
        adopt(info)     state only

    Attributes:
        info (TransactionInfo | None): The open transaction, None if unset.
        policy (TransactionPolicy): Reuse policy after a completed purchase.
    """

    def __init__(self, client: TransactionApiClient, config: PosConfig):
        self.client = client
        self.config = config
        self.policy = config.transaction_policy

        self.info: Optional[TransactionInfo] = None
        self._next_detail_id = 1

    @property
    def transaction_id(self) -> Optional[int]:
        return self.info.transaction_id if self.info else None

    @property
    def is_open(self) -> bool:
        return self.info is not None

    @property
    def opened_at(self) -> Optional[str]:
        return self.info.opened_at if self.info else None

    def request_open(self) -> TransactionInfo:
        """
        Ask the service for a new transaction with a zero total.

        Raises:
            TransportError: On any failure.
        """
        opened_at = datetime.now().isoformat()
        return self.client.create_transaction(
            opened_at=opened_at,
            emp_code=self.config.emp_code,
            store_code=self.config.store_code,
            pos_no=self.config.pos_no,
        )

    def adopt(self, info: TransactionInfo):
        """Make info the current transaction and restart detail numbering."""
        self.info = info
        self._next_detail_id = 1
        set_transaction_context(info.transaction_id)
        logger.info(f"New transaction ID: {info.transaction_id}")

    def open(self) -> bool:
        """
        Create the transaction for this screen activation.

        On failure the id stays unset and the error is logged; the screen
        can still look up products but purchases are refused.

        Returns:
            True if a transaction is now open.
        """
        try:
            info = self.request_open()
        except TransportError as e:
            logger.error(f"Failed to create transaction: {e}")
            return False
        self.adopt(info)
        return True

    def close(self):
        """Forget the current transaction."""
        if self.info is not None:
            logger.info(f"Closing transaction {self.info.transaction_id}")
        self.info = None
        self._next_detail_id = 1
        set_transaction_context(None)

    def require_id(self) -> int:
        """
        Returns:
            The open transaction id.

        Raises:
            NoActiveTransactionError: If no transaction is open.
        """
        if self.info is None:
            raise NoActiveTransactionError("No transaction has been created for this screen")
        return self.info.transaction_id

    def next_detail_id(self) -> int:
        detail_id = self._next_detail_id
        self._next_detail_id += 1
        return detail_id

    def write_detail(self, product_id: int, code: str, name: str, price: int,
                     transaction_id: Optional[int] = None, detail_id: Optional[int] = None) -> int:
        """
        Record one unit on the open transaction.

        transaction_id and detail_id can be taken on the UI thread beforehand
        so that a worker thread only does the network call. Missing ones are
        taken here.

        Returns:
            The detail id that was used.

        Raises:
            NoActiveTransactionError, TransportError
        """
        if transaction_id is None:
            transaction_id = self.require_id()
        if detail_id is None:
            detail_id = self.next_detail_id()
        self.client.add_transaction_detail(
            transaction_id=transaction_id,
            detail_id=detail_id,
            product_id=product_id,
            code=code,
            name=name,
            price=price,
        )
        return detail_id

    def fetch_total(self) -> int:
        """
        Read the authoritative total of the open transaction.

        Raises:
            NoActiveTransactionError, TransportError
        """
        transaction_id = self.require_id()
        info = self.client.get_transaction(transaction_id)
        logger.debug(f"Transaction {transaction_id} total: {info.total_amount}")
        return info.total_amount

    def renews_after_purchase(self) -> bool:
        return self.policy == TransactionPolicy.PER_PURCHASE
