"""
Non-visual owner of the checkout screen.

CheckoutController wires the cart ledger, product lookup, transaction
session, purchase orchestrator and scan controller together and is the only
object that mutates their state. All mutations happen on the UI thread; with
background requests enabled, only the network part of an operation runs on
a RemoteCallWorker and its result is applied when the worker reports back.

Every failure is turned into a notification(message, level) signal where
level is one of "info", "success", "warning", "error". Nothing raised by a
checkout operation escapes to the widget.
"""

from typing import Callable, Dict, List, Optional, Tuple

from PySide6.QtCore import QObject, Signal, Slot

from api_client import TransactionApiClient
from camera_source import OpenCvCameraSource
from cart_ledger import CartLedger
from exceptions import NoActiveTransactionError, PosError, ValidationError
from logger import get_logger, set_terminal_context
from models import MAX_QUANTITY, Product, TransactionInfo
from pos_config import PosConfig, SyncMode
from product_lookup import ProductLookup
from purchase_orchestrator import PurchaseOrchestrator, PurchaseOutcome
from remote_worker import RemoteCallWorker
from scan_controller import ScanController
from transaction_session import TransactionSession

logger = get_logger(__name__)

BUSY_PURCHASE_MESSAGE = "Please wait until the purchase is finished."
BUSY_ITEM_MESSAGE = "Still processing the previous item. Please read {code} again."
BUSY_ADD_MESSAGE = "Please wait until the last item is recorded."
TRANSACTION_FAILED_MESSAGE = "Could not create a transaction. Purchases are disabled until it is created."
ADD_FAILED_MESSAGE = "Failed to add the product to the purchase list."
NO_PRODUCT_MESSAGE = "No product has been read."
PURCHASE_FAILED_MESSAGE = "Failed to get the transaction information. The cart was kept; please try again."
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred. Please try again."


class CheckoutController(QObject):
    """
    Coordinates one activation of the checkout screen.

    Signals:
        notification (str, str): Operator message and level.
        cart_updated: The cart changed.
        product_changed (object): The displayed Product, or None.
        purchase_completed (object): PurchaseResult of a finished purchase.
        busy_changed (bool): Whether a remote call is running.
        scan_state_changed (str): ScanState value of the scanner.
        transaction_changed (object): Open transaction id, or None.
    """
    notification = Signal(str, str)
    cart_updated = Signal()
    product_changed = Signal(object)
    purchase_completed = Signal(object)
    busy_changed = Signal(bool)
    scan_state_changed = Signal(str)
    transaction_changed = Signal(object)

    def __init__(self, config: PosConfig, client: Optional[TransactionApiClient] = None,
                 camera_source=None):
        super().__init__()
        self.config = config
        self.client = client or TransactionApiClient(config.backend_url, config.request_timeout)

        per_add = config.sync_mode == SyncMode.PER_ADD

        self.ledger = CartLedger()
        self.session = TransactionSession(self.client, config)
        # In per-add mode the controller adds to the cart itself, after the detail write
        self.lookup = ProductLookup(self.client, self.ledger, auto_add=config.auto_add and not per_add)
        self.orchestrator = PurchaseOrchestrator(
            tax_rate=config.tax_rate,
            expand_details=not per_add,
            requeue_failed=config.requeue_failed,
        )
        self.scanner = ScanController(
            camera_source or OpenCvCameraSource(config.camera_device_id, config.camera_poll_interval_ms)
        )

        self._workers: Dict[RemoteCallWorker, Tuple[Callable, Callable]] = {}
        self._activated = False
        self._torn_down = False
        self._opening = False
        self._lookup_pending = False
        self._add_pending = False

        self.ledger.cart_changed.connect(self.cart_updated)
        self.lookup.product_found.connect(self.product_changed)
        self.lookup.lookup_failed.connect(self._on_lookup_failed)
        self.scanner.code_decoded.connect(self._on_code_decoded)
        self.scanner.scan_error.connect(self._on_scan_error)
        self.scanner.state_changed.connect(self.scan_state_changed)

    # ------------------------------------------------------------------
    # Remote call plumbing
    # ------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return bool(self._workers)

    def _run_remote(self, name: str, fn: Callable, on_success: Callable, on_error: Callable):
        """Run fn now, or on a worker thread when background requests are on."""
        if not self.config.background_requests:
            try:
                result = fn()
            except Exception as e:
                on_error(e)
                return
            on_success(result)
            return

        worker = RemoteCallWorker(name, fn)
        worker.succeeded.connect(self._on_worker_succeeded)
        worker.failed.connect(self._on_worker_failed)
        self._workers[worker] = (on_success, on_error)
        self.busy_changed.emit(True)
        worker.start()

    def _take_worker(self, worker: RemoteCallWorker):
        callbacks = self._workers.pop(worker, None)
        # The signal is emitted just before run() returns
        worker.wait()
        if not self._workers:
            self.busy_changed.emit(False)
        if self._torn_down:
            return None
        return callbacks

    @Slot(object, object)
    def _on_worker_succeeded(self, worker, result):
        callbacks = self._take_worker(worker)
        if callbacks:
            callbacks[0](result)

    @Slot(object, object)
    def _on_worker_failed(self, worker, error):
        callbacks = self._take_worker(worker)
        if callbacks:
            callbacks[1](error)

    def _notify(self, message: str, level: str = "info"):
        self.notification.emit(message, level)

    def _purchase_running(self) -> bool:
        if self.orchestrator.in_flight:
            self._notify(BUSY_PURCHASE_MESSAGE, "warning")
            return True
        return False

    # ------------------------------------------------------------------
    # Screen lifecycle
    # ------------------------------------------------------------------

    def activate(self):
        """Called once when the screen is shown. Creates the transaction."""
        if self._activated:
            return
        self._activated = True
        set_terminal_context(self.config.store_code, self.config.pos_no)
        logger.info(
            f"Checkout screen activated (store {self.config.store_code}, register {self.config.pos_no})"
        )
        self._open_transaction()

    def retry_transaction(self):
        """Try again to create a transaction after activate() failed."""
        if not self.session.is_open:
            self._open_transaction()

    def _open_transaction(self):
        if self._opening or self._torn_down:
            return
        self._opening = True
        self._run_remote(
            "create-transaction",
            self.session.request_open,
            self._on_transaction_opened,
            self._on_transaction_failed,
        )

    def _on_transaction_opened(self, info: TransactionInfo):
        self._opening = False
        self.session.adopt(info)
        self.transaction_changed.emit(info.transaction_id)

    def _on_transaction_failed(self, error: Exception):
        self._opening = False
        logger.error(f"Failed to create transaction: {error}")
        self.transaction_changed.emit(None)
        self._notify(TRANSACTION_FAILED_MESSAGE, "warning")

    def teardown(self):
        """
        Called when the screen closes. Releases the camera first, then waits
        for running requests and closes the HTTP session. Idempotent.
        """
        if self._torn_down:
            return
        self._torn_down = True
        self.scanner.teardown()

        for worker in list(self._workers):
            if not worker.wait(int(self.config.request_timeout * 1000) + 1000):
                logger.warning(f"Remote call '{worker.objectName()}' still running at teardown")
        self._workers.clear()

        self.session.close()
        self.client.close()
        logger.info("Checkout screen closed")

    # ------------------------------------------------------------------
    # Product entry
    # ------------------------------------------------------------------

    def submit_code(self, code: str):
        """Look up a typed or scanned code; found products go into the cart."""
        code = ProductLookup.normalize_code(code)
        if not code or self._torn_down:
            return
        if self._purchase_running():
            return
        if self._lookup_pending:
            logger.info(f"Lookup of {code} ignored, another lookup is running")
            self._notify(BUSY_ITEM_MESSAGE.format(code=code), "warning")
            return

        self._lookup_pending = True
        self._run_remote(
            "lookup-product",
            lambda: self.lookup.fetch(code),
            lambda product: self._on_lookup_done(code, product=product),
            lambda error: self._on_lookup_done(code, error=error),
        )

    def _on_lookup_done(self, code: str, product: Optional[Product] = None,
                        error: Optional[Exception] = None):
        self._lookup_pending = False
        if self.orchestrator.in_flight:
            self._notify(BUSY_PURCHASE_MESSAGE, "warning")
            return

        product, status = self.lookup.apply_result(code, product=product, error=error)
        if (status == "FOUND" and self.config.sync_mode == SyncMode.PER_ADD
                and self.config.auto_add):
            self._add_with_detail(product)

    @Slot(str, str)
    def _on_lookup_failed(self, status: str, message: str):
        if status != "ADD_REJECTED":
            self.product_changed.emit(None)
        level = "error" if status == "TRANSPORT_ERROR" else "warning"
        self._notify(message, level)

    def add_current_product(self):
        """Add the displayed product to the cart (manual add)."""
        if self._purchase_running():
            return
        product = self.lookup.current_product
        if product is None:
            self._notify(NO_PRODUCT_MESSAGE, "warning")
            return

        if self.config.sync_mode == SyncMode.PER_ADD:
            self._add_with_detail(product)
            return

        try:
            self.lookup.add_current_to_cart()
        except ValidationError as e:
            self._notify(str(e), "warning")
            return
        self.lookup.reset()
        self.product_changed.emit(None)

    def _add_with_detail(self, product: Product):
        """Per-add sync: record one detail on the server, then add to the cart."""
        if self._add_pending:
            logger.info(f"Add of {product.code} ignored, another add is running")
            self._notify(BUSY_ITEM_MESSAGE.format(code=product.code), "warning")
            return

        try:
            transaction_id = self.session.require_id()
        except NoActiveTransactionError as e:
            self._notify(e.get_display_message(), "warning")
            return

        existing = self.ledger.get_line(product.code)
        if existing is not None and existing.quantity >= MAX_QUANTITY:
            self._notify(f"Quantity must be between 1 and {MAX_QUANTITY}", "warning")
            return

        detail_id = self.session.next_detail_id()
        self._add_pending = True
        self._run_remote(
            "add-detail",
            lambda: self.session.write_detail(
                product.id, product.code, product.name, product.price,
                transaction_id=transaction_id, detail_id=detail_id,
            ),
            lambda _: self._on_detail_added(product),
            self._on_detail_failed,
        )

    def _on_detail_added(self, product: Product):
        self._add_pending = False
        self.ledger.add_or_merge(product)
        self.ledger.locked = True
        self.lookup.reset()
        self.product_changed.emit(None)

    def _on_detail_failed(self, error: Exception):
        self._add_pending = False
        logger.error(f"Failed to record detail: {error}")
        self._notify(ADD_FAILED_MESSAGE, "error")

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def toggle_scan(self) -> bool:
        """Start or stop camera scanning. Returns True if now scanning."""
        if self._torn_down:
            return False
        return self.scanner.toggle()

    @Slot(str)
    def _on_code_decoded(self, text: str):
        self.submit_code(text)

    @Slot(str)
    def _on_scan_error(self, message: str):
        self._notify(message, "error")

    # ------------------------------------------------------------------
    # Cart edits
    # ------------------------------------------------------------------

    def change_quantity(self, code: str, quantity) -> bool:
        """Set a line's quantity. Returns False when the change was refused."""
        if self._purchase_running():
            return False
        try:
            return self.ledger.set_quantity(code, quantity) is not None
        except ValidationError as e:
            self._notify(str(e), "warning")
            return False

    def remove_line(self, code: str) -> bool:
        if self._purchase_running():
            return False
        try:
            return self.ledger.remove(code)
        except ValidationError as e:
            self._notify(str(e), "warning")
            return False

    # ------------------------------------------------------------------
    # Purchase
    # ------------------------------------------------------------------

    def purchase(self):
        """Commit the cart. The result arrives through purchase_completed."""
        if self._torn_down:
            return
        if self._add_pending or (self._lookup_pending and self.config.sync_mode == SyncMode.PER_ADD):
            logger.info("Purchase refused, an item is still being recorded")
            self._notify(BUSY_ADD_MESSAGE, "warning")
            return
        try:
            plan = self.orchestrator.prepare(self.ledger, self.session)
        except PosError as e:
            self._notify(e.get_display_message(), "warning")
            return

        self._run_remote(
            "purchase",
            lambda: self.orchestrator.execute(plan),
            self._on_purchase_executed,
            self._on_purchase_crashed,
        )

    def _on_purchase_executed(self, outcome: PurchaseOutcome):
        try:
            result = self.orchestrator.finish(outcome, self.ledger)
        except PosError as e:
            logger.error(f"Purchase not completed: {e}")
            self._notify(PURCHASE_FAILED_MESSAGE, "error")
            return

        self.lookup.reset()
        self.product_changed.emit(None)
        self.scanner.stop()

        self.purchase_completed.emit(result)
        self._notify(result.display_message(), "warning" if result.has_failures else "success")

        if self.session.renews_after_purchase():
            self.session.close()
            self.transaction_changed.emit(None)
            self._open_transaction()

    def _on_purchase_crashed(self, error: Exception):
        logger.error(f"Purchase failed unexpectedly: {error}", exc_info=error)
        self.orchestrator.abort(str(error))
        self._notify(UNEXPECTED_ERROR_MESSAGE, "error")

    def cart_lines(self) -> List:
        return self.ledger.lines()

    def subtotal(self) -> int:
        return self.ledger.subtotal()
