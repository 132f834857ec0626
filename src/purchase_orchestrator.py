"""
Purchase commit for the checkout screen.

A commit runs in three steps:

1. prepare()  (UI thread)  checks the preconditions, snapshots the cart and
                           allocates one detail id per unit to be written.
2. execute()  (any thread) writes every planned detail, then reads the
                           transaction total. Touches no shared state.
3. finish()   (UI thread)  applies the outcome: tax, clearing the cart,
                           re-queueing failed lines.

commit() runs the three steps in a row. The checkout controller runs
execute() on a RemoteCallWorker instead, when background requests are on.

The service has no quantity column, so a line with quantity N is written
as N single-unit details. Failed writes do not stop the remaining writes;
they are collected and reported in the PurchaseResult.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional

from PySide6.QtCore import QObject, Signal

from cart_ledger import CartLedger
from exceptions import PosError, PurchaseInProgressError, TransportError
from logger import get_logger
from models import CartLine, DetailWriteFailure, PurchaseResult, calculate_tax_included
from transaction_session import TransactionSession

logger = get_logger(__name__)


@dataclass(frozen=True)
class PlannedDetail:
    line: CartLine
    unit_index: int
    detail_id: int


@dataclass
class PurchasePlan:
    """Everything execute() needs, captured on the UI thread."""

    session: TransactionSession
    transaction_id: int
    lines: List[CartLine]
    subtotal: int
    details: List[PlannedDetail] = field(default_factory=list)


@dataclass
class PurchaseOutcome:
    """Raw result of execute(), before it is applied to the cart."""

    plan: PurchasePlan
    written: List[PlannedDetail] = field(default_factory=list)
    failures: List[DetailWriteFailure] = field(default_factory=list)
    total_amount: Optional[int] = None
    total_error: Optional[Exception] = None


class PurchaseOrchestrator(QObject):
    """
    Sequences the purchase commit and guards against overlapping commits.

    Only one commit can be in flight. A second prepare() while one is
    running raises PurchaseInProgressError, so the same cart is never
    expanded twice.

    Units acknowledged by the server are remembered per transaction until
    a commit completes. If the total cannot be read the cart is kept, and a
    retried commit skips those units instead of writing them again.

    Attributes:
        purchase_started (Signal): Emitted when a commit passes prepare().
        purchase_finished (Signal): Emitted with the PurchaseResult.
        purchase_failed (Signal): Emitted with an operator message when the
                                  commit could not be completed.
        expand_details (bool): False when details were already written at
                               add time (per-add sync mode).
        requeue_failed (bool): Put lines with failed writes back into the
                               cleared cart.
    """
    purchase_started = Signal()
    purchase_finished = Signal(object)
    purchase_failed = Signal(str)

    def __init__(self, tax_rate: Decimal = Decimal("0.10"), expand_details: bool = True,
                 requeue_failed: bool = False):
        super().__init__()
        self.tax_rate = tax_rate
        self.expand_details = expand_details
        self.requeue_failed = requeue_failed

        self._in_flight = False
        self._acknowledged_transaction: Optional[int] = None
        self._acknowledged: Dict[str, int] = {}

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def pending_acknowledged(self, code: str) -> int:
        """Units of code already recorded by an unfinished commit."""
        return self._acknowledged.get(code, 0)

    def commit(self, ledger: CartLedger, session: TransactionSession) -> PurchaseResult:
        """
        Run a complete purchase synchronously.

        Returns:
            PurchaseResult with the tax-included total and any failed writes.

        Raises:
            NoActiveTransactionError: No transaction id, no network call made.
            PurchaseInProgressError: Another commit is running.
            TransportError: The total could not be read; cart left as is.
        """
        plan = self.prepare(ledger, session)
        outcome = self.execute(plan)
        return self.finish(outcome, ledger)

    def prepare(self, ledger: CartLedger, session: TransactionSession) -> PurchasePlan:
        if self._in_flight:
            logger.warning("Purchase requested while another purchase is running, ignoring")
            raise PurchaseInProgressError("A purchase is already in progress")

        transaction_id = session.require_id()

        if self._acknowledged_transaction != transaction_id:
            self._acknowledged = {}
            self._acknowledged_transaction = transaction_id

        lines = ledger.lines()
        plan = PurchasePlan(
            session=session,
            transaction_id=transaction_id,
            lines=lines,
            subtotal=ledger.subtotal(),
        )

        if self.expand_details:
            for line in lines:
                already_written = min(self._acknowledged.get(line.code, 0), line.quantity)
                for unit_index in range(already_written, line.quantity):
                    plan.details.append(PlannedDetail(line, unit_index, session.next_detail_id()))

        self._in_flight = True
        logger.info(
            f"Purchase started on transaction {transaction_id}: {len(lines)} line(s), "
            f"{len(plan.details)} detail write(s), subtotal {plan.subtotal}"
        )
        self.purchase_started.emit()
        return plan

    def execute(self, plan: PurchasePlan) -> PurchaseOutcome:
        """
        Write all planned details, then read the total.

        Every write is attempted and its result recorded before the total
        is requested. Never raises; errors end up in the outcome.
        """
        outcome = PurchaseOutcome(plan=plan)
        client = plan.session.client

        for detail in plan.details:
            line = detail.line
            try:
                client.add_transaction_detail(
                    transaction_id=plan.transaction_id,
                    detail_id=detail.detail_id,
                    product_id=line.product_id,
                    code=line.code,
                    name=line.name,
                    price=line.unit_price,
                )
                outcome.written.append(detail)
            except PosError as e:
                logger.error(
                    f"Detail {detail.detail_id} for {line.code} "
                    f"(unit {detail.unit_index + 1}/{line.quantity}) failed: {e}"
                )
                outcome.failures.append(DetailWriteFailure(
                    code=line.code,
                    name=line.name,
                    detail_id=detail.detail_id,
                    unit_index=detail.unit_index,
                    reason=str(e),
                ))

        logger.info(
            f"Wrote {len(outcome.written)} detail(s) for transaction {plan.transaction_id}, "
            f"{len(outcome.failures)} failed"
        )

        try:
            outcome.total_amount = plan.session.fetch_total()
        except PosError as e:
            logger.error(f"Failed to read total of transaction {plan.transaction_id}: {e}")
            outcome.total_error = e

        return outcome

    def finish(self, outcome: PurchaseOutcome, ledger: CartLedger) -> PurchaseResult:
        """
        Apply an execute() outcome to the cart and release the in-flight guard.

        Raises:
            TransportError: If the total could not be read. The cart is not
                            cleared in that case.
        """
        plan = outcome.plan
        try:
            for detail in outcome.written:
                code = detail.line.code
                self._acknowledged[code] = self._acknowledged.get(code, 0) + 1

            if outcome.total_amount is None:
                for code, units in self._acknowledged.items():
                    ledger.set_floor(code, units)
                error = outcome.total_error
                message = "Failed to get the transaction total. The cart was kept; please try again."
                self.purchase_failed.emit(message)
                if isinstance(error, TransportError):
                    raise error
                raise TransportError(f"Failed to get the transaction total: {error}")

            tax_included = calculate_tax_included(outcome.total_amount, self.tax_rate)
            result = PurchaseResult(
                transaction_id=plan.transaction_id,
                subtotal=plan.subtotal,
                total_amount=outcome.total_amount,
                tax_included_total=tax_included,
                details_written=len(outcome.written),
                failed_details=list(outcome.failures),
            )

            ledger.clear()
            self._acknowledged = {}

            if self.requeue_failed and outcome.failures:
                result.requeued_lines = self._failed_lines(outcome)
                ledger.restore(result.requeued_lines)
                result.cart_cleared = False

            logger.info(
                f"Purchase completed on transaction {plan.transaction_id}: total {outcome.total_amount}, "
                f"tax included {tax_included}, {len(outcome.failures)} failed write(s)"
            )
            self.purchase_finished.emit(result)
            return result
        finally:
            self._in_flight = False

    def abort(self, reason: str):
        """Release the in-flight guard when execute() never produced an outcome."""
        if self._in_flight:
            logger.error(f"Purchase aborted: {reason}")
            self._in_flight = False
            self.purchase_failed.emit(reason)

    @staticmethod
    def _failed_lines(outcome: PurchaseOutcome) -> List[CartLine]:
        failed_units: Dict[str, int] = {}
        for failure in outcome.failures:
            failed_units[failure.code] = failed_units.get(failure.code, 0) + 1

        requeued = []
        for line in outcome.plan.lines:
            count = failed_units.get(line.code)
            if count:
                requeued.append(CartLine(line.product_id, line.code, line.name, line.unit_price, count))
        return requeued
