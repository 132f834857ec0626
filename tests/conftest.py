"""
Pytest configuration file for POS Terminal tests.

This file sets up the Python path so tests can import the modules in 'src'
and provides in-memory stand-ins for the transaction service and the camera.
"""

import os
import sys
import threading
from pathlib import Path

import pytest

# Run Qt headless so widget tests work without a display.
os.environ.setdefault('QT_QPA_PLATFORM', 'offscreen')

# Get the repository root directory (parent of tests directory)
repo_root = Path(__file__).parent.parent

# Add src directory to sys.path (for src modules)
src_dir = repo_root / 'src'
if str(src_dir) not in sys.path:
    sys.path.insert(0, str(src_dir))

from exceptions import AcquisitionError, ProductNotFoundError, TransportError  # noqa: E402
from models import Product, TransactionInfo  # noqa: E402
from pos_config import PosConfig  # noqa: E402


class FakeTransactionApi:
    """
    Records calls the way TransactionApiClient would make them.

    The total returned by get_transaction() is the sum of prices of every
    detail accepted for that transaction, like the real service.

    Failure knobs:
        fail_create: create_transaction raises TransportError
        fail_lookup: get_product_by_code raises TransportError
        fail_detail_calls: 1-based indexes of add_transaction_detail calls that fail
        fail_total: get_transaction raises TransportError
    """

    def __init__(self, products=None, next_transaction_id=7):
        self.products = {p.code: p for p in (products or [])}
        self.next_transaction_id = next_transaction_id

        self.fail_create = False
        self.fail_lookup = False
        self.fail_detail_calls = set()
        self.fail_total = False

        self.created = []
        self.lookups = []
        self.detail_calls = []
        self.details = {}
        self.total_requests = []
        self.closed = False

    def create_transaction(self, opened_at, emp_code, store_code, pos_no):
        self.created.append({
            'DATETIME': opened_at, 'EMP_CD': emp_code, 'STORE_CD': store_code, 'POS_NO': pos_no,
        })
        if self.fail_create:
            raise TransportError("Create transaction failed with HTTP 500", status_code=500)
        transaction_id = self.next_transaction_id
        self.next_transaction_id += 1
        self.details[transaction_id] = []
        return TransactionInfo(transaction_id, opened_at, emp_code, store_code, pos_no, 0)

    def get_product_by_code(self, code):
        self.lookups.append(code)
        if self.fail_lookup:
            raise TransportError("Request failed: connection refused")
        if code not in self.products:
            raise ProductNotFoundError(code)
        return self.products[code]

    def add_transaction_detail(self, transaction_id, detail_id, product_id, code, name, price):
        call = {
            'transaction_id': transaction_id,
            'DTL_ID': detail_id,
            'PRD_ID': product_id,
            'PRD_CODE': code,
            'PRD_NAME': name,
            'PRD_PRICE': price,
        }
        self.detail_calls.append(call)
        if len(self.detail_calls) in self.fail_detail_calls:
            raise TransportError(f"Add detail {detail_id} failed with HTTP 500", status_code=500)
        self.details.setdefault(transaction_id, []).append(call)

    def get_transaction(self, transaction_id):
        self.total_requests.append(transaction_id)
        if self.fail_total:
            raise TransportError("Get transaction failed with HTTP 503", status_code=503)
        total = sum(d['PRD_PRICE'] for d in self.details.get(transaction_id, []))
        return TransactionInfo(transaction_id, "", "EMP01", "30", "90", total)

    def close(self):
        self.closed = True

    def detail_ids(self, transaction_id):
        return [d['DTL_ID'] for d in self.details.get(transaction_id, [])]


class BlockingTransactionApi(FakeTransactionApi):
    """
    FakeTransactionApi whose calls of one kind ("lookup" or "detail") wait
    on a gate, so a test can act while a background request is running.

    entered is set once a held call has started waiting.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.blocking = set()
        self.gate = threading.Event()
        self.entered = threading.Event()

    def hold(self, kind):
        self.blocking = {kind}
        self.gate.clear()
        self.entered.clear()

    def release(self):
        self.blocking = set()
        self.gate.set()

    def _wait(self, kind):
        if kind in self.blocking:
            self.entered.set()
            self.gate.wait(5)

    def get_product_by_code(self, code):
        self._wait("lookup")
        return super().get_product_by_code(code)

    def add_transaction_detail(self, transaction_id, detail_id, product_id, code, name, price):
        self._wait("detail")
        return super().add_transaction_detail(transaction_id, detail_id, product_id, code, name, price)


class FakeHandle:
    def __init__(self, sink):
        self.sink = sink
        self.release_count = 0

    def release(self):
        self.release_count += 1

    def emit(self, text):
        self.sink(self, text)


class FakeCameraSource:
    """
    Hands out FakeHandles. on_acquire(handle) runs inside acquire(), before
    it returns, to simulate events during camera start-up.
    """

    def __init__(self):
        self.handles = []
        self.fail = False
        self.on_acquire = None

    def acquire(self, frame_sink):
        if self.fail:
            raise AcquisitionError("Cannot open camera device 0")
        handle = FakeHandle(frame_sink)
        self.handles.append(handle)
        if self.on_acquire:
            self.on_acquire(handle)
        return handle


TEA = Product(id=1, code="A1", name="Tea", price=150)
COFFEE = Product(id=2, code="B2", name="Coffee", price=200)
WATER = Product(id=3, code="C3", name="Water", price=105)


@pytest.fixture
def fake_api():
    return FakeTransactionApi(products=[TEA, COFFEE, WATER])


@pytest.fixture
def blocking_api():
    api = BlockingTransactionApi(products=[TEA, COFFEE, WATER])
    yield api
    api.release()


@pytest.fixture
def sync_config():
    """Config that runs every remote call synchronously on the calling thread."""
    return PosConfig(backend_url="http://pos.test", background_requests=False)
