"""
HTTP client for the transaction / product service.

Only four calls are used by the checkout screen:

    POST /api/transactions                   create a transaction
    GET  /api/products-by-code/{code}        look up a product by code
    POST /api/transactions/{id}/details      record one unit of a product
    GET  /api/transactions/{id}              read the transaction (total)

Failures are reported as TransportError, except the product lookup 404
which is the business condition ProductNotFoundError. Every request carries
a bounded timeout; an expired timeout is a TransportError as well.

The client holds no checkout state, so its methods can run on a worker
thread.
"""

from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from exceptions import ProductNotFoundError, TransportError
from logger import get_logger
from models import Product, TransactionInfo

logger = get_logger(__name__)


class TransactionApiClient:
    """
    Thin wrapper around a requests.Session for the transaction service.

    Attributes:
        base_url (str): Service root, without trailing slash.
        timeout (float): Per-request timeout in seconds.
    """

    def __init__(self, base_url: str, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({'Content-Type': 'application/json'})

    def _request(self, method: str, path: str, payload: Optional[Dict[str, Any]] = None) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            logger.error(f"{method} {url} timed out after {self.timeout}s")
            raise TransportError(f"Request timed out: {e}", url=url)
        except requests.exceptions.RequestException as e:
            logger.error(f"{method} {url} failed: {e}")
            raise TransportError(f"Request failed: {e}", url=url)

        logger.debug(f"{method} {url} -> {response.status_code}")
        return response

    @staticmethod
    def _ensure_ok(response: requests.Response, action: str):
        if not response.ok:
            logger.error(f"{action} failed with HTTP {response.status_code}")
            raise TransportError(
                f"{action} failed with HTTP {response.status_code}",
                status_code=response.status_code,
                url=response.url,
            )

    @staticmethod
    def _json(response: requests.Response, action: str) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            logger.error(f"{action}: response body is not JSON: {e}")
            raise TransportError(f"{action}: invalid JSON response", status_code=response.status_code)

    def create_transaction(self, opened_at: str, emp_code: str, store_code: str, pos_no: str) -> TransactionInfo:
        """
        Create a new transaction with a zero total.

        Returns:
            TransactionInfo with the server-assigned id.

        Raises:
            TransportError: On any failure.
        """
        body = {
            'DATETIME': opened_at,
            'EMP_CD': emp_code,
            'STORE_CD': store_code,
            'POS_NO': pos_no,
            'TOTAL_AMT': 0,
        }
        response = self._request('POST', '/api/transactions', body)
        self._ensure_ok(response, "Create transaction")
        return TransactionInfo.from_api(self._json(response, "Create transaction"))

    def get_product_by_code(self, code: str) -> Product:
        """
        Look up a product by its code.

        Raises:
            ProductNotFoundError: The service answered 404.
            TransportError: Any other failure.
        """
        response = self._request('GET', f"/api/products-by-code/{quote(code, safe='')}")
        if response.status_code == 404:
            logger.info(f"Product code not registered: {code}")
            raise ProductNotFoundError(code)
        self._ensure_ok(response, "Product lookup")
        return Product.from_api(self._json(response, "Product lookup"))

    def add_transaction_detail(self, transaction_id: int, detail_id: int, product_id: int,
                               code: str, name: str, price: int) -> None:
        """
        Record one unit of a product on a transaction.

        The service has no quantity column, so callers send one detail per
        unit, each with its own detail id.

        Raises:
            TransportError: On any failure.
        """
        body = {
            'DTL_ID': detail_id,
            'PRD_ID': product_id,
            'PRD_CODE': code,
            'PRD_NAME': name,
            'PRD_PRICE': price,
        }
        response = self._request('POST', f"/api/transactions/{transaction_id}/details", body)
        self._ensure_ok(response, f"Add detail {detail_id}")

    def get_transaction(self, transaction_id: int) -> TransactionInfo:
        """
        Read a transaction, including the total computed by the server.

        Raises:
            TransportError: On any failure.
        """
        response = self._request('GET', f"/api/transactions/{transaction_id}")
        self._ensure_ok(response, "Get transaction")
        return TransactionInfo.from_api(self._json(response, "Get transaction"))

    def close(self) -> None:
        self._session.close()
