"""
Unit tests for src/product_lookup.py: ProductLookup.

Tests cover:
- FOUND with auto-add merges into the cart before lookup() returns
- NOT_FOUND shows the not-registered message and leaves the cart alone
- TRANSPORT_ERROR on service failures
- EMPTY_CODE for blank input (no network call)
- ADD_REJECTED when the cart refuses the product
- Manual add when auto-add is off
"""

import pytest

from cart_ledger import CartLedger
from conftest import TEA
from product_lookup import LOOKUP_FAILED_MESSAGE, NOT_REGISTERED_MESSAGE, ProductLookup


@pytest.fixture
def ledger(qapp):
    return CartLedger()


@pytest.fixture
def lookup(fake_api, ledger):
    return ProductLookup(fake_api, ledger)


@pytest.fixture
def failures(lookup):
    events = []
    lookup.lookup_failed.connect(lambda status, message: events.append((status, message)))
    return events


class TestLookup:
    def test_found_adds_to_cart(self, lookup, ledger, fake_api):
        found = []
        lookup.product_found.connect(found.append)

        product, status = lookup.lookup("A1")

        assert status == "FOUND"
        assert product == TEA
        assert found == [TEA]
        assert lookup.current_product == TEA
        assert ledger.get_line("A1").quantity == 1
        assert fake_api.lookups == ["A1"]

    def test_found_twice_merges(self, lookup, ledger):
        lookup.lookup("A1")
        lookup.lookup("A1")
        assert len(ledger) == 1
        assert ledger.get_line("A1").quantity == 2

    def test_code_is_trimmed(self, lookup, fake_api):
        _, status = lookup.lookup("  A1 \n")
        assert status == "FOUND"
        assert fake_api.lookups == ["A1"]

    def test_not_found(self, lookup, ledger, failures):
        product, status = lookup.lookup("ZZZ")

        assert (product, status) == (None, "NOT_FOUND")
        assert lookup.error_message == NOT_REGISTERED_MESSAGE
        assert lookup.current_product is None
        assert ledger.is_empty
        assert failures == [("NOT_FOUND", NOT_REGISTERED_MESSAGE)]

    def test_not_found_clears_previous_product(self, lookup):
        lookup.lookup("A1")
        lookup.lookup("ZZZ")
        assert lookup.current_product is None
        assert lookup.current_code == "ZZZ"

    def test_transport_error(self, lookup, fake_api, ledger, failures):
        fake_api.fail_lookup = True

        product, status = lookup.lookup("A1")

        assert (product, status) == (None, "TRANSPORT_ERROR")
        assert ledger.is_empty
        assert failures == [("TRANSPORT_ERROR", LOOKUP_FAILED_MESSAGE)]

    @pytest.mark.parametrize("code", ["", "   ", None])
    def test_empty_code(self, lookup, fake_api, code):
        assert lookup.lookup(code) == (None, "EMPTY_CODE")
        assert fake_api.lookups == []

    def test_add_rejected_at_maximum(self, lookup, ledger, failures):
        lookup.lookup("A1")
        ledger.set_quantity("A1", 99)

        product, status = lookup.lookup("A1")

        assert status == "ADD_REJECTED"
        assert product == TEA
        assert ledger.get_line("A1").quantity == 99
        assert failures[-1][0] == "ADD_REJECTED"


class TestApplyResult:
    def test_unexpected_error_is_transport_error(self, lookup):
        _, status = lookup.apply_result("A1", error=RuntimeError("boom"))
        assert status == "TRANSPORT_ERROR"


class TestManualAdd:
    def test_no_auto_add(self, fake_api, ledger):
        lookup = ProductLookup(fake_api, ledger, auto_add=False)

        _, status = lookup.lookup("A1")
        assert status == "FOUND"
        assert ledger.is_empty

        line = lookup.add_current_to_cart()
        assert line.quantity == 1
        assert ledger.get_line("A1") is not None

    def test_add_without_product(self, fake_api, ledger):
        lookup = ProductLookup(fake_api, ledger, auto_add=False)
        assert lookup.add_current_to_cart() is None

    def test_reset(self, lookup):
        lookup.lookup("ZZZ")
        lookup.reset()
        assert lookup.current_code == ""
        assert lookup.current_product is None
        assert lookup.error_message == ""
