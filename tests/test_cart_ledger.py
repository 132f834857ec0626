"""
Unit tests for src/cart_ledger.py: CartLedger and validate_quantity.

Tests cover:
- add_or_merge(): new line vs. merged quantity, insertion order
- set_quantity(): range and type validation, unknown codes
- remove(), clear(), subtotal(), item_count()
- locked ledger rejects edits
- floors block removal and reductions until clear()
- restore() merges and caps quantities
- cart_changed emitted only on real changes
"""

import pytest

from cart_ledger import CartLedger, validate_quantity
from exceptions import ValidationError
from models import CartLine, Product

TEA = Product(id=1, code="A1", name="Tea", price=150)
COFFEE = Product(id=2, code="B2", name="Coffee", price=200)


@pytest.fixture
def ledger(qapp):
    return CartLedger()


@pytest.fixture
def changes(ledger):
    events = []
    ledger.cart_changed.connect(lambda: events.append(1))
    return events


class TestValidateQuantity:
    @pytest.mark.parametrize("value", [1, 2, 50, 99])
    def test_accepted(self, value):
        assert validate_quantity(value) == value

    @pytest.mark.parametrize("value", [0, -1, 100, 150, 1.5, "3", None, True])
    def test_rejected(self, value):
        with pytest.raises(ValidationError):
            validate_quantity(value)


class TestAddOrMerge:
    def test_new_product_appends_line(self, ledger, changes):
        line = ledger.add_or_merge(TEA)

        assert line == CartLine(1, "A1", "Tea", 150, 1)
        assert len(ledger) == 1
        assert changes == [1]

    def test_same_code_merges(self, ledger):
        ledger.add_or_merge(TEA)
        line = ledger.add_or_merge(TEA)

        assert line.quantity == 2
        assert len(ledger) == 1

    def test_insertion_order(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.add_or_merge(COFFEE)
        ledger.add_or_merge(TEA)
        assert [line.code for line in ledger.lines()] == ["A1", "B2"]

    def test_price_is_copied_at_add_time(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.add_or_merge(Product(id=1, code="A1", name="Tea (new label)", price=999))
        line = ledger.get_line("A1")
        assert line.unit_price == 150
        assert line.name == "Tea"

    def test_merge_at_maximum_is_rejected(self, ledger, changes):
        ledger.add_or_merge(TEA)
        ledger.set_quantity("A1", 99)
        changes.clear()

        with pytest.raises(ValidationError):
            ledger.add_or_merge(TEA)

        assert ledger.get_line("A1").quantity == 99
        assert changes == []


class TestSetQuantity:
    def test_updates_quantity(self, ledger):
        ledger.add_or_merge(TEA)
        assert ledger.set_quantity("A1", 5).quantity == 5
        assert ledger.subtotal() == 750

    def test_out_of_range_keeps_quantity(self, ledger, changes):
        ledger.add_or_merge(TEA)
        ledger.set_quantity("A1", 2)
        changes.clear()

        with pytest.raises(ValidationError):
            ledger.set_quantity("A1", 150)

        assert ledger.get_line("A1").quantity == 2
        assert changes == []

    def test_unknown_code_is_noop(self, ledger, changes):
        ledger.add_or_merge(TEA)
        changes.clear()
        assert ledger.set_quantity("ZZZ", 3) is None
        assert changes == []

    def test_same_value_does_not_emit(self, ledger, changes):
        ledger.add_or_merge(TEA)
        changes.clear()
        ledger.set_quantity("A1", 1)
        assert changes == []


class TestRemoveAndTotals:
    def test_remove(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.add_or_merge(COFFEE)
        assert ledger.remove("A1") is True
        assert [line.code for line in ledger.lines()] == ["B2"]

    def test_remove_unknown(self, ledger):
        assert ledger.remove("A1") is False

    def test_subtotal_and_item_count(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.add_or_merge(TEA)
        ledger.add_or_merge(COFFEE)
        assert ledger.subtotal() == 500
        assert ledger.item_count() == 3

    def test_empty_ledger(self, ledger):
        assert ledger.is_empty
        assert ledger.subtotal() == 0

    def test_lines_are_copies(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.lines()[0].quantity = 42
        assert ledger.get_line("A1").quantity == 1

    def test_clear(self, ledger, changes):
        ledger.add_or_merge(TEA)
        ledger.locked = True
        ledger.clear()
        assert ledger.is_empty
        assert ledger.locked is False
        assert changes == [1, 1]

    def test_clear_empty_does_not_emit(self, ledger, changes):
        ledger.clear()
        assert changes == []


class TestLockedLedger:
    def test_set_quantity_rejected(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.locked = True
        with pytest.raises(ValidationError):
            ledger.set_quantity("A1", 2)

    def test_remove_rejected(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.locked = True
        with pytest.raises(ValidationError):
            ledger.remove("A1")
        assert len(ledger) == 1

    def test_adding_still_allowed(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.locked = True
        assert ledger.add_or_merge(TEA).quantity == 2


class TestFloors:
    def test_quantity_below_floor_rejected(self, ledger, changes):
        ledger.add_or_merge(TEA)
        ledger.add_or_merge(TEA)
        ledger.set_floor("A1", 2)
        changes.clear()

        with pytest.raises(ValidationError):
            ledger.set_quantity("A1", 1)

        assert ledger.get_line("A1").quantity == 2
        assert changes == []

    def test_quantity_at_or_above_floor_allowed(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.add_or_merge(TEA)
        ledger.set_floor("A1", 2)
        assert ledger.set_quantity("A1", 5).quantity == 5
        assert ledger.set_quantity("A1", 2).quantity == 2

    def test_remove_rejected(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.add_or_merge(COFFEE)
        ledger.set_floor("A1", 1)

        with pytest.raises(ValidationError):
            ledger.remove("A1")
        assert ledger.remove("B2")
        assert [l.code for l in ledger.lines()] == ["A1"]

    def test_clear_drops_floors(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.set_floor("A1", 1)
        ledger.clear()

        ledger.add_or_merge(TEA)
        assert ledger.floor("A1") == 0
        assert ledger.remove("A1")

    def test_zero_removes_floor(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.set_floor("A1", 1)
        ledger.set_floor("A1", 0)
        assert ledger.remove("A1")


class TestRestore:
    def test_restore_into_empty(self, ledger):
        ledger.restore([CartLine(1, "A1", "Tea", 150, 2)])
        assert ledger.get_line("A1").quantity == 2

    def test_restore_merges_and_caps(self, ledger):
        ledger.add_or_merge(TEA)
        ledger.set_quantity("A1", 98)
        ledger.restore([CartLine(1, "A1", "Tea", 150, 5)])
        assert ledger.get_line("A1").quantity == 99
