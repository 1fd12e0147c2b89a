# tests/unit/test_cart.py

from datetime import date
from decimal import Decimal

import pytest

from src.domain.cart import Cart
from src.domain.exceptions import ValidationError
from src.domain.pricing import ItemType
from src.domain.state_machine import PaymentMethod


@pytest.fixture
def cart():
    cart = Cart()
    cart.add_item(
        ItemType.EQUIPMENT,
        "eq-chair",
        "Monobloc Chair",
        Decimal("100"),
        quantity=2,
        available_quantity=5,
    )
    cart.add_item(ItemType.PACKAGE, "pkg-party", "Birthday Party Set", Decimal("500"))
    cart.set_rental_dates(date(2024, 1, 1), date(2024, 1, 3))
    return cart


def test_estimated_total_matches_booking_pricing(cart):
    assert cart.rental_days == 2
    assert cart.count == 3
    assert cart.estimated_total() == Decimal("900")


def test_adding_same_item_merges_lines(cart):
    cart.add_item(
        ItemType.EQUIPMENT,
        "eq-chair",
        "Monobloc Chair",
        Decimal("100"),
        quantity=1,
        available_quantity=5,
    )
    assert len(cart.lines) == 2
    assert cart.lines[0].quantity == 3


def test_equipment_quantity_capped_by_availability(cart):
    with pytest.raises(ValidationError, match="Only 5 available"):
        cart.update_quantity(ItemType.EQUIPMENT, "eq-chair", 6)


def test_quantity_below_one_rejected(cart):
    with pytest.raises(ValidationError):
        cart.update_quantity(ItemType.PACKAGE, "pkg-party", 0)


def test_remove_item(cart):
    cart.remove_item(ItemType.PACKAGE, "pkg-party")
    assert [line.ref_id for line in cart.lines] == ["eq-chair"]


def test_rental_days_zero_without_valid_dates():
    cart = Cart()
    assert cart.rental_days == 0

    cart.set_rental_dates(date(2024, 1, 5), date(2024, 1, 1))
    assert cart.rental_days == 0


def test_booking_request_payload(cart):
    payload = cart.to_booking_request("user-1", PaymentMethod.CASH, notes="Deliver at 8am")

    assert payload["start_date"] == "2024-01-01"
    assert payload["payment_method"] == "cash"
    assert payload["items"] == [
        {"type": "equipment", "ref_id": "eq-chair", "quantity": 2},
        {"type": "package", "ref_id": "pkg-party", "quantity": 1},
    ]


def test_empty_cart_cannot_be_submitted():
    with pytest.raises(ValidationError, match="Cart is empty"):
        Cart().to_booking_request("user-1", PaymentMethod.CASH)


def test_cart_without_dates_cannot_be_submitted():
    cart = Cart()
    cart.add_item(ItemType.PACKAGE, "pkg-party", "Birthday Party Set", Decimal("500"))
    with pytest.raises(ValidationError, match="Rental dates are required"):
        cart.to_booking_request("user-1", PaymentMethod.CASH)


def test_saved_cart_is_restored(cart):
    restored = Cart.from_dict(cart.to_dict())

    assert restored.start_date == date(2024, 1, 1)
    assert restored.estimated_total() == Decimal("900")


def test_corrupt_saved_cart_starts_empty():
    restored = Cart.from_dict({"lines": [{"type": "boat", "ref_id": "x"}]})
    assert restored.lines == []


def test_clear(cart):
    cart.clear()
    assert cart.count == 0
    assert cart.start_date is None
