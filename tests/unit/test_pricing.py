# tests/unit/test_pricing.py

from datetime import date, datetime
from decimal import Decimal

from src.domain.pricing import ItemType, line_cost, rental_days, total_cost


def test_cost_is_deterministic_for_mixed_cart():
    days = rental_days(date(2024, 1, 1), date(2024, 1, 3))
    assert days == 2

    equipment = line_cost(ItemType.EQUIPMENT, Decimal("100"), 2, days)
    package = line_cost(ItemType.PACKAGE, Decimal("500"), 1, days)

    assert equipment == Decimal("400")
    assert package == Decimal("500")
    assert total_cost([equipment, package]) == Decimal("900")


def test_same_day_rental_counts_as_one_day():
    assert rental_days(date(2024, 5, 10), date(2024, 5, 10)) == 1


def test_partial_day_rounds_up():
    start = datetime(2024, 5, 10, 9, 0)
    end = datetime(2024, 5, 11, 10, 0)
    assert rental_days(start, end) == 2


def test_package_price_ignores_duration():
    assert line_cost(ItemType.PACKAGE, Decimal("4500"), 2, 7) == Decimal("9000")


def test_total_of_nothing_is_zero():
    assert total_cost([]) == Decimal("0")
