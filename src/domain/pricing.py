# src/domain/pricing.py

import math
from datetime import date, datetime
from decimal import Decimal
from enum import Enum

SECONDS_PER_DAY = 24 * 60 * 60


class ItemType(str, Enum):
    EQUIPMENT = "equipment"
    PACKAGE = "package"


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


def rental_days(start: date | datetime, end: date | datetime) -> int:
    """
    Whole rental days between two dates, never less than one.

    A partial day counts as a full day; a same-day rental is one day.
    """
    elapsed = (_as_datetime(end) - _as_datetime(start)).total_seconds()
    return max(1, math.ceil(elapsed / SECONDS_PER_DAY))


def line_cost(
    item_type: ItemType,
    unit_price: Decimal,
    quantity: int,
    days: int,
) -> Decimal:
    # Packages are flat-rate regardless of duration.
    if item_type == ItemType.PACKAGE:
        return Decimal(unit_price) * quantity
    return Decimal(unit_price) * quantity * days


def total_cost(line_costs) -> Decimal:
    return sum((Decimal(cost) for cost in line_costs), Decimal("0"))
