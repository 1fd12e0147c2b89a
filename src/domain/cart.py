# src/domain/cart.py

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from src.domain.exceptions import ValidationError
from src.domain.pricing import ItemType, line_cost, rental_days
from src.domain.state_machine import PaymentMethod


@dataclass
class CartLine:
    item_type: ItemType
    ref_id: str
    name: str
    unit_price: Decimal
    quantity: int
    available_quantity: int | None = None

    def to_dict(self) -> dict:
        return {
            "type": self.item_type.value,
            "ref_id": self.ref_id,
            "name": self.name,
            "unit_price": str(self.unit_price),
            "quantity": self.quantity,
            "available_quantity": self.available_quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            item_type=ItemType(data["type"]),
            ref_id=data["ref_id"],
            name=data.get("name") or "",
            unit_price=Decimal(str(data.get("unit_price") or "0")),
            quantity=int(data["quantity"]),
            available_quantity=data.get("available_quantity"),
        )


@dataclass
class Cart:
    """
    Client-held staging area for one future booking.

    Holds equipment and package lines plus a single rental date range shared
    by every line. Availability recorded here is only what the customer saw
    while browsing; the booking engine re-checks live stock on submission.
    """

    lines: list[CartLine] = field(default_factory=list)
    start_date: date | None = None
    end_date: date | None = None

    def _find(self, item_type: ItemType, ref_id: str) -> CartLine | None:
        for line in self.lines:
            if line.item_type == item_type and line.ref_id == ref_id:
                return line
        return None

    def add_item(
        self,
        item_type: ItemType,
        ref_id: str,
        name: str,
        unit_price: Decimal,
        quantity: int = 1,
        available_quantity: int | None = None,
    ) -> CartLine:
        if not ref_id:
            raise ValidationError("Invalid item. Cannot add to cart.")
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1.")

        existing = self._find(item_type, ref_id)
        if existing:
            new_quantity = existing.quantity + quantity
            self._check_available(existing, new_quantity)
            existing.quantity = new_quantity
            return existing

        line = CartLine(
            item_type=item_type,
            ref_id=ref_id,
            name=name,
            unit_price=Decimal(str(unit_price)),
            quantity=quantity,
            available_quantity=available_quantity,
        )
        self._check_available(line, quantity)
        self.lines.append(line)
        return line

    def remove_item(self, item_type: ItemType, ref_id: str) -> None:
        self.lines = [
            line for line in self.lines
            if not (line.item_type == item_type and line.ref_id == ref_id)
        ]

    def update_quantity(
        self,
        item_type: ItemType,
        ref_id: str,
        quantity: int,
    ) -> None:
        line = self._find(item_type, ref_id)
        if not line:
            return
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1.")
        self._check_available(line, quantity)
        line.quantity = quantity

    def set_rental_dates(self, start_date: date, end_date: date) -> None:
        self.start_date = start_date
        self.end_date = end_date

    def clear(self) -> None:
        self.lines = []
        self.start_date = None
        self.end_date = None

    @property
    def count(self) -> int:
        return sum(line.quantity for line in self.lines)

    @property
    def rental_days(self) -> int:
        if not self.start_date or not self.end_date:
            return 0
        if self.end_date < self.start_date:
            return 0
        return rental_days(self.start_date, self.end_date)

    @property
    def is_valid(self) -> bool:
        return all(line.quantity > 0 for line in self.lines)

    def estimated_total(self) -> Decimal:
        days = self.rental_days
        return sum(
            (
                line_cost(line.item_type, line.unit_price, line.quantity, days)
                for line in self.lines
            ),
            Decimal("0"),
        )

    def to_booking_request(
        self,
        user_id: str,
        payment_method: PaymentMethod,
        notes: str = "",
        proof_of_payment: str | None = None,
    ) -> dict:
        """Build the payload accepted by the booking creation endpoint."""
        if not self.lines:
            raise ValidationError("Cart is empty")
        if not self.start_date or not self.end_date:
            raise ValidationError("Rental dates are required")

        return {
            "user_id": user_id,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "items": [
                {
                    "type": line.item_type.value,
                    "ref_id": line.ref_id,
                    "quantity": line.quantity,
                }
                for line in self.lines
            ],
            "payment_method": payment_method.value,
            "notes": notes,
            "proof_of_payment": proof_of_payment,
        }

    def to_dict(self) -> dict:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    @classmethod
    def from_dict(cls, data: dict | None) -> "Cart":
        # A corrupt saved cart starts over empty.
        if not data:
            return cls()
        try:
            return cls(
                lines=[CartLine.from_dict(item) for item in data.get("lines", [])],
                start_date=_parse_date(data.get("start_date")),
                end_date=_parse_date(data.get("end_date")),
            )
        except (KeyError, TypeError, ValueError, InvalidOperation):
            return cls()

    @staticmethod
    def _check_available(line: CartLine, quantity: int) -> None:
        # Only equipment carries a browsing-time availability cap.
        if line.item_type != ItemType.EQUIPMENT or line.available_quantity is None:
            return
        if quantity > line.available_quantity:
            raise ValidationError(
                f"Only {line.available_quantity} available for {line.name}"
            )


def _parse_date(value: str | None) -> date | None:
    if not value:
        return None
    return date.fromisoformat(value)
