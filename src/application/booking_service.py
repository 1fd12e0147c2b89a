import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.domain.cart import Cart
from src.domain.exceptions import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from src.domain.notifications import Notification, NotificationKind
from src.domain.pricing import ItemType, line_cost, rental_days, total_cost
from src.domain.state_machine import (
    INITIAL_STATES,
    BookingStateMachine,
    BookingStatus,
    PaymentMethod,
    PaymentStatus,
)
from src.infrastructure.db.models import Booking, BookingItem, User
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.inventory_repository import InventoryRepository
from src.infrastructure.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)

RECEIPT_SKIPPED = "Receipt email not sent: no email address on file"
REJECTION_SKIPPED = "Rejection email not sent: no email address on file"

ITEM_LABELS = {
    ItemType.EQUIPMENT: "Equipment",
    ItemType.PACKAGE: "Package",
}


@dataclass(frozen=True)
class LineRequest:
    item_type: ItemType
    ref_id: str
    quantity: int


@dataclass
class BookingOutcome:
    """Result of a lifecycle operation plus the emails it wants sent."""

    booking: Booking
    message: str
    notifications: list[Notification] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def booking_rental_days(booking: Booking) -> int:
    return rental_days(booking.start_date, booking.end_date)


def booking_snapshot(booking: Booking) -> dict:
    """Plain-value copy of a booking for email templates."""
    return {
        "booking_id": booking.id,
        "items": [
            {
                "item_type": item.item_type.value,
                "item_name": item.item_name,
                "quantity": item.quantity,
                "unit_price": str(item.unit_price),
                "line_cost": str(item.line_cost),
            }
            for item in booking.items
        ],
        "start_date": booking.start_date.isoformat(),
        "end_date": booking.end_date.isoformat(),
        "total_cost": str(booking.total_cost),
        "payment_method": booking.payment_method.value,
        "rental_days": booking_rental_days(booking),
    }


def release_booking_items(inventory: InventoryRepository, booking: Booking) -> None:
    """Return every reserved line of a booking to the catalog."""
    for item in booking.items:
        inventory.release(item.item_type, item.item_ref_id, item.quantity)


def receipt_for(user: User | None, booking: Booking) -> list[Notification]:
    if not user or not user.email:
        logger.warning("No email on file for booking %s, receipt not sent", booking.id)
        return []
    return [
        Notification(
            kind=NotificationKind.RECEIPT,
            email=user.email,
            name=user.name,
            snapshot=booking_snapshot(booking),
        )
    ]


def parse_additional_payment(value) -> Decimal:
    """Non-negative amount; anything unparseable counts as zero."""
    if value is None or value == "":
        return Decimal("0")
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return Decimal("0")
    if not amount.is_finite():
        return Decimal("0")
    if amount < 0:
        raise ValidationError("additional_payment must not be negative")
    return amount


class BookingService:
    """Application service coordinating the booking lifecycle."""

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.inventory_repository = InventoryRepository(db)
        self.user_repository = UserRepository(db)

    def create_booking(
        self,
        user_id: str,
        start_date: date | None,
        end_date: date | None,
        lines: list[LineRequest],
        payment_method: PaymentMethod | None,
        notes: str = "",
        proof_of_payment: str | None = None,
    ) -> BookingOutcome:
        self._require(user_id=user_id, start_date=start_date, end_date=end_date,
                      payment_method=payment_method)
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date")
        if not lines:
            raise ValidationError("Cart is empty")

        days = rental_days(start_date, end_date)
        booking_items = [self._price_line(line, days) for line in lines]

        self._reserve_all(lines)

        status, payment_status = INITIAL_STATES[payment_method]
        try:
            booking = self.booking_repository.create_booking(
                user_id=user_id,
                start_date=start_date,
                end_date=end_date,
                items=booking_items,
                total_cost=total_cost(item.line_cost for item in booking_items),
                notes=notes or "",
                payment_method=payment_method,
                status=status,
                payment_status=payment_status,
                proof_of_payment=(
                    proof_of_payment
                    if payment_method == PaymentMethod.WALLET_TRANSFER
                    else None
                ),
            )
        except SQLAlchemyError as exc:
            logger.exception("Booking insert failed for user %s", user_id)
            raise PersistenceError("Error creating booking") from exc

        logger.info(
            "Booking %s created for user %s: %s line(s), %s day(s), total %s, %s",
            booking.id,
            user_id,
            len(booking_items),
            days,
            booking.total_cost,
            payment_method.value,
        )

        if payment_method == PaymentMethod.WALLET_TRANSFER:
            if not proof_of_payment:
                logger.warning("Wallet transfer booking %s has no proof of payment", booking.id)
            return BookingOutcome(
                booking=booking,
                message=(
                    "Booking submitted! Your payment is under review. "
                    "You'll receive a confirmation email once approved."
                ),
            )

        user = self.user_repository.get_by_id(user_id)
        notifications = receipt_for(user, booking)
        return BookingOutcome(
            booking=booking,
            message="Booking successful! Check your email for the receipt.",
            notifications=notifications,
            warnings=[] if notifications else [RECEIPT_SKIPPED],
        )

    def create_booking_from_cart(
        self,
        cart: Cart,
        user_id: str,
        payment_method: PaymentMethod | None,
        notes: str = "",
        proof_of_payment: str | None = None,
    ) -> BookingOutcome:
        """Submit a client cart. Stock is re-checked; cart availability is not trusted."""
        if not cart.lines:
            raise ValidationError("Cart is empty")
        lines = [
            LineRequest(item_type=line.item_type, ref_id=line.ref_id, quantity=line.quantity)
            for line in cart.lines
        ]
        return self.create_booking(
            user_id=user_id,
            start_date=cart.start_date,
            end_date=cart.end_date,
            lines=lines,
            payment_method=payment_method,
            notes=notes,
            proof_of_payment=proof_of_payment,
        )

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repository.get_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def list_bookings(
        self,
        user_id: str | None = None,
    ) -> list[tuple[Booking, str | None]]:
        """Bookings newest first, each paired with its owner's display name."""
        bookings = self.booking_repository.list_bookings(user_id)
        users = self.user_repository.get_many(b.user_id for b in bookings)
        logger.info(
            "Fetched %s bookings%s",
            len(bookings),
            f" for user {user_id}" if user_id else "",
        )
        results = []
        for booking in bookings:
            owner = users.get(booking.user_id)
            results.append((booking, owner.name if owner else None))
        return results

    def pending_verification_summary(self) -> dict:
        pending = self.booking_repository.list_by_payment_status(
            PaymentStatus.PENDING_VERIFICATION
        )
        return {
            "total_bookings": self.booking_repository.count(),
            "wallet_transfer_bookings": self.booking_repository.count(
                PaymentMethod.WALLET_TRANSFER
            ),
            "pending_verification": len(pending),
            "bookings": pending,
        }

    def cancel_booking(
        self,
        booking_id: str,
        user_id: str | None = None,
    ) -> BookingOutcome:
        booking = self.booking_repository.lock_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        if user_id and user_id != booking.user_id:
            raise ValidationError("Only the booking owner can cancel this booking")
        if not BookingStateMachine.can_cancel(booking.status):
            raise InvalidStateError("Only pending bookings can be cancelled")

        release_booking_items(self.inventory_repository, booking)
        self.booking_repository.update_status(booking, BookingStatus.CANCELLED)
        booking.cancelled_at = utc_now()
        self._flush()

        logger.info("Booking %s cancelled by customer", booking.id)
        return BookingOutcome(booking=booking, message="Booking cancelled successfully")

    def update_status(self, booking_id: str, status: BookingStatus) -> BookingOutcome:
        """
        Admin override. Any status may be set except resolved, which only
        issue resolution can reach. Inventory is never touched here.
        """
        booking = self.booking_repository.lock_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        if status == BookingStatus.RESOLVED:
            raise InvalidStateError("Use issue resolution to mark a booking as resolved")

        previous = booking.status
        if previous != status and not BookingStateMachine.can_transition(previous, status):
            logger.warning(
                "Admin override moved booking %s from %s to %s",
                booking.id,
                previous.value,
                status.value,
            )
        self.booking_repository.update_status(booking, status)
        self._flush()
        return BookingOutcome(booking=booking, message="Booking status updated successfully")

    def resolve_issue(
        self,
        booking_id: str,
        additional_payment,
        issue_notes: str | None,
        status: BookingStatus = BookingStatus.RESOLVED,
    ) -> BookingOutcome:
        booking = self.booking_repository.lock_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")

        booking.additional_payment = parse_additional_payment(additional_payment)
        booking.issue_notes = issue_notes
        self.booking_repository.update_status(booking, status)
        if booking.resolved_at is None:
            booking.resolved_at = utc_now()
        self._flush()

        logger.info(
            "Issue on booking %s resolved with additional payment %s",
            booking.id,
            booking.additional_payment,
        )
        return BookingOutcome(booking=booking, message="Issue resolved successfully")

    def _price_line(self, line: LineRequest, days: int) -> BookingItem:
        if line.quantity is None or line.quantity < 1:
            raise ValidationError("quantity must be at least 1")
        if not line.ref_id:
            raise ValidationError("ref_id is required")

        item = self.inventory_repository.get(line.item_type, line.ref_id)
        if not item:
            raise NotFoundError(f"{ITEM_LABELS[line.item_type]} not found: {line.ref_id}")
        if item.available_quantity < line.quantity:
            raise InsufficientStockError(
                item_name=item.name,
                available=item.available_quantity,
                requested=line.quantity,
            )

        unit_price = item.price_per_day if line.item_type == ItemType.EQUIPMENT else item.price
        return BookingItem(
            item_type=line.item_type,
            item_ref_id=item.id,
            item_name=item.name,
            unit_price=unit_price,
            quantity=line.quantity,
            line_cost=line_cost(line.item_type, unit_price, line.quantity, days),
        )

    def _reserve_all(self, lines: list[LineRequest]) -> None:
        """
        Reserve every line in order. If one loses a race for stock, the
        lines already reserved in this request are released again.
        """
        reserved: list[LineRequest] = []
        for line in lines:
            if self.inventory_repository.reserve(line.item_type, line.ref_id, line.quantity):
                reserved.append(line)
                continue

            for done in reversed(reserved):
                self.inventory_repository.release(done.item_type, done.ref_id, done.quantity)
            item = self.inventory_repository.reload(line.item_type, line.ref_id)
            logger.warning(
                "Reservation of %s x %s %s lost to a concurrent booking; "
                "released %s earlier line(s)",
                line.quantity,
                line.item_type.value,
                line.ref_id,
                len(reserved),
            )
            raise InsufficientStockError(
                item_name=item.name if item else line.ref_id,
                available=item.available_quantity if item else 0,
                requested=line.quantity,
            )

    def _flush(self) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            logger.exception("Booking update failed")
            raise PersistenceError("Error updating booking") from exc

    @staticmethod
    def _require(**fields) -> None:
        for name, value in fields.items():
            if value is None or value == "":
                raise ValidationError(f"Missing required field: {name}")
