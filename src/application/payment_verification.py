import logging

from sqlalchemy.orm import Session

from src.application.booking_service import (
    RECEIPT_SKIPPED,
    REJECTION_SKIPPED,
    BookingOutcome,
    booking_snapshot,
    receipt_for,
    release_booking_items,
    utc_now,
)
from src.domain.exceptions import NotFoundError, NotPendingVerificationError, ValidationError
from src.domain.notifications import Notification, NotificationKind
from src.domain.state_machine import BookingStatus, PaymentStateMachine, PaymentStatus
from src.infrastructure.repositories.booking_repository import BookingRepository
from src.infrastructure.repositories.inventory_repository import InventoryRepository
from src.infrastructure.repositories.user_repository import UserRepository

logger = logging.getLogger(__name__)


class PaymentVerificationService:
    """
    Human review of uploaded wallet-transfer proofs.

    A booking leaves pending_verification exactly once: approval confirms it
    and keeps the stock reserved, rejection cancels it and releases the stock.
    """

    def __init__(self, db: Session):
        self.db = db
        self.booking_repository = BookingRepository(db)
        self.inventory_repository = InventoryRepository(db)
        self.user_repository = UserRepository(db)

    def verify_payment(
        self,
        booking_id: str,
        approved: bool,
        rejection_reason: str | None = None,
    ) -> BookingOutcome:
        booking = self.booking_repository.lock_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        # A customer cancellation leaves payment_status untouched, and the
        # stock of a cancelled booking has already been released.
        if (
            not PaymentStateMachine.is_awaiting_verification(booking.payment_status)
            or booking.status == BookingStatus.CANCELLED
        ):
            raise NotPendingVerificationError(booking.id)

        user = self.user_repository.get_by_id(booking.user_id)
        if not user:
            raise NotFoundError("User not found")

        if approved:
            return self._approve(booking, user)

        reason = (rejection_reason or "").strip()
        if not reason:
            raise ValidationError("rejection_reason is required when rejecting a payment")
        return self._reject(booking, user, reason)

    def _approve(self, booking, user) -> BookingOutcome:
        PaymentStateMachine.validate_transition(booking.payment_status, PaymentStatus.PAID)

        booking.payment_status = PaymentStatus.PAID
        self.booking_repository.update_status(booking, BookingStatus.CONFIRMED)
        booking.payment_verified_at = utc_now()
        self.db.flush()

        logger.info("Payment approved for booking %s, status now confirmed", booking.id)
        notifications = receipt_for(user, booking)
        return BookingOutcome(
            booking=booking,
            message="Payment verified and booking confirmed. Receipt sent to customer.",
            notifications=notifications,
            warnings=[] if notifications else [RECEIPT_SKIPPED],
        )

    def _reject(self, booking, user, reason: str) -> BookingOutcome:
        PaymentStateMachine.validate_transition(booking.payment_status, PaymentStatus.REJECTED)

        release_booking_items(self.inventory_repository, booking)
        booking.payment_status = PaymentStatus.REJECTED
        self.booking_repository.update_status(booking, BookingStatus.CANCELLED)
        booking.rejection_reason = reason
        booking.rejected_at = utc_now()
        self.db.flush()

        logger.info("Payment rejected for booking %s: %s", booking.id, reason)

        notifications = []
        if user.email:
            notifications.append(
                Notification(
                    kind=NotificationKind.REJECTION,
                    email=user.email,
                    name=user.name,
                    snapshot=booking_snapshot(booking),
                    reason=reason,
                )
            )
        else:
            logger.warning("No email on file for booking %s, rejection not sent", booking.id)
        return BookingOutcome(
            booking=booking,
            message="Payment rejected and booking cancelled. Customer notified via email.",
            notifications=notifications,
            warnings=[] if notifications else [REJECTION_SKIPPED],
        )
