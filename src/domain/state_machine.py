# src/domain/state_machine.py

from enum import Enum
from typing import Dict, Set

from src.domain.exceptions import InvalidStateTransitionError


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    OVERDUE = "overdue"
    RETURNED_WITH_ISSUES = "returned-with-issues"
    RESOLVED = "resolved"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PENDING_VERIFICATION = "pending_verification"
    PAID = "paid"
    REJECTED = "rejected"


class PaymentMethod(str, Enum):
    CASH = "cash"
    WALLET_TRANSFER = "wallet-transfer"


INITIAL_STATES: Dict[PaymentMethod, tuple[BookingStatus, PaymentStatus]] = {
    PaymentMethod.CASH: (BookingStatus.PENDING, PaymentStatus.UNPAID),
    PaymentMethod.WALLET_TRANSFER: (
        BookingStatus.PENDING,
        PaymentStatus.PENDING_VERIFICATION,
    ),
}


class BookingStateMachine:
    """
    Conventional rental lifecycle.

    Admins may still override a status freely; this table only tells the
    engine which moves are the expected ones and which states are terminal.
    """

    _ALLOWED_TRANSITIONS: Dict[BookingStatus, Set[BookingStatus]] = {
        BookingStatus.PENDING: {
            BookingStatus.CONFIRMED,
            BookingStatus.CANCELLED,
        },
        BookingStatus.CONFIRMED: {
            BookingStatus.IN_PROGRESS,
            BookingStatus.OVERDUE,
            BookingStatus.RETURNED_WITH_ISSUES,
        },
        BookingStatus.IN_PROGRESS: {
            BookingStatus.COMPLETED,
            BookingStatus.OVERDUE,
            BookingStatus.RETURNED_WITH_ISSUES,
        },
        BookingStatus.OVERDUE: {
            BookingStatus.COMPLETED,
            BookingStatus.RETURNED_WITH_ISSUES,
        },
        BookingStatus.RETURNED_WITH_ISSUES: {
            BookingStatus.RESOLVED,
        },
        BookingStatus.COMPLETED: set(),
        BookingStatus.RESOLVED: set(),
        BookingStatus.CANCELLED: set(),
    }

    @classmethod
    def can_transition(
        cls,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> bool:
        """
        Returns True if the move follows the conventional lifecycle.
        """
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def can_cancel(cls, status: BookingStatus) -> bool:
        """Customers may only cancel while the booking is still pending."""
        cls._ensure_valid_status(status)
        return status == BookingStatus.PENDING

    @classmethod
    def is_terminal(cls, status: BookingStatus) -> bool:
        cls._ensure_valid_status(status)
        return len(cls._ALLOWED_TRANSITIONS.get(status, set())) == 0

    @classmethod
    def get_allowed_transitions(
        cls, status: BookingStatus
    ) -> Set[BookingStatus]:
        cls._ensure_valid_status(status)
        return cls._ALLOWED_TRANSITIONS.get(status, set())

    @staticmethod
    def _ensure_valid_status(status: BookingStatus) -> None:
        if not isinstance(status, BookingStatus):
            raise TypeError(
                f"Expected BookingStatus, got {type(status)}"
            )


class PaymentStateMachine:
    """
    Payment verification gate.

    Only a wallet transfer enters pending_verification, and it leaves it
    exactly once, to paid or to rejected.
    """

    _ALLOWED_TRANSITIONS: Dict[PaymentStatus, Set[PaymentStatus]] = {
        PaymentStatus.PENDING_VERIFICATION: {
            PaymentStatus.PAID,
            PaymentStatus.REJECTED,
        },
        PaymentStatus.UNPAID: set(),
        PaymentStatus.PAID: set(),
        PaymentStatus.REJECTED: set(),
    }

    @classmethod
    def can_transition(
        cls,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
    ) -> bool:
        cls._ensure_valid_status(from_status)
        cls._ensure_valid_status(to_status)

        return to_status in cls._ALLOWED_TRANSITIONS.get(from_status, set())

    @classmethod
    def validate_transition(
        cls,
        from_status: PaymentStatus,
        to_status: PaymentStatus,
    ) -> None:
        """
        Raises InvalidStateTransitionError if transition is illegal.
        """
        if not cls.can_transition(from_status, to_status):
            raise InvalidStateTransitionError(
                from_state=from_status.value,
                to_state=to_status.value,
            )

    @classmethod
    def is_awaiting_verification(cls, status: PaymentStatus) -> bool:
        cls._ensure_valid_status(status)
        return status == PaymentStatus.PENDING_VERIFICATION

    @staticmethod
    def _ensure_valid_status(status: PaymentStatus) -> None:
        if not isinstance(status, PaymentStatus):
            raise TypeError(
                f"Expected PaymentStatus, got {type(status)}"
            )
