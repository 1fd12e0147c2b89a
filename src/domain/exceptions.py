

class RentalEngineError(Exception):
    """
    Base exception for all domain-level errors
    inside the rental booking engine.
    """

    status_code = 500


class ValidationError(RentalEngineError):
    """Raised when input is missing or malformed."""

    status_code = 400


class NotFoundError(RentalEngineError):
    """Raised when a booking, catalog item or user id does not resolve."""

    status_code = 404


class InsufficientStockError(RentalEngineError):
    """
    Raised when a line requests more units than the catalog holds.
    """

    status_code = 400

    def __init__(self, item_name: str, available: int, requested: int):
        self.item_name = item_name
        self.available = available
        self.requested = requested

        message = (
            f"Not enough stock for {item_name}. "
            f"Available: {available}, Requested: {requested}"
        )
        super().__init__(message)


class InvalidStateError(RentalEngineError):
    """Raised when an operation is not legal for the current status."""

    status_code = 400


class NotPendingVerificationError(InvalidStateError):
    """Raised when a payment decision targets a booking not awaiting one."""

    def __init__(self, booking_id: str):
        self.booking_id = booking_id
        super().__init__("This booking is not pending payment verification")


class InvalidStateTransitionError(InvalidStateError):
    """
    Raised when an illegal payment state transition is attempted.
    """

    def __init__(self, from_state: str, to_state: str):
        self.from_state = from_state
        self.to_state = to_state

        message = (
            f"Illegal state transition attempted: "
            f"{from_state} -> {to_state}"
        )
        super().__init__(message)


class PersistenceError(RentalEngineError):
    """Raised when the store fails unexpectedly."""

    status_code = 500


class NotificationError(RentalEngineError):
    """Raised when an email could not be handed to the mail transport."""

    status_code = 502
