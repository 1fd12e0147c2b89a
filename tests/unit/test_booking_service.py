# tests/unit/test_booking_service.py

import logging
from datetime import date
from decimal import Decimal

import pytest

from src.application.booking_service import (
    RECEIPT_SKIPPED,
    REJECTION_SKIPPED,
    BookingService,
    LineRequest,
    parse_additional_payment,
)
from src.application.payment_verification import PaymentVerificationService
from src.domain.cart import Cart, CartLine
from src.domain.exceptions import (
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    NotPendingVerificationError,
    ValidationError,
)
from src.domain.notifications import NotificationKind
from src.domain.pricing import ItemType
from src.domain.state_machine import BookingStatus, PaymentMethod, PaymentStatus
from src.infrastructure.db.models import Equipment, Package, User
from src.infrastructure.repositories.inventory_repository import InventoryRepository


def _line(ref_id: str, quantity: int = 1) -> LineRequest:
    item_type = ItemType.PACKAGE if ref_id.startswith("pkg-") else ItemType.EQUIPMENT
    return LineRequest(item_type=item_type, ref_id=ref_id, quantity=quantity)


def _create(db, lines, method=PaymentMethod.CASH, user_id="user-1", **kwargs):
    return BookingService(db).create_booking(
        user_id=user_id,
        start_date=kwargs.pop("start_date", date(2024, 1, 1)),
        end_date=kwargs.pop("end_date", date(2024, 1, 3)),
        lines=lines,
        payment_method=method,
        **kwargs,
    )


def _stock(db, model, item_id) -> int:
    return db.get(model, item_id).available_quantity


# ---------------------
# CREATION
# ---------------------

def test_cash_booking_happy_path(catalog):
    outcome = _create(catalog, [_line("eq-chair")])
    booking = outcome.booking

    assert booking.status == BookingStatus.PENDING
    assert booking.payment_status == PaymentStatus.UNPAID
    assert _stock(catalog, Equipment, "eq-chair") == 4

    assert [n.kind for n in outcome.notifications] == [NotificationKind.RECEIPT]
    assert outcome.notifications[0].email == "maria@example.com"
    assert outcome.notifications[0].snapshot["booking_id"] == booking.id
    assert outcome.warnings == []


def test_total_cost_for_mixed_cart(catalog):
    outcome = _create(catalog, [_line("eq-chair", 2), _line("pkg-party")])
    booking = outcome.booking

    assert booking.total_cost == Decimal("900")
    assert [item.line_cost for item in booking.items] == [Decimal("400"), Decimal("500")]
    assert [item.position for item in booking.items] == [0, 1]


def test_line_items_snapshot_catalog_values(catalog):
    booking = _create(catalog, [_line("eq-chair")]).booking

    chair = catalog.get(Equipment, "eq-chair")
    chair.name = "Renamed Chair"
    chair.price_per_day = Decimal("999")
    catalog.flush()

    assert booking.items[0].item_name == "Monobloc Chair"
    assert booking.items[0].unit_price == Decimal("100")


def test_wallet_transfer_waits_for_review(catalog):
    outcome = _create(
        catalog,
        [_line("eq-speaker")],
        method=PaymentMethod.WALLET_TRANSFER,
        proof_of_payment="/uploads/proof.jpg",
    )

    assert outcome.booking.payment_status == PaymentStatus.PENDING_VERIFICATION
    assert outcome.booking.status == BookingStatus.PENDING
    assert outcome.notifications == []
    assert "under review" in outcome.message
    assert _stock(catalog, Equipment, "eq-speaker") == 2


def test_insufficient_stock_leaves_inventory_unchanged(catalog):
    with pytest.raises(InsufficientStockError) as exc_info:
        _create(catalog, [_line("pkg-party", 5)])

    assert exc_info.value.available == 2
    assert exc_info.value.requested == 5
    assert "Birthday Party Set" in str(exc_info.value)
    assert _stock(catalog, Package, "pkg-party") == 2


def test_stock_can_be_reserved_down_to_zero(catalog):
    _create(catalog, [_line("eq-speaker", 3)])
    assert _stock(catalog, Equipment, "eq-speaker") == 0

    with pytest.raises(InsufficientStockError):
        _create(catalog, [_line("eq-speaker", 1)])
    assert _stock(catalog, Equipment, "eq-speaker") == 0


def test_failed_line_releases_earlier_reservations(catalog, monkeypatch):
    original_reserve = InventoryRepository.reserve

    def lose_race_on_speaker(self, item_type, item_id, quantity):
        if item_id == "eq-speaker":
            return False
        return original_reserve(self, item_type, item_id, quantity)

    monkeypatch.setattr(InventoryRepository, "reserve", lose_race_on_speaker)

    with pytest.raises(InsufficientStockError):
        _create(catalog, [_line("eq-chair", 2), _line("pkg-party"), _line("eq-speaker")])

    assert _stock(catalog, Equipment, "eq-chair") == 5
    assert _stock(catalog, Package, "pkg-party") == 2


def test_stock_taken_by_another_session_after_validation(catalog, session_factory, monkeypatch):
    original_reserve_all = BookingService._reserve_all

    def rival_books_first(self, lines):
        rival = session_factory()
        try:
            assert InventoryRepository(rival).reserve(ItemType.EQUIPMENT, "eq-speaker", 3)
            rival.commit()
        finally:
            rival.close()
        return original_reserve_all(self, lines)

    monkeypatch.setattr(BookingService, "_reserve_all", rival_books_first)

    with pytest.raises(InsufficientStockError) as excinfo:
        _create(catalog, [_line("eq-speaker", 3)])

    assert excinfo.value.available == 0
    assert catalog.get(Equipment, "eq-speaker", populate_existing=True).available_quantity == 0


def test_proof_of_payment_dropped_for_cash(catalog):
    booking = _create(catalog, [_line("eq-chair")], proof_of_payment="receipt.png").booking

    assert booking.proof_of_payment is None


def test_proof_of_payment_kept_for_wallet_transfer(catalog):
    booking = _create(
        catalog,
        [_line("eq-chair")],
        method=PaymentMethod.WALLET_TRANSFER,
        proof_of_payment="receipt.png",
    ).booking

    assert booking.proof_of_payment == "receipt.png"


def test_booking_from_cart(catalog):
    cart = Cart()
    cart.add_item(ItemType.EQUIPMENT, "eq-chair", "Monobloc Chair", Decimal("100.00"), 2)
    cart.add_item(ItemType.PACKAGE, "pkg-party", "Birthday Party Set", Decimal("500.00"), 1)
    cart.set_rental_dates(date(2024, 1, 1), date(2024, 1, 3))

    outcome = BookingService(catalog).create_booking_from_cart(
        cart, "user-1", PaymentMethod.CASH
    )

    assert outcome.booking.total_cost == Decimal("900")
    assert _stock(catalog, Equipment, "eq-chair") == 3
    assert _stock(catalog, Package, "pkg-party") == 1


def test_empty_cart_cannot_be_submitted(catalog):
    with pytest.raises(ValidationError, match="Cart is empty"):
        BookingService(catalog).create_booking_from_cart(Cart(), "user-1", PaymentMethod.CASH)


def test_cart_availability_is_not_trusted(catalog):
    cart = Cart(
        lines=[
            CartLine(
                item_type=ItemType.EQUIPMENT,
                ref_id="eq-speaker",
                name="Speaker Set",
                unit_price=Decimal("800.00"),
                quantity=4,
                available_quantity=10,
            )
        ],
        start_date=date(2024, 1, 1),
        end_date=date(2024, 1, 1),
    )

    with pytest.raises(InsufficientStockError):
        BookingService(catalog).create_booking_from_cart(cart, "user-1", PaymentMethod.CASH)
    assert _stock(catalog, Equipment, "eq-speaker") == 3


def test_unknown_item_is_not_found(catalog):
    with pytest.raises(NotFoundError, match="Equipment not found: eq-missing"):
        _create(catalog, [_line("eq-missing")])


def test_end_before_start_rejected(catalog):
    with pytest.raises(ValidationError):
        _create(
            catalog,
            [_line("eq-chair")],
            start_date=date(2024, 1, 5),
            end_date=date(2024, 1, 1),
        )


def test_empty_cart_rejected(catalog):
    with pytest.raises(ValidationError, match="Cart is empty"):
        _create(catalog, [])


def test_missing_payment_method_rejected(catalog):
    with pytest.raises(ValidationError, match="payment_method"):
        _create(catalog, [_line("eq-chair")], method=None)


def test_zero_quantity_rejected(catalog):
    with pytest.raises(ValidationError):
        _create(catalog, [_line("eq-chair", 0)])
    assert _stock(catalog, Equipment, "eq-chair") == 5


def test_receipt_skipped_without_email(catalog):
    catalog.add(User(id="user-3", name="Walk-in Customer", email=""))
    catalog.flush()

    outcome = _create(catalog, [_line("eq-chair")], user_id="user-3")

    assert outcome.notifications == []
    assert outcome.warnings == [RECEIPT_SKIPPED]


# ---------------------
# CANCELLATION
# ---------------------

def test_create_then_cancel_conserves_stock(catalog):
    booking = _create(catalog, [_line("eq-chair", 2), _line("pkg-party")]).booking

    outcome = BookingService(catalog).cancel_booking(booking.id, user_id="user-1")

    assert outcome.booking.status == BookingStatus.CANCELLED
    assert outcome.booking.cancelled_at is not None
    assert _stock(catalog, Equipment, "eq-chair") == 5
    assert _stock(catalog, Package, "pkg-party") == 2


def test_second_cancel_fails_without_double_release(catalog):
    booking = _create(catalog, [_line("eq-chair", 2)]).booking
    service = BookingService(catalog)
    service.cancel_booking(booking.id)

    with pytest.raises(InvalidStateError):
        service.cancel_booking(booking.id)
    assert _stock(catalog, Equipment, "eq-chair") == 5


def test_only_owner_can_cancel(catalog):
    booking = _create(catalog, [_line("eq-chair")]).booking

    with pytest.raises(ValidationError):
        BookingService(catalog).cancel_booking(booking.id, user_id="user-2")
    assert _stock(catalog, Equipment, "eq-chair") == 4


def test_confirmed_booking_cannot_be_cancelled(catalog):
    booking = _create(catalog, [_line("eq-chair")]).booking
    service = BookingService(catalog)
    service.update_status(booking.id, BookingStatus.CONFIRMED)

    with pytest.raises(InvalidStateError, match="Only pending bookings"):
        service.cancel_booking(booking.id)


def test_cancel_missing_booking(catalog):
    with pytest.raises(NotFoundError):
        BookingService(catalog).cancel_booking("nope")


def test_release_against_deleted_item_is_skipped(catalog):
    booking = _create(catalog, [_line("eq-chair")]).booking
    catalog.delete(catalog.get(Equipment, "eq-chair"))
    catalog.flush()

    outcome = BookingService(catalog).cancel_booking(booking.id)

    assert outcome.booking.status == BookingStatus.CANCELLED
    assert outcome.booking.items[0].item_name == "Monobloc Chair"


# ---------------------
# PAYMENT VERIFICATION
# ---------------------

def test_wallet_transfer_rejection_restores_stock(catalog):
    booking = _create(
        catalog,
        [_line("eq-speaker", 3)],
        method=PaymentMethod.WALLET_TRANSFER,
    ).booking
    assert _stock(catalog, Equipment, "eq-speaker") == 0

    outcome = PaymentVerificationService(catalog).verify_payment(
        booking.id,
        approved=False,
        rejection_reason="blurry proof",
    )

    assert outcome.booking.payment_status == PaymentStatus.REJECTED
    assert outcome.booking.status == BookingStatus.CANCELLED
    assert outcome.booking.rejection_reason == "blurry proof"
    assert outcome.booking.rejected_at is not None
    assert _stock(catalog, Equipment, "eq-speaker") == 3

    [notification] = outcome.notifications
    assert notification.kind == NotificationKind.REJECTION
    assert notification.reason == "blurry proof"


def test_approval_confirms_and_keeps_stock(catalog):
    booking = _create(
        catalog,
        [_line("eq-speaker", 2)],
        method=PaymentMethod.WALLET_TRANSFER,
    ).booking

    outcome = PaymentVerificationService(catalog).verify_payment(booking.id, approved=True)

    assert outcome.booking.payment_status == PaymentStatus.PAID
    assert outcome.booking.status == BookingStatus.CONFIRMED
    assert outcome.booking.payment_verified_at is not None
    assert [n.kind for n in outcome.notifications] == [NotificationKind.RECEIPT]
    assert _stock(catalog, Equipment, "eq-speaker") == 1


def test_verification_is_terminal(catalog):
    booking = _create(
        catalog,
        [_line("eq-speaker", 2)],
        method=PaymentMethod.WALLET_TRANSFER,
    ).booking
    service = PaymentVerificationService(catalog)
    service.verify_payment(booking.id, approved=False, rejection_reason="wrong amount")

    with pytest.raises(NotPendingVerificationError):
        service.verify_payment(booking.id, approved=True)
    with pytest.raises(NotPendingVerificationError):
        service.verify_payment(booking.id, approved=False, rejection_reason="again")

    assert _stock(catalog, Equipment, "eq-speaker") == 3


def test_cash_booking_cannot_be_verified(catalog):
    booking = _create(catalog, [_line("eq-chair")]).booking

    with pytest.raises(NotPendingVerificationError):
        PaymentVerificationService(catalog).verify_payment(booking.id, approved=True)


def test_cancelled_wallet_booking_cannot_be_verified(catalog):
    booking = _create(
        catalog,
        [_line("eq-speaker")],
        method=PaymentMethod.WALLET_TRANSFER,
    ).booking
    BookingService(catalog).cancel_booking(booking.id)

    with pytest.raises(NotPendingVerificationError):
        PaymentVerificationService(catalog).verify_payment(
            booking.id,
            approved=False,
            rejection_reason="late",
        )
    assert _stock(catalog, Equipment, "eq-speaker") == 3


def test_rejection_warns_without_email(catalog):
    catalog.add(User(id="user-3", name="Walk-in Customer", email=""))
    catalog.flush()
    booking = _create(
        catalog,
        [_line("eq-speaker")],
        method=PaymentMethod.WALLET_TRANSFER,
        user_id="user-3",
    ).booking

    outcome = PaymentVerificationService(catalog).verify_payment(
        booking.id,
        approved=False,
        rejection_reason="Blurry receipt",
    )

    assert outcome.booking.status == BookingStatus.CANCELLED
    assert outcome.notifications == []
    assert outcome.warnings == [REJECTION_SKIPPED]


def test_overridden_wallet_booking_can_still_be_verified(catalog):
    booking = _create(
        catalog,
        [_line("eq-speaker")],
        method=PaymentMethod.WALLET_TRANSFER,
    ).booking
    BookingService(catalog).update_status(booking.id, BookingStatus.CONFIRMED)

    outcome = PaymentVerificationService(catalog).verify_payment(booking.id, approved=True)

    assert outcome.booking.status == BookingStatus.CONFIRMED
    assert outcome.booking.payment_status == PaymentStatus.PAID
    assert _stock(catalog, Equipment, "eq-speaker") == 2


def test_rejection_requires_reason(catalog):
    booking = _create(
        catalog,
        [_line("eq-speaker")],
        method=PaymentMethod.WALLET_TRANSFER,
    ).booking

    with pytest.raises(ValidationError):
        PaymentVerificationService(catalog).verify_payment(
            booking.id,
            approved=False,
            rejection_reason="   ",
        )
    assert booking.payment_status == PaymentStatus.PENDING_VERIFICATION


def test_verification_of_missing_booking(catalog):
    with pytest.raises(NotFoundError):
        PaymentVerificationService(catalog).verify_payment("nope", approved=True)


def test_verification_needs_owner_on_file(catalog):
    catalog.add(User(id="user-gone", name="Former Customer", email="gone@example.com"))
    catalog.flush()
    booking = _create(
        catalog,
        [_line("eq-speaker")],
        method=PaymentMethod.WALLET_TRANSFER,
        user_id="user-gone",
    ).booking
    catalog.delete(catalog.get(User, "user-gone"))
    catalog.flush()

    with pytest.raises(NotFoundError, match="User not found"):
        PaymentVerificationService(catalog).verify_payment(booking.id, approved=True)


# ---------------------
# ADMIN STATUS AND DISPUTES
# ---------------------

def test_admin_override_allows_unconventional_jump(catalog, caplog):
    booking = _create(catalog, [_line("eq-chair")]).booking

    with caplog.at_level(logging.WARNING):
        outcome = BookingService(catalog).update_status(booking.id, BookingStatus.COMPLETED)

    assert outcome.booking.status == BookingStatus.COMPLETED
    assert "Admin override" in caplog.text
    assert _stock(catalog, Equipment, "eq-chair") == 4


def test_status_update_cannot_set_resolved(catalog):
    booking = _create(catalog, [_line("eq-chair")]).booking

    with pytest.raises(InvalidStateError):
        BookingService(catalog).update_status(booking.id, BookingStatus.RESOLVED)


def test_status_update_missing_booking(catalog):
    with pytest.raises(NotFoundError):
        BookingService(catalog).update_status("nope", BookingStatus.CONFIRMED)


def test_resolve_issue_records_settlement(catalog):
    booking = _create(catalog, [_line("eq-chair")]).booking
    service = BookingService(catalog)
    service.update_status(booking.id, BookingStatus.RETURNED_WITH_ISSUES)

    outcome = service.resolve_issue(booking.id, "350.50", "Torn seat cover")

    assert outcome.booking.status == BookingStatus.RESOLVED
    assert outcome.booking.additional_payment == Decimal("350.50")
    assert outcome.booking.issue_notes == "Torn seat cover"
    assert outcome.booking.resolved_at is not None


def test_resolution_time_stamped_once(catalog):
    booking = _create(catalog, [_line("eq-chair")]).booking
    service = BookingService(catalog)

    first = service.resolve_issue(booking.id, 100, "Scratch").booking.resolved_at
    second = service.resolve_issue(booking.id, 150, "Scratch, revised").booking.resolved_at

    assert second == first
    assert booking.additional_payment == Decimal("150")


def test_resolution_stamped_for_any_target_status(catalog):
    booking = _create(catalog, [_line("eq-chair")]).booking

    outcome = BookingService(catalog).resolve_issue(
        booking.id, 0, "Returned late", status=BookingStatus.COMPLETED
    )

    assert outcome.booking.status == BookingStatus.COMPLETED
    assert outcome.booking.resolved_at is not None


def test_negative_additional_payment_rejected(catalog):
    booking = _create(catalog, [_line("eq-chair")]).booking

    with pytest.raises(ValidationError):
        BookingService(catalog).resolve_issue(booking.id, "-20", "Refund?")


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, Decimal("0")),
        ("", Decimal("0")),
        ("abc", Decimal("0")),
        ("NaN", Decimal("0")),
        (" 75.25 ", Decimal("75.25")),
        (40, Decimal("40")),
    ],
)
def test_parse_additional_payment(raw, expected):
    assert parse_additional_payment(raw) == expected


# ---------------------
# QUERIES
# ---------------------

def test_list_bookings_newest_first_with_owner_name(catalog):
    older = _create(catalog, [_line("eq-chair")]).booking
    newer = _create(catalog, [_line("pkg-party")], user_id="user-2").booking

    results = BookingService(catalog).list_bookings()

    assert [(b.id, name) for b, name in results] == [
        (newer.id, "Jose Reyes"),
        (older.id, "Maria Santos"),
    ]


def test_list_bookings_filtered_by_user(catalog):
    _create(catalog, [_line("eq-chair")])
    _create(catalog, [_line("pkg-party")], user_id="user-2")

    results = BookingService(catalog).list_bookings(user_id="user-2")

    assert [b.user_id for b, _ in results] == ["user-2"]


def test_pending_verification_summary(catalog):
    _create(catalog, [_line("eq-chair")])
    pending = _create(
        catalog,
        [_line("eq-speaker")],
        method=PaymentMethod.WALLET_TRANSFER,
    ).booking

    summary = BookingService(catalog).pending_verification_summary()

    assert summary["total_bookings"] == 2
    assert summary["wallet_transfer_bookings"] == 1
    assert summary["pending_verification"] == 1
    assert [b.id for b in summary["bookings"]] == [pending.id]


def test_get_missing_booking(catalog):
    with pytest.raises(NotFoundError, match="Booking not found"):
        BookingService(catalog).get_booking("nope")


def test_cancelled_wallet_booking_leaves_verification_queue(catalog):
    booking = _create(
        catalog,
        [_line("eq-speaker")],
        method=PaymentMethod.WALLET_TRANSFER,
    ).booking
    BookingService(catalog).cancel_booking(booking.id, user_id="user-1")

    summary = BookingService(catalog).pending_verification_summary()

    assert summary["wallet_transfer_bookings"] == 1
    assert summary["pending_verification"] == 0
    assert summary["bookings"] == []
