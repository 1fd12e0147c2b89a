# src/infrastructure/repositories/booking_repository.py

from sqlalchemy.orm import Session
from sqlalchemy import func, select

from src.infrastructure.db.models import Booking, BookingItem
from src.domain.state_machine import BookingStatus, PaymentMethod, PaymentStatus


class BookingRepository:

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(
        self,
        booking_id: str,
    ) -> Booking | None:

        stmt = select(Booking).where(Booking.id == booking_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def lock_by_id(self, booking_id: str) -> Booking | None:
        """
        SELECT ... FOR UPDATE
        Serialises state changes on one booking.
        """
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def list_bookings(self, user_id: str | None = None) -> list[Booking]:
        stmt = select(Booking).order_by(Booking.created_at.desc())
        if user_id:
            stmt = stmt.where(Booking.user_id == user_id)
        return list(self.db.execute(stmt).scalars().all())

    def list_by_payment_status(
        self,
        payment_status: PaymentStatus,
    ) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.payment_status == payment_status)
            .where(Booking.status != BookingStatus.CANCELLED)
            .order_by(Booking.created_at)
        )
        return list(self.db.execute(stmt).scalars().all())

    def count(self, payment_method: PaymentMethod | None = None) -> int:
        stmt = select(func.count()).select_from(Booking)
        if payment_method:
            stmt = stmt.where(Booking.payment_method == payment_method)
        return self.db.execute(stmt).scalar_one()

    def create_booking(
        self,
        user_id: str,
        start_date,
        end_date,
        items: list[BookingItem],
        total_cost,
        notes: str,
        payment_method: PaymentMethod,
        status: BookingStatus,
        payment_status: PaymentStatus,
        proof_of_payment: str | None,
    ) -> Booking:

        booking = Booking(
            user_id=user_id,
            start_date=start_date,
            end_date=end_date,
            total_cost=total_cost,
            notes=notes,
            status=status,
            payment_method=payment_method,
            payment_status=payment_status,
            proof_of_payment=proof_of_payment,
        )
        for position, item in enumerate(items):
            item.position = position
            booking.items.append(item)

        self.db.add(booking)
        self.db.flush()
        return booking

    def update_status(
        self,
        booking: Booking,
        new_status: BookingStatus,
    ) -> None:

        booking.status = new_status
