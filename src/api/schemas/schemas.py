import json
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator

from src.domain.pricing import ItemType
from src.domain.state_machine import BookingStatus, PaymentMethod, PaymentStatus


class MessageResponse(BaseModel):
    message: str


# -----------------------------
# Bookings
# -----------------------------
class BookingLineRequest(BaseModel):
    type: ItemType
    ref_id: str = Field(min_length=1)
    quantity: int = Field(gt=0)


class BookingCreateRequest(BaseModel):
    user_id: str = Field(min_length=1)
    start_date: date
    end_date: date
    items: list[BookingLineRequest]
    payment_method: PaymentMethod
    notes: str = ""
    proof_of_payment: str | None = None

    @field_validator("items", mode="before")
    @classmethod
    def parse_cart_text(cls, value):
        # Form posts send the cart as a JSON string.
        if isinstance(value, str):
            try:
                return json.loads(value)
            except ValueError as exc:
                raise ValueError("Invalid cart items format") from exc
        return value


class BookingCreateResponse(BaseModel):
    booking_id: str
    message: str
    status: BookingStatus
    payment_status: PaymentStatus
    total_cost: float
    rental_days: int
    warnings: list[str] = []


class BookingItemResponse(BaseModel):
    type: ItemType
    ref_id: str
    name: str
    unit_price: float
    quantity: int
    line_cost: float


class BookingResponse(BaseModel):
    id: str
    user_id: str
    user_name: str | None = None
    start_date: date
    end_date: date
    rental_days: int
    items: list[BookingItemResponse]
    total_cost: float
    status: BookingStatus
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    notes: str
    proof_of_payment: str | None = None
    rejection_reason: str | None = None
    additional_payment: float | None = None
    issue_notes: str | None = None
    created_at: datetime
    payment_verified_at: datetime | None = None
    rejected_at: datetime | None = None
    resolved_at: datetime | None = None
    cancelled_at: datetime | None = None


class PendingVerificationResponse(BaseModel):
    total_bookings: int
    wallet_transfer_bookings: int
    pending_verification: int
    bookings: list[BookingResponse]


class VerifyPaymentRequest(BaseModel):
    approved: bool
    rejection_reason: str | None = None


class CancelBookingRequest(BaseModel):
    user_id: str | None = None


class UpdateBookingStatusRequest(BaseModel):
    status: BookingStatus


class ResolveIssueRequest(BaseModel):
    additional_payment: float | str | None = None
    issue_notes: str | None = None
    status: BookingStatus = BookingStatus.RESOLVED


class BookingActionResponse(BaseModel):
    message: str
    booking_id: str
    status: BookingStatus
    payment_status: PaymentStatus
    warnings: list[str] = []


# -----------------------------
# Inventory
# -----------------------------
class EquipmentCreate(BaseModel):
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    description: str = ""
    price_per_day: Decimal = Field(ge=0)
    available_quantity: int = Field(ge=0)
    featured: bool = False
    available: bool = True
    image: str | None = None


class EquipmentUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    category: str | None = Field(default=None, min_length=1)
    description: str | None = None
    price_per_day: Decimal | None = Field(default=None, ge=0)
    available_quantity: int | None = Field(default=None, ge=0)
    featured: bool | None = None
    available: bool | None = None
    image: str | None = None


class EquipmentResponse(BaseModel):
    id: str
    name: str
    category: str
    description: str
    price_per_day: float
    available_quantity: int
    featured: bool
    available: bool
    image: str | None = None


class PackageCreate(BaseModel):
    name: str = Field(min_length=1)
    description: str = ""
    price: Decimal = Field(ge=0)
    pax: int = Field(default=0, ge=0)
    category: str = "General"
    available_quantity: int = Field(default=1, ge=0)
    main_items: list[str] | str = []
    tables_chairs: list[str] | str = []
    catering_equipment: list[str] | str = []
    extras: list[str] | str = []
    image: str | None = None


class PackageUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0)
    pax: int | None = Field(default=None, ge=0)
    category: str | None = None
    available_quantity: int | None = Field(default=None, ge=0)
    main_items: list[str] | str | None = None
    tables_chairs: list[str] | str | None = None
    catering_equipment: list[str] | str | None = None
    extras: list[str] | str | None = None
    image: str | None = None


class PackageResponse(BaseModel):
    id: str
    name: str
    description: str
    price: float
    pax: int
    category: str
    available_quantity: int
    main_items: list[str]
    tables_chairs: list[str]
    catering_equipment: list[str]
    extras: list[str]
    image: str | None = None


class CreatedResponse(BaseModel):
    message: str
    id: str


# -----------------------------
# Messaging
# -----------------------------
class SendMessageRequest(BaseModel):
    sender_id: str
    receiver_id: str
    message: str


class ChatMessageResponse(BaseModel):
    id: str
    sender_id: str
    receiver_id: str
    message: str
    read: bool
    created_at: datetime


class SendMessageResponse(BaseModel):
    message: str
    data: ChatMessageResponse


class ConversationResponse(BaseModel):
    user_id: str
    user_name: str
    user_email: str
    last_message: str
    last_message_time: datetime
    unread_count: int


class MarkReadResponse(BaseModel):
    message: str
    count: int


class UnreadCountResponse(BaseModel):
    unread_count: int
