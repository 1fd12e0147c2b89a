import logging

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    HTTPException,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from src.infrastructure.db.session import SessionLocal
from src.application.booking_service import (
    BookingOutcome,
    BookingService,
    LineRequest,
    booking_rental_days,
)
from src.application.inventory_service import InventoryService
from src.application.messaging_service import MessagingService
from src.application.payment_verification import PaymentVerificationService
from src.api.schemas.schemas import (
    BookingActionResponse,
    BookingCreateRequest,
    BookingCreateResponse,
    BookingItemResponse,
    BookingResponse,
    CancelBookingRequest,
    ChatMessageResponse,
    ConversationResponse,
    CreatedResponse,
    EquipmentCreate,
    EquipmentResponse,
    EquipmentUpdate,
    MarkReadResponse,
    MessageResponse,
    PackageCreate,
    PackageResponse,
    PackageUpdate,
    PendingVerificationResponse,
    ResolveIssueRequest,
    SendMessageRequest,
    SendMessageResponse,
    UnreadCountResponse,
    UpdateBookingStatusRequest,
    VerifyPaymentRequest,
)
from src.domain.exceptions import RentalEngineError
from src.domain.pricing import ItemType
from src.infrastructure.db.models import Booking, Equipment, Message, Package
from src.infrastructure.messaging.connection_registry import (
    ConnectionRegistry,
    connection_registry,
)
from src.infrastructure.notifications.email_dispatcher import EmailDispatcher


router = APIRouter()
logger = logging.getLogger(__name__)

_dispatcher: EmailDispatcher | None = None


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_dispatcher() -> EmailDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = EmailDispatcher()
    return _dispatcher


def get_connection_registry() -> ConnectionRegistry:
    return connection_registry


def _http_error(exc: RentalEngineError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def _commit(db: Session) -> None:
    # Commit before any email is queued, so no receipt goes out for a
    # booking that was never stored.
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Commit failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Error saving changes",
        ) from exc


def _dispatch(
    outcome: BookingOutcome,
    background_tasks: BackgroundTasks,
    dispatcher: EmailDispatcher,
) -> None:
    for notification in outcome.notifications:
        background_tasks.add_task(dispatcher.deliver, notification)


def _booking_response(booking: Booking, user_name: str | None = None) -> BookingResponse:
    return BookingResponse(
        id=booking.id,
        user_id=booking.user_id,
        user_name=user_name,
        start_date=booking.start_date,
        end_date=booking.end_date,
        rental_days=booking_rental_days(booking),
        items=[
            BookingItemResponse(
                type=item.item_type,
                ref_id=item.item_ref_id,
                name=item.item_name,
                unit_price=float(item.unit_price),
                quantity=item.quantity,
                line_cost=float(item.line_cost),
            )
            for item in booking.items
        ],
        total_cost=float(booking.total_cost),
        status=booking.status,
        payment_method=booking.payment_method,
        payment_status=booking.payment_status,
        notes=booking.notes or "",
        proof_of_payment=booking.proof_of_payment,
        rejection_reason=booking.rejection_reason,
        additional_payment=(
            float(booking.additional_payment)
            if booking.additional_payment is not None
            else None
        ),
        issue_notes=booking.issue_notes,
        created_at=booking.created_at,
        payment_verified_at=booking.payment_verified_at,
        rejected_at=booking.rejected_at,
        resolved_at=booking.resolved_at,
        cancelled_at=booking.cancelled_at,
    )


def _action_response(outcome: BookingOutcome) -> BookingActionResponse:
    return BookingActionResponse(
        message=outcome.message,
        booking_id=outcome.booking.id,
        status=outcome.booking.status,
        payment_status=outcome.booking.payment_status,
        warnings=outcome.warnings,
    )


def _equipment_response(item: Equipment) -> EquipmentResponse:
    return EquipmentResponse(
        id=item.id,
        name=item.name,
        category=item.category,
        description=item.description or "",
        price_per_day=float(item.price_per_day),
        available_quantity=item.available_quantity,
        featured=item.featured,
        available=item.available,
        image=item.image,
    )


def _package_response(item: Package) -> PackageResponse:
    return PackageResponse(
        id=item.id,
        name=item.name,
        description=item.description or "",
        price=float(item.price),
        pax=item.pax,
        category=item.category,
        available_quantity=item.available_quantity,
        main_items=item.main_items or [],
        tables_chairs=item.tables_chairs or [],
        catering_equipment=item.catering_equipment or [],
        extras=item.extras or [],
        image=item.image,
    )


def _chat_message_response(message: Message) -> ChatMessageResponse:
    return ChatMessageResponse(
        id=message.id,
        sender_id=message.sender_id,
        receiver_id=message.receiver_id,
        message=message.body,
        read=message.read,
        created_at=message.created_at,
    )


@router.get("/health")
def health():
    return {"message": "Rental booking engine is running"}


# -----------------------------
# Equipment catalog
# -----------------------------
@router.get("/equipment", response_model=list[EquipmentResponse])
def list_equipment(db: Session = Depends(get_db)):
    items = InventoryService(db).list_items(ItemType.EQUIPMENT)
    return [_equipment_response(item) for item in items]


@router.get("/equipment/{equipment_id}", response_model=EquipmentResponse)
def get_equipment(equipment_id: str, db: Session = Depends(get_db)):
    try:
        item = InventoryService(db).get_item(ItemType.EQUIPMENT, equipment_id)
    except RentalEngineError as exc:
        raise _http_error(exc) from exc
    return _equipment_response(item)


@router.post("/equipment", response_model=CreatedResponse)
def create_equipment(request: EquipmentCreate, db: Session = Depends(get_db)):
    item = InventoryService(db).create_equipment(request.model_dump())
    return CreatedResponse(message="Equipment added successfully", id=item.id)


@router.put("/equipment/{equipment_id}", response_model=MessageResponse)
def update_equipment(
    equipment_id: str,
    request: EquipmentUpdate,
    db: Session = Depends(get_db),
):
    try:
        InventoryService(db).update_item(
            ItemType.EQUIPMENT,
            equipment_id,
            request.model_dump(exclude_unset=True, exclude_none=True),
        )
    except RentalEngineError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message="Equipment updated successfully")


@router.delete("/equipment/{equipment_id}", response_model=MessageResponse)
def delete_equipment(equipment_id: str, db: Session = Depends(get_db)):
    try:
        InventoryService(db).delete_item(ItemType.EQUIPMENT, equipment_id)
    except RentalEngineError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message="Equipment deleted successfully")


# -----------------------------
# Package catalog
# -----------------------------
@router.get("/packages", response_model=list[PackageResponse])
def list_packages(db: Session = Depends(get_db)):
    items = InventoryService(db).list_items(ItemType.PACKAGE)
    return [_package_response(item) for item in items]


@router.get("/packages/{package_id}", response_model=PackageResponse)
def get_package(package_id: str, db: Session = Depends(get_db)):
    try:
        item = InventoryService(db).get_item(ItemType.PACKAGE, package_id)
    except RentalEngineError as exc:
        raise _http_error(exc) from exc
    return _package_response(item)


@router.post("/packages", response_model=CreatedResponse)
def create_package(request: PackageCreate, db: Session = Depends(get_db)):
    item = InventoryService(db).create_package(request.model_dump())
    return CreatedResponse(message="Package added successfully", id=item.id)


@router.put("/packages/{package_id}", response_model=MessageResponse)
def update_package(
    package_id: str,
    request: PackageUpdate,
    db: Session = Depends(get_db),
):
    try:
        InventoryService(db).update_item(
            ItemType.PACKAGE,
            package_id,
            request.model_dump(exclude_unset=True, exclude_none=True),
        )
    except RentalEngineError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message="Package updated successfully")


@router.delete("/packages/{package_id}", response_model=MessageResponse)
def delete_package(package_id: str, db: Session = Depends(get_db)):
    try:
        InventoryService(db).delete_item(ItemType.PACKAGE, package_id)
    except RentalEngineError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message="Package deleted successfully")


# -----------------------------
# Bookings
# -----------------------------
@router.post("/bookings", response_model=BookingCreateResponse)
def create_booking(
    request: BookingCreateRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_dispatcher),
):
    service = BookingService(db)

    try:
        outcome = service.create_booking(
            user_id=request.user_id,
            start_date=request.start_date,
            end_date=request.end_date,
            lines=[
                LineRequest(item_type=line.type, ref_id=line.ref_id, quantity=line.quantity)
                for line in request.items
            ],
            payment_method=request.payment_method,
            notes=request.notes,
            proof_of_payment=request.proof_of_payment,
        )
    except RentalEngineError as exc:
        raise _http_error(exc) from exc

    _commit(db)
    _dispatch(outcome, background_tasks, dispatcher)

    booking = outcome.booking
    return BookingCreateResponse(
        booking_id=booking.id,
        message=outcome.message,
        status=booking.status,
        payment_status=booking.payment_status,
        total_cost=float(booking.total_cost),
        rental_days=booking_rental_days(booking),
        warnings=outcome.warnings,
    )


@router.get("/bookings", response_model=list[BookingResponse])
def list_bookings(
    user_id: str | None = None,
    db: Session = Depends(get_db),
):
    results = BookingService(db).list_bookings(user_id=user_id)
    return [_booking_response(booking, user_name) for booking, user_name in results]


@router.get("/bookings/payment-verification", response_model=PendingVerificationResponse)
def list_pending_verification(db: Session = Depends(get_db)):
    summary = BookingService(db).pending_verification_summary()
    return PendingVerificationResponse(
        total_bookings=summary["total_bookings"],
        wallet_transfer_bookings=summary["wallet_transfer_bookings"],
        pending_verification=summary["pending_verification"],
        bookings=[_booking_response(booking) for booking in summary["bookings"]],
    )


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
def get_booking(booking_id: str, db: Session = Depends(get_db)):
    try:
        booking = BookingService(db).get_booking(booking_id)
    except RentalEngineError as exc:
        raise _http_error(exc) from exc
    return _booking_response(booking)


@router.put("/bookings/{booking_id}/verify-payment", response_model=BookingActionResponse)
def verify_payment(
    booking_id: str,
    request: VerifyPaymentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    dispatcher: EmailDispatcher = Depends(get_dispatcher),
):
    service = PaymentVerificationService(db)

    try:
        outcome = service.verify_payment(
            booking_id=booking_id,
            approved=request.approved,
            rejection_reason=request.rejection_reason,
        )
    except RentalEngineError as exc:
        raise _http_error(exc) from exc

    _commit(db)
    _dispatch(outcome, background_tasks, dispatcher)
    return _action_response(outcome)


@router.put("/bookings/{booking_id}/cancel", response_model=BookingActionResponse)
def cancel_booking(
    booking_id: str,
    request: CancelBookingRequest | None = None,
    db: Session = Depends(get_db),
):
    try:
        outcome = BookingService(db).cancel_booking(
            booking_id=booking_id,
            user_id=request.user_id if request else None,
        )
    except RentalEngineError as exc:
        raise _http_error(exc) from exc

    _commit(db)
    return _action_response(outcome)


@router.put("/bookings/{booking_id}/status", response_model=BookingActionResponse)
def update_booking_status(
    booking_id: str,
    request: UpdateBookingStatusRequest,
    db: Session = Depends(get_db),
):
    try:
        outcome = BookingService(db).update_status(booking_id, request.status)
    except RentalEngineError as exc:
        raise _http_error(exc) from exc

    _commit(db)
    return _action_response(outcome)


@router.put("/bookings/{booking_id}/resolve-issue", response_model=BookingActionResponse)
def resolve_issue(
    booking_id: str,
    request: ResolveIssueRequest,
    db: Session = Depends(get_db),
):
    try:
        outcome = BookingService(db).resolve_issue(
            booking_id=booking_id,
            additional_payment=request.additional_payment,
            issue_notes=request.issue_notes,
            status=request.status,
        )
    except RentalEngineError as exc:
        raise _http_error(exc) from exc

    _commit(db)
    return _action_response(outcome)


# -----------------------------
# Messaging
# -----------------------------
@router.get("/messages/conversations", response_model=list[ConversationResponse])
def list_conversations(db: Session = Depends(get_db)):
    return MessagingService(db).list_conversations()


@router.get("/messages/unread/{user_id}", response_model=UnreadCountResponse)
def unread_count(user_id: str, db: Session = Depends(get_db)):
    return UnreadCountResponse(unread_count=MessagingService(db).unread_count(user_id))


@router.get("/messages/{user_id}", response_model=list[ChatMessageResponse])
def list_conversation(user_id: str, db: Session = Depends(get_db)):
    messages = MessagingService(db).list_conversation(user_id)
    return [_chat_message_response(message) for message in messages]


@router.post("/messages", response_model=SendMessageResponse)
def send_message(
    request: SendMessageRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    try:
        message = MessagingService(db).send_message(
            sender_id=request.sender_id,
            receiver_id=request.receiver_id,
            body=request.message,
        )
    except RentalEngineError as exc:
        raise _http_error(exc) from exc

    _commit(db)
    data = _chat_message_response(message)
    background_tasks.add_task(
        registry.emit_to_user,
        message.receiver_id,
        "new_message",
        data.model_dump(mode="json"),
    )
    return SendMessageResponse(message="Message sent successfully", data=data)


@router.put("/messages/read/{user_id}", response_model=MarkReadResponse)
def mark_messages_read(
    user_id: str,
    is_admin: bool = False,
    db: Session = Depends(get_db),
):
    count = MessagingService(db).mark_read(user_id, as_admin=is_admin)
    return MarkReadResponse(message="Messages marked as read", count=count)


@router.websocket("/ws/{user_id}")
async def chat_socket(
    websocket: WebSocket,
    user_id: str,
    registry: ConnectionRegistry = Depends(get_connection_registry),
):
    await websocket.accept()
    registry.register(user_id, websocket)
    try:
        while True:
            # Inbound frames are keep-alives; messages are sent over HTTP.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        registry.deregister(user_id, websocket)
