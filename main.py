import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import ValidationError as PydanticValidationError

from api.schemas import (
    # Fields
    CreateFieldRequest, SetFieldStatusRequest, FieldResponse, FieldListResponse,
    LocationSchema, RatingResponse, PaginationResponse,
    # Availability
    FieldAvailabilityResponse, DayAvailabilityResponse, SlotResponse,
    FieldDayBookingsResponse, BookedSlotResponse,
    # Bookings
    CreateBookingRequest, UpdateBookingStatusRequest, BookingResponse,
    BookingListResponse, AmountResponse, PayerContactSchema,
    # Payments
    CreatePaymentIntentRequest, PaymentIntentResponse, ConfirmPaymentRequest,
    ConfirmPaymentResponse, SettlePaymentRequest, PaymentInfoResponse,
    # Documents & reviews
    RegisterDocumentRequest, DocumentResponse, CreateReviewRequest, ReviewResponse,
    # Auth
    Token, UserResponse
)

from api.dependencies import get_current_active_user, get_current_caller, fake_users_db, get_user
from infrastructure import config
from infrastructure.security import verify_password, create_access_token
from infrastructure.payment_gateway import StripePaymentGateway
from infrastructure.expiry_worker import run_expiry_worker
from infrastructure.seed import seed_demo_fields
from domain.auth import User
from domain.errors import (
    BookingError, ValidationError, NotFoundError, ConflictError, ForbiddenError,
    InvalidTransitionError, UpstreamError
)
from domain.gateways import PaymentGateway
from domain.policies import CancellationPolicy
from domain.value_objects import Caller, Location, PayerContact

from application.services import (
    FieldCatalogService, AvailabilityService, BookingService, ReviewService,
    DocumentService, BookingExpiryService, PageInfo, validation_message
)
from application.settlement import PaymentSettlementService
from infrastructure.repositories.in_memory_repositories import (
    InMemoryBookingRepository, InMemoryFieldRepository, InMemoryReviewRepository,
    InMemoryDocumentRepository
)
from domain.enums import (
    BookingStatus, PaymentMethod, PaymentStatus, FieldStatus, FieldSurface, FieldSize,
    FieldSort, AvailabilityView
)

logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

# Initialize repositories
booking_repo = InMemoryBookingRepository()
field_repo = InMemoryFieldRepository()
review_repo = InMemoryReviewRepository()
document_repo = InMemoryDocumentRepository()

cancellation_policy = CancellationPolicy(
    policy_name="Standard",
    deadline_hours=config.CANCELLATION_DEADLINE_HOURS
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    if config.SEED_DEMO_DATA:
        await seed_demo_fields(field_repo)

    stop_event = asyncio.Event()
    worker = None
    if config.PENDING_BOOKING_TTL_MINUTES > 0:
        expiry_service = BookingExpiryService(booking_repo, config.PENDING_BOOKING_TTL_MINUTES)
        worker = asyncio.create_task(
            run_expiry_worker(expiry_service, config.EXPIRY_SWEEP_INTERVAL_SECONDS, stop_event)
        )

    yield

    logger.info("Application shutting down...")
    stop_event.set()
    if worker:
        await worker


app = FastAPI(
    title="Field Booking API",
    description="Sports field reservation API with Domain-Driven Design",
    version="1.0.0",
    lifespan=lifespan
)

# Dependency injection
def get_payment_gateway() -> PaymentGateway:
    return StripePaymentGateway(
        api_key=config.STRIPE_SECRET_KEY,
        base_url=config.STRIPE_API_BASE,
        timeout=config.PAYMENT_GATEWAY_TIMEOUT_SECONDS
    )

def get_field_service() -> FieldCatalogService:
    return FieldCatalogService(field_repo)

def get_availability_service() -> AvailabilityService:
    return AvailabilityService(
        field_repo,
        booking_repo,
        tz=config.VENUE_TZ,
        grid_start_hour=config.SLOT_GRID_START_HOUR,
        grid_end_hour=config.SLOT_GRID_END_HOUR,
        default_days=config.AVAILABILITY_DEFAULT_DAYS,
        booking_days=config.AVAILABILITY_BOOKING_DAYS,
        max_days=config.AVAILABILITY_MAX_DAYS
    )

def get_booking_service() -> BookingService:
    return BookingService(
        booking_repo,
        field_repo,
        tz=config.VENUE_TZ,
        deposit_rate=config.BANK_TRANSFER_DEPOSIT_RATE,
        cancellation_policy=cancellation_policy
    )

def get_settlement_service(gateway: PaymentGateway = Depends(get_payment_gateway)) -> PaymentSettlementService:
    return PaymentSettlementService(booking_repo, document_repo, gateway, currency=config.PAYMENT_CURRENCY)

def get_review_service() -> ReviewService:
    return ReviewService(review_repo, booking_repo, field_repo)

def get_document_service() -> DocumentService:
    return DocumentService(document_repo, booking_repo)


# ============================================================================
# ERROR MAPPING
# ============================================================================

def status_code_for(error: BookingError) -> int:
    """HTTP status for a core error"""
    if isinstance(error, (ValidationError, InvalidTransitionError)):
        return 400
    if isinstance(error, ForbiddenError):
        return 403
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, ConflictError):
        return 409
    if isinstance(error, UpstreamError):
        return 503
    return 500

@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


# ============================================================================
# HEALTH & ENUM REFERENCE ENDPOINTS
# ============================================================================

ENUM_REFERENCE = {
    "booking-status": BookingStatus,
    "payment-method": PaymentMethod,
    "payment-status": PaymentStatus,
    "field-status": FieldStatus,
    "field-surface": FieldSurface,
    "field-size": FieldSize,
    "field-sort": FieldSort,
}

@app.get("/api/health", tags=["Health"])
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "message": "API is running"}

@app.get("/api/enums/{name}", tags=["Enum Reference"])
async def get_enum_values(name: str):
    """Get the values of a public enum"""
    enum_cls = ENUM_REFERENCE.get(name)
    if not enum_cls:
        raise HTTPException(status_code=404, detail=f"Unknown enum: {name}")
    return {"name": name, "values": [item.value for item in enum_cls]}

# ============================================================================
# AUTH ENDPOINTS
# ============================================================================

@app.post("/token", response_model=Token, tags=["Auth"])
async def login_for_access_token(form_data: OAuth2PasswordRequestForm = Depends()):
    user = get_user(fake_users_db, form_data.username)
    if not user or not verify_password(form_data.password, user.hashed_password):
        raise HTTPException(
            status_code=401,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    access_token_expires = timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES)
    access_token = create_access_token(
        subject=user.username, roles=user.roles, expires_delta=access_token_expires
    )
    return {"access_token": access_token, "token_type": "bearer"}

@app.get("/users/me", response_model=UserResponse, tags=["Auth"])
async def read_users_me(current_user: User = Depends(get_current_active_user)):
    return UserResponse(
        username=current_user.username,
        email=current_user.email,
        full_name=current_user.full_name,
        roles=current_user.roles,
        is_admin=current_user.is_admin,
        disabled=current_user.disabled
    )

# ============================================================================
# FIELD ENDPOINTS
# ============================================================================

@app.get("/api/fields", response_model=FieldListResponse, tags=["Fields"])
async def list_fields(
    search: Optional[str] = None,
    surface: Optional[FieldSurface] = None,
    size: Optional[FieldSize] = None,
    lighting: Optional[bool] = None,
    min_price: Optional[Decimal] = Query(None, ge=0),
    max_price: Optional[Decimal] = Query(None, ge=0),
    sort_by: FieldSort = FieldSort.RATING,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: FieldCatalogService = Depends(get_field_service)
):
    """List active fields"""
    fields, page_info = await service.list_fields(
        search=search,
        surface=surface,
        size=size,
        lighting=lighting,
        min_price=min_price,
        max_price=max_price,
        sort_by=sort_by,
        page=page,
        limit=limit
    )
    return FieldListResponse(
        fields=[_field_to_response(f) for f in fields],
        pagination=_page_to_response(page_info)
    )

@app.post("/api/fields", response_model=FieldResponse, status_code=201, tags=["Fields"])
async def create_field(
    request: CreateFieldRequest,
    service: FieldCatalogService = Depends(get_field_service),
    caller: Caller = Depends(get_current_caller)
):
    """Create a field (admin)"""
    field = await service.create_field(
        caller,
        name=request.name,
        description=request.description,
        location=Location(**request.location.model_dump()),
        price_per_hour=request.price_per_hour,
        size=request.size,
        surface=request.surface,
        lighting=request.lighting,
        amenities=request.amenities,
        photos=request.photos,
        status=request.status
    )
    return _field_to_response(field)

@app.get("/api/fields/{field_id}", response_model=FieldResponse, tags=["Fields"])
async def get_field(
    field_id: UUID,
    service: FieldCatalogService = Depends(get_field_service)
):
    """Get field by ID"""
    return _field_to_response(await service.get_field(field_id))

@app.put("/api/fields/{field_id}/status", response_model=FieldResponse, tags=["Fields"])
async def set_field_status(
    field_id: UUID,
    request: SetFieldStatusRequest,
    service: FieldCatalogService = Depends(get_field_service),
    caller: Caller = Depends(get_current_caller)
):
    """Activate, deactivate or mark a field under maintenance (admin)"""
    field = await service.set_field_status(caller, field_id, request.status)
    return _field_to_response(field)

@app.get("/api/fields/{field_id}/availability", response_model=FieldAvailabilityResponse, tags=["Availability"])
async def get_field_availability(
    field_id: UUID,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    view: AvailabilityView = AvailabilityView.DETAIL,
    service: AvailabilityService = Depends(get_availability_service),
    field_service: FieldCatalogService = Depends(get_field_service)
):
    """Slot grid per date; booked and past slots are marked unavailable"""
    days = await service.get_availability(field_id, start_date, end_date, view)
    field = await field_service.get_field(field_id)
    return FieldAvailabilityResponse(
        field_id=field.field_id,
        field_name=field.name,
        price_per_hour=field.price_per_hour,
        availability=[
            DayAvailabilityResponse(
                date=day.date,
                day=day.day,
                slots=[SlotResponse(**slot.model_dump()) for slot in day.slots],
                available_count=day.available_count()
            )
            for day in days
        ]
    )

@app.get("/api/fields/{field_id}/bookings", response_model=FieldDayBookingsResponse, tags=["Availability"])
async def get_field_bookings_for_date(
    field_id: UUID,
    date: date,
    service: BookingService = Depends(get_booking_service)
):
    """Taken intervals of a field on a date"""
    bookings = await service.list_bookings_for_field_and_date(field_id, date)
    return FieldDayBookingsResponse(
        field_id=field_id,
        date=date,
        bookings=[
            BookedSlotResponse(
                start_time=b.time_slot.start_time,
                end_time=b.time_slot.end_time,
                status=b.status.value
            )
            for b in bookings
        ]
    )

# ============================================================================
# REVIEW ENDPOINTS
# ============================================================================

@app.get("/api/fields/{field_id}/reviews", response_model=List[ReviewResponse], tags=["Reviews"])
async def list_field_reviews(
    field_id: UUID,
    service: ReviewService = Depends(get_review_service)
):
    """Reviews of a field, newest first"""
    return [_review_to_response(r) for r in await service.list_reviews(field_id)]

@app.post("/api/fields/{field_id}/reviews", response_model=ReviewResponse, status_code=201, tags=["Reviews"])
async def create_field_review(
    field_id: UUID,
    request: CreateReviewRequest,
    service: ReviewService = Depends(get_review_service),
    current_user: User = Depends(get_current_active_user)
):
    """Review a completed booking"""
    review = await service.submit_review(
        current_user.as_caller(),
        field_id=field_id,
        booking_id=request.booking_id,
        rating=request.rating,
        comment=request.comment,
        user_name=current_user.full_name or current_user.username
    )
    return _review_to_response(review)

# ============================================================================
# BOOKING ENDPOINTS
# ============================================================================

@app.post("/api/bookings", response_model=BookingResponse, status_code=201, tags=["Bookings"])
async def create_booking(
    request: CreateBookingRequest,
    service: BookingService = Depends(get_booking_service),
    caller: Caller = Depends(get_current_caller)
):
    """Create a pending booking"""
    payer = None
    if request.payer:
        try:
            payer = PayerContact(**request.payer.model_dump())
        except PydanticValidationError as e:
            raise ValidationError(validation_message(e))

    booking = await service.create_reservation(
        caller,
        field_id=request.field_id,
        booking_date=request.date,
        start_time=request.start_time,
        end_time=request.end_time,
        payer=payer,
        payment_method=request.payment_method,
        notes=request.notes
    )
    return _booking_to_response(booking)

@app.get("/api/bookings", response_model=BookingListResponse, tags=["Bookings"])
async def list_my_bookings(
    status: Optional[BookingStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    service: BookingService = Depends(get_booking_service),
    caller: Caller = Depends(get_current_caller)
):
    """Caller's bookings, newest first"""
    bookings, page_info = await service.list_bookings(caller, status, page, limit)
    return BookingListResponse(
        bookings=[_booking_to_response(b) for b in bookings],
        pagination=_page_to_response(page_info)
    )

@app.get("/api/bookings/{booking_id}", response_model=BookingResponse, tags=["Bookings"])
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    caller: Caller = Depends(get_current_caller)
):
    """Get booking by ID"""
    return _booking_to_response(await service.get_booking(caller, booking_id))

@app.put("/api/bookings/{booking_id}", response_model=BookingResponse, tags=["Bookings"])
async def update_booking_status(
    booking_id: UUID,
    request: UpdateBookingStatusRequest,
    service: BookingService = Depends(get_booking_service),
    caller: Caller = Depends(get_current_caller)
):
    """Change booking status (owners may only cancel)"""
    booking = await service.update_status(caller, booking_id, request.status)
    return _booking_to_response(booking)

@app.delete("/api/bookings/{booking_id}", tags=["Bookings"])
async def delete_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    caller: Caller = Depends(get_current_caller)
):
    """Delete a pending booking"""
    await service.delete_reservation(caller, booking_id)
    return {"message": "Booking deleted successfully"}

# ============================================================================
# PAYMENT ENDPOINTS
# ============================================================================

@app.post("/api/payments/intent", response_model=PaymentIntentResponse, tags=["Payments"])
async def create_payment_intent(
    request: CreatePaymentIntentRequest,
    service: PaymentSettlementService = Depends(get_settlement_service),
    caller: Caller = Depends(get_current_caller)
):
    """Open a card payment for a pending booking"""
    intent = await service.create_payment_intent(caller, request.booking_id)
    return PaymentIntentResponse(
        intent_id=intent.intent_id,
        client_secret=intent.client_secret,
        amount=intent.amount,
        currency=intent.currency,
        status=intent.status
    )

@app.post("/api/payments/confirm", response_model=ConfirmPaymentResponse, tags=["Payments"])
async def confirm_payment(
    request: ConfirmPaymentRequest,
    service: PaymentSettlementService = Depends(get_settlement_service),
    caller: Caller = Depends(get_current_caller)
):
    """Record cash, bank transfer or card payment for a pending booking"""
    result = await service.confirm_payment(
        caller,
        booking_id=request.booking_id,
        payment_method=request.payment_method,
        amount=request.amount,
        payment_proof_id=request.payment_proof_id,
        transaction_reference=request.transaction_reference,
        notes=request.notes
    )
    return ConfirmPaymentResponse(
        booking=_booking_to_response(result.booking),
        already_processed=result.already_processed,
        message=result.message
    )

@app.get("/api/payments/{booking_id}", response_model=PaymentInfoResponse, tags=["Payments"])
async def get_payment_info(
    booking_id: UUID,
    service: PaymentSettlementService = Depends(get_settlement_service),
    caller: Caller = Depends(get_current_caller)
):
    """Payment state of a booking with its proof document"""
    info = await service.get_payment_info(caller, booking_id)
    booking = info.booking
    return PaymentInfoResponse(
        booking_id=booking.booking_id,
        payment_method=booking.payment_method.value,
        payment_status=booking.payment_status,
        amount=_amount_to_response(booking.amount),
        payment_intent_id=booking.payment_intent_id,
        transaction_reference=booking.transaction_reference,
        refund_due=booking.refund_due,
        proof_document=_document_to_response(info.proof_document) if info.proof_document else None
    )

@app.post("/api/payments/{booking_id}/settle", response_model=BookingResponse, tags=["Payments"])
async def settle_payment(
    booking_id: UUID,
    request: SettlePaymentRequest,
    service: PaymentSettlementService = Depends(get_settlement_service),
    caller: Caller = Depends(get_current_caller)
):
    """Record that a cash or bank transfer payment arrived (admin)"""
    booking = await service.record_manual_payment(caller, booking_id, request.deposit_only)
    return _booking_to_response(booking)

@app.post("/api/payments/{booking_id}/refund", response_model=BookingResponse, tags=["Payments"])
async def record_refund(
    booking_id: UUID,
    service: PaymentSettlementService = Depends(get_settlement_service),
    caller: Caller = Depends(get_current_caller)
):
    """Record that an owed refund was paid out (admin)"""
    booking = await service.record_refund(caller, booking_id)
    return _booking_to_response(booking)

# ============================================================================
# DOCUMENT ENDPOINTS
# ============================================================================

@app.post("/api/documents", response_model=DocumentResponse, status_code=201, tags=["Documents"])
async def register_document(
    request: RegisterDocumentRequest,
    service: DocumentService = Depends(get_document_service),
    caller: Caller = Depends(get_current_caller)
):
    """Register payment proof metadata for a booking"""
    document = await service.register_payment_proof(
        caller,
        booking_id=request.booking_id,
        file_name=request.file_name,
        file_type=request.file_type,
        file_size=request.file_size,
        description=request.description
    )
    return _document_to_response(document)

@app.get("/api/documents", response_model=List[DocumentResponse], tags=["Documents"])
async def list_documents(
    service: DocumentService = Depends(get_document_service),
    caller: Caller = Depends(get_current_caller)
):
    """Caller's documents, newest first"""
    return [_document_to_response(d) for d in await service.list_documents(caller)]

@app.delete("/api/documents/{document_id}", tags=["Documents"])
async def delete_document(
    document_id: UUID,
    service: DocumentService = Depends(get_document_service),
    caller: Caller = Depends(get_current_caller)
):
    """Delete one of the caller's documents"""
    await service.delete_document(caller, document_id)
    return {"message": "Document deleted successfully"}

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def _page_to_response(page_info: PageInfo) -> PaginationResponse:
    return PaginationResponse(**page_info.model_dump())

def _field_to_response(field) -> FieldResponse:
    """Convert Field entity to FieldResponse"""
    return FieldResponse(
        field_id=field.field_id,
        name=field.name,
        description=field.description,
        location=LocationSchema(
            address=field.location.address,
            lat=field.location.lat,
            lng=field.location.lng
        ),
        price_per_hour=field.price_per_hour,
        photos=field.photos,
        amenities=field.amenities,
        lighting=field.lighting,
        size=field.size.value,
        surface=field.surface.value,
        rating=RatingResponse(average=field.rating.average, count=field.rating.count),
        owner_id=field.owner_id,
        status=field.status.value,
        created_at=field.created_at,
        updated_at=field.updated_at
    )

def _amount_to_response(amount) -> AmountResponse:
    return AmountResponse(total=amount.total, deposit=amount.deposit, remaining=amount.remaining)

def _booking_to_response(booking) -> BookingResponse:
    """Convert Booking entity to BookingResponse"""
    return BookingResponse(
        booking_id=booking.booking_id,
        field_id=booking.field_id,
        user_id=booking.user_id,
        date=booking.time_slot.date,
        start_time=booking.time_slot.start_time,
        end_time=booking.time_slot.end_time,
        amount=_amount_to_response(booking.amount),
        payer=PayerContactSchema(
            name=booking.payer.name,
            email=booking.payer.email,
            phone=booking.payer.phone
        ) if booking.payer else None,
        status=booking.status.value,
        payment_method=booking.payment_method.value,
        payment_status=booking.payment_status.value,
        payment_proof_id=booking.payment_proof_id,
        payment_intent_id=booking.payment_intent_id,
        transaction_reference=booking.transaction_reference,
        refund_due=booking.refund_due,
        notes=booking.notes,
        admin_notes=booking.admin_notes,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
        version=booking.version
    )

def _document_to_response(document) -> DocumentResponse:
    """Convert PaymentDocument entity to DocumentResponse"""
    return DocumentResponse(
        document_id=document.document_id,
        owner_id=document.owner_id,
        booking_id=document.booking_id,
        upload_type=document.upload_type.value,
        file_name=document.file_name,
        file_type=document.file_type,
        file_size=document.file_size,
        description=document.description,
        verified=document.verified,
        uploaded_at=document.uploaded_at
    )

def _review_to_response(review) -> ReviewResponse:
    """Convert Review entity to ReviewResponse"""
    return ReviewResponse(
        review_id=review.review_id,
        field_id=review.field_id,
        booking_id=review.booking_id,
        user_name=review.user_name,
        rating=review.rating,
        comment=review.comment,
        created_at=review.created_at
    )

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
