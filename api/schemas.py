"""API Schemas - Request and Response DTOs"""
from pydantic import BaseModel, Field, EmailStr
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID
from typing import List, Optional

from domain.enums import (
    BookingStatus, PaymentMethod, PaymentStatus, FieldStatus, FieldSurface,
    FieldSize, SlotUnavailableReason
)


# ============================================================================
# FIELD SCHEMAS
# ============================================================================

class LocationSchema(BaseModel):
    """Field location DTO"""
    address: str
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)


class CreateFieldRequest(BaseModel):
    """Create field request DTO"""
    name: str = Field(min_length=1)
    description: str = ""
    location: LocationSchema
    price_per_hour: Decimal = Field(ge=0)
    size: FieldSize
    surface: FieldSurface
    lighting: bool = False
    amenities: List[str] = []
    photos: List[str] = []
    status: FieldStatus = FieldStatus.ACTIVE


class SetFieldStatusRequest(BaseModel):
    """Change field status request DTO"""
    status: FieldStatus


class RatingResponse(BaseModel):
    average: float
    count: int


class FieldResponse(BaseModel):
    """Field response DTO"""
    field_id: UUID
    name: str
    description: str
    location: LocationSchema
    price_per_hour: Decimal
    photos: List[str]
    amenities: List[str]
    lighting: bool
    size: str
    surface: str
    rating: RatingResponse
    owner_id: str
    status: str
    created_at: datetime
    updated_at: datetime


class PaginationResponse(BaseModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


class FieldListResponse(BaseModel):
    fields: List[FieldResponse]
    pagination: PaginationResponse


# ============================================================================
# AVAILABILITY SCHEMAS
# ============================================================================

class SlotResponse(BaseModel):
    """Availability grid slot DTO"""
    start_time: str
    end_time: str
    available: bool
    price: Decimal
    reason: Optional[SlotUnavailableReason] = None


class DayAvailabilityResponse(BaseModel):
    """Availability of one date DTO"""
    date: date
    day: str
    slots: List[SlotResponse]
    available_count: int


class FieldAvailabilityResponse(BaseModel):
    field_id: UUID
    field_name: str
    price_per_hour: Decimal
    availability: List[DayAvailabilityResponse]


class BookedSlotResponse(BaseModel):
    """Slot taken on a field's calendar (no owner details)"""
    start_time: str
    end_time: str
    status: str


class FieldDayBookingsResponse(BaseModel):
    field_id: UUID
    date: date
    bookings: List[BookedSlotResponse]


# ============================================================================
# BOOKING SCHEMAS
# ============================================================================

class PayerContactSchema(BaseModel):
    """Person who will play and pay"""
    name: str = Field(min_length=2)
    email: EmailStr
    phone: str


class CreateBookingRequest(BaseModel):
    """Create booking request DTO"""
    field_id: UUID
    date: date
    start_time: str
    end_time: str
    payment_method: PaymentMethod
    payer: Optional[PayerContactSchema] = None
    notes: Optional[str] = Field(None, max_length=500)


class UpdateBookingStatusRequest(BaseModel):
    """Booking status change request DTO"""
    status: BookingStatus


class AmountResponse(BaseModel):
    total: Decimal
    deposit: Optional[Decimal] = None
    remaining: Optional[Decimal] = None


class BookingResponse(BaseModel):
    """Booking response DTO"""
    booking_id: UUID
    field_id: UUID
    user_id: str
    date: date
    start_time: str
    end_time: str
    amount: AmountResponse
    payer: Optional[PayerContactSchema] = None
    status: str
    payment_method: str
    payment_status: str
    payment_proof_id: Optional[UUID] = None
    payment_intent_id: Optional[str] = None
    transaction_reference: Optional[str] = None
    refund_due: bool
    notes: str
    admin_notes: str
    created_at: datetime
    updated_at: datetime
    version: int


class BookingListResponse(BaseModel):
    bookings: List[BookingResponse]
    pagination: PaginationResponse


# ============================================================================
# PAYMENT SCHEMAS
# ============================================================================

class CreatePaymentIntentRequest(BaseModel):
    booking_id: UUID


class PaymentIntentResponse(BaseModel):
    """Card payment intent DTO"""
    intent_id: str
    client_secret: Optional[str] = None
    amount: int
    currency: str
    status: str


class ConfirmPaymentRequest(BaseModel):
    """Payment confirmation request DTO"""
    booking_id: UUID
    payment_method: PaymentMethod
    amount: Decimal = Field(ge=0)
    payment_proof_id: Optional[UUID] = None
    transaction_reference: Optional[str] = None
    notes: Optional[str] = Field(None, max_length=500)


class ConfirmPaymentResponse(BaseModel):
    booking: BookingResponse
    already_processed: bool
    message: str


class SettlePaymentRequest(BaseModel):
    """Admin manual settlement request DTO"""
    deposit_only: bool = False


class DocumentResponse(BaseModel):
    """Uploaded document metadata DTO"""
    document_id: UUID
    owner_id: str
    booking_id: Optional[UUID] = None
    upload_type: str
    file_name: str
    file_type: str
    file_size: int
    description: Optional[str] = None
    verified: bool
    uploaded_at: datetime


class PaymentInfoResponse(BaseModel):
    booking_id: UUID
    payment_method: str
    payment_status: PaymentStatus
    amount: AmountResponse
    payment_intent_id: Optional[str] = None
    transaction_reference: Optional[str] = None
    refund_due: bool
    proof_document: Optional[DocumentResponse] = None


class RegisterDocumentRequest(BaseModel):
    """Payment proof registration request DTO"""
    booking_id: UUID
    file_name: str = Field(min_length=1)
    file_type: str
    file_size: int = Field(ge=0)
    description: Optional[str] = None


# ============================================================================
# REVIEW SCHEMAS
# ============================================================================

class CreateReviewRequest(BaseModel):
    booking_id: UUID
    rating: int
    comment: str


class ReviewResponse(BaseModel):
    review_id: UUID
    field_id: UUID
    booking_id: UUID
    user_name: str
    rating: int
    comment: str
    created_at: datetime


# ============================================================================
# AUTH SCHEMAS
# ============================================================================

class Token(BaseModel):
    """Token response DTO"""
    access_token: str
    token_type: str

class TokenData(BaseModel):
    """Token payload DTO"""
    username: Optional[str] = None
    roles: List[str] = []

class UserResponse(BaseModel):
    """User response DTO"""
    username: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    roles: List[str]
    is_admin: bool
    disabled: bool
