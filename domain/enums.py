"""Domain Enums"""
from enum import Enum


class BookingStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that still occupy the field's calendar
NON_TERMINAL_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.APPROVED})
TERMINAL_STATUSES = frozenset({
    BookingStatus.REJECTED,
    BookingStatus.CANCELLED,
    BookingStatus.COMPLETED,
})


class PaymentMethod(str, Enum):
    CASH = "cash"
    BANK_TRANSFER = "bank_transfer"
    CARD = "card"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    PARTIAL = "partial"
    REFUNDED = "refunded"


class FieldStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MAINTENANCE = "maintenance"


class FieldSurface(str, Enum):
    GRASS = "grass"
    ARTIFICIAL = "artificial"
    CONCRETE = "concrete"


class FieldSize(str, Enum):
    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class FieldSort(str, Enum):
    RATING = "rating"
    PRICE_LOW = "price-low"
    PRICE_HIGH = "price-high"
    NAME = "name"


class UploadType(str, Enum):
    PROFILE = "profile"
    DOCUMENT = "document"
    PAYMENT_PROOF = "payment_proof"
    ID_DOCUMENT = "id_document"
    LICENSE = "license"


class SlotUnavailableReason(str, Enum):
    PAST = "past"
    BOOKED = "booked"


class AvailabilityView(str, Enum):
    DETAIL = "detail"
    BOOKING = "booking"
