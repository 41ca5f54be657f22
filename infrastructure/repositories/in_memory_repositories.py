"""In-Memory Repository Implementations

Entities are copied on the way in and out so callers never hold a reference
into storage; a service that fails halfway leaves stored state untouched.
"""
import asyncio
import logging
from typing import Optional, List, Dict, Tuple
from uuid import UUID
from datetime import date, datetime

from domain.repositories import BookingRepository, FieldRepository, ReviewRepository, DocumentRepository
from domain.entities import Booking, Field, Review, PaymentDocument
from domain.enums import BookingStatus, PaymentStatus
from domain.errors import ConflictError, NotFoundError
from domain.value_objects import TimeSlot

logger = logging.getLogger(__name__)


class InMemoryBookingRepository(BookingRepository):
    """In-memory implementation of BookingRepository

    ``_active_slots`` is the storage-level constraint: per (field, date) it
    holds the slots of bookings that still occupy the calendar, and every
    write checks it under ``_lock`` before committing.
    """

    def __init__(self):
        self._storage: Dict[UUID, Booking] = {}
        self._active_slots: Dict[Tuple[UUID, date], Dict[UUID, TimeSlot]] = {}
        self._lock = asyncio.Lock()

    async def add(self, booking: Booking) -> Booking:
        """Insert booking, rejecting it if its interval is already held"""
        async with self._lock:
            if booking.booking_id in self._storage:
                raise ConflictError("Booking already exists")
            if booking.occupies_calendar():
                self._check_slot_constraint(booking)
            self._check_transaction_reference(booking)
            self._storage[booking.booking_id] = booking.model_copy(deep=True)
            self._reindex(booking)
        return booking.model_copy(deep=True)

    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID"""
        booking = self._storage.get(booking_id)
        return booking.model_copy(deep=True) if booking else None

    async def find_by_user(self, user_id: str, status: Optional[BookingStatus] = None) -> List[Booking]:
        """Find a user's bookings, newest first"""
        bookings = [
            b for b in self._storage.values()
            if b.user_id == user_id and (status is None or b.status == status)
        ]
        bookings.sort(key=lambda b: b.created_at, reverse=True)
        return [b.model_copy(deep=True) for b in bookings]

    async def find_by_field_and_date(self, field_id: UUID, on_date: date) -> List[Booking]:
        """Find every booking of a field on a date"""
        bookings = [
            b for b in self._storage.values()
            if b.field_id == field_id and b.time_slot.date == on_date
        ]
        bookings.sort(key=lambda b: b.time_slot.start_time)
        return [b.model_copy(deep=True) for b in bookings]

    async def find_active_by_field_and_date(self, field_id: UUID, on_date: date) -> List[Booking]:
        """Find bookings still occupying the field's calendar on a date"""
        held = self._active_slots.get((field_id, on_date), {})
        bookings = [self._storage[booking_id] for booking_id in held]
        bookings.sort(key=lambda b: b.time_slot.start_time)
        return [b.model_copy(deep=True) for b in bookings]

    async def find_by_transaction_reference(self, reference: str) -> Optional[Booking]:
        """Find the booking a gateway transaction was recorded on"""
        for booking in self._storage.values():
            if booking.transaction_reference == reference:
                return booking.model_copy(deep=True)
        return None

    async def find_stale_pending(self, created_before: datetime) -> List[Booking]:
        """Find unpaid pending bookings created before a cutoff"""
        return [
            b.model_copy(deep=True) for b in self._storage.values()
            if b.status == BookingStatus.PENDING
            and b.payment_status == PaymentStatus.PENDING
            and not b.has_payment_in_progress()
            and b.created_at < created_before
        ]

    async def update(self, booking: Booking, expected_version: int) -> Booking:
        """Replace booking if its stored version still matches"""
        async with self._lock:
            stored = self._storage.get(booking.booking_id)
            if stored is None:
                raise NotFoundError("Booking not found")
            if stored.version != expected_version:
                raise ConflictError("Booking was modified by another request, please retry")
            if booking.occupies_calendar():
                self._check_slot_constraint(booking)
            self._check_transaction_reference(booking)
            self._storage[booking.booking_id] = booking.model_copy(deep=True)
            self._reindex(booking)
        return booking.model_copy(deep=True)

    async def delete(self, booking_id: UUID) -> bool:
        """Delete booking"""
        async with self._lock:
            booking = self._storage.pop(booking_id, None)
            if booking is None:
                return False
            self._unindex(booking)
        return True

    def _check_slot_constraint(self, booking: Booking) -> None:
        slot = booking.time_slot
        held = self._active_slots.get((booking.field_id, slot.date), {})
        for other_id, other_slot in held.items():
            if other_id == booking.booking_id:
                continue
            if other_slot.key() == slot.key() or other_slot.overlaps(slot):
                logger.info(
                    "Slot constraint rejected booking %s on field %s %s %s-%s",
                    booking.booking_id, booking.field_id, slot.date, slot.start_time, slot.end_time,
                )
                raise ConflictError("Time slot is already booked")

    def _check_transaction_reference(self, booking: Booking) -> None:
        reference = booking.transaction_reference
        if not reference:
            return
        for other in self._storage.values():
            if other.booking_id != booking.booking_id and other.transaction_reference == reference:
                raise ConflictError("Transaction reference already used by another booking")

    def _reindex(self, booking: Booking) -> None:
        self._unindex(booking)
        if booking.occupies_calendar():
            key = (booking.field_id, booking.time_slot.date)
            self._active_slots.setdefault(key, {})[booking.booking_id] = booking.time_slot

    def _unindex(self, booking: Booking) -> None:
        for key, held in list(self._active_slots.items()):
            if held.pop(booking.booking_id, None) is not None and not held:
                del self._active_slots[key]


class InMemoryFieldRepository(FieldRepository):
    """In-memory implementation of FieldRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Field] = {}

    async def save(self, field: Field) -> Field:
        """Save field to memory"""
        self._storage[field.field_id] = field.model_copy(deep=True)
        return field.model_copy(deep=True)

    async def find_by_id(self, field_id: UUID) -> Optional[Field]:
        """Find field by ID"""
        field = self._storage.get(field_id)
        return field.model_copy(deep=True) if field else None

    async def find_all(self) -> List[Field]:
        """Find all fields"""
        return [f.model_copy(deep=True) for f in self._storage.values()]

    async def update(self, field: Field) -> Field:
        """Update field"""
        if field.field_id in self._storage:
            self._storage[field.field_id] = field.model_copy(deep=True)
            return field.model_copy(deep=True)
        raise NotFoundError("Field not found")


class InMemoryReviewRepository(ReviewRepository):
    """In-memory implementation of ReviewRepository"""

    def __init__(self):
        self._storage: Dict[UUID, Review] = {}
        self._by_booking: Dict[UUID, UUID] = {}
        self._lock = asyncio.Lock()

    async def add(self, review: Review) -> Review:
        """Save review, one per booking"""
        async with self._lock:
            if review.booking_id in self._by_booking:
                raise ConflictError("This booking has already been reviewed")
            self._storage[review.review_id] = review.model_copy(deep=True)
            self._by_booking[review.booking_id] = review.review_id
        return review.model_copy(deep=True)

    async def find_by_field(self, field_id: UUID) -> List[Review]:
        """Find reviews of a field, newest first"""
        reviews = [r for r in self._storage.values() if r.field_id == field_id]
        reviews.sort(key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in reviews]

    async def find_by_booking(self, booking_id: UUID) -> Optional[Review]:
        """Find the review left for a booking"""
        review_id = self._by_booking.get(booking_id)
        return self._storage[review_id].model_copy(deep=True) if review_id else None


class InMemoryDocumentRepository(DocumentRepository):
    """In-memory implementation of DocumentRepository"""

    def __init__(self):
        self._storage: Dict[UUID, PaymentDocument] = {}

    async def save(self, document: PaymentDocument) -> PaymentDocument:
        """Save document metadata to memory"""
        self._storage[document.document_id] = document.model_copy(deep=True)
        return document.model_copy(deep=True)

    async def get_document(self, document_id: UUID) -> Optional[PaymentDocument]:
        """Find document by ID"""
        document = self._storage.get(document_id)
        return document.model_copy(deep=True) if document else None

    async def find_by_owner(self, owner_id: str) -> List[PaymentDocument]:
        """Find a user's documents, newest first"""
        documents = [d for d in self._storage.values() if d.owner_id == owner_id]
        documents.sort(key=lambda d: d.uploaded_at, reverse=True)
        return [d.model_copy(deep=True) for d in documents]

    async def delete(self, document_id: UUID) -> bool:
        """Delete document metadata"""
        if document_id in self._storage:
            del self._storage[document_id]
            return True
        return False
