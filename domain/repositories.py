"""Domain Repository Interfaces"""
from abc import ABC, abstractmethod
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime

from domain.entities import Booking, Field, Review, PaymentDocument
from domain.enums import BookingStatus


class BookingRepository(ABC):
    """Repository interface for Booking Aggregate

    Implementations must enforce, atomically with the write, that no two
    bookings occupying the calendar (pending/approved) on the same field and
    date overlap, raising ConflictError for the losing writer.
    """

    @abstractmethod
    async def add(self, booking: Booking) -> Booking:
        """Insert a new booking, enforcing the slot constraint"""
        pass

    @abstractmethod
    async def find_by_id(self, booking_id: UUID) -> Optional[Booking]:
        """Find booking by ID"""
        pass

    @abstractmethod
    async def find_by_user(self, user_id: str, status: Optional[BookingStatus] = None) -> List[Booking]:
        """Find a user's bookings, newest first"""
        pass

    @abstractmethod
    async def find_by_field_and_date(self, field_id: UUID, on_date: date) -> List[Booking]:
        """Find every booking of a field on a date"""
        pass

    @abstractmethod
    async def find_active_by_field_and_date(self, field_id: UUID, on_date: date) -> List[Booking]:
        """Find bookings still occupying the field's calendar on a date"""
        pass

    @abstractmethod
    async def find_by_transaction_reference(self, reference: str) -> Optional[Booking]:
        """Find the booking a gateway transaction was recorded on"""
        pass

    @abstractmethod
    async def find_stale_pending(self, created_before: datetime) -> List[Booking]:
        """Find unpaid pending bookings created before a cutoff"""
        pass

    @abstractmethod
    async def update(self, booking: Booking, expected_version: int) -> Booking:
        """Replace a booking if nobody else wrote it since expected_version"""
        pass

    @abstractmethod
    async def delete(self, booking_id: UUID) -> bool:
        """Delete booking"""
        pass


class FieldRepository(ABC):
    """Repository interface for the Resource Catalog"""

    @abstractmethod
    async def save(self, field: Field) -> Field:
        """Save field"""
        pass

    @abstractmethod
    async def find_by_id(self, field_id: UUID) -> Optional[Field]:
        """Find field by ID"""
        pass

    @abstractmethod
    async def find_all(self) -> List[Field]:
        """Find all fields"""
        pass

    @abstractmethod
    async def update(self, field: Field) -> Field:
        """Update field"""
        pass


class ReviewRepository(ABC):
    """Repository interface for Review entities"""

    @abstractmethod
    async def add(self, review: Review) -> Review:
        """Insert a review; a second review for the same booking is a conflict"""
        pass

    @abstractmethod
    async def find_by_field(self, field_id: UUID) -> List[Review]:
        """Find reviews of a field, newest first"""
        pass

    @abstractmethod
    async def find_by_booking(self, booking_id: UUID) -> Optional[Review]:
        """Find the review left for a booking"""
        pass


class DocumentRepository(ABC):
    """Document Storage service: metadata of uploaded files"""

    @abstractmethod
    async def save(self, document: PaymentDocument) -> PaymentDocument:
        """Save document metadata"""
        pass

    @abstractmethod
    async def get_document(self, document_id: UUID) -> Optional[PaymentDocument]:
        """Find document by ID"""
        pass

    @abstractmethod
    async def find_by_owner(self, owner_id: str) -> List[PaymentDocument]:
        """Find a user's documents, newest first"""
        pass

    @abstractmethod
    async def delete(self, document_id: UUID) -> bool:
        """Delete document metadata"""
        pass
