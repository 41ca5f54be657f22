"""Domain Entities - Aggregates"""
from pydantic import BaseModel, Field as ModelField
from uuid import UUID, uuid4
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import Optional, List

from domain.enums import (
    BookingStatus, PaymentMethod, PaymentStatus, FieldStatus, FieldSurface,
    FieldSize, UploadType, NON_TERMINAL_STATUSES
)
from domain.errors import InvalidTransitionError, ValidationError
from domain.policies import CancellationPolicy
from domain.value_objects import (
    TimeSlot, Amount, PayerContact, Location, Rating
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


# Which status changes an owner may request vs. an administrative principal.
# Card capture (pending -> approved) goes through settlement, not this table.
OWNER_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CANCELLED},
    BookingStatus.APPROVED: {BookingStatus.CANCELLED},
}

ADMIN_TRANSITIONS = {
    BookingStatus.PENDING: {
        BookingStatus.APPROVED,
        BookingStatus.REJECTED,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    },
    BookingStatus.APPROVED: {
        BookingStatus.REJECTED,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    },
}


class Field(BaseModel):
    """Field Aggregate - the bookable physical resource"""

    # Identity
    field_id: UUID = ModelField(default_factory=uuid4)

    # Catalog details
    name: str = ModelField(min_length=1)
    description: str = ""
    location: Location
    price_per_hour: Decimal = ModelField(ge=0)
    photos: List[str] = []
    amenities: List[str] = []
    lighting: bool = False
    size: FieldSize
    surface: FieldSurface

    # Aggregates and ownership
    rating: Rating = ModelField(default_factory=Rating)
    owner_id: str
    status: FieldStatus = FieldStatus.ACTIVE

    # Metadata
    created_at: datetime = ModelField(default_factory=_now)
    updated_at: datetime = ModelField(default_factory=_now)

    class Config:
        from_attributes = True

    def is_bookable(self) -> bool:
        return self.status == FieldStatus.ACTIVE

    def change_status(self, status: FieldStatus) -> None:
        self.status = status
        self.updated_at = _now()

    def update_rating(self, rating: Rating) -> None:
        self.rating = rating
        self.updated_at = _now()

    def matches_search(self, text: str) -> bool:
        needle = text.lower()
        return (
            needle in self.name.lower()
            or needle in self.description.lower()
            or needle in self.location.address.lower()
        )


class Booking(BaseModel):
    """Booking Aggregate Root Entity"""

    # Identity
    booking_id: UUID = ModelField(default_factory=uuid4)

    # References
    field_id: UUID
    user_id: str

    # Value Objects
    time_slot: TimeSlot
    amount: Amount
    payer: Optional[PayerContact] = None

    # Status
    status: BookingStatus = BookingStatus.PENDING
    payment_method: PaymentMethod
    payment_status: PaymentStatus = PaymentStatus.PENDING

    # Payment references
    payment_proof_id: Optional[UUID] = None
    payment_intent_id: Optional[str] = None
    transaction_reference: Optional[str] = None
    refund_due: bool = False

    # Notes
    notes: str = ""
    admin_notes: str = ""

    # Metadata
    created_at: datetime = ModelField(default_factory=_now)
    updated_at: datetime = ModelField(default_factory=_now)
    version: int = 1

    class Config:
        from_attributes = True

    # ==================== FACTORY METHOD ====================
    @staticmethod
    def create(
        field_id: UUID,
        user_id: str,
        time_slot: TimeSlot,
        amount: Amount,
        payment_method: PaymentMethod,
        payer: Optional[PayerContact] = None,
        notes: Optional[str] = None
    ) -> "Booking":
        """New bookings always start pending with nothing paid"""
        return Booking(
            field_id=field_id,
            user_id=user_id,
            time_slot=time_slot,
            amount=amount,
            payment_method=payment_method,
            payer=payer,
            notes=notes or "",
            admin_notes=payer.summary() if payer else "",
            status=BookingStatus.PENDING,
            payment_status=PaymentStatus.PENDING,
        )

    # ==================== QUERY METHODS ====================
    def occupies_calendar(self) -> bool:
        return self.status in NON_TERMINAL_STATUSES

    def is_owned_by(self, identity: str) -> bool:
        return self.user_id == identity

    def has_payment_in_progress(self) -> bool:
        """A card intent was opened or a transfer proof was submitted"""
        return self.payment_intent_id is not None or self.payment_proof_id is not None

    def starts_at(self, tz: tzinfo = timezone.utc) -> datetime:
        return self.time_slot.starts_at(tz)

    def can_transition(self, new_status: BookingStatus, by_admin: bool = False) -> bool:
        table = ADMIN_TRANSITIONS if by_admin else OWNER_TRANSITIONS
        return new_status in table.get(self.status, set())

    # ==================== STATE TRANSITION METHODS ====================
    def transition_to(self, new_status: BookingStatus, by_admin: bool = False) -> None:
        """Apply a status change permitted by the transition table"""
        if not self.can_transition(new_status, by_admin):
            raise InvalidTransitionError(
                f"Cannot change booking status from {self.status.value} to {new_status.value}"
            )
        self.status = new_status
        self._touch()

    def cancel(
        self,
        policy: CancellationPolicy,
        now: datetime,
        tz: tzinfo = timezone.utc,
        by_admin: bool = False
    ) -> None:
        """Cancel, enforcing the deadline for owners and recording any refund owed"""
        if not self.can_transition(BookingStatus.CANCELLED, by_admin):
            raise InvalidTransitionError(
                f"Cannot cancel booking with status {self.status.value}"
            )
        if not by_admin:
            policy.ensure_cancellable(self.starts_at(tz), now)

        self.refund_due = policy.refund_eligible(self.payment_status)
        self.status = BookingStatus.CANCELLED
        if self.refund_due:
            self.append_note("Cancelled within policy. Refund due.")
        self._touch()

    def expire(self) -> None:
        """Release an abandoned unpaid booking's interval"""
        if self.status != BookingStatus.PENDING or self.payment_status != PaymentStatus.PENDING:
            raise InvalidTransitionError("Only unpaid pending bookings can expire")
        if self.has_payment_in_progress():
            raise InvalidTransitionError("Booking has a payment in progress")
        self.status = BookingStatus.CANCELLED
        self.admin_notes = self._join(self.admin_notes, "Expired: no payment received in time.")
        self._touch()

    # ==================== PAYMENT METHODS ====================
    def ensure_payable(self) -> None:
        if self.status != BookingStatus.PENDING:
            raise InvalidTransitionError("Booking must be pending to process payment")

    def record_cash_selection(self, customer_notes: Optional[str] = None) -> None:
        """Cash is collected at the venue; nothing changes until an admin acts"""
        self.ensure_payable()
        self.payment_status = PaymentStatus.PENDING
        self.append_note("Cash payment selected. Payment will be collected at venue.")
        self._add_customer_notes(customer_notes)
        self._touch()

    def record_bank_transfer_proof(
        self,
        document_id: UUID,
        file_name: str,
        customer_notes: Optional[str] = None
    ) -> None:
        """Proof is attached; payment stays pending until manually verified"""
        self.ensure_payable()
        self.payment_proof_id = document_id
        self.payment_status = PaymentStatus.PENDING
        self.append_note(f"Bank transfer proof uploaded: {file_name}")
        self._add_customer_notes(customer_notes)
        self._touch()

    def attach_payment_intent(self, intent_id: str) -> None:
        self.ensure_payable()
        if self.payment_status != PaymentStatus.PENDING:
            raise InvalidTransitionError("Booking is not available for payment")
        self.payment_intent_id = intent_id
        self._touch()

    def record_card_capture(self, transaction_reference: str, customer_notes: Optional[str] = None) -> None:
        """Gateway-verified capture approves the booking without manual review"""
        self.ensure_payable()
        self.transaction_reference = transaction_reference
        self.payment_status = PaymentStatus.PAID
        self.status = BookingStatus.APPROVED
        self.append_note(f"Card payment processed. Transaction ID: {transaction_reference}")
        self._add_customer_notes(customer_notes)
        self._touch()

    def is_card_capture_recorded(self, transaction_reference: str) -> bool:
        return (
            self.transaction_reference == transaction_reference
            and self.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED)
        )

    def record_manual_payment(self, deposit_only: bool = False) -> None:
        """Admin confirms cash or transfer money actually arrived"""
        if self.payment_method == PaymentMethod.CARD:
            raise InvalidTransitionError("Card payments are settled by the gateway")
        if not self.occupies_calendar():
            raise InvalidTransitionError(
                f"Cannot record payment for booking with status {self.status.value}"
            )
        if self.payment_status not in (PaymentStatus.PENDING, PaymentStatus.PARTIAL):
            raise InvalidTransitionError(
                f"Cannot record payment with payment status {self.payment_status.value}"
            )
        if deposit_only:
            if self.amount.deposit is None:
                raise ValidationError("Booking has no deposit to record")
            if self.payment_status == PaymentStatus.PARTIAL:
                raise InvalidTransitionError("Deposit already recorded")
            self.payment_status = PaymentStatus.PARTIAL
            self.admin_notes = self._join(self.admin_notes, f"Deposit received: {self.amount.deposit}")
        else:
            self.payment_status = PaymentStatus.PAID
            self.admin_notes = self._join(self.admin_notes, f"Payment received: {self.amount.total}")
        self._touch()

    def mark_refunded(self) -> None:
        if self.status != BookingStatus.CANCELLED or not self.refund_due:
            raise InvalidTransitionError("Booking has no outstanding refund")
        self.payment_status = PaymentStatus.REFUNDED
        self.refund_due = False
        self.admin_notes = self._join(self.admin_notes, "Refund recorded.")
        self._touch()

    # ==================== HELPERS ====================
    def append_note(self, text: str) -> None:
        self.notes = self._join(self.notes, text)

    def _add_customer_notes(self, customer_notes: Optional[str]) -> None:
        if customer_notes:
            self.append_note(f"Customer notes: {customer_notes}")

    @staticmethod
    def _join(existing: str, text: str) -> str:
        return f"{existing}\n{text}" if existing else text

    def _touch(self) -> None:
        self.updated_at = _now()
        self.version += 1


class Review(BaseModel):
    """Review Entity - one per completed booking"""
    review_id: UUID = ModelField(default_factory=uuid4)
    field_id: UUID
    booking_id: UUID
    user_id: str
    user_name: str = "Anonymous"
    rating: int = ModelField(ge=1, le=5)
    comment: str
    created_at: datetime = ModelField(default_factory=_now)

    class Config:
        from_attributes = True

    @staticmethod
    def create(
        booking: Booking,
        rating: int,
        comment: str,
        user_name: Optional[str] = None
    ) -> "Review":
        if rating < 1 or rating > 5:
            raise ValidationError("Rating must be between 1 and 5")
        comment = (comment or "").strip()
        if len(comment) < 10:
            raise ValidationError("Comment must be at least 10 characters")
        return Review(
            field_id=booking.field_id,
            booking_id=booking.booking_id,
            user_id=booking.user_id,
            user_name=user_name or "Anonymous",
            rating=rating,
            comment=comment,
        )


class PaymentDocument(BaseModel):
    """Uploaded document metadata (storage itself lives elsewhere)"""
    document_id: UUID = ModelField(default_factory=uuid4)
    owner_id: str
    booking_id: Optional[UUID] = None
    upload_type: UploadType = UploadType.PAYMENT_PROOF
    file_name: str = ModelField(min_length=1)
    file_type: str
    file_size: int = ModelField(ge=0)
    description: Optional[str] = None
    verified: bool = False
    uploaded_at: datetime = ModelField(default_factory=_now)

    class Config:
        from_attributes = True

    def is_payment_proof_for(self, booking_id: UUID) -> bool:
        return self.upload_type == UploadType.PAYMENT_PROOF and self.booking_id == booking_id
