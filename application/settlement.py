"""Payment Settlement - records how a pending booking is being paid"""
import logging
from uuid import UUID
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from pydantic import BaseModel

from application.services import ensure_owner_or_admin, parse_enum
from domain.repositories import BookingRepository, DocumentRepository
from domain.gateways import PaymentGateway
from domain.entities import Booking, PaymentDocument
from domain.enums import BookingStatus, PaymentMethod, PaymentStatus
from domain.errors import (
    ValidationError, PaymentVerificationError, NotFoundError, ConflictError,
    ForbiddenError, InvalidTransitionError
)
from domain.value_objects import Caller, PaymentIntent, to_minor_units

logger = logging.getLogger(__name__)

CARD_CONFIRMED_MESSAGE = "Payment processed successfully. Your booking is confirmed!"
PENDING_APPROVAL_MESSAGE = "Payment submitted successfully. Your booking is pending admin approval."
ALREADY_PROCESSED_MESSAGE = "Payment was already processed for this booking."


class SettlementResult(BaseModel):
    booking: Booking
    already_processed: bool = False
    message: str


class PaymentInfo(BaseModel):
    booking: Booking
    proof_document: Optional[PaymentDocument] = None


class PaymentSettlementService:
    """Cash, bank transfer and card settlement of pending bookings

    Card payments are re-verified against the gateway before the booking is
    approved; a replayed confirmation of the same transaction is reported as
    already processed instead of being applied twice.
    """

    def __init__(
        self,
        repository: BookingRepository,
        document_repo: DocumentRepository,
        gateway: PaymentGateway,
        currency: str = "usd"
    ):
        self.repository = repository
        self.document_repo = document_repo
        self.gateway = gateway
        self.currency = currency

    async def _load(self, caller: Caller, booking_id: UUID, owner_only: bool = True) -> Booking:
        booking = await self.repository.find_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        if owner_only:
            if not caller.owns(booking.user_id):
                raise ForbiddenError("Access denied to this booking")
        else:
            ensure_owner_or_admin(caller, booking.user_id)
        return booking

    async def create_payment_intent(self, caller: Caller, booking_id: UUID) -> PaymentIntent:
        """Open a card payment with the gateway for the booking's total"""
        booking = await self._load(caller, booking_id)
        if booking.payment_method != PaymentMethod.CARD:
            raise ValidationError("Booking payment method is not card")
        if booking.status != BookingStatus.PENDING or booking.payment_status != PaymentStatus.PENDING:
            raise InvalidTransitionError("Booking is not available for payment")

        expected_version = booking.version
        # Gateway failure propagates with the booking untouched
        intent = await self.gateway.create_intent(
            booking_id=str(booking.booking_id),
            amount=to_minor_units(booking.amount.total),
            currency=self.currency,
            metadata={"field_id": str(booking.field_id), "user_id": booking.user_id},
            description=(
                f"Field booking {booking.time_slot.date} "
                f"{booking.time_slot.start_time}-{booking.time_slot.end_time}"
            ),
        )

        booking.attach_payment_intent(intent.intent_id)
        await self.repository.update(booking, expected_version)
        logger.info(f"Payment intent {intent.intent_id} created for booking {booking_id}")
        return intent

    async def confirm_payment(
        self,
        caller: Caller,
        booking_id: UUID,
        payment_method: Union[PaymentMethod, str],
        amount: Union[Decimal, str, float],
        payment_proof_id: Optional[UUID] = None,
        transaction_reference: Optional[str] = None,
        notes: Optional[str] = None
    ) -> SettlementResult:
        """Record a payment against a pending booking"""
        method = parse_enum(PaymentMethod, payment_method, "payment method")
        booking = await self._load(caller, booking_id)

        if (
            method == PaymentMethod.CARD
            and transaction_reference
            and booking.is_card_capture_recorded(transaction_reference)
        ):
            logger.info(f"Replayed card confirmation {transaction_reference} for booking {booking_id}")
            return SettlementResult(booking=booking, already_processed=True, message=ALREADY_PROCESSED_MESSAGE)

        booking.ensure_payable()
        if method != booking.payment_method:
            raise ValidationError(
                f"Payment method {method.value} does not match booking payment method "
                f"{booking.payment_method.value}"
            )
        try:
            claimed = Decimal(str(amount))
        except InvalidOperation:
            raise ValidationError("Invalid payment amount")
        if claimed != booking.amount.total:
            raise InvalidTransitionError("Payment amount does not match booking total")

        if method == PaymentMethod.CARD:
            return await self._settle_card(booking, transaction_reference, notes)

        expected_version = booking.version
        if method == PaymentMethod.BANK_TRANSFER:
            document = await self._payment_proof(caller, booking, payment_proof_id)
            booking.record_bank_transfer_proof(document.document_id, document.file_name, notes)
        else:
            booking.record_cash_selection(notes)

        updated = await self.repository.update(booking, expected_version)
        logger.info(f"{method.value} payment submitted for booking {booking_id}")
        return SettlementResult(booking=updated, message=PENDING_APPROVAL_MESSAGE)

    async def _payment_proof(
        self,
        caller: Caller,
        booking: Booking,
        payment_proof_id: Optional[UUID]
    ) -> PaymentDocument:
        if not payment_proof_id:
            raise ValidationError("Payment proof is required for bank transfer")
        document = await self.document_repo.get_document(payment_proof_id)
        if not document:
            raise NotFoundError("Payment proof not found")
        if not caller.owns(document.owner_id):
            raise ForbiddenError("Payment proof belongs to another user")
        if not document.is_payment_proof_for(booking.booking_id):
            raise ValidationError("Document is not a payment proof for this booking")
        return document

    async def _settle_card(
        self,
        booking: Booking,
        transaction_reference: Optional[str],
        notes: Optional[str]
    ) -> SettlementResult:
        if not transaction_reference:
            raise ValidationError("Transaction reference is required for card payments")

        other = await self.repository.find_by_transaction_reference(transaction_reference)
        if other and other.booking_id != booking.booking_id:
            raise ConflictError("Transaction reference already used by another booking")

        intent = await self.gateway.retrieve_intent(transaction_reference)
        if intent is None:
            raise PaymentVerificationError("Payment transaction not found at the gateway")
        if intent.status != "succeeded":
            raise PaymentVerificationError(f"Payment has not succeeded (status: {intent.status})")
        if intent.amount != to_minor_units(booking.amount.total):
            raise PaymentVerificationError("Captured amount does not match booking total")
        if intent.booking_id != str(booking.booking_id):
            raise PaymentVerificationError("Payment transaction belongs to another booking")

        expected_version = booking.version
        booking.record_card_capture(transaction_reference, notes)
        try:
            updated = await self.repository.update(booking, expected_version)
        except ConflictError:
            fresh = await self.repository.find_by_id(booking.booking_id)
            if fresh and fresh.is_card_capture_recorded(transaction_reference):
                logger.info(
                    f"Concurrent card confirmation {transaction_reference} for booking {booking.booking_id}"
                )
                return SettlementResult(booking=fresh, already_processed=True, message=ALREADY_PROCESSED_MESSAGE)
            raise

        logger.info(f"Card payment {transaction_reference} captured for booking {booking.booking_id}")
        return SettlementResult(booking=updated, message=CARD_CONFIRMED_MESSAGE)

    async def get_payment_info(self, caller: Caller, booking_id: UUID) -> PaymentInfo:
        booking = await self._load(caller, booking_id, owner_only=False)
        document = None
        if booking.payment_proof_id:
            document = await self.document_repo.get_document(booking.payment_proof_id)
        return PaymentInfo(booking=booking, proof_document=document)

    async def record_manual_payment(self, caller: Caller, booking_id: UUID, deposit_only: bool = False) -> Booking:
        """Admin confirms that cash or transferred money arrived"""
        if not caller.is_admin:
            raise ForbiddenError("Only administrators can record payments")
        booking = await self.repository.find_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        expected_version = booking.version
        booking.record_manual_payment(deposit_only)
        updated = await self.repository.update(booking, expected_version)
        logger.info(
            f"Manual payment recorded for booking {booking_id} "
            f"({updated.payment_status.value}) by {caller.identity}"
        )
        return updated

    async def record_refund(self, caller: Caller, booking_id: UUID) -> Booking:
        """Admin records that an owed refund has been paid out"""
        if not caller.is_admin:
            raise ForbiddenError("Only administrators can record refunds")
        booking = await self.repository.find_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        expected_version = booking.version
        booking.mark_refunded()
        updated = await self.repository.update(booking, expected_version)
        logger.info(f"Refund recorded for booking {booking_id} by {caller.identity}")
        return updated
