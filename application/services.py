"""Application Services - Business use cases"""
import logging
import math
from uuid import UUID
from datetime import date, datetime, timedelta, timezone, tzinfo
from decimal import Decimal
from typing import Callable, List, Optional, Tuple, Union

from pydantic import BaseModel, ValidationError as PydanticValidationError

from domain import intervals
from domain.repositories import BookingRepository, FieldRepository, ReviewRepository, DocumentRepository
from domain.entities import Booking, Field, Review, PaymentDocument, OWNER_TRANSITIONS
from domain.enums import (
    BookingStatus, PaymentMethod, FieldStatus, FieldSurface, FieldSize, FieldSort,
    SlotUnavailableReason, AvailabilityView, UploadType
)
from domain.errors import (
    ValidationError, FieldUnavailableError, NotFoundError, ConflictError,
    ForbiddenError, InvalidTransitionError
)
from domain.policies import CancellationPolicy
from domain.value_objects import (
    TimeSlot, Amount, PayerContact, Caller, Location, Rating,
    SlotAvailability, DayAvailability
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


class PageInfo(BaseModel):
    """Pagination metadata for list queries"""
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


def paginate(items: list, page: int, limit: int) -> Tuple[list, PageInfo]:
    if page < 1 or limit < 1:
        raise ValidationError("Page and limit must be positive")
    total_count = len(items)
    total_pages = math.ceil(total_count / limit)
    start = (page - 1) * limit
    info = PageInfo(
        page=page,
        limit=limit,
        total_count=total_count,
        total_pages=total_pages,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
    )
    return items[start:start + limit], info


def validation_message(error: PydanticValidationError) -> str:
    """First human-readable message of a pydantic failure"""
    first = error.errors()[0]
    message = first.get("msg", str(error))
    return message.removeprefix("Value error, ")


def ensure_owner_or_admin(caller: Caller, owner_id: str, what: str = "booking") -> None:
    if not (caller.owns(owner_id) or caller.is_admin):
        raise ForbiddenError(f"Access denied to this {what}")


def parse_enum(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        raise ValidationError(f"Unsupported {label}: {value}")


class FieldCatalogService:
    """Resource Catalog - read-mostly field records"""

    def __init__(self, repository: FieldRepository):
        self.repository = repository

    async def create_field(
        self,
        caller: Caller,
        name: str,
        location: Location,
        price_per_hour: Decimal,
        size: Union[FieldSize, str],
        surface: Union[FieldSurface, str],
        description: str = "",
        lighting: bool = False,
        amenities: Optional[List[str]] = None,
        photos: Optional[List[str]] = None,
        status: Union[FieldStatus, str] = FieldStatus.ACTIVE,
        owner_id: Optional[str] = None
    ) -> Field:
        """Register a field (administrative)"""
        if not caller.is_admin:
            raise ForbiddenError("Only administrators can create fields")
        try:
            field = Field(
                name=name,
                description=description,
                location=location,
                price_per_hour=price_per_hour,
                size=parse_enum(FieldSize, size, "field size"),
                surface=parse_enum(FieldSurface, surface, "field surface"),
                lighting=lighting,
                amenities=amenities or [],
                photos=photos or [],
                status=parse_enum(FieldStatus, status, "field status"),
                owner_id=owner_id or caller.identity,
            )
        except PydanticValidationError as e:
            raise ValidationError(validation_message(e))
        logger.info(f"Field {field.field_id} created by {caller.identity}")
        return await self.repository.save(field)

    async def get_field(self, field_id: UUID) -> Field:
        field = await self.repository.find_by_id(field_id)
        if not field:
            raise NotFoundError("Field not found")
        return field

    async def get_bookable_field(self, field_id: UUID) -> Field:
        """Field that exists and is active"""
        field = await self.get_field(field_id)
        if not field.is_bookable():
            raise FieldUnavailableError(f"Field is not available for booking ({field.status.value})")
        return field

    async def set_field_status(self, caller: Caller, field_id: UUID, status: Union[FieldStatus, str]) -> Field:
        """Activate, deactivate or put a field under maintenance (administrative)"""
        if not caller.is_admin:
            raise ForbiddenError("Only administrators can change field status")
        field = await self.get_field(field_id)
        field.change_status(parse_enum(FieldStatus, status, "field status"))
        logger.info(f"Field {field_id} status set to {field.status.value} by {caller.identity}")
        return await self.repository.update(field)

    async def list_fields(
        self,
        search: Optional[str] = None,
        surface: Optional[FieldSurface] = None,
        size: Optional[FieldSize] = None,
        lighting: Optional[bool] = None,
        min_price: Optional[Decimal] = None,
        max_price: Optional[Decimal] = None,
        sort_by: FieldSort = FieldSort.RATING,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[Field], PageInfo]:
        """Active fields matching the filters"""
        fields = [f for f in await self.repository.find_all() if f.is_bookable()]

        if search:
            fields = [f for f in fields if f.matches_search(search)]
        if surface:
            fields = [f for f in fields if f.surface == surface]
        if size:
            fields = [f for f in fields if f.size == size]
        if lighting is not None:
            fields = [f for f in fields if f.lighting == lighting]
        if min_price is not None:
            fields = [f for f in fields if f.price_per_hour >= min_price]
        if max_price is not None:
            fields = [f for f in fields if f.price_per_hour <= max_price]

        if sort_by == FieldSort.PRICE_LOW:
            fields.sort(key=lambda f: f.price_per_hour)
        elif sort_by == FieldSort.PRICE_HIGH:
            fields.sort(key=lambda f: f.price_per_hour, reverse=True)
        elif sort_by == FieldSort.NAME:
            fields.sort(key=lambda f: f.name.lower())
        else:
            fields.sort(key=lambda f: (f.rating.average, f.rating.count), reverse=True)

        return paginate(fields, page, limit)


class AvailabilityService:
    """Availability Generator - fixed slot grid minus taken and past slots

    Read-only projection; the result may be stale as soon as it is returned,
    BookingService remains the authority on what can actually be booked.
    """

    def __init__(
        self,
        field_repo: FieldRepository,
        booking_repo: BookingRepository,
        clock: Clock = intervals.utc_now,
        tz: tzinfo = timezone.utc,
        grid_start_hour: int = 8,
        grid_end_hour: int = 22,
        default_days: int = 7,
        booking_days: int = 30,
        max_days: int = 62
    ):
        self.field_repo = field_repo
        self.booking_repo = booking_repo
        self.clock = clock
        self.tz = tz
        self.grid_start_hour = grid_start_hour
        self.grid_end_hour = grid_end_hour
        self.default_days = default_days
        self.booking_days = booking_days
        self.max_days = max_days

    def grid_slots(self) -> List[Tuple[str, str]]:
        """Contiguous 1-hour display slots, 08:00-22:00 by default"""
        return [
            (f"{hour:02d}:00", f"{hour + 1:02d}:00")
            for hour in range(self.grid_start_hour, self.grid_end_hour)
        ]

    async def get_availability(
        self,
        field_id: UUID,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        view: AvailabilityView = AvailabilityView.DETAIL
    ) -> List[DayAvailability]:
        """Per-date grid for the inclusive range [start_date, end_date]"""
        field = await self.field_repo.find_by_id(field_id)
        if not field:
            raise NotFoundError("Field not found")
        if not field.is_bookable():
            raise FieldUnavailableError(f"Field is not available for booking ({field.status.value})")

        now = self.clock()
        today = now.astimezone(self.tz).date()
        start = start_date or today
        if end_date is None:
            horizon = self.booking_days if view == AvailabilityView.BOOKING else self.default_days
            end_date = start + timedelta(days=horizon)
        if end_date < start:
            raise ValidationError("End date must not be before start date")
        if (end_date - start).days + 1 > self.max_days:
            raise ValidationError(f"Date range cannot exceed {self.max_days} days")

        days = []
        current = start
        while current <= end_date:
            bookings = await self.booking_repo.find_active_by_field_and_date(field_id, current)
            days.append(self._day(field, current, bookings, now))
            current += timedelta(days=1)
        return days

    def _day(self, field: Field, on_date: date, bookings: List[Booking], now: datetime) -> DayAvailability:
        slots = []
        for start_time, end_time in self.grid_slots():
            slot = TimeSlot(date=on_date, start_time=start_time, end_time=end_time)
            past = intervals.is_past(on_date, slot.start, now, self.tz)
            booked = any(slot.overlaps(b.time_slot) for b in bookings)
            if past:
                reason = SlotUnavailableReason.PAST
            elif booked:
                reason = SlotUnavailableReason.BOOKED
            else:
                reason = None
            slots.append(SlotAvailability(
                start_time=start_time,
                end_time=end_time,
                available=reason is None,
                price=field.price_per_hour,
                reason=reason,
            ))
        return DayAvailability(date=on_date, day=on_date.strftime("%A"), slots=slots)


class BookingService:
    """Reservation Engine - creates bookings and drives their status"""

    def __init__(
        self,
        repository: BookingRepository,
        field_repo: FieldRepository,
        clock: Clock = intervals.utc_now,
        tz: tzinfo = timezone.utc,
        deposit_rate: Decimal = Decimal("0.30"),
        cancellation_policy: Optional[CancellationPolicy] = None
    ):
        self.repository = repository
        self.catalog = FieldCatalogService(field_repo)
        self.clock = clock
        self.tz = tz
        self.deposit_rate = deposit_rate
        self.cancellation_policy = cancellation_policy or CancellationPolicy(
            policy_name="Standard",
            deadline_hours=24
        )

    async def create_reservation(
        self,
        caller: Caller,
        field_id: UUID,
        booking_date: date,
        start_time: str,
        end_time: str,
        payer: Optional[PayerContact],
        payment_method: Union[PaymentMethod, str],
        notes: Optional[str] = None
    ) -> Booking:
        """Validate a requested interval and persist it as a pending booking"""
        method = parse_enum(PaymentMethod, payment_method, "payment method")
        now = self.clock()

        # 1. Date-only comparison against the venue's today
        if booking_date < now.astimezone(self.tz).date():
            raise ValidationError("Booking date cannot be in the past")

        # 2. Well-formed times with start < end
        try:
            time_slot = TimeSlot(date=booking_date, start_time=start_time, end_time=end_time)
        except PydanticValidationError as e:
            raise ValidationError(validation_message(e))

        # 3. Field exists and is active
        field = await self.catalog.get_bookable_field(field_id)

        # 4. Optimistic overlap pre-check; the repository enforces it again on write
        existing = await self.repository.find_active_by_field_and_date(field_id, booking_date)
        for other in existing:
            if time_slot.overlaps(other.time_slot):
                logger.info(
                    f"Booking request for field {field_id} {time_slot.date} "
                    f"{time_slot.start_time}-{time_slot.end_time} conflicts with {other.booking_id}"
                )
                raise ConflictError("Time slot conflicts with existing booking")

        # 5. Start instant strictly in the future
        if time_slot.starts_at(self.tz) <= now:
            raise ValidationError("Cannot book past time slots")

        amount = Amount.for_booking(
            price_per_hour=field.price_per_hour,
            hours=time_slot.duration_hours(),
            payment_method=method,
            deposit_rate=self.deposit_rate
        )
        booking = Booking.create(
            field_id=field_id,
            user_id=caller.identity,
            time_slot=time_slot,
            amount=amount,
            payment_method=method,
            payer=payer,
            notes=notes
        )

        saved = await self.repository.add(booking)
        logger.info(
            f"Booking {saved.booking_id} created for field {field_id} "
            f"{time_slot.date} {time_slot.start_time}-{time_slot.end_time} by {caller.identity}"
        )
        return saved

    async def get_booking(self, caller: Caller, booking_id: UUID) -> Booking:
        booking = await self.repository.find_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        ensure_owner_or_admin(caller, booking.user_id)
        return booking

    async def list_bookings(
        self,
        caller: Caller,
        status: Optional[Union[BookingStatus, str]] = None,
        page: int = 1,
        limit: int = 10
    ) -> Tuple[List[Booking], PageInfo]:
        """Caller's own bookings, newest first"""
        if status is not None:
            status = parse_enum(BookingStatus, status, "booking status")
        bookings = await self.repository.find_by_user(caller.identity, status)
        return paginate(bookings, page, limit)

    async def list_bookings_for_field_and_date(self, field_id: UUID, on_date: date) -> List[Booking]:
        await self.catalog.get_field(field_id)
        return await self.repository.find_by_field_and_date(field_id, on_date)

    async def update_status(
        self,
        caller: Caller,
        booking_id: UUID,
        new_status: Union[BookingStatus, str]
    ) -> Booking:
        """Apply a status change allowed by the transition table"""
        new_status = parse_enum(BookingStatus, new_status, "booking status")
        booking = await self.get_booking(caller, booking_id)
        expected_version = booking.version
        previous = booking.status

        owner_targets = set().union(*OWNER_TRANSITIONS.values())
        if not caller.is_admin and new_status not in owner_targets:
            raise ForbiddenError(f"Only administrators can set status to {new_status.value}")

        if new_status == BookingStatus.CANCELLED:
            booking.cancel(self.cancellation_policy, self.clock(), self.tz, by_admin=caller.is_admin)
        else:
            booking.transition_to(new_status, by_admin=caller.is_admin)

        updated = await self.repository.update(booking, expected_version)
        logger.info(
            f"Booking {booking_id} status {previous.value} -> {updated.status.value} by {caller.identity}"
        )
        return updated

    async def delete_reservation(self, caller: Caller, booking_id: UUID) -> bool:
        """Hard-delete a booking that is still pending"""
        booking = await self.get_booking(caller, booking_id)
        if booking.status != BookingStatus.PENDING:
            raise InvalidTransitionError("Can only delete pending bookings")
        deleted = await self.repository.delete(booking_id)
        if deleted:
            logger.info(f"Booking {booking_id} deleted by {caller.identity}")
        return deleted


class ReviewService:
    """Service for field reviews and the field rating aggregate"""

    def __init__(
        self,
        repository: ReviewRepository,
        booking_repo: BookingRepository,
        field_repo: FieldRepository
    ):
        self.repository = repository
        self.booking_repo = booking_repo
        self.field_repo = field_repo

    async def submit_review(
        self,
        caller: Caller,
        field_id: UUID,
        booking_id: UUID,
        rating: int,
        comment: str,
        user_name: Optional[str] = None
    ) -> Review:
        """One review per completed booking; recomputes the field rating"""
        field = await self.field_repo.find_by_id(field_id)
        if not field:
            raise NotFoundError("Field not found")
        booking = await self.booking_repo.find_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        if booking.field_id != field_id:
            raise ValidationError("Booking does not belong to this field")
        if not caller.owns(booking.user_id):
            raise ForbiddenError("Only the booking owner can review it")
        if booking.status != BookingStatus.COMPLETED:
            raise InvalidTransitionError("Only completed bookings can be reviewed")
        if await self.repository.find_by_booking(booking_id):
            raise ConflictError("This booking has already been reviewed")

        review = await self.repository.add(Review.create(booking, rating, comment, user_name))

        # TODO: switch to an incremental running average once review volume makes O(n) recompute costly
        reviews = await self.repository.find_by_field(field_id)
        field.update_rating(Rating.from_scores([r.rating for r in reviews]))
        await self.field_repo.update(field)
        logger.info(
            f"Field {field_id} rating recomputed: {field.rating.average} over {field.rating.count} reviews"
        )
        return review

    async def list_reviews(self, field_id: UUID) -> List[Review]:
        if not await self.field_repo.find_by_id(field_id):
            raise NotFoundError("Field not found")
        return await self.repository.find_by_field(field_id)


class DocumentService:
    """Payment proof metadata; file bytes live in external storage"""

    ALLOWED_PROOF_TYPES = {
        'image/jpeg',
        'image/png',
        'image/webp',
        'application/pdf',
    }
    MAX_PROOF_SIZE_BYTES = 10 * 1024 * 1024

    def __init__(self, repository: DocumentRepository, booking_repo: BookingRepository):
        self.repository = repository
        self.booking_repo = booking_repo

    async def register_payment_proof(
        self,
        caller: Caller,
        booking_id: UUID,
        file_name: str,
        file_type: str,
        file_size: int,
        description: Optional[str] = None
    ) -> PaymentDocument:
        booking = await self.booking_repo.find_by_id(booking_id)
        if not booking:
            raise NotFoundError("Booking not found")
        if not caller.owns(booking.user_id):
            raise ForbiddenError("Access denied to this booking")
        if file_type not in self.ALLOWED_PROOF_TYPES:
            raise ValidationError(
                f"Unsupported file type: {file_type}. Allowed: {', '.join(sorted(self.ALLOWED_PROOF_TYPES))}"
            )
        if file_size > self.MAX_PROOF_SIZE_BYTES:
            raise ValidationError("File size must not exceed 10 MB")

        try:
            document = PaymentDocument(
                owner_id=caller.identity,
                booking_id=booking_id,
                upload_type=UploadType.PAYMENT_PROOF,
                file_name=file_name,
                file_type=file_type,
                file_size=file_size,
                description=description,
            )
        except PydanticValidationError as e:
            raise ValidationError(validation_message(e))
        return await self.repository.save(document)

    async def list_documents(self, caller: Caller) -> List[PaymentDocument]:
        return await self.repository.find_by_owner(caller.identity)

    async def delete_document(self, caller: Caller, document_id: UUID) -> bool:
        document = await self.repository.get_document(document_id)
        if not document or not caller.owns(document.owner_id):
            raise NotFoundError("Document not found")
        if document.booking_id:
            booking = await self.booking_repo.find_by_id(document.booking_id)
            if (
                booking
                and booking.payment_proof_id == document_id
                and booking.status == BookingStatus.PENDING
            ):
                raise InvalidTransitionError("Document is the payment proof of a booking awaiting verification")
        return await self.repository.delete(document_id)


class BookingExpiryService:
    """Frees intervals held by unpaid pending bookings older than a TTL"""

    def __init__(self, repository: BookingRepository, ttl_minutes: int, clock: Clock = intervals.utc_now):
        self.repository = repository
        self.ttl = timedelta(minutes=ttl_minutes)
        self.clock = clock

    async def sweep(self) -> List[UUID]:
        cutoff = self.clock() - self.ttl
        expired = []
        for booking in await self.repository.find_stale_pending(cutoff):
            expected_version = booking.version
            try:
                booking.expire()
                await self.repository.update(booking, expected_version)
            except (ConflictError, InvalidTransitionError, NotFoundError) as e:
                # Paid, cancelled or deleted since it was read
                logger.info(f"Skipping expiry of booking {booking.booking_id}: {e}")
                continue
            expired.append(booking.booking_id)
        if expired:
            logger.info(f"Expired {len(expired)} stale pending bookings")
        return expired
