"""Domain Value Objects"""
from pydantic import BaseModel, Field, EmailStr, validator
from datetime import date, datetime, tzinfo, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, List

from domain.enums import PaymentMethod, SlotUnavailableReason
from domain import intervals

CENT = Decimal("0.01")


def to_cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(value: Decimal) -> int:
    """Gateway amounts are integers in the currency's minor unit"""
    return int((Decimal(value) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class TimeSlot(BaseModel):
    """Value Object for a half-open [start_time, end_time) range on a date"""
    date: date
    start_time: str
    end_time: str

    @validator('start_time', 'end_time', pre=True)
    def normalize_time(cls, v):
        return intervals.format_time(v)

    @validator('end_time')
    def end_after_start(cls, v, values):
        if 'start_time' in values and v <= values['start_time']:
            raise ValueError('End time must be after start time')
        return v

    @property
    def start(self):
        return intervals.parse_time(self.start_time)

    @property
    def end(self):
        return intervals.parse_time(self.end_time)

    def overlaps(self, other: "TimeSlot") -> bool:
        """Same date and intersecting half-open ranges"""
        if self.date != other.date:
            return False
        return intervals.overlaps(self.start, self.end, other.start, other.end)

    def duration_hours(self) -> Decimal:
        return intervals.duration_hours(self.start, self.end)

    def starts_at(self, tz: tzinfo = timezone.utc) -> datetime:
        return intervals.combine(self.date, self.start, tz)

    def key(self) -> tuple:
        return (self.date, self.start_time, self.end_time)

    class Config:
        frozen = True


class Amount(BaseModel):
    """Value Object for a booking's price breakdown"""
    total: Decimal = Field(ge=0)
    deposit: Optional[Decimal] = Field(default=None, ge=0)
    remaining: Optional[Decimal] = Field(default=None, ge=0)

    @validator('remaining')
    def parts_add_up(cls, v, values):
        deposit = values.get('deposit')
        if v is not None and deposit is not None and 'total' in values:
            if deposit + v != values['total']:
                raise ValueError('Deposit and remaining must add up to total')
        return v

    @staticmethod
    def for_booking(
        price_per_hour: Decimal,
        hours: Decimal,
        payment_method: PaymentMethod,
        deposit_rate: Decimal
    ) -> "Amount":
        """Price a booking; bank transfers split into deposit + remaining"""
        total = to_cents(Decimal(price_per_hour) * hours)
        if payment_method != PaymentMethod.BANK_TRANSFER:
            return Amount(total=total)
        deposit = to_cents(total * Decimal(deposit_rate))
        return Amount(total=total, deposit=deposit, remaining=total - deposit)

    class Config:
        frozen = True


class PayerContact(BaseModel):
    """Value Object for the person who will show up and pay"""
    name: str = Field(min_length=2)
    email: EmailStr
    phone: str

    @validator('name')
    def strip_name(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError('Player name must be at least 2 characters')
        return v

    @validator('phone')
    def enough_digits(cls, v):
        if sum(ch.isdigit() for ch in v) < 10:
            raise ValueError('Phone number must be at least 10 digits')
        return v.strip()

    def summary(self) -> str:
        return f"Player: {self.name}, Email: {self.email}, Phone: {self.phone}"

    class Config:
        frozen = True


class Caller(BaseModel):
    """Explicit identity of whoever invokes a core operation"""
    identity: str = Field(min_length=1)
    is_admin: bool = False

    def owns(self, owner_identity: str) -> bool:
        return self.identity == owner_identity

    class Config:
        frozen = True


class Location(BaseModel):
    """Value Object for a field's address and coordinates"""
    address: str
    lat: float = Field(ge=-90, le=90)
    lng: float = Field(ge=-180, le=180)

    class Config:
        frozen = True


class Rating(BaseModel):
    """Aggregate review score of a field"""
    average: float = Field(default=0, ge=0, le=5)
    count: int = Field(default=0, ge=0)

    @staticmethod
    def from_scores(scores: List[int]) -> "Rating":
        """Recompute from every review row"""
        if not scores:
            return Rating()
        return Rating(average=round(sum(scores) / len(scores), 1), count=len(scores))

    class Config:
        frozen = True


class SlotAvailability(BaseModel):
    """One grid slot of the availability calendar"""
    start_time: str
    end_time: str
    available: bool
    price: Decimal
    reason: Optional[SlotUnavailableReason] = None


class DayAvailability(BaseModel):
    """Availability grid for a single date"""
    date: date
    day: str
    slots: List[SlotAvailability]

    def available_count(self) -> int:
        return len([s for s in self.slots if s.available])


class PaymentIntent(BaseModel):
    """Gateway-side record of a card payment"""
    intent_id: str
    client_secret: Optional[str] = None
    amount: int = Field(ge=0)
    currency: str = "usd"
    status: str
    booking_id: Optional[str] = None

    class Config:
        frozen = True
