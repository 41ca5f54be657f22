"""Policy Engine - cancellation window and refund eligibility"""
from pydantic import BaseModel, Field
from datetime import datetime, timedelta

from domain.enums import PaymentStatus
from domain.errors import CancellationWindowClosedError


class CancellationPolicy(BaseModel):
    """Binary allow/deny rule evaluated against wall-clock time"""
    policy_name: str = "Standard"
    deadline_hours: int = Field(ge=0, default=24)

    def hours_until(self, starts_at: datetime, now: datetime) -> float:
        return (starts_at - now).total_seconds() / 3600

    def allows_cancellation(self, starts_at: datetime, now: datetime) -> bool:
        """Cancellation must happen strictly more than deadline_hours before start"""
        return starts_at - now > timedelta(hours=self.deadline_hours)

    def ensure_cancellable(self, starts_at: datetime, now: datetime) -> None:
        if not self.allows_cancellation(starts_at, now):
            raise CancellationWindowClosedError(
                f"Cannot cancel booking less than {self.deadline_hours} hours before start time"
            )

    def refund_eligible(self, payment_status: PaymentStatus) -> bool:
        """Money already taken is owed back once a timely cancellation goes through"""
        return payment_status in (PaymentStatus.PAID, PaymentStatus.PARTIAL)

    class Config:
        frozen = True
