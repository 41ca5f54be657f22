"""Domain Errors

Every failure the booking core reports derives from BookingError so the API
layer can map it to a response without inspecting messages.
"""


class BookingError(Exception):
    """Base class for booking core errors"""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    """Malformed input, rejected before any state mutation"""


class FieldUnavailableError(ValidationError):
    """Referenced field exists but is not active"""


class PaymentVerificationError(ValidationError):
    """Gateway record does not confirm the claimed payment"""


class NotFoundError(BookingError):
    """Referenced field, booking or document does not exist"""


class ConflictError(BookingError):
    """Interval already taken, or a concurrent writer won the race"""


class ForbiddenError(BookingError):
    """Caller does not own the resource or lacks the admin capability"""


class InvalidTransitionError(BookingError):
    """Requested change is not allowed from the current state"""


class CancellationWindowClosedError(InvalidTransitionError):
    """Cancellation requested too close to the reservation start"""


class UpstreamError(BookingError):
    """Payment gateway or document store unavailable; safe to retry"""
