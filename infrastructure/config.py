import os
from decimal import Decimal
from pathlib import Path
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Security
SECRET_KEY = os.getenv("SECRET_KEY")
if not SECRET_KEY:
    import warnings

    warnings.warn(
        "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION", RuntimeWarning, stacklevel=2
    )
    SECRET_KEY = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only

JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))

# Booking dates and times are wall-clock values in the venue's zone
VENUE_TIMEZONE = os.getenv("VENUE_TIMEZONE", "UTC")
VENUE_TZ = ZoneInfo(VENUE_TIMEZONE)

# Booking policy
CANCELLATION_DEADLINE_HOURS = int(os.getenv("CANCELLATION_DEADLINE_HOURS", "24"))
BANK_TRANSFER_DEPOSIT_RATE = Decimal(os.getenv("BANK_TRANSFER_DEPOSIT_RATE", "0.30"))

# Availability grid: contiguous 1-hour slots from start hour up to end hour
SLOT_GRID_START_HOUR = int(os.getenv("SLOT_GRID_START_HOUR", "8"))
SLOT_GRID_END_HOUR = int(os.getenv("SLOT_GRID_END_HOUR", "22"))
AVAILABILITY_DEFAULT_DAYS = int(os.getenv("AVAILABILITY_DEFAULT_DAYS", "7"))
AVAILABILITY_BOOKING_DAYS = int(os.getenv("AVAILABILITY_BOOKING_DAYS", "30"))
AVAILABILITY_MAX_DAYS = int(os.getenv("AVAILABILITY_MAX_DAYS", "62"))

# Payment gateway (Stripe-compatible REST API)
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")
STRIPE_API_BASE = os.getenv("STRIPE_API_BASE", "https://api.stripe.com/v1")
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")
PAYMENT_GATEWAY_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_GATEWAY_TIMEOUT_SECONDS", "10"))

# 0 disables the pending-booking expiry sweep
PENDING_BOOKING_TTL_MINUTES = int(os.getenv("PENDING_BOOKING_TTL_MINUTES", "0"))
EXPIRY_SWEEP_INTERVAL_SECONDS = float(os.getenv("EXPIRY_SWEEP_INTERVAL_SECONDS", "60"))

SEED_DEMO_DATA = _flag("SEED_DEMO_DATA")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
