"""
Pending booking expiry worker
Periodically releases slots held by bookings that were never paid
"""
import asyncio
import logging

from application.services import BookingExpiryService

logger = logging.getLogger(__name__)


async def run_expiry_worker(
    service: BookingExpiryService,
    interval_seconds: float,
    stop_event: asyncio.Event
) -> None:
    """Sweep every ``interval_seconds`` until ``stop_event`` is set"""
    logger.info(f"Starting pending booking expiry worker (every {interval_seconds}s)")

    while not stop_event.is_set():
        try:
            await service.sweep()
        except Exception as e:
            logger.error(f"Error in expiry worker loop: {e}")

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except asyncio.TimeoutError:
            continue

    logger.info("Pending booking expiry worker stopped")
