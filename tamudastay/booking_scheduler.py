import asyncio
import datetime
import logging
from typing import Optional

from . import models
from .config import settings
from .database import SessionLocal
from .storage import DatabaseStorage
from .storage_switch import StorageSwitch, SwitchingStorage

logger = logging.getLogger("tamudastay.scheduler")


def complete_finished_bookings(storage, today: Optional[datetime.date] = None) -> int:
    """
    Marks confirmed bookings whose check-out date has passed as completed.

    A stay that checks out today is still in progress until tomorrow.
    """
    today = today or datetime.date.today()
    finished = storage.get_bookings_ending_before(today, models.BookingStatus.CONFIRMED)
    if not finished:
        logger.info("No finished bookings to complete.")
        return 0

    for booking in finished:
        storage.update_booking(booking.id, {"status": models.BookingStatus.COMPLETED})
        storage.publish_event(settings.KAFKA_BOOKING_TOPIC, {
            "event": "completed",
            "booking_id": booking.id,
            "property_id": booking.property_id,
            "user_id": booking.user_id,
            "status": models.BookingStatus.COMPLETED.value,
            "check_in": booking.check_in.isoformat(),
            "check_out": booking.check_out.isoformat(),
        })
    logger.info(f"Marked {len(finished)} bookings as completed.")
    return len(finished)


async def run_booking_scheduler(switch: StorageSwitch, interval: Optional[int] = None):
    """Main background loop for the scheduler."""
    interval = interval or settings.SCHEDULER_INTERVAL_SECONDS
    while True:
        logger.info("Scheduler waking up to check for finished bookings...")
        db = SessionLocal()
        storage = SwitchingStorage(DatabaseStorage(db), switch)
        try:
            complete_finished_bookings(storage)
        except Exception as e:
            logger.error(f"Error in booking scheduler loop: {e}")
            db.rollback()
        finally:
            db.close()

        await asyncio.sleep(interval)
