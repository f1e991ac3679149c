"""
Date availability for properties.

Stays are half-open intervals ``[check_in, check_out)``: a guest checking out
on the 15th does not collide with the next guest checking in on the 15th.
"""
import datetime
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .storage_switch import is_quota_error

logger = logging.getLogger("tamudastay")

UNAVAILABLE_MESSAGE = "Property is not available for the selected dates"
CHECK_FAILED_MESSAGE = "Unable to verify availability right now. Please try again."


@dataclass(frozen=True)
class DateRange:
    check_in: datetime.date
    check_out: datetime.date


@dataclass
class AvailabilityResult:
    available: bool
    booked_dates: List[DateRange] = field(default_factory=list)
    message: Optional[str] = None
    # True when the bookings could not be read; available is then False
    check_failed: bool = False


def dates_overlap(a_start, a_end, b_start, b_end) -> bool:
    """True iff [a_start, a_end) and [b_start, b_end) intersect."""
    return a_start < b_end and a_end > b_start


def check_availability(
        storage,
        property_id: int,
        check_in: datetime.date,
        check_out: datetime.date,
        exclude_booking_id: Optional[int] = None,
) -> AvailabilityResult:
    """
    Checks a candidate stay against every non-cancelled booking of the property.

    Callers validate ``check_in < check_out`` first. A storage failure is
    reported as unavailable so a broken read can never let a double-booking
    through.
    """
    try:
        active = storage.get_active_bookings_for_property(
            property_id, exclude_booking_id=exclude_booking_id
        )
    except Exception as e:
        # Quota errors belong to the storage switch, which replays the unit on the fallback
        if is_quota_error(e):
            raise
        logger.error(f"Availability check failed for property {property_id}: {e}")
        return AvailabilityResult(available=False, message=CHECK_FAILED_MESSAGE, check_failed=True)

    conflicts = [
        DateRange(b.check_in, b.check_out)
        for b in active
        if dates_overlap(check_in, check_out, b.check_in, b.check_out)
    ]
    if conflicts:
        return AvailabilityResult(available=False, booked_dates=conflicts, message=UNAVAILABLE_MESSAGE)
    return AvailabilityResult(available=True)


def get_booked_dates(storage, property_id: int) -> List[DateRange]:
    """All ranges currently held on the property, ordered by check-in."""
    active = storage.get_active_bookings_for_property(property_id)
    return sorted(
        (DateRange(b.check_in, b.check_out) for b in active),
        key=lambda r: (r.check_in, r.check_out),
    )
