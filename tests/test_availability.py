import datetime
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from tamudastay import models
from tamudastay.availability import (
    CHECK_FAILED_MESSAGE, UNAVAILABLE_MESSAGE, DateRange, check_availability, dates_overlap,
    get_booked_dates,
)

D = datetime.date


def add_booking(fallback, check_in, check_out, status=models.BookingStatus.CONFIRMED, property_id=2):
    return fallback.create_booking({
        "property_id": property_id,
        "user_id": None,
        "guest_name": "Guest",
        "guest_email": "guest@example.com",
        "check_in": check_in,
        "check_out": check_out,
        "guests": 2,
        "amount": Decimal("100"),
        "status": status,
    })


# --- dates_overlap ---

@pytest.mark.parametrize("a, b, expected", [
    ((D(2024, 7, 10), D(2024, 7, 15)), (D(2024, 7, 14), D(2024, 7, 18)), True),
    ((D(2024, 7, 10), D(2024, 7, 15)), (D(2024, 7, 15), D(2024, 7, 18)), False),
    ((D(2024, 7, 10), D(2024, 7, 20)), (D(2024, 7, 12), D(2024, 7, 14)), True),
    ((D(2024, 7, 10), D(2024, 7, 12)), (D(2024, 7, 1), D(2024, 7, 10)), False),
    ((D(2024, 7, 10), D(2024, 7, 12)), (D(2024, 7, 10), D(2024, 7, 12)), True),
])
def test_dates_overlap_is_half_open_and_symmetric(a, b, expected):
    assert dates_overlap(*a, *b) is expected
    assert dates_overlap(*b, *a) is expected


# --- check_availability ---

def test_example_scenario(fallback):
    """Existing stay 10th-15th: 14th-18th collides, 15th-18th does not."""
    add_booking(fallback, D(2024, 7, 10), D(2024, 7, 15))

    result = check_availability(fallback, 2, D(2024, 7, 14), D(2024, 7, 18))
    assert result.available is False
    assert result.booked_dates == [DateRange(D(2024, 7, 10), D(2024, 7, 15))]
    assert result.message == UNAVAILABLE_MESSAGE

    result = check_availability(fallback, 2, D(2024, 7, 15), D(2024, 7, 18))
    assert result.available is True
    assert result.booked_dates == []


def test_cancelled_bookings_do_not_block(fallback):
    add_booking(fallback, D(2024, 8, 1), D(2024, 8, 5), status=models.BookingStatus.CANCELLED)

    assert check_availability(fallback, 2, D(2024, 8, 2), D(2024, 8, 4)).available is True


def test_blocked_ranges_count_as_taken(fallback):
    add_booking(fallback, D(2024, 8, 1), D(2024, 8, 5), status=models.BookingStatus.BLOCKED)

    assert check_availability(fallback, 2, D(2024, 8, 2), D(2024, 8, 4)).available is False


def test_excluded_booking_is_ignored(fallback):
    booking = add_booking(fallback, D(2024, 8, 1), D(2024, 8, 5))

    result = check_availability(fallback, 2, D(2024, 8, 3), D(2024, 8, 8), exclude_booking_id=booking.id)
    assert result.available is True


def test_other_properties_are_ignored(fallback):
    add_booking(fallback, D(2024, 8, 1), D(2024, 8, 5), property_id=1)

    assert check_availability(fallback, 2, D(2024, 8, 1), D(2024, 8, 5)).available is True


def test_lists_every_conflicting_range(fallback):
    add_booking(fallback, D(2024, 9, 1), D(2024, 9, 3))
    add_booking(fallback, D(2024, 9, 5), D(2024, 9, 8))
    add_booking(fallback, D(2024, 9, 20), D(2024, 9, 22))

    result = check_availability(fallback, 2, D(2024, 9, 2), D(2024, 9, 6))
    assert result.booked_dates == [
        DateRange(D(2024, 9, 1), D(2024, 9, 3)),
        DateRange(D(2024, 9, 5), D(2024, 9, 8)),
    ]


def test_storage_failure_fails_closed():
    storage = MagicMock()
    storage.get_active_bookings_for_property.side_effect = RuntimeError("connection reset")

    result = check_availability(storage, 1, D(2024, 7, 1), D(2024, 7, 3))

    assert result.available is False
    assert result.check_failed is True
    assert result.message == CHECK_FAILED_MESSAGE


def test_quota_errors_are_left_to_the_storage_switch():
    storage = MagicMock()
    storage.get_active_bookings_for_property.side_effect = RuntimeError("Data transfer quota exceeded")

    with pytest.raises(RuntimeError):
        check_availability(storage, 1, D(2024, 7, 1), D(2024, 7, 3))


def test_get_booked_dates_sorted(fallback):
    add_booking(fallback, D(2024, 10, 10), D(2024, 10, 12))
    add_booking(fallback, D(2024, 10, 1), D(2024, 10, 4))
    add_booking(fallback, D(2024, 10, 20), D(2024, 10, 21), status=models.BookingStatus.CANCELLED)

    assert get_booked_dates(fallback, 2) == [
        DateRange(D(2024, 10, 1), D(2024, 10, 4)),
        DateRange(D(2024, 10, 10), D(2024, 10, 12)),
    ]
