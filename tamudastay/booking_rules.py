"""
Booking rules: create-or-update, partial updates, status changes and
host-blocked dates.

Every write runs inside ``storage.run_locked(property_id, ...)`` so the
availability check and the write that depends on it are one unit. Two
overlapping requests for the same property cannot both pass the check.
"""
import datetime
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from . import models, schemas
from .availability import UNAVAILABLE_MESSAGE, check_availability
from .config import settings

logger = logging.getLogger("tamudastay")

STAFF_ROLES = (models.UserRole.ADMIN, models.UserRole.STAFF)

# Fields a partial update may explicitly set to null
NULLABLE_FIELDS = {"guest_phone", "comments"}

BLOCKED_GUEST_NAME = "Blocked by host"


class BookingError(Exception):
    """Base class for client-correctable booking failures."""

    status_code = 400

    def __init__(self, message: str, details: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class BookingValidationError(BookingError):
    status_code = 400


class BookingConflictError(BookingError):
    status_code = 409

    def __init__(self, message: str = UNAVAILABLE_MESSAGE, booked_dates=()):
        super().__init__(message)
        self.booked_dates = list(booked_dates)

    def to_payload(self):
        return {
            "error": self.message,
            "bookedDates": [
                schemas.BookedDateRange.model_validate(r).model_dump(mode="json", by_alias=True)
                for r in self.booked_dates
            ],
        }


class AvailabilityCheckError(BookingError):
    status_code = 503


class PropertyNotFoundError(BookingError):
    status_code = 404


class BookingNotFoundError(BookingError):
    status_code = 404


class BookingPermissionError(BookingError):
    status_code = 403


def is_staff(user: Optional[models.User]) -> bool:
    return user is not None and user.role in STAFF_ROLES


# --- Validation ---

def validate_stay(check_in, check_out, today, check_past=True) -> List[Dict[str, str]]:
    errors = []
    if check_in >= check_out:
        errors.append({"field": "checkOut", "message": "Check-out date must be after check-in date"})
    if check_past and check_in < today:
        errors.append({"field": "checkIn", "message": "Check-in date cannot be in the past"})
    return errors


def validate_guest_fields(data: Dict[str, Any]) -> List[Dict[str, str]]:
    """Checks whichever guest fields are present in ``data``."""
    errors = []
    if "guest_name" in data and not (data["guest_name"] or "").strip():
        errors.append({"field": "guestName", "message": "Guest name is required"})
    if "guest_email" in data:
        email = (data["guest_email"] or "").strip()
        if not email:
            errors.append({"field": "guestEmail", "message": "Guest email is required"})
        else:
            try:
                schemas.check_email_shape(email)
            except ValueError as e:
                errors.append({"field": "guestEmail", "message": str(e)})
    if "guests" in data and data["guests"] < 1:
        errors.append({"field": "guests", "message": "At least one guest is required"})
    if "amount" in data and data["amount"] < 0:
        errors.append({"field": "amount", "message": "Amount cannot be negative"})
    return errors


def _raise_if_invalid(errors: List[Dict[str, str]]) -> None:
    if errors:
        raise BookingValidationError("Invalid booking data", errors)


# --- Shared steps ---

def _ensure_capacity(prop: models.Property, guests: int) -> None:
    if guests > prop.capacity:
        raise BookingValidationError("Invalid booking data", [
            {"field": "guests", "message": f"This property accepts at most {prop.capacity} guests"}
        ])


def _ensure_available(store, property_id, check_in, check_out, exclude_booking_id=None) -> None:
    result = check_availability(store, property_id, check_in, check_out, exclude_booking_id)
    if result.check_failed:
        raise AvailabilityCheckError(result.message)
    if not result.available:
        raise BookingConflictError(result.message, result.booked_dates)


def _publish(store, booking: models.Booking, event: str) -> None:
    store.publish_event(settings.KAFKA_BOOKING_TOPIC, {
        "event": event,
        "booking_id": booking.id,
        "property_id": booking.property_id,
        "user_id": booking.user_id,
        "status": getattr(booking.status, "value", booking.status),
        "check_in": booking.check_in.isoformat(),
        "check_out": booking.check_out.isoformat(),
    })


def _get_booking_or_raise(store, booking_id: int) -> models.Booking:
    booking = store.get_booking(booking_id)
    if booking is None:
        raise BookingNotFoundError("Booking not found")
    return booking


# --- Operations ---

def create_or_update_booking(
        storage,
        booking_in: schemas.BookingCreate,
        user_id: Optional[int] = None,
        today: Optional[datetime.date] = None,
) -> Tuple[models.Booking, bool]:
    """
    Books a stay, or moves the user's existing booking for the property.

    A registered user holds at most one active booking per property: if one
    exists it is updated in place (and excluded from the conflict scan, since
    it is being replaced). Guests without an account always get a new row.

    Returns ``(booking, created)``.
    """
    today = today or datetime.date.today()
    fields = {
        "guest_name": booking_in.guest_name.strip(),
        "guest_email": booking_in.guest_email.strip(),
        "guest_phone": booking_in.guest_phone,
        "check_in": booking_in.check_in,
        "check_out": booking_in.check_out,
        "guests": booking_in.guests,
        "amount": booking_in.amount,
        "comments": booking_in.comments,
    }
    _raise_if_invalid(
        validate_stay(booking_in.check_in, booking_in.check_out, today) + validate_guest_fields(fields)
    )

    def reserve(store) -> Tuple[models.Booking, bool]:
        prop = store.get_property(booking_in.property_id)
        if prop is None:
            raise PropertyNotFoundError("Property not found")
        _ensure_capacity(prop, booking_in.guests)

        existing = store.get_user_booking_for_property(user_id, prop.id) if user_id is not None else None
        _ensure_available(
            store, prop.id, booking_in.check_in, booking_in.check_out,
            exclude_booking_id=existing.id if existing is not None else None,
        )

        if existing is not None:
            booking = store.update_booking(existing.id, fields)
            _publish(store, booking, "updated")
            return booking, False

        booking = store.create_booking({
            **fields,
            "property_id": prop.id,
            "user_id": user_id,
            "status": models.BookingStatus.PENDING,
        })
        _publish(store, booking, "created")
        return booking, True

    booking, created = storage.run_locked(booking_in.property_id, reserve)
    logger.info(
        f"Booking {booking.id} {'created' if created else 'updated'} for property "
        f"{booking.property_id}: {booking.check_in} -> {booking.check_out}"
    )
    return booking, created


def can_manage_booking(actor: Optional[models.User], booking: models.Booking, prop: Optional[models.Property]) -> bool:
    """Staff, the property's host, or the booking's own user."""
    if actor is None:
        return False
    if is_staff(actor):
        return True
    if prop is not None and prop.owner_id == actor.id:
        return True
    return booking.user_id is not None and booking.user_id == actor.id


def update_booking(
        storage,
        booking_id: int,
        changes: schemas.BookingUpdate,
        actor: models.User,
        today: Optional[datetime.date] = None,
) -> models.Booking:
    """
    Partial update. The availability check only re-runs when the payload
    touches the dates, and it always excludes the booking itself.
    """
    today = today or datetime.date.today()
    booking = _get_booking_or_raise(storage, booking_id)
    if not can_manage_booking(actor, booking, storage.get_property(booking.property_id)):
        raise BookingPermissionError("You do not have permission to modify this booking")

    data = {
        key: value
        for key, value in changes.model_dump(exclude_unset=True).items()
        if value is not None or key in NULLABLE_FIELDS
    }
    errors = validate_guest_fields(data)
    dates_changed = "check_in" in data or "check_out" in data
    check_in = data.get("check_in", booking.check_in)
    check_out = data.get("check_out", booking.check_out)
    if dates_changed:
        errors += validate_stay(check_in, check_out, today, check_past="check_in" in data)
    _raise_if_invalid(errors)

    def apply(store) -> models.Booking:
        current = _get_booking_or_raise(store, booking_id)
        if "guests" in data:
            prop = store.get_property(current.property_id)
            if prop is not None:
                _ensure_capacity(prop, data["guests"])
        if dates_changed and current.status != models.BookingStatus.CANCELLED:
            _ensure_available(store, current.property_id, check_in, check_out, exclude_booking_id=current.id)
        updated = store.update_booking(current.id, data)
        _publish(store, updated, "updated")
        return updated

    return storage.run_locked(booking.property_id, apply)


def change_booking_status(
        storage,
        booking_id: int,
        status: models.BookingStatus,
        actor: models.User,
) -> models.Booking:
    """
    Staff and the property's host may set any status except ``blocked``;
    a guest may only cancel their own booking. Reviving a cancelled booking
    has to win its dates back through the availability check.
    """
    booking = _get_booking_or_raise(storage, booking_id)
    prop = storage.get_property(booking.property_id)
    if not can_manage_booking(actor, booking, prop):
        raise BookingPermissionError("You do not have permission to modify this booking")
    is_manager = is_staff(actor) or (prop is not None and prop.owner_id == actor.id)
    if not is_manager and status != models.BookingStatus.CANCELLED:
        raise BookingPermissionError("Guests may only cancel their own bookings")
    if status == models.BookingStatus.BLOCKED and booking.status != models.BookingStatus.BLOCKED:
        raise BookingValidationError("Invalid booking data", [
            {"field": "status", "message": "Use the block-dates endpoint to block a range"}
        ])

    def apply(store) -> models.Booking:
        current = _get_booking_or_raise(store, booking_id)
        reviving = current.status == models.BookingStatus.CANCELLED and status != models.BookingStatus.CANCELLED
        if reviving:
            if current.user_id is not None:
                other = store.get_user_booking_for_property(current.user_id, current.property_id)
                if other is not None:
                    raise BookingConflictError(
                        "This guest already holds an active booking for this property",
                        [schemas.BookedDateRange(check_in=other.check_in, check_out=other.check_out)],
                    )
            _ensure_available(
                store, current.property_id, current.check_in, current.check_out, exclude_booking_id=current.id
            )
        updated = store.update_booking(current.id, {"status": status})
        _publish(store, updated, "status_changed")
        return updated

    updated = storage.run_locked(booking.property_id, apply)
    logger.info(f"Booking {booking_id} status changed to {status.value} by user {actor.id}")
    return updated


def block_dates(
        storage,
        property_id: int,
        request: schemas.BlockDatesRequest,
        actor: models.User,
        today: Optional[datetime.date] = None,
) -> models.Booking:
    """Reserves a range for the host with a ``blocked`` pseudo-booking."""
    today = today or datetime.date.today()
    _raise_if_invalid(validate_stay(request.check_in, request.check_out, today))

    prop = storage.get_property(property_id)
    if prop is None:
        raise PropertyNotFoundError("Property not found")
    if not (is_staff(actor) or prop.owner_id == actor.id):
        raise BookingPermissionError("Only the property's host can block its dates")

    def apply(store) -> models.Booking:
        _ensure_available(store, property_id, request.check_in, request.check_out)
        booking = store.create_booking({
            "property_id": property_id,
            "user_id": None,
            "guest_name": BLOCKED_GUEST_NAME,
            "guest_email": actor.email or "",
            "guest_phone": None,
            "check_in": request.check_in,
            "check_out": request.check_out,
            "guests": 1,
            "amount": Decimal("0"),
            "status": models.BookingStatus.BLOCKED,
            "comments": request.reason,
        })
        _publish(store, booking, "blocked")
        return booking

    return storage.run_locked(property_id, apply)
