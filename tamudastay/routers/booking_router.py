from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi_limiter.depends import RateLimiter
from jose import JWTError

from .. import booking_rules, models, schemas
from ..audit_logger import BOOKING_FIELDS, AuditLogger, get_audit_logger, snapshot
from ..auth import get_current_user, get_optional_user, is_admin_or_staff
from ..notifications import NotificationService
from ..security import decode_bearer_token
from ..storage_switch import SwitchingStorage, get_storage

router = APIRouter(prefix="/api/bookings", tags=["Bookings"])


async def get_key_by_user_id_or_ip(request: Request) -> str:
    """
    Tries to get the user ID from the JWT token.
    If it fails (no token, invalid token), it falls back to the client's IP.
    """
    try:
        return f"user:{decode_bearer_token(request.headers.get('Authorization'))['sub']}"
    except (JWTError, ValueError, AttributeError, TypeError):
        # If token is invalid, missing, or malformed, limit by IP
        return request.client.host if request.client else "anonymous"


booking_write_limiter = RateLimiter(times=30, minutes=1, identifier=get_key_by_user_id_or_ip)


def _get_booking_or_404(storage: SwitchingStorage, booking_id: int) -> models.Booking:
    booking = storage.get_booking(booking_id)
    if booking is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
    return booking


def resolve_booking_user(
        storage: SwitchingStorage,
        requested_user_id: Optional[int],
        current_user: Optional[models.User],
) -> Optional[int]:
    """
    Works out whose booking this is. Staff may book on behalf of any user;
    everyone else books for themselves, and anonymous callers check out as guests.
    """
    if requested_user_id is None:
        return current_user.id if current_user is not None else None
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Sign in to book under a user account",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if requested_user_id != current_user.id and not is_admin_or_staff(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="You can only create bookings for yourself")
    if storage.get_user(requested_user_id) is None:
        raise booking_rules.BookingValidationError("Invalid booking data", [
            {"field": "userId", "message": "User not found"}
        ])
    return requested_user_id


@router.get("", response_model=List[schemas.BookingRead])
def read_bookings(
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(get_current_user),
):
    """
    Staff see every booking. Everyone else sees their own bookings plus the
    bookings on properties they host.
    """
    if is_admin_or_staff(current_user):
        return storage.get_all_bookings()

    bookings = {b.id: b for b in storage.get_bookings_by_user(current_user.id)}
    for prop in storage.get_properties_by_owner(current_user.id):
        bookings.update((b.id, b) for b in storage.get_bookings_by_property(prop.id))
    return [bookings[k] for k in sorted(bookings)]


@router.get("/{booking_id}", response_model=schemas.BookingRead)
def read_booking(
        booking_id: int,
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(get_current_user),
):
    booking = _get_booking_or_404(storage, booking_id)
    if not booking_rules.can_manage_booking(current_user, booking, storage.get_property(booking.property_id)):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return booking


@router.post("", response_model=schemas.BookingRead, status_code=status.HTTP_201_CREATED,
             dependencies=[Depends(booking_write_limiter)])
def create_booking(
        booking_in: schemas.BookingCreate,
        storage: SwitchingStorage = Depends(get_storage),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: Optional[models.User] = Depends(get_optional_user),
):
    """
    Create a booking, or move the caller's existing booking for the same
    property to the new dates.
    """
    user_id = resolve_booking_user(storage, booking_in.user_id, current_user)
    booking, created = booking_rules.create_or_update_booking(storage, booking_in, user_id=user_id)

    actor_id = current_user.id if current_user is not None else None
    audit.log_booking_action(actor_id, "create_booking" if created else "update_booking", booking)
    if created:
        prop = storage.get_property(booking.property_id)
        if prop is not None:
            NotificationService(storage).new_booking(booking, prop)
    return booking


@router.put("/{booking_id}", response_model=schemas.BookingRead,
            dependencies=[Depends(booking_write_limiter)])
def update_booking(
        booking_id: int,
        changes: schemas.BookingUpdate,
        storage: SwitchingStorage = Depends(get_storage),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: models.User = Depends(get_current_user),
):
    old_values = snapshot(_get_booking_or_404(storage, booking_id), BOOKING_FIELDS)
    booking = booking_rules.update_booking(storage, booking_id, changes, current_user)
    audit.log_booking_action(current_user.id, "update_booking", booking, old_values=old_values)
    return booking


@router.patch("/{booking_id}/status", response_model=schemas.BookingRead)
def update_booking_status(
        booking_id: int,
        body: schemas.BookingStatusUpdate,
        storage: SwitchingStorage = Depends(get_storage),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: models.User = Depends(get_current_user),
):
    old_values = snapshot(_get_booking_or_404(storage, booking_id), BOOKING_FIELDS)
    booking = booking_rules.change_booking_status(storage, booking_id, body.status, current_user)
    audit.log_booking_action(current_user.id, "update_booking_status", booking, old_values=old_values,
                             description=f"Status {old_values['status'].value} -> {booking.status.value}")
    return booking
