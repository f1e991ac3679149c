import datetime
import json
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from redis import Redis
from redis.exceptions import RedisError

from .. import booking_rules, models, schemas
from ..audit_logger import PROPERTY_FIELDS, AuditLogger, get_audit_logger, snapshot
from ..auth import get_current_user, get_optional_user, is_admin_or_staff
from ..availability import check_availability, get_booked_dates
from ..config import settings
from ..database import get_redis_client
from ..notifications import NotificationService
from ..storage_switch import SwitchingStorage, get_storage

logger = logging.getLogger("tamudastay")

router = APIRouter(prefix="/api", tags=["Properties"])

VISIBLE_PROPERTIES_KEY = "visible_properties"


def property_cache_key(property_id: int) -> str:
    return f"property_{property_id}"


# --- Cache helpers: Redis is an optimisation, an outage only costs a DB read ---

def cache_get(redis_client: Redis, key: str):
    try:
        cached = redis_client.get(key)
    except RedisError as e:
        logger.warning(f"Property cache read failed for {key}: {e}")
        return None
    return json.loads(cached) if cached else None


def cache_set(redis_client: Redis, key: str, value) -> None:
    try:
        redis_client.set(key, json.dumps(value, default=str), ex=settings.PROPERTY_CACHE_SECONDS)
    except RedisError as e:
        logger.warning(f"Property cache write failed for {key}: {e}")


def invalidate_property_cache(redis_client: Redis, property_id: Optional[int] = None) -> None:
    keys = [VISIBLE_PROPERTIES_KEY]
    if property_id is not None:
        keys.append(property_cache_key(property_id))
    try:
        redis_client.delete(*keys)
    except RedisError as e:
        logger.warning(f"Property cache invalidation failed for {keys}: {e}")


def is_publicly_visible(prop: models.Property) -> bool:
    return prop.status == models.PropertyStatus.APPROVED and prop.is_active and prop.is_visible


def can_manage_property(user: Optional[models.User], prop: models.Property) -> bool:
    return user is not None and (is_admin_or_staff(user) or prop.owner_id == user.id)


def get_property_or_404(storage: SwitchingStorage, property_id: int) -> models.Property:
    prop = storage.get_property(property_id)
    if prop is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
    return prop


def _serialize(prop: models.Property) -> dict:
    return schemas.PropertyRead.model_validate(prop).model_dump(mode="json", by_alias=True)


# --- Public listing ---

@router.get("/properties", response_model=List[schemas.PropertyRead])
def read_properties(
        storage: SwitchingStorage = Depends(get_storage),
        redis_client: Redis = Depends(get_redis_client),
):
    """Approved, active and visible listings, featured first."""
    cached = cache_get(redis_client, VISIBLE_PROPERTIES_KEY)
    if cached is not None:
        return cached

    properties = [_serialize(p) for p in storage.get_visible_properties()]
    cache_set(redis_client, VISIBLE_PROPERTIES_KEY, properties)
    return properties


@router.get("/properties/{property_id}", response_model=schemas.PropertyRead)
def read_property(
        property_id: int,
        storage: SwitchingStorage = Depends(get_storage),
        redis_client: Redis = Depends(get_redis_client),
        current_user: Optional[models.User] = Depends(get_optional_user),
):
    cached = cache_get(redis_client, property_cache_key(property_id))
    if cached is not None:
        return cached

    prop = get_property_or_404(storage, property_id)
    if not is_publicly_visible(prop):
        # Hidden listings look like missing ones to everyone but their managers
        if not can_manage_property(current_user, prop):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Property not found")
        return prop

    data = _serialize(prop)
    cache_set(redis_client, property_cache_key(property_id), data)
    return data


# --- Host management ---

@router.get("/host/properties", response_model=List[schemas.PropertyRead])
def read_host_properties(
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(get_current_user),
):
    return storage.get_properties_by_owner(current_user.id)


@router.post("/properties", response_model=schemas.PropertyRead, status_code=status.HTTP_201_CREATED)
def create_property(
        property_in: schemas.PropertyCreate,
        storage: SwitchingStorage = Depends(get_storage),
        redis_client: Redis = Depends(get_redis_client),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: models.User = Depends(get_current_user),
):
    """
    Hosts submit listings for review. An admin's own listing skips the
    queue and goes live immediately.
    """
    data = property_in.model_dump()
    data["owner_id"] = current_user.id
    if current_user.role == models.UserRole.ADMIN:
        data.update(
            status=models.PropertyStatus.APPROVED,
            is_active=True,
            is_visible=True,
            approved_at=models.utcnow(),
        )
    else:
        data.update(status=models.PropertyStatus.PENDING, is_active=False, is_visible=False)

    prop = storage.create_property(data)
    audit.log_property_action(current_user.id, "create_property", prop.id,
                              new_values=snapshot(prop, PROPERTY_FIELDS))
    if prop.status == models.PropertyStatus.PENDING:
        NotificationService(storage).property_submitted(prop, current_user)
    invalidate_property_cache(redis_client, prop.id)
    return prop


@router.put("/properties/{property_id}", response_model=schemas.PropertyRead)
def update_property(
        property_id: int,
        changes: schemas.PropertyUpdate,
        storage: SwitchingStorage = Depends(get_storage),
        redis_client: Redis = Depends(get_redis_client),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: models.User = Depends(get_current_user),
):
    prop = get_property_or_404(storage, property_id)
    if not can_manage_property(current_user, prop):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="You do not have permission to edit this property")

    data = {k: v for k, v in changes.model_dump(exclude_unset=True).items() if v is not None}
    resubmitted = not is_admin_or_staff(current_user)
    if resubmitted:
        # Any host edit goes back through review
        data.update(
            status=models.PropertyStatus.PENDING,
            is_active=False,
            is_visible=False,
            rejection_reason=None,
        )

    old_values = snapshot(prop, PROPERTY_FIELDS)
    updated = storage.update_property(property_id, data)
    audit.log_property_action(current_user.id, "update_property", property_id,
                              old_values=old_values, new_values=snapshot(updated, PROPERTY_FIELDS))
    if resubmitted:
        NotificationService(storage).property_submitted(updated, current_user)
    invalidate_property_cache(redis_client, property_id)
    return updated


@router.delete("/properties/{property_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_property(
        property_id: int,
        storage: SwitchingStorage = Depends(get_storage),
        redis_client: Redis = Depends(get_redis_client),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: models.User = Depends(get_current_user),
):
    prop = get_property_or_404(storage, property_id)
    if not (current_user.role == models.UserRole.ADMIN or prop.owner_id == current_user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="You do not have permission to delete this property")
    if storage.get_bookings_by_property(property_id):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT,
                            detail="Property has bookings; hide it instead of deleting it")

    storage.delete_property(property_id)
    audit.log_property_action(current_user.id, "delete_property", property_id,
                              old_values=snapshot(prop, PROPERTY_FIELDS),
                              severity=models.AuditSeverity.WARNING)
    invalidate_property_cache(redis_client, property_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Availability ---

@router.get("/properties/{property_id}/availability", response_model=schemas.AvailabilityResponse,
            response_model_exclude_none=True)
def read_availability(
        property_id: int,
        check_in: datetime.date = Query(alias="checkIn"),
        check_out: datetime.date = Query(alias="checkOut"),
        storage: SwitchingStorage = Depends(get_storage),
):
    if check_in >= check_out:
        raise booking_rules.BookingValidationError("Invalid booking data", [
            {"field": "checkOut", "message": "Check-out date must be after check-in date"}
        ])
    get_property_or_404(storage, property_id)

    result = check_availability(storage, property_id, check_in, check_out)
    return schemas.AvailabilityResponse(
        available=result.available,
        booked_dates=[schemas.BookedDateRange.model_validate(r) for r in result.booked_dates] or None,
        message=result.message,
    )


@router.get("/properties/{property_id}/booked-dates", response_model=List[schemas.BookedDateRange])
def read_booked_dates(
        property_id: int,
        storage: SwitchingStorage = Depends(get_storage),
):
    get_property_or_404(storage, property_id)
    return [schemas.BookedDateRange.model_validate(r) for r in get_booked_dates(storage, property_id)]


@router.post("/properties/{property_id}/block", response_model=schemas.BookingRead,
             status_code=status.HTTP_201_CREATED)
def block_property_dates(
        property_id: int,
        request: schemas.BlockDatesRequest,
        storage: SwitchingStorage = Depends(get_storage),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: models.User = Depends(get_current_user),
):
    booking = booking_rules.block_dates(storage, property_id, request, current_user)
    audit.log_booking_action(current_user.id, "block_dates", booking,
                             description=f"Blocked {booking.check_in} to {booking.check_out}")
    return booking
