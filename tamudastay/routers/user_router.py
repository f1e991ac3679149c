from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from .. import models, schemas
from ..audit_logger import USER_FIELDS, AuditLogger, get_audit_logger, snapshot
from ..auth import get_current_user, is_admin_or_staff, require_admin, require_admin_or_staff
from ..security import hash_password
from ..storage_switch import SwitchingStorage, get_storage
from .auth_router import ensure_unique_identity

router = APIRouter(prefix="/api/users", tags=["Users"])


def _get_user_or_404(storage: SwitchingStorage, user_id: int) -> models.User:
    user = storage.get_user(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


def _ensure_self_or_staff(current_user: models.User, user_id: int) -> None:
    if current_user.id != user_id and not is_admin_or_staff(current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")


@router.get("", response_model=List[schemas.UserRead])
def read_users(
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(require_admin_or_staff),
):
    return storage.get_all_users()


@router.get("/{user_id}", response_model=schemas.UserRead)
def read_user(
        user_id: int,
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(get_current_user),
):
    _ensure_self_or_staff(current_user, user_id)
    return _get_user_or_404(storage, user_id)


@router.post("", response_model=schemas.UserRead, status_code=status.HTTP_201_CREATED)
def create_user(
        user_in: schemas.UserCreate,
        storage: SwitchingStorage = Depends(get_storage),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: models.User = Depends(require_admin),
):
    ensure_unique_identity(storage, user_in.username, user_in.email)
    data = user_in.model_dump(exclude={"password"})
    data["hashed_password"] = hash_password(user_in.password)
    user = storage.create_user(data)
    audit.log_user_action(current_user.id, "create_user", user.id,
                          description=f"Created {user.role.value} account {user.username}")
    return user


@router.put("/{user_id}", response_model=schemas.UserRead)
def update_user(
        user_id: int,
        changes: schemas.UserUpdate,
        storage: SwitchingStorage = Depends(get_storage),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: models.User = Depends(get_current_user),
):
    is_admin = current_user.role == models.UserRole.ADMIN
    if current_user.id != user_id and not is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    user = _get_user_or_404(storage, user_id)

    data = changes.model_dump(exclude_unset=True)
    if ("role" in data or "status" in data) and not is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN,
                            detail="Only admins can change roles or account status")
    if data.get("email") and data["email"] != user.email:
        other = storage.get_user_by_email(data["email"])
        if other is not None and other.id != user.id:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")
    password = data.pop("password", None)
    if password:
        data["hashed_password"] = hash_password(password)
    data = {k: v for k, v in data.items() if v is not None or k == "phone"}

    old_values = snapshot(user, USER_FIELDS)
    updated = storage.update_user(user_id, data)
    audit.log("update_user", "user", user_id=current_user.id, entity_id=user_id,
              old_values=old_values, new_values=snapshot(updated, USER_FIELDS))
    return updated


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_user(
        user_id: int,
        storage: SwitchingStorage = Depends(get_storage),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: models.User = Depends(require_admin),
):
    if user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account")
    user = _get_user_or_404(storage, user_id)
    if storage.get_properties_by_owner(user_id) or storage.get_bookings_by_user(user_id):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User still owns properties or bookings; deactivate the account instead",
        )

    storage.delete_user(user_id)
    audit.log_user_action(current_user.id, "delete_user", user_id,
                          description=f"Deleted account {user.username}",
                          severity=models.AuditSeverity.WARNING)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{user_id}/bookings", response_model=List[schemas.BookingRead])
def read_user_bookings(
        user_id: int,
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(get_current_user),
):
    _ensure_self_or_staff(current_user, user_id)
    _get_user_or_404(storage, user_id)
    return storage.get_bookings_by_user(user_id)
