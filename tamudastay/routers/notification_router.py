from typing import List

from fastapi import APIRouter, Depends, HTTPException, status

from .. import models, schemas
from ..auth import get_current_user
from ..storage_switch import SwitchingStorage, get_storage

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get("", response_model=List[schemas.NotificationRead])
def read_notifications(
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(get_current_user),
):
    return storage.get_notifications_for_user(current_user.id)


@router.patch("/{notification_id}/read", response_model=schemas.NotificationRead)
def mark_read(
        notification_id: int,
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(get_current_user),
):
    notification = storage.mark_notification_read(notification_id, current_user.id)
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification
