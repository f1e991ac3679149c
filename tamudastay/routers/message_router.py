from typing import List

from fastapi import APIRouter, Depends, HTTPException, Response, status

from .. import models, schemas
from ..auth import require_admin_or_staff
from ..storage_switch import SwitchingStorage, get_storage

router = APIRouter(prefix="/api/messages", tags=["Messages"])


@router.post("", response_model=schemas.MessageRead, status_code=status.HTTP_201_CREATED)
def create_message(message_in: schemas.MessageCreate, storage: SwitchingStorage = Depends(get_storage)):
    """Public contact form."""
    return storage.create_message(message_in.model_dump())


@router.get("", response_model=List[schemas.MessageRead])
def read_messages(
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(require_admin_or_staff),
):
    return storage.get_all_messages()


@router.put("/{message_id}", response_model=schemas.MessageRead)
def update_message(
        message_id: int,
        body: schemas.MessageUpdate,
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(require_admin_or_staff),
):
    message = storage.update_message(message_id, {"status": body.status})
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return message


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_message(
        message_id: int,
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(require_admin_or_staff),
):
    if not storage.delete_message(message_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
