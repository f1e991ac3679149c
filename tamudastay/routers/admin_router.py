from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from redis import Redis

from .. import models, schemas
from ..audit_logger import PROPERTY_FIELDS, AuditLogger, get_audit_logger, snapshot
from ..auth import require_admin, require_admin_or_staff
from ..database import get_redis_client
from ..notifications import NotificationService
from ..storage_switch import SwitchingStorage, get_storage
from .property_router import get_property_or_404, invalidate_property_cache

router = APIRouter(prefix="/api/admin", tags=["Admin"])


@router.get("/properties", response_model=List[schemas.PropertyRead])
def read_all_properties(
        status: Optional[models.PropertyStatus] = None,
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(require_admin_or_staff),
):
    """Every listing regardless of visibility, optionally filtered by review status."""
    return storage.get_properties(status=status)


def _review(
        storage: SwitchingStorage,
        redis_client: Redis,
        audit: AuditLogger,
        reviewer: models.User,
        property_id: int,
        action: str,
        changes: dict,
        severity: models.AuditSeverity = models.AuditSeverity.INFO,
) -> models.Property:
    prop = get_property_or_404(storage, property_id)
    old_values = snapshot(prop, PROPERTY_FIELDS)
    updated = storage.update_property(property_id, changes)
    audit.log_property_action(reviewer.id, action, property_id, old_values=old_values,
                              new_values=snapshot(updated, PROPERTY_FIELDS), severity=severity)
    NotificationService(storage).property_reviewed(updated)
    invalidate_property_cache(redis_client, property_id)
    return updated


@router.patch("/properties/{property_id}/approve", response_model=schemas.PropertyRead)
def approve_property(
        property_id: int,
        storage: SwitchingStorage = Depends(get_storage),
        redis_client: Redis = Depends(get_redis_client),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: models.User = Depends(require_admin_or_staff),
):
    return _review(storage, redis_client, audit, current_user, property_id, "approve_property", {
        "status": models.PropertyStatus.APPROVED,
        "is_active": True,
        "is_visible": True,
        "rejection_reason": None,
        "approved_at": models.utcnow(),
    })


@router.patch("/properties/{property_id}/reject", response_model=schemas.PropertyRead)
def reject_property(
        property_id: int,
        body: schemas.PropertyRejection,
        storage: SwitchingStorage = Depends(get_storage),
        redis_client: Redis = Depends(get_redis_client),
        audit: AuditLogger = Depends(get_audit_logger),
        current_user: models.User = Depends(require_admin_or_staff),
):
    return _review(storage, redis_client, audit, current_user, property_id, "reject_property", {
        "status": models.PropertyStatus.REJECTED,
        "is_active": False,
        "is_visible": False,
        "rejection_reason": body.rejection_reason,
        "approved_at": None,
    }, severity=models.AuditSeverity.WARNING)


@router.get("/audit-logs", response_model=List[schemas.AuditLogRead])
def read_audit_logs(
        user_id: Optional[int] = Query(default=None, alias="userId"),
        action: Optional[str] = None,
        entity: Optional[str] = None,
        entity_id: Optional[int] = Query(default=None, alias="entityId"),
        limit: int = Query(default=100, ge=1, le=500),
        offset: int = Query(default=0, ge=0),
        storage: SwitchingStorage = Depends(get_storage),
        current_user: models.User = Depends(require_admin),
):
    return storage.get_audit_logs(
        user_id=user_id, action=action, entity=entity, entity_id=entity_id, limit=limit, offset=offset
    )
