import json
import logging
from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, Request

from . import models
from .storage_switch import SwitchingStorage, get_storage

logger = logging.getLogger("tamudastay")

BOOKING_FIELDS = ("check_in", "check_out", "guests", "amount", "status", "comments")
PROPERTY_FIELDS = ("title", "price", "status", "is_active", "is_visible", "rejection_reason")
USER_FIELDS = ("username", "email", "name", "role", "status")


def snapshot(obj, fields: Iterable[str]) -> Dict[str, Any]:
    return {name: getattr(obj, name) for name in fields}


class AuditLogger:
    """Writes audit_logs rows. Failures are logged and never break the request."""

    def __init__(self, storage, request: Optional[Request] = None):
        self.storage = storage
        self.ip_address = request.client.host if request is not None and request.client else None
        self.user_agent = request.headers.get("user-agent") if request is not None else None

    def log(
            self,
            action: str,
            entity: str,
            user_id: Optional[int] = None,
            entity_id: Optional[int] = None,
            old_values: Optional[Dict[str, Any]] = None,
            new_values: Optional[Dict[str, Any]] = None,
            description: Optional[str] = None,
            severity: models.AuditSeverity = models.AuditSeverity.INFO,
    ) -> None:
        data = {
            "user_id": user_id,
            "action": action,
            "entity": entity,
            "entity_id": entity_id,
            "old_values": json.dumps(old_values, default=str) if old_values is not None else None,
            "new_values": json.dumps(new_values, default=str) if new_values is not None else None,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "severity": severity,
            "description": description,
        }
        try:
            self.storage.create_audit_log(data)
        except Exception as e:
            logger.error(f"Failed to log audit event '{action}' on {entity} {entity_id}: {e}")
            self.storage.rollback()

    def log_booking_action(self, user_id, action, booking, old_values=None, description=None):
        self.log(action, "booking", user_id=user_id, entity_id=booking.id, old_values=old_values,
                 new_values=snapshot(booking, BOOKING_FIELDS), description=description)

    def log_property_action(self, user_id, action, property_id, old_values=None, new_values=None,
                            description=None, severity=models.AuditSeverity.INFO):
        self.log(action, "property", user_id=user_id, entity_id=property_id, old_values=old_values,
                 new_values=new_values, description=description, severity=severity)

    def log_user_action(self, user_id, action, target_id, description=None,
                        severity=models.AuditSeverity.INFO):
        self.log(action, "user", user_id=user_id, entity_id=target_id, description=description,
                 severity=severity)


def get_audit_logger(request: Request, storage: SwitchingStorage = Depends(get_storage)) -> AuditLogger:
    return AuditLogger(storage, request)
