"""
Storage strategies.

Every read and write the API performs goes through a ``Storage``. The
database-backed implementation lives here; the in-memory mirror used after a
quota error lives in ``fallback_storage``.
"""
import datetime
import json
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy.orm import Session

from . import models
from .database import SQLITE_BEGIN_IMMEDIATE

T = TypeVar("T")


class Storage(ABC):
    mode: str = "abstract"

    # --- Users ---
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[models.User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[models.User]: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[models.User]: ...

    @abstractmethod
    def get_all_users(self) -> List[models.User]: ...

    @abstractmethod
    def create_user(self, data: Dict[str, Any]) -> models.User: ...

    @abstractmethod
    def update_user(self, user_id: int, data: Dict[str, Any]) -> Optional[models.User]: ...

    @abstractmethod
    def delete_user(self, user_id: int) -> bool: ...

    # --- Properties ---
    @abstractmethod
    def get_property(self, property_id: int) -> Optional[models.Property]: ...

    @abstractmethod
    def get_properties(self, status: Optional[models.PropertyStatus] = None) -> List[models.Property]: ...

    @abstractmethod
    def get_visible_properties(self) -> List[models.Property]: ...

    @abstractmethod
    def get_properties_by_owner(self, owner_id: int) -> List[models.Property]: ...

    @abstractmethod
    def create_property(self, data: Dict[str, Any]) -> models.Property: ...

    @abstractmethod
    def update_property(self, property_id: int, data: Dict[str, Any]) -> Optional[models.Property]: ...

    @abstractmethod
    def delete_property(self, property_id: int) -> bool: ...

    # --- Bookings ---
    @abstractmethod
    def get_booking(self, booking_id: int) -> Optional[models.Booking]: ...

    @abstractmethod
    def get_all_bookings(self) -> List[models.Booking]: ...

    @abstractmethod
    def get_bookings_by_property(self, property_id: int) -> List[models.Booking]: ...

    @abstractmethod
    def get_bookings_by_user(self, user_id: int) -> List[models.Booking]: ...

    @abstractmethod
    def get_active_bookings_for_property(
            self, property_id: int, exclude_booking_id: Optional[int] = None
    ) -> List[models.Booking]:
        """Non-cancelled bookings (blocked ranges included), ordered by check-in."""

    @abstractmethod
    def get_user_booking_for_property(self, user_id: int, property_id: int) -> Optional[models.Booking]:
        """The user's most recent pending or confirmed booking for the property, if any."""

    @abstractmethod
    def get_bookings_ending_before(
            self, day: datetime.date, status: models.BookingStatus
    ) -> List[models.Booking]: ...

    @abstractmethod
    def create_booking(self, data: Dict[str, Any]) -> models.Booking: ...

    @abstractmethod
    def update_booking(self, booking_id: int, data: Dict[str, Any]) -> Optional[models.Booking]: ...

    # --- Messages ---
    @abstractmethod
    def get_message(self, message_id: int) -> Optional[models.Message]: ...

    @abstractmethod
    def get_all_messages(self) -> List[models.Message]: ...

    @abstractmethod
    def create_message(self, data: Dict[str, Any]) -> models.Message: ...

    @abstractmethod
    def update_message(self, message_id: int, data: Dict[str, Any]) -> Optional[models.Message]: ...

    @abstractmethod
    def delete_message(self, message_id: int) -> bool: ...

    # --- Notifications ---
    @abstractmethod
    def create_notification(self, data: Dict[str, Any]) -> models.Notification: ...

    @abstractmethod
    def get_notifications_for_user(self, user_id: int) -> List[models.Notification]: ...

    @abstractmethod
    def mark_notification_read(self, notification_id: int, user_id: int) -> Optional[models.Notification]: ...

    # --- Audit logs ---
    @abstractmethod
    def create_audit_log(self, data: Dict[str, Any]) -> models.AuditLog: ...

    @abstractmethod
    def get_audit_logs(
            self,
            user_id: Optional[int] = None,
            action: Optional[str] = None,
            entity: Optional[str] = None,
            entity_id: Optional[int] = None,
            limit: Optional[int] = None,
            offset: int = 0,
    ) -> List[models.AuditLog]:
        """Matching logs, newest first."""

    # --- Events & transactions ---
    @abstractmethod
    def publish_event(self, topic: str, payload: Dict[str, Any]) -> None: ...

    @abstractmethod
    def locked_property(self, property_id: int):
        """Context manager: one critical section for all booking writes on a property."""

    def run_locked(self, property_id: int, work: Callable[["Storage"], T]) -> T:
        with self.locked_property(property_id):
            return work(self)

    def rollback(self) -> None:
        pass


class DatabaseStorage(Storage):
    """SQLAlchemy-backed storage bound to one request's session."""

    mode = "database"

    def __init__(self, db: Session):
        self.db = db
        self._locked = False

    def _save(self, obj=None):
        # Inside a locked section the outer block owns the commit
        if obj is not None:
            self.db.add(obj)
        if self._locked:
            self.db.flush()
        else:
            self.db.commit()
            if obj is not None:
                self.db.refresh(obj)
        return obj

    def _get(self, model, obj_id: int):
        return self.db.query(model).filter(model.id == obj_id).first()

    def _update(self, model, obj_id: int, data: Dict[str, Any]):
        obj = self._get(model, obj_id)
        if obj is None:
            return None
        for key, value in data.items():
            setattr(obj, key, value)
        return self._save(obj)

    def _delete(self, model, obj_id: int) -> bool:
        obj = self._get(model, obj_id)
        if obj is None:
            return False
        self.db.delete(obj)
        self._save()
        return True

    # --- Users ---
    def get_user(self, user_id):
        return self._get(models.User, user_id)

    def get_user_by_username(self, username):
        return self.db.query(models.User).filter(models.User.username == username).first()

    def get_user_by_email(self, email):
        return self.db.query(models.User).filter(models.User.email == email).first()

    def get_all_users(self):
        return self.db.query(models.User).order_by(models.User.id).all()

    def create_user(self, data):
        return self._save(models.User(**data))

    def update_user(self, user_id, data):
        return self._update(models.User, user_id, data)

    def delete_user(self, user_id):
        return self._delete(models.User, user_id)

    # --- Properties ---
    def get_property(self, property_id):
        return self._get(models.Property, property_id)

    def get_properties(self, status=None):
        query = self.db.query(models.Property)
        if status is not None:
            query = query.filter(models.Property.status == status)
        return query.order_by(models.Property.created_at).all()

    def get_visible_properties(self):
        return self.db.query(models.Property).filter(
            models.Property.status == models.PropertyStatus.APPROVED,
            models.Property.is_active.is_(True),
            models.Property.is_visible.is_(True),
        ).order_by(models.Property.featured.desc(), models.Property.id).all()

    def get_properties_by_owner(self, owner_id):
        return self.db.query(models.Property).filter(
            models.Property.owner_id == owner_id
        ).order_by(models.Property.created_at).all()

    def create_property(self, data):
        return self._save(models.Property(**data))

    def update_property(self, property_id, data):
        return self._update(models.Property, property_id, data)

    def delete_property(self, property_id):
        return self._delete(models.Property, property_id)

    # --- Bookings ---
    def get_booking(self, booking_id):
        return self._get(models.Booking, booking_id)

    def get_all_bookings(self):
        return self.db.query(models.Booking).order_by(models.Booking.id).all()

    def get_bookings_by_property(self, property_id):
        return self.db.query(models.Booking).filter(
            models.Booking.property_id == property_id
        ).order_by(models.Booking.check_in).all()

    def get_bookings_by_user(self, user_id):
        return self.db.query(models.Booking).filter(
            models.Booking.user_id == user_id
        ).order_by(models.Booking.id).all()

    def get_active_bookings_for_property(self, property_id, exclude_booking_id=None):
        query = self.db.query(models.Booking).filter(
            models.Booking.property_id == property_id,
            models.Booking.status != models.BookingStatus.CANCELLED,
        )
        if exclude_booking_id is not None:
            query = query.filter(models.Booking.id != exclude_booking_id)
        return query.order_by(models.Booking.check_in).all()

    def get_user_booking_for_property(self, user_id, property_id):
        return self.db.query(models.Booking).filter(
            models.Booking.user_id == user_id,
            models.Booking.property_id == property_id,
            models.Booking.status.in_(models.OPEN_BOOKING_STATUSES),
        ).order_by(models.Booking.id.desc()).first()

    def get_bookings_ending_before(self, day, status):
        return self.db.query(models.Booking).filter(
            models.Booking.check_out < day,
            models.Booking.status == status,
        ).all()

    def create_booking(self, data):
        return self._save(models.Booking(**data))

    def update_booking(self, booking_id, data):
        return self._update(models.Booking, booking_id, data)

    # --- Messages ---
    def get_message(self, message_id):
        return self._get(models.Message, message_id)

    def get_all_messages(self):
        return self.db.query(models.Message).order_by(models.Message.created_at.desc()).all()

    def create_message(self, data):
        return self._save(models.Message(**data))

    def update_message(self, message_id, data):
        return self._update(models.Message, message_id, data)

    def delete_message(self, message_id):
        return self._delete(models.Message, message_id)

    # --- Notifications ---
    def create_notification(self, data):
        return self._save(models.Notification(**data))

    def get_notifications_for_user(self, user_id):
        return self.db.query(models.Notification).filter(
            models.Notification.user_id == user_id
        ).order_by(models.Notification.created_at.desc(), models.Notification.id.desc()).all()

    def mark_notification_read(self, notification_id, user_id):
        notification = self.db.query(models.Notification).filter(
            models.Notification.id == notification_id,
            models.Notification.user_id == user_id,
        ).first()
        if notification is None:
            return None
        notification.is_read = True
        return self._save(notification)

    # --- Audit logs ---
    def create_audit_log(self, data):
        return self._save(models.AuditLog(**data))

    def get_audit_logs(self, user_id=None, action=None, entity=None, entity_id=None, limit=None, offset=0):
        query = self.db.query(models.AuditLog)
        if user_id is not None:
            query = query.filter(models.AuditLog.user_id == user_id)
        if action:
            query = query.filter(models.AuditLog.action == action)
        if entity:
            query = query.filter(models.AuditLog.entity == entity)
        if entity_id is not None:
            query = query.filter(models.AuditLog.entity_id == entity_id)
        query = query.order_by(models.AuditLog.created_at.desc(), models.AuditLog.id.desc())
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return query.all()

    # --- Events & transactions ---
    def publish_event(self, topic, payload):
        # Written in the same transaction as the change it describes
        self._save(models.OutboxEvent(
            topic=topic,
            payload=json.dumps(payload, default=str),
            status="PENDING",
        ))

    @contextmanager
    def locked_property(self, property_id):
        if self._locked:
            yield self
            return
        self._locked = True
        try:
            if self.db.get_bind().dialect.name == "sqlite":
                # No row locks on SQLite; hold the database write lock instead
                if self.db.in_transaction():
                    self.db.commit()
                self.db.connection(execution_options={SQLITE_BEGIN_IMMEDIATE: True})
            # Row lock serializes concurrent booking writes for the property
            self.db.query(models.Property.id).filter(
                models.Property.id == property_id
            ).with_for_update().first()
            yield self
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        finally:
            self._locked = False

    def rollback(self):
        self.db.rollback()
