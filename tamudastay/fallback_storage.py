import logging
import threading
from contextlib import contextmanager
from decimal import Decimal

from . import mock_data, models
from .storage import Storage

logger = logging.getLogger("tamudastay")

# Column defaults the database would otherwise fill in on INSERT
_DEFAULTS = {
    models.User: {"role": models.UserRole.USER, "status": models.UserStatus.ACTIVE},
    models.Property: {
        "price_unit": "night",
        "images": [],
        "amenities": [],
        "featured": False,
        "rating": Decimal("0"),
        "review_count": 0,
        "status": models.PropertyStatus.PENDING,
        "is_active": False,
        "is_visible": False,
    },
    models.Booking: {"status": models.BookingStatus.PENDING},
    models.Message: {"status": models.MessageStatus.NEW},
    models.Notification: {"is_read": False},
    models.AuditLog: {"severity": models.AuditSeverity.INFO},
}


class FallbackStorage(Storage):
    """
    In-memory mirror of DatabaseStorage, seeded from ``mock_data``.

    Rows are transient ORM objects, so everything downstream (schemas,
    booking rules) treats them exactly like database rows. Data lives for the
    process lifetime only and is not shared between server instances.
    """

    mode = "fallback"

    def __init__(self):
        self._lock = threading.RLock()
        self._rows = {
            models.User: mock_data.seed_users(),
            models.Property: mock_data.seed_properties(),
            models.Booking: mock_data.seed_bookings(),
            models.Message: mock_data.seed_messages(),
            models.Notification: [],
            models.AuditLog: mock_data.seed_audit_logs(),
        }
        self._next_ids = {
            model: max((row.id for row in rows), default=0) + 1
            for model, rows in self._rows.items()
        }

    def _all(self, model, predicate=None):
        with self._lock:
            rows = self._rows[model]
            return [row for row in rows if predicate is None or predicate(row)]

    def _get(self, model, obj_id):
        with self._lock:
            return next((row for row in self._rows[model] if row.id == obj_id), None)

    def _create(self, model, data):
        with self._lock:
            now = models.utcnow()
            values = {**_DEFAULTS.get(model, {}), **data}
            values["id"] = self._next_ids[model]
            self._next_ids[model] += 1
            values.setdefault("created_at", now)
            if "updated_at" in model.__table__.columns:
                values.setdefault("updated_at", now)
            obj = model(**values)
            self._rows[model].append(obj)
            return obj

    def _update(self, model, obj_id, data):
        with self._lock:
            obj = self._get(model, obj_id)
            if obj is None:
                return None
            for key, value in data.items():
                setattr(obj, key, value)
            if "updated_at" in model.__table__.columns:
                obj.updated_at = models.utcnow()
            return obj

    def _delete(self, model, obj_id):
        with self._lock:
            before = len(self._rows[model])
            self._rows[model] = [row for row in self._rows[model] if row.id != obj_id]
            return len(self._rows[model]) < before

    # --- Users ---
    def get_user(self, user_id):
        return self._get(models.User, user_id)

    def get_user_by_username(self, username):
        return next(iter(self._all(models.User, lambda u: u.username == username)), None)

    def get_user_by_email(self, email):
        return next(iter(self._all(models.User, lambda u: u.email == email)), None)

    def get_all_users(self):
        return sorted(self._all(models.User), key=lambda u: u.id)

    def create_user(self, data):
        return self._create(models.User, data)

    def update_user(self, user_id, data):
        return self._update(models.User, user_id, data)

    def delete_user(self, user_id):
        return self._delete(models.User, user_id)

    # --- Properties ---
    def get_property(self, property_id):
        return self._get(models.Property, property_id)

    def get_properties(self, status=None):
        rows = self._all(models.Property, lambda p: status is None or p.status == status)
        return sorted(rows, key=lambda p: p.created_at)

    def get_visible_properties(self):
        rows = self._all(
            models.Property,
            lambda p: p.status == models.PropertyStatus.APPROVED and p.is_active and p.is_visible,
        )
        return sorted(rows, key=lambda p: (not p.featured, p.id))

    def get_properties_by_owner(self, owner_id):
        rows = self._all(models.Property, lambda p: p.owner_id == owner_id)
        return sorted(rows, key=lambda p: p.created_at)

    def create_property(self, data):
        return self._create(models.Property, data)

    def update_property(self, property_id, data):
        return self._update(models.Property, property_id, data)

    def delete_property(self, property_id):
        return self._delete(models.Property, property_id)

    # --- Bookings ---
    def get_booking(self, booking_id):
        return self._get(models.Booking, booking_id)

    def get_all_bookings(self):
        return sorted(self._all(models.Booking), key=lambda b: b.id)

    def get_bookings_by_property(self, property_id):
        rows = self._all(models.Booking, lambda b: b.property_id == property_id)
        return sorted(rows, key=lambda b: b.check_in)

    def get_bookings_by_user(self, user_id):
        rows = self._all(models.Booking, lambda b: b.user_id == user_id)
        return sorted(rows, key=lambda b: b.id)

    def get_active_bookings_for_property(self, property_id, exclude_booking_id=None):
        rows = self._all(
            models.Booking,
            lambda b: (
                b.property_id == property_id
                and b.status != models.BookingStatus.CANCELLED
                and b.id != exclude_booking_id
            ),
        )
        return sorted(rows, key=lambda b: b.check_in)

    def get_user_booking_for_property(self, user_id, property_id):
        rows = self._all(
            models.Booking,
            lambda b: (
                b.user_id == user_id
                and b.property_id == property_id
                and b.status in models.OPEN_BOOKING_STATUSES
            ),
        )
        return max(rows, key=lambda b: b.id, default=None)

    def get_bookings_ending_before(self, day, status):
        return self._all(models.Booking, lambda b: b.check_out < day and b.status == status)

    def create_booking(self, data):
        return self._create(models.Booking, data)

    def update_booking(self, booking_id, data):
        return self._update(models.Booking, booking_id, data)

    # --- Messages ---
    def get_message(self, message_id):
        return self._get(models.Message, message_id)

    def get_all_messages(self):
        return sorted(self._all(models.Message), key=lambda m: (m.created_at, m.id), reverse=True)

    def create_message(self, data):
        return self._create(models.Message, data)

    def update_message(self, message_id, data):
        return self._update(models.Message, message_id, data)

    def delete_message(self, message_id):
        return self._delete(models.Message, message_id)

    # --- Notifications ---
    def create_notification(self, data):
        return self._create(models.Notification, data)

    def get_notifications_for_user(self, user_id):
        rows = self._all(models.Notification, lambda n: n.user_id == user_id)
        return sorted(rows, key=lambda n: (n.created_at, n.id), reverse=True)

    def mark_notification_read(self, notification_id, user_id):
        with self._lock:
            notification = self._get(models.Notification, notification_id)
            if notification is None or notification.user_id != user_id:
                return None
            notification.is_read = True
            return notification

    # --- Audit logs ---
    def create_audit_log(self, data):
        return self._create(models.AuditLog, data)

    def get_audit_logs(self, user_id=None, action=None, entity=None, entity_id=None, limit=None, offset=0):
        rows = self._all(
            models.AuditLog,
            lambda log: (
                (user_id is None or log.user_id == user_id)
                and (not action or log.action == action)
                and (not entity or log.entity == entity)
                and (entity_id is None or log.entity_id == entity_id)
            ),
        )
        rows.sort(key=lambda log: (log.created_at, log.id), reverse=True)
        rows = rows[offset:]
        return rows[:limit] if limit else rows

    # --- Events & transactions ---
    def publish_event(self, topic, payload):
        # No outbox without the database; events are best-effort
        logger.info(f"Fallback mode: event on topic {topic} not published: {payload}")

    @contextmanager
    def locked_property(self, property_id):
        with self._lock:
            yield self
