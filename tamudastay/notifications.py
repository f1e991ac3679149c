import logging

from . import models
from .config import settings

logger = logging.getLogger("tamudastay")

PROPERTY_REVIEW_REQUEST = "PROPERTY_REVIEW_REQUEST"
PROPERTY_APPROVED = "PROPERTY_APPROVED"
PROPERTY_REJECTED = "PROPERTY_REJECTED"
NEW_BOOKING = "NEW_BOOKING"


class NotificationService:
    """
    Stores notifications and publishes each one to the notification topic.

    Delivery is best-effort: a failure here is logged and never fails the
    request that triggered it.
    """

    def __init__(self, storage):
        self.storage = storage

    def _notify(self, user_id: int, type_: str, title: str, message: str, property_id=None):
        try:
            notification = self.storage.create_notification({
                "user_id": user_id,
                "type": type_,
                "title": title,
                "message": message,
                "property_id": property_id,
            })
            self.storage.publish_event(settings.KAFKA_NOTIFICATION_TOPIC, {
                "notification_id": notification.id,
                "user_id": user_id,
                "type": type_,
                "title": title,
                "message": message,
                "property_id": property_id,
            })
            return notification
        except Exception as e:
            logger.error(f"Failed to create {type_} notification for user {user_id}: {e}")
            self.storage.rollback()
            return None

    def property_submitted(self, prop: models.Property, host: models.User) -> int:
        """Tells every admin and staff member a listing is waiting for review."""
        reviewers = [
            u for u in self.storage.get_all_users()
            if u.role in (models.UserRole.ADMIN, models.UserRole.STAFF)
            and u.status == models.UserStatus.ACTIVE
        ]
        for reviewer in reviewers:
            self._notify(
                reviewer.id,
                PROPERTY_REVIEW_REQUEST,
                "New property awaiting review",
                f'{host.name} submitted "{prop.title}" for review.',
                property_id=prop.id,
            )
        return len(reviewers)

    def property_reviewed(self, prop: models.Property):
        if prop.owner_id is None:
            return None
        if prop.status == models.PropertyStatus.APPROVED:
            return self._notify(
                prop.owner_id,
                PROPERTY_APPROVED,
                "Property approved",
                f'Your property "{prop.title}" has been approved and is now live.',
                property_id=prop.id,
            )
        reason = f"Reason: {prop.rejection_reason}" if prop.rejection_reason else "Please review and resubmit."
        return self._notify(
            prop.owner_id,
            PROPERTY_REJECTED,
            "Property rejected",
            f'Your property "{prop.title}" has been rejected. {reason}',
            property_id=prop.id,
        )

    def new_booking(self, booking: models.Booking, prop: models.Property):
        if prop.owner_id is None:
            return None
        return self._notify(
            prop.owner_id,
            NEW_BOOKING,
            "New booking request",
            f'{booking.guest_name} requested "{prop.title}" from {booking.check_in} to {booking.check_out}.',
            property_id=prop.id,
        )
