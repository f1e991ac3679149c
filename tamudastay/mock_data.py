"""
Fixture data that seeds the in-memory fallback store.

Each ``seed_*`` call returns fresh objects, so every FallbackStorage owns its
own copy and tests never leak state into each other.
"""
import datetime
import json
from decimal import Decimal
from functools import lru_cache

from . import models
from .security import hash_password

# Login for the seeded accounts while running on the fallback store
DEV_PASSWORD = "TamudaStay#2024"


@lru_cache(maxsize=1)
def _dev_password_hash() -> str:
    return hash_password(DEV_PASSWORD)


def seed_users():
    return [
        models.User(
            id=1,
            username="admin",
            email="admin@example.com",
            name="Admin User",
            hashed_password=_dev_password_hash(),
            role=models.UserRole.ADMIN,
            status=models.UserStatus.ACTIVE,
            phone=None,
            created_at=datetime.datetime(2024, 1, 1),
            updated_at=datetime.datetime(2024, 1, 1),
        ),
        models.User(
            id=2,
            username="host1",
            email="host1@example.com",
            name="Host One",
            hashed_password=_dev_password_hash(),
            role=models.UserRole.OWNER,
            status=models.UserStatus.ACTIVE,
            phone=None,
            created_at=datetime.datetime(2024, 1, 2),
            updated_at=datetime.datetime(2024, 1, 2),
        ),
    ]


def seed_properties():
    return [
        models.Property(
            id=1,
            title="Cozy Downtown Apartment",
            description="A beautiful 2-bedroom apartment in the heart of the city",
            price=Decimal("120.00"),
            price_unit="night",
            images=["https://images.unsplash.com/photo-1522708323590-d24dbb6b0267"],
            location="Downtown, City Center",
            bedrooms=2,
            bathrooms=1,
            capacity=4,
            amenities=["WiFi", "Kitchen", "Parking", "Air Conditioning"],
            featured=True,
            rating=Decimal("4.50"),
            review_count=12,
            status=models.PropertyStatus.APPROVED,
            is_active=True,
            is_visible=True,
            rejection_reason=None,
            approved_at=datetime.datetime(2024, 1, 1),
            owner_id=2,
            created_at=datetime.datetime(2024, 1, 1),
            updated_at=datetime.datetime(2024, 1, 1),
        ),
        models.Property(
            id=2,
            title="Seaside Villa",
            description="Luxury villa with ocean views and private beach access",
            price=Decimal("350.00"),
            price_unit="night",
            images=["https://images.unsplash.com/photo-1582268611958-ebfd161ef9cf"],
            location="Coastal Area, Beach Front",
            bedrooms=4,
            bathrooms=3,
            capacity=8,
            amenities=["WiFi", "Pool", "Beach Access", "Garden", "Parking"],
            featured=True,
            rating=Decimal("4.80"),
            review_count=25,
            status=models.PropertyStatus.APPROVED,
            is_active=True,
            is_visible=True,
            rejection_reason=None,
            approved_at=datetime.datetime(2024, 1, 2),
            owner_id=2,
            created_at=datetime.datetime(2024, 1, 2),
            updated_at=datetime.datetime(2024, 1, 2),
        ),
    ]


def seed_bookings():
    return [
        models.Booking(
            id=1,
            property_id=1,
            user_id=1,
            guest_name="John Doe",
            guest_email="john@example.com",
            guest_phone="+1234567890",
            check_in=datetime.date(2024, 7, 20),
            check_out=datetime.date(2024, 7, 25),
            guests=2,
            amount=Decimal("600.00"),
            status=models.BookingStatus.CONFIRMED,
            comments=None,
            created_at=datetime.datetime(2024, 7, 10),
            updated_at=datetime.datetime(2024, 7, 10),
        ),
    ]


def seed_messages():
    return [
        models.Message(
            id=1,
            name="System",
            email="system@tamudastay.com",
            subject="Welcome",
            message="Welcome to TamudaStay! How can I help you today?",
            status=models.MessageStatus.NEW,
            created_at=datetime.datetime(2024, 7, 16),
            updated_at=datetime.datetime(2024, 7, 16),
        ),
    ]


def seed_audit_logs():
    return [
        models.AuditLog(
            id=1,
            user_id=1,
            action="property_approved",
            entity="property",
            entity_id=1,
            old_values=None,
            new_values=json.dumps({"status": "approved"}),
            ip_address="127.0.0.1",
            user_agent="Development",
            severity=models.AuditSeverity.INFO,
            description="Property approved by admin",
            created_at=datetime.datetime(2024, 7, 16),
        ),
    ]
