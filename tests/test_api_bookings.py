import json
from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from tamudastay import models
from tamudastay.config import settings


@pytest.fixture
def host(create_user):
    return create_user("host", role=models.UserRole.OWNER)


@pytest.fixture
def guest(create_user):
    return create_user("guest")


@pytest.fixture
def prop(create_property, host):
    return create_property(owner=host)


def booking_payload(property_id, check_in, check_out, **overrides):
    payload = {
        "propertyId": property_id,
        "guestName": "Youssef Amrani",
        "guestEmail": "youssef@example.com",
        "guestPhone": "+212600000000",
        "checkIn": str(check_in),
        "checkOut": str(check_out),
        "guests": 2,
        "amount": 450,
    }
    payload.update(overrides)
    return payload


def test_create_booking_success(client: TestClient, db_session: Session, auth_headers, guest, prop, future):
    response = client.post("/api/bookings", json=booking_payload(prop.id, future(10), future(13)),
                           headers=auth_headers(guest))

    assert response.status_code == 201
    data = response.json()
    assert data["propertyId"] == prop.id
    assert data["userId"] == guest.id
    assert data["status"] == "pending"
    assert Decimal(data["amount"]) == Decimal("450")
    assert data["checkIn"] == str(future(10))

    # The change is announced through the outbox
    event = db_session.query(models.OutboxEvent).filter(
        models.OutboxEvent.topic == settings.KAFKA_BOOKING_TOPIC
    ).one()
    payload = json.loads(event.payload)
    assert payload["event"] == "created"
    assert payload["booking_id"] == data["id"]
    assert payload["status"] == "pending"


def test_create_booking_notifies_host(client, auth_headers, guest, host, prop, future):
    client.post("/api/bookings", json=booking_payload(prop.id, future(10), future(13)), headers=auth_headers(guest))

    response = client.get("/api/notifications", headers=auth_headers(host))

    assert response.status_code == 200
    assert [n["type"] for n in response.json()] == ["NEW_BOOKING"]


def test_create_booking_invalid_dates(client, auth_headers, guest, prop, future):
    response = client.post("/api/bookings", json=booking_payload(prop.id, future(5), future(5)),
                           headers=auth_headers(guest))

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid booking data"
    assert body["details"][0]["field"] == "checkOut"


def test_create_booking_in_the_past(client, auth_headers, guest, prop):
    yesterday = date.today() - timedelta(days=1)
    response = client.post("/api/bookings", json=booking_payload(prop.id, yesterday, yesterday + timedelta(days=2)),
                           headers=auth_headers(guest))

    assert response.status_code == 400
    assert response.json()["details"][0]["message"] == "Check-in date cannot be in the past"


def test_malformed_body_uses_the_same_error_shape(client, prop):
    response = client.post("/api/bookings", json={"propertyId": prop.id, "checkIn": "not-a-date"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Invalid request data"
    assert "checkIn" in [d["field"] for d in body["details"]]


def test_create_booking_conflict(client, auth_headers, guest, prop, create_booking, future):
    create_booking(prop, future(10), future(15))

    response = client.post("/api/bookings", json=booking_payload(prop.id, future(14), future(18)),
                           headers=auth_headers(guest))

    assert response.status_code == 409
    assert response.json() == {
        "error": "Property is not available for the selected dates",
        "bookedDates": [{"checkIn": str(future(10)), "checkOut": str(future(15))}],
    }


def test_back_to_back_booking_succeeds(client, auth_headers, guest, prop, create_booking, future):
    create_booking(prop, future(10), future(15))

    response = client.post("/api/bookings", json=booking_payload(prop.id, future(15), future(18)),
                           headers=auth_headers(guest))

    assert response.status_code == 201


def test_unknown_property(client, auth_headers, guest, future):
    response = client.post("/api/bookings", json=booking_payload(999999, future(1), future(2)),
                           headers=auth_headers(guest))

    assert response.status_code == 404
    assert response.json() == {"error": "Property not found"}


def test_second_request_moves_existing_booking(client, db_session, auth_headers, guest, prop, future):
    first = client.post("/api/bookings", json=booking_payload(prop.id, future(10), future(13)),
                        headers=auth_headers(guest)).json()

    response = client.post("/api/bookings", json=booking_payload(prop.id, future(12), future(16), guests=3),
                           headers=auth_headers(guest))

    assert response.status_code == 201
    data = response.json()
    assert data["id"] == first["id"]
    assert (data["checkIn"], data["checkOut"], data["guests"]) == (str(future(12)), str(future(16)), 3)
    assert db_session.query(models.Booking).filter(models.Booking.property_id == prop.id).count() == 1


def test_anonymous_guest_checkout(client, prop, future):
    response = client.post("/api/bookings", json=booking_payload(prop.id, future(3), future(5)))

    assert response.status_code == 201
    assert response.json()["userId"] is None


def test_anonymous_request_cannot_claim_a_user(client, guest, prop, future):
    response = client.post("/api/bookings", json=booking_payload(prop.id, future(3), future(5), userId=guest.id))

    assert response.status_code == 401


def test_user_cannot_book_for_someone_else(client, auth_headers, create_user, guest, prop, future):
    other = create_user("other")

    response = client.post("/api/bookings", json=booking_payload(prop.id, future(3), future(5), userId=other.id),
                           headers=auth_headers(guest))

    assert response.status_code == 403


def test_staff_can_book_on_behalf_of_a_user(client, auth_headers, create_user, guest, prop, future):
    staff = create_user("frontdesk", role=models.UserRole.STAFF)

    response = client.post("/api/bookings", json=booking_payload(prop.id, future(3), future(5), userId=guest.id),
                           headers=auth_headers(staff))

    assert response.status_code == 201
    assert response.json()["userId"] == guest.id


def test_invalid_token_is_rejected(client, prop, future):
    response = client.post("/api/bookings", json=booking_payload(prop.id, future(3), future(5)),
                           headers={"Authorization": "Bearer not-a-jwt"})

    assert response.status_code == 401
    assert response.json() == {"error": "Could not validate credentials"}


def test_list_bookings_scoped_to_caller(client, auth_headers, create_user, guest, host, prop, create_booking, future):
    mine = create_booking(prop, future(1), future(2), user=guest)
    someone_else = create_booking(prop, future(5), future(6), user=create_user("else"))
    admin = create_user("admin", role=models.UserRole.ADMIN)

    assert [b["id"] for b in client.get("/api/bookings", headers=auth_headers(guest)).json()] == [mine.id]
    # Hosts also see the bookings made on their listings
    assert [b["id"] for b in client.get("/api/bookings", headers=auth_headers(host)).json()] == [
        mine.id, someone_else.id
    ]
    assert len(client.get("/api/bookings", headers=auth_headers(admin)).json()) >= 2


def test_list_bookings_requires_auth(client):
    assert client.get("/api/bookings").status_code == 401


def test_read_booking_of_another_user_is_forbidden(client, auth_headers, create_user, prop, create_booking, future):
    booking = create_booking(prop, future(1), future(2), user=create_user("owner_of_booking"))

    response = client.get(f"/api/bookings/{booking.id}", headers=auth_headers(create_user("nosy")))

    assert response.status_code == 403


def test_update_booking_dates(client, auth_headers, guest, prop, create_booking, future):
    booking = create_booking(prop, future(10), future(12), user=guest, status=models.BookingStatus.PENDING)

    response = client.put(f"/api/bookings/{booking.id}", json={"checkOut": str(future(14))},
                          headers=auth_headers(guest))

    assert response.status_code == 200
    assert response.json()["checkOut"] == str(future(14))


def test_update_booking_into_conflict(client, auth_headers, guest, prop, create_booking, future):
    create_booking(prop, future(12), future(15))
    booking = create_booking(prop, future(8), future(10), user=guest, status=models.BookingStatus.PENDING)

    response = client.put(f"/api/bookings/{booking.id}", json={"checkOut": str(future(13))},
                          headers=auth_headers(guest))

    assert response.status_code == 409
    assert response.json()["bookedDates"] == [{"checkIn": str(future(12)), "checkOut": str(future(15))}]


def test_guest_cancels_booking(client, db_session, auth_headers, guest, prop, create_booking, future):
    booking = create_booking(prop, future(10), future(12), user=guest, status=models.BookingStatus.PENDING)

    response = client.patch(f"/api/bookings/{booking.id}/status", json={"status": "cancelled"},
                            headers=auth_headers(guest))

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    log = db_session.query(models.AuditLog).filter(models.AuditLog.action == "update_booking_status").one()
    assert log.entity_id == booking.id
    assert log.user_id == guest.id


def test_guest_cannot_confirm(client, auth_headers, guest, prop, create_booking, future):
    booking = create_booking(prop, future(10), future(12), user=guest, status=models.BookingStatus.PENDING)

    response = client.patch(f"/api/bookings/{booking.id}/status", json={"status": "confirmed"},
                            headers=auth_headers(guest))

    assert response.status_code == 403
    assert response.json() == {"error": "Guests may only cancel their own bookings"}


def test_host_confirms(client, auth_headers, host, guest, prop, create_booking, future):
    booking = create_booking(prop, future(10), future(12), user=guest, status=models.BookingStatus.PENDING)

    response = client.patch(f"/api/bookings/{booking.id}/status", json={"status": "confirmed"},
                            headers=auth_headers(host))

    assert response.status_code == 200
    assert response.json()["status"] == "confirmed"
