import asyncio
import datetime
from unittest.mock import AsyncMock

from tamudastay import models
from tamudastay.booking_scheduler import complete_finished_bookings
from tamudastay.outbox_poller import publish_pending_events


# --- Booking completion ---

def test_completes_confirmed_stays_after_checkout(fallback):
    assert complete_finished_bookings(fallback, today=datetime.date(2024, 7, 26)) == 1
    assert fallback.get_booking(1).status == models.BookingStatus.COMPLETED


def test_checkout_day_is_still_in_progress(fallback):
    assert complete_finished_bookings(fallback, today=datetime.date(2024, 7, 25)) == 0
    assert fallback.get_booking(1).status == models.BookingStatus.CONFIRMED


def test_pending_bookings_are_left_alone(fallback):
    fallback.update_booking(1, {"status": models.BookingStatus.PENDING})

    assert complete_finished_bookings(fallback, today=datetime.date(2024, 8, 1)) == 0
    assert fallback.get_booking(1).status == models.BookingStatus.PENDING


def test_completion_is_published(db_session, db_storage, create_property, create_booking):
    prop = create_property()
    booking = create_booking(prop, datetime.date(2024, 7, 1), datetime.date(2024, 7, 5))

    complete_finished_bookings(db_storage, today=datetime.date(2024, 7, 6))

    db_session.refresh(booking)
    assert booking.status == models.BookingStatus.COMPLETED
    event = db_session.query(models.OutboxEvent).one()
    assert '"event": "completed"' in event.payload


# --- Outbox relay ---

def add_outbox_rows(db_session, count):
    rows = [models.OutboxEvent(topic="booking_events", payload=f'{{"n": {i}}}') for i in range(count)]
    db_session.add_all(rows)
    db_session.commit()
    return rows


def test_sent_events_are_removed(db_session):
    add_outbox_rows(db_session, 2)
    producer = AsyncMock()

    sent = asyncio.run(publish_pending_events(db_session, producer))

    assert sent == 2
    assert producer.send_and_wait.await_count == 2
    assert db_session.query(models.OutboxEvent).count() == 0


def test_failed_events_stay_pending(db_session):
    first, second = add_outbox_rows(db_session, 2)
    producer = AsyncMock()
    producer.send_and_wait.side_effect = [None, Exception("broker unavailable")]

    sent = asyncio.run(publish_pending_events(db_session, producer))

    assert sent == 1
    remaining = db_session.query(models.OutboxEvent).all()
    assert [row.id for row in remaining] == [second.id]
    assert remaining[0].status == "PENDING"


def test_empty_outbox_sends_nothing(db_session):
    producer = AsyncMock()

    assert asyncio.run(publish_pending_events(db_session, producer)) == 0
    producer.send_and_wait.assert_not_called()
