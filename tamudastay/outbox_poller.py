import asyncio
import logging
from typing import Optional

from aiokafka import AIOKafkaProducer
from aiokafka.errors import KafkaConnectionError
from sqlalchemy.orm import Session
from sqlalchemy.sql import select

from .config import settings
from .database import SessionLocal
from .models import OutboxEvent
from .storage_switch import StorageSwitch

logger = logging.getLogger("tamudastay.outbox")

BATCH_SIZE = 100


async def start_producer(retry_delay: int = 5, max_retries: int = 5) -> Optional[AIOKafkaProducer]:
    """Connects to Kafka, retrying a few times. Returns None if it never comes up."""
    for attempt in range(1, max_retries + 1):
        producer = AIOKafkaProducer(bootstrap_servers=settings.KAFKA_BOOTSTRAP_SERVERS)
        try:
            await producer.start()
            logger.info(f"Outbox poller connected to Kafka on attempt {attempt}.")
            return producer
        except KafkaConnectionError as e:
            await producer.stop()
            logger.warning(f"Kafka connection attempt {attempt}/{max_retries} failed: {e}")
            if attempt < max_retries:
                await asyncio.sleep(retry_delay)
    logger.error("Outbox poller failed to connect to Kafka after multiple retries. Exiting.")
    return None


async def publish_pending_events(db: Session, producer: AIOKafkaProducer) -> int:
    """
    Sends one batch of PENDING outbox rows. Sent rows are deleted; rows that
    fail stay PENDING and are retried on the next pass.
    """
    stmt = select(OutboxEvent).where(
        OutboxEvent.status == "PENDING"
    ).order_by(OutboxEvent.id).limit(BATCH_SIZE).with_for_update()
    pending_events = db.execute(stmt).scalars().all()
    if not pending_events:
        return 0

    logger.info(f"Found {len(pending_events)} pending events in outbox.")
    sent = 0
    for event in pending_events:
        try:
            await producer.send_and_wait(topic=event.topic, value=event.payload.encode("utf-8"))
            db.delete(event)
            sent += 1
        except Exception as e:
            logger.error(f"Failed to send event {event.id} to Kafka: {e}")

    if sent:
        db.commit()
        logger.info(f"Successfully processed {sent} events.")
    else:
        db.rollback()
    return sent


async def run_outbox_poller(switch: StorageSwitch, poll_interval: Optional[int] = None):
    """Background loop relaying the outbox table to Kafka until cancelled."""
    poll_interval = poll_interval or settings.OUTBOX_POLL_SECONDS
    logger.info("Starting outbox poller...")

    producer = await start_producer()
    if producer is None:
        return

    try:
        while True:
            # The fallback store has no outbox table; nothing to relay
            if not switch.tripped:
                db: Session = SessionLocal()
                try:
                    await publish_pending_events(db, producer)
                except Exception as e:
                    logger.error(f"Error in poller loop: {e}")
                    db.rollback()
                finally:
                    db.close()

            await asyncio.sleep(poll_interval)
    except asyncio.CancelledError:
        logger.info("Outbox poller task cancelled.")
    finally:
        logger.info("Stopping Kafka producer...")
        await producer.stop()
        logger.info("Outbox poller shut down.")
