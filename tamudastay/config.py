from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./tamudastay.db"

    # Used to sign and verify access tokens
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    REDIS_URL: str = "redis://localhost:6379/0"
    PROPERTY_CACHE_SECONDS: int = 300

    # --- Kafka (fed by the outbox poller) ---
    KAFKA_BOOTSTRAP_SERVERS: str = "kafka:9092"
    KAFKA_BOOKING_TOPIC: str = "booking_events"
    KAFKA_NOTIFICATION_TOPIC: str = "notifications"
    OUTBOX_POLL_SECONDS: int = 5

    # How often finished stays are marked completed
    SCHEDULER_INTERVAL_SECONDS: int = 3600

    # When False, quota errors propagate instead of switching to the in-memory store
    FALLBACK_ENABLED: bool = True

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
