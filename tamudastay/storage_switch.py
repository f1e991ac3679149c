"""
Fallback store switch.

When the primary database reports a transfer-quota or resource-limit error,
the switch trips and every later storage call in this process is served by
the in-memory FallbackStorage. It never reverts; restart the process to go
back to the database.
"""
import logging
import threading
from typing import Callable, Optional, TypeVar

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from .database import get_db
from .fallback_storage import FallbackStorage
from .storage import DatabaseStorage, Storage

logger = logging.getLogger("tamudastay")

T = TypeVar("T")

# Lower-cased fragments of the errors hosted MySQL/Postgres plans raise when a limit is hit
QUOTA_ERROR_PATTERNS = (
    "quota",
    "data transfer",
    "transfer limit",
    "exceeded the compute time",
    "max_questions",
    "max_updates",
    "max_connections_per_hour",
    "resource limit",
)

FALLBACK_WARNING = (
    "Database quota exceeded. Switching to fallback storage with mock data. "
    "All data is temporary and resets on restart; restart the service once "
    "the database quota is restored."
)


def is_quota_error(error: BaseException) -> bool:
    message = str(error).lower()
    return any(pattern in message for pattern in QUOTA_ERROR_PATTERNS)


class StorageSwitch:
    """Process-wide state: whether the fallback is active, plus the fallback itself."""

    def __init__(self, enabled: bool = True, fallback: Optional[FallbackStorage] = None):
        self.enabled = enabled
        self._lock = threading.Lock()
        self._fallback = fallback
        self._tripped = False
        self.trip_reason: Optional[str] = None

    @property
    def tripped(self) -> bool:
        return self._tripped

    @property
    def fallback(self) -> FallbackStorage:
        with self._lock:
            if self._fallback is None:
                self._fallback = FallbackStorage()
            return self._fallback

    def should_handle(self, error: BaseException) -> bool:
        return self.enabled and is_quota_error(error)

    def trip(self, error: BaseException) -> None:
        with self._lock:
            if self._tripped:
                return
            self._tripped = True
            self.trip_reason = str(error)
        logger.warning(f"{FALLBACK_WARNING} Cause: {error}")


class SwitchingStorage:
    """
    The storage handed to request handlers.

    Exposes the full ``Storage`` surface. Calls go to ``primary`` until the
    switch trips; a quota error from the primary trips it and the same call is
    retried on the fallback. Any other error propagates unchanged.
    """

    def __init__(self, primary: Storage, switch: StorageSwitch):
        self.primary = primary
        self.switch = switch

    @property
    def active(self) -> Storage:
        return self.switch.fallback if self.switch.tripped else self.primary

    @property
    def mode(self) -> str:
        return self.active.mode

    def _fail_over(self, error: Exception) -> None:
        try:
            self.primary.rollback()
        except Exception as rollback_error:
            logger.error(f"Rollback after quota error failed: {rollback_error}")
        self.switch.trip(error)

    def __getattr__(self, name):
        if name.startswith("_") or not callable(getattr(Storage, name, None)):
            raise AttributeError(name)

        def call(*args, **kwargs):
            if not self.switch.tripped:
                try:
                    return getattr(self.primary, name)(*args, **kwargs)
                except Exception as e:
                    if not self.switch.should_handle(e):
                        raise
                    self._fail_over(e)
            return getattr(self.switch.fallback, name)(*args, **kwargs)

        call.__name__ = name
        return call

    def run_locked(self, property_id: int, work: Callable[[Storage], T]) -> T:
        """
        Runs ``work`` inside one critical section of the active backend.

        If the primary fails with a quota error part-way through, its
        transaction is rolled back and the whole unit is replayed on the
        fallback, so a booking never ends up half on each store.
        """
        if not self.switch.tripped:
            try:
                return self.primary.run_locked(property_id, work)
            except Exception as e:
                if not self.switch.should_handle(e):
                    raise
                self._fail_over(e)
        return self.switch.fallback.run_locked(property_id, work)

    def rollback(self) -> None:
        self.active.rollback()


def get_storage(request: Request, db: Session = Depends(get_db)) -> SwitchingStorage:
    return SwitchingStorage(DatabaseStorage(db), request.app.state.storage_switch)
