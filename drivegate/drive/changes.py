"""
Background change polling.

Every interval, asks Drive for files modified since the previous poll
and upserts them into the cache.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

import requests

from ..constants import DEFAULT_POLL_INTERVAL
from .client import RemoteStorageClient
from .errors import DriveError
from .objects import format_rfc3339, map_drive_file

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PollResult:
    """Outcome of one poll tick."""
    since: datetime
    until: datetime
    pages: int = 0
    stored: int = 0
    failed: int = 0
    error: Optional[Exception] = None

    @property
    def complete(self) -> bool:
        return self.error is None


class ChangePoller:
    """
    Periodic "modified since" poll feeding the cache.

    The checkpoint moves to the current time before each query runs, so
    files modified while a poll is in flight are picked up next time.
    A file near the boundary may be reported twice; cache stores are
    upserts, so that's harmless.
    """

    def __init__(
        self,
        client_factory: Callable[[], RemoteStorageClient],
        cache,
        interval: float = DEFAULT_POLL_INTERVAL,
        clock: Optional[Callable[[], datetime]] = None,
        checkpoint: Optional[datetime] = None,
    ):
        """
        Initialize poller.

        Args:
            client_factory: Returns a client for the currently active account
            cache: Object with store(APIObject)
            interval: Seconds between polls
            clock: Returns the current time (timezone-aware)
            checkpoint: Initial checkpoint (defaults to now)
        """
        self._client_factory = client_factory
        self.cache = cache
        self.interval = interval
        self._clock = clock or _utcnow
        self.checkpoint = checkpoint or self._clock()
        self._stop = threading.Event()
        self._tick_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start polling in a daemon thread."""
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="drive-change-poller", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        """Stop polling and wait for the thread to finish its current tick."""
        self._stop.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _run(self):
        while not self._stop.wait(self.interval):
            try:
                self.poll_once()
            except Exception:
                logger.exception("Change poll failed")

    def poll_once(self) -> Optional[PollResult]:
        """
        Run a single poll tick.

        A failed page ends this tick; the next tick starts fresh from the
        new checkpoint.

        Returns:
            PollResult, or None if no client could be built (the
            checkpoint is left alone so the next tick covers the gap)
        """
        with self._tick_lock:
            try:
                client = self._client_factory()
            except Exception as e:
                logger.error("Could not get client for auto refreshing: %s", e)
                return None

            since = self.checkpoint
            now = self._clock()
            self.checkpoint = now
            result = PollResult(since=since, until=now)

            logger.info("Checking for updates...")
            query = f"modifiedTime > '{format_rfc3339(since)}'"

            with client:
                try:
                    for files in client.iter_pages(query):
                        result.pages += 1
                        for raw in files:
                            self._store(map_drive_file(raw), result)
                except (DriveError, requests.RequestException, ValueError) as e:
                    logger.warning("Update check stopped after %d page(s): %s", result.pages, e)
                    result.error = e

            if result.stored or result.failed:
                logger.info("Refreshed %d object(s), %d failed", result.stored, result.failed)
            return result

    def _store(self, obj, result: PollResult):
        try:
            self.cache.store(obj)
        except Exception as e:
            result.failed += 1
            logger.warning("Could not refresh %s: %s", obj.id, e)
            return
        result.stored += 1
        logger.debug("Updated file %s (%s)", obj.id, obj.name)
