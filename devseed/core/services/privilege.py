"""
Privilege keepalive — keep the sudo credential cache warm during a run.

Validates once up front (``sudo -v``, which may prompt), then a daemon
thread refreshes the cache non-interactively every ``refresh_seconds``
until ``cancel()`` is called or ``max_minutes`` elapse. The pipeline
registers ``cancel`` as a cleanup callback, so the thread never outlives
the run. It shares no state with the pipeline beyond the stop event.
"""

from __future__ import annotations

import logging
import threading
import time

from devseed.adapters.base import PrivilegeHelper
from devseed.core.errors import PreconditionMissing

logger = logging.getLogger(__name__)

REFRESH_INTERVAL_S = 50.0
MAX_DURATION_MIN = 60.0


class PrivilegeKeepalive:
    """Supervised sudo refresher with a single cancellation point."""

    def __init__(
        self,
        helper: PrivilegeHelper,
        refresh_seconds: float = REFRESH_INTERVAL_S,
        max_minutes: float = MAX_DURATION_MIN,
    ):
        self._helper = helper
        self._interval = refresh_seconds
        self._max_seconds = max_minutes * 60
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.refreshes = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Validate credentials and start refreshing.

        Returns:
            False when there is nothing to keep alive (root, or no sudo).

        Raises:
            PreconditionMissing: ``sudo -v`` failed.
        """
        if self._helper.is_root:
            logger.debug("Running as root, no sudo keepalive needed")
            return False
        if not self._helper.is_available():
            logger.warning("sudo not found, privileged steps may fail")
            return False

        self._helper.validate().raise_for_status(PreconditionMissing)

        self._stop.clear()
        self._thread = threading.Thread(
            target=self._loop,
            daemon=True,
            name="sudo-keepalive",
        )
        self._thread.start()
        logger.info("Sudo keepalive started (refresh every %.0fs)", self._interval)
        return True

    def _loop(self) -> None:
        deadline = time.monotonic() + self._max_seconds
        while not self._stop.wait(self._interval):
            if time.monotonic() >= deadline:
                logger.debug("Sudo keepalive reached its time limit")
                return
            receipt = self._helper.refresh()
            self.refreshes += 1
            if receipt.failed:
                logger.debug("sudo refresh failed: %s", receipt.error)

    def cancel(self) -> None:
        """Stop the refresher. Idempotent, safe if never started."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=max(self._interval, 1.0))
            self._thread = None
            logger.debug("Sudo keepalive stopped")
