from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Tuple

from .model import PersistedModel

logger = logging.getLogger(__name__)

SaveFn = Callable[[str, PersistedModel], None]


class DebouncedSaver:
    """Coalesce rapid saves into one write ``delay`` seconds after the last request.

    The owner must call ``flush()`` before tearing down a session or switching
    profile, otherwise the most recent snapshot is lost.
    """

    def __init__(self, save: SaveFn, delay: float = 0.25, timer_factory=threading.Timer):
        self._save = save
        self.delay = float(delay)
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        # serialises writes so an older snapshot can never land after a newer one
        self._write_lock = threading.Lock()
        self._pending: Optional[Tuple[str, PersistedModel]] = None
        self._timer = None
        self.saves = 0

    @property
    def pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def schedule(self, profile_id: str, model: PersistedModel) -> None:
        """Queue ``model`` (an independent snapshot) and restart the timer."""
        with self._lock:
            self._pending = (profile_id, model)
            if self._timer is not None:
                self._timer.cancel()
            timer = self._timer_factory(self.delay, self._fire)
            timer.daemon = True
            self._timer = timer
        timer.start()

    def _fire(self) -> None:
        self.flush()

    def flush(self) -> bool:
        """Write the pending snapshot now. Returns True if something was saved."""
        with self._write_lock:
            with self._lock:
                item = self._pending
                self._pending = None
                if self._timer is not None:
                    self._timer.cancel()
                    self._timer = None
            if item is None:
                return False
            profile_id, model = item
            try:
                self._save(profile_id, model)
            except Exception as e:
                # the in-memory mixer stays authoritative; a failed write must not reach the game loop
                logger.warning("Deferred save for %s failed: %s", profile_id, e)
                return False
            self.saves += 1
            return True

    def cancel(self) -> None:
        """Drop the pending save; returns only after any write in progress has landed."""
        with self._write_lock:
            with self._lock:
                self._pending = None
                if self._timer is not None:
                    self._timer.cancel()
                    self._timer = None
