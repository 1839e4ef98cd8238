"""Periodic eviction of old SOS requests."""
import threading
from datetime import timedelta
from typing import List, Optional


class ExpiryReaper:
    """Sweeps the ledger on a fixed interval in a daemon thread.

    Eviction ignores status: completed and accepted requests past the
    retention window go too. This is a memory bound, not cleanup logic.
    """

    def __init__(self, coordinator, retention_seconds: float = 3600, interval_seconds: float = 300):
        self.coordinator = coordinator
        self.retention = timedelta(seconds=retention_seconds)
        self.interval = interval_seconds
        self.sweeps = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def run_once(self) -> List[str]:
        evicted = self.coordinator.expire(self.retention)
        self.sweeps += 1
        return evicted

    def _loop(self):
        print(
            f"[REAPER] Sweeping every {self.interval}s, "
            f"retention {int(self.retention.total_seconds())}s"
        )
        while not self._stop.wait(self.interval):
            try:
                self.run_once()
            except Exception as sweep_error:
                print(f"[REAPER] Sweep failed: {sweep_error}")
        print("[REAPER] Stopped")

    def start(self):
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="sos-reaper", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None):
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
