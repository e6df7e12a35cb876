"""Background removal of expired session records."""

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


def run_periodic_sweep(
    sweep: Callable[[], int],
    interval: float,
    stop_event: threading.Event,
) -> None:
    """
    Call sweep every interval seconds until stop_event is set.

    Blocks the calling thread. A failing cycle is logged and the loop carries
    on with the next one.

    Args:
        sweep: Callable removing expired records and returning the count
        interval: Seconds between sweeps
        stop_event: Set to stop the loop before the next tick
    """
    if interval <= 0:
        raise ValueError("sweep interval must be positive")

    logger.info("Session sweeper started", extra={"interval": interval})
    try:
        while not stop_event.wait(interval):
            try:
                sweep()
            except Exception:
                logger.exception("Session sweep cycle failed")
    finally:
        logger.info("Session sweeper stopped")


class SessionSweeper:
    """Runs run_periodic_sweep on a daemon thread."""

    def __init__(self, sweep: Callable[[], int], interval: float, name: str = "session-sweeper"):
        if interval <= 0:
            raise ValueError("sweep interval must be positive")
        self._sweep = sweep
        self._interval = interval
        self._name = name
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=run_periodic_sweep,
            args=(self._sweep, self._interval, self._stop_event),
            name=self._name,
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal the loop to stop and wait for the thread to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def __enter__(self) -> "SessionSweeper":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()
