from __future__ import annotations

import logging
import threading
from typing import Callable

from schoolsync.domain.ports import IntervalTimerPort

logger = logging.getLogger(__name__)


class ThreadingIntervalTimer(IntervalTimerPort):
    """Invoca `callback` cada `interval_seconds` hasta que se llame a `stop()`."""

    def __init__(self, interval_seconds: float, callback: Callable[[], object], *, name: str = "schoolsync-interval") -> None:
        self._interval_seconds = interval_seconds
        self._callback = callback
        self._name = name
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._interval_seconds + 1)

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval_seconds):
            try:
                self._callback()
            except Exception:  # noqa: BLE001
                logger.exception("Tick periódico falló; se reintentará en el siguiente intervalo")
