from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)


class PeriodicWorker:
    """
    Runs `task` every `interval_seconds` on a daemon thread until `stop()`.

    A failing tick is logged with its traceback and the loop carries on; the
    next tick is the retry.
    """

    def __init__(self, name: str, task: Callable[[], object], interval_seconds: float) -> None:
        self._name = name
        self._task = task
        self._interval = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        self._thread.start()
        logger.info("Started worker %s interval=%ss", self._name, self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Stopped worker %s", self._name)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._task()
            except Exception:
                logger.exception("Worker %s tick failed", self._name)
