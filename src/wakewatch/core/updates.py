"""Single-consumer queue that serializes device updates onto one thread."""

import logging
import queue
import threading
import time
from typing import Callable, Optional

from wakewatch.core.models import DeviceUpdate

logger = logging.getLogger(__name__)

UpdateSink = Callable[[DeviceUpdate], None]


class UpdateDispatcher:
    """
    Delivers DeviceUpdates to ``sink`` one at a time, in publish order.

    Workers on any thread call ``publish``; only the dispatcher thread ever
    calls the sink, so the sink needs no locking of its own.
    """

    def __init__(self, sink: UpdateSink) -> None:
        self._sink = sink
        self._queue: "queue.Queue[Optional[DeviceUpdate]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(
            target=self._run, name="wakewatch-updates", daemon=True
        )
        self._thread.start()

    def publish(self, update: DeviceUpdate) -> None:
        self._queue.put(update)

    def _run(self) -> None:
        while True:
            update = self._queue.get()
            try:
                if update is None:
                    return
                try:
                    self._sink(update)
                except Exception as exc:
                    logger.error("Update sink raised for %s: %s", update.device_id, exc)
            finally:
                self._queue.task_done()

    def drain(self, timeout: Optional[float] = None) -> bool:
        """Block until every published update has been handled; False on timeout."""
        if self._thread is None:
            return self._queue.unfinished_tasks == 0
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._queue.all_tasks_done:
            while self._queue.unfinished_tasks:
                if deadline is None:
                    self._queue.all_tasks_done.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._queue.all_tasks_done.wait(remaining)
        return True

    def stop(self, wait: bool = True) -> None:
        if self._thread is None:
            return
        self._queue.put(None)
        if wait:
            self._thread.join()
        self._thread = None
