"""Tracks the single in-flight probe per device."""

import logging
import threading
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

from wakewatch.core.prober import Prober, Verdict

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ProbeHandle:
    """One probe invocation for one device."""

    device_id: uuid.UUID
    prober: Prober
    cancel_event: threading.Event = field(default_factory=threading.Event)
    future: Optional["Future[Verdict]"] = None

    def cancel(self) -> None:
        self.cancel_event.set()
        if self.future is not None:
            self.future.cancel()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def result(self) -> Verdict:
        """Return the probe verdict, re-raising whatever the probe raised."""
        if self.future is None:
            raise RuntimeError(f"Probe for {self.device_id} was never submitted")
        return self.future.result()


class ProbeRegistry:
    """
    Holds at most one live ProbeHandle per device id.

    Starting a probe cancels the device's previous one. A finished probe only
    delivers its result if it is still the registered handle for its device,
    so a superseded probe can never overwrite a newer result.
    """

    def __init__(self, executor: Optional[Executor] = None, max_workers: int = 8) -> None:
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="probe"
        )
        self._lock = threading.RLock()
        self._handles: dict[uuid.UUID, ProbeHandle] = {}

    def start(
        self,
        device_id: uuid.UUID,
        prober: Prober,
        on_start: Optional[Callable[[ProbeHandle], None]] = None,
        on_done: Optional[Callable[[ProbeHandle], None]] = None,
    ) -> ProbeHandle:
        """
        Cancel any probe for ``device_id`` and start ``prober`` in its place.

        Args:
            device_id: Identity of the device being probed
            prober: Configured prober to run on the pool
            on_start: Called under the registry lock once the handle is current
            on_done: Called from the worker when the probe future finishes

        Returns:
            The new, current handle
        """
        handle = ProbeHandle(device_id=device_id, prober=prober)
        with self._lock:
            previous = self._handles.pop(device_id, None)
            if previous is not None:
                logger.debug("Superseding outstanding probe for %s", device_id)
                previous.cancel()
            self._handles[device_id] = handle
            if on_start is not None:
                on_start(handle)
            handle.future = self._executor.submit(prober.run, handle.cancel_event)
        if on_done is not None:
            handle.future.add_done_callback(lambda _f: on_done(handle))
        return handle

    def complete(self, handle: ProbeHandle, deliver: Callable[[], None]) -> bool:
        """
        Retire a finished handle, running ``deliver`` only if it is still current.

        Returns:
            True if the result was delivered, False if it was stale and discarded
        """
        with self._lock:
            if handle.cancelled or self._handles.get(handle.device_id) is not handle:
                logger.debug("Discarding stale probe result for %s", handle.device_id)
                return False
            del self._handles[handle.device_id]
            deliver()
            return True

    def cancel(self, device_id: uuid.UUID) -> bool:
        """Cancel and forget the probe for ``device_id``; False if there was none."""
        with self._lock:
            handle = self._handles.pop(device_id, None)
        if handle is None:
            return False
        handle.cancel()
        logger.debug("Cancelled probe for %s", device_id)
        return True

    def cancel_all(self) -> None:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        for handle in handles:
            handle.cancel()

    def active(self, device_id: uuid.UUID) -> Optional[ProbeHandle]:
        with self._lock:
            return self._handles.get(device_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)

    def shutdown(self, wait: bool = True) -> None:
        self.cancel_all()
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
