"""APScheduler-based delayed re-probe of freshly woken devices."""

import logging
import threading
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from wakewatch.core.models import Device

logger = logging.getLogger(__name__)


class ReprobeScheduler:
    """
    Runs a one-shot callback for a device after a delay.

    Each device has at most one pending re-probe; scheduling again replaces it.

    Usage::

        reprobes = ReprobeScheduler()
        reprobes.start()
        reprobes.schedule(device, 5.0, coordinator.check_status)
        # ... fires in the background ...
        reprobes.stop()
    """

    def __init__(self, scheduler: Optional[BackgroundScheduler] = None) -> None:
        self._scheduler = scheduler if scheduler is not None else BackgroundScheduler(timezone="UTC")
        self._lock = threading.Lock()
        # Token per device; only the run that owns the current token clears it.
        self._tokens: dict[uuid.UUID, object] = {}

    @staticmethod
    def job_id(device_id: uuid.UUID) -> str:
        return f"reprobe-{device_id}"

    def schedule(
        self, device: Device, delay: float, callback: Callable[[Device], Any]
    ) -> str:
        """
        Run ``callback(device)`` once, ``delay`` seconds from now.

        Returns:
            The APScheduler job id used
        """
        token = object()
        with self._lock:
            self._tokens[device.id] = token
        jid = self.job_id(device.id)
        run_at = datetime.now(timezone.utc) + timedelta(seconds=max(0.0, delay))
        self._scheduler.add_job(
            func=self._fire,
            trigger=DateTrigger(run_date=run_at),
            args=[device, token, callback],
            id=jid,
            name=f"reprobe {device.name}",
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.info("Scheduled re-probe of '%s' in %.1fs", device.name, delay)
        return jid

    def _fire(self, device: Device, token: object, callback: Callable[[Device], Any]) -> None:
        try:
            callback(device)
        except Exception as exc:
            logger.error("Re-probe of '%s' raised: %s", device.name, exc)
        finally:
            with self._lock:
                if self._tokens.get(device.id) is token:
                    del self._tokens[device.id]

    def cancel(self, device_id: uuid.UUID) -> bool:
        """Drop the pending re-probe for a device; False if none was pending."""
        with self._lock:
            had_token = self._tokens.pop(device_id, None) is not None
        try:
            self._scheduler.remove_job(self.job_id(device_id))
        except JobLookupError:
            pass
        return had_token

    @property
    def pending(self) -> int:
        """Number of re-probes scheduled or currently running."""
        with self._lock:
            return len(self._tokens)

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.debug("Re-probe scheduler started")

    def stop(self, wait: bool = True) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.debug("Re-probe scheduler stopped")
        with self._lock:
            self._tokens.clear()
