"""Tests for the APScheduler-based re-probe scheduler."""

import threading
import time
import uuid
from unittest.mock import MagicMock

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger

from wakewatch.core.models import Device
from wakewatch.scheduler.runner import ReprobeScheduler


def _device(name: str = "nas") -> Device:
    return Device(name=name, mac_address="AA:BB:CC:DD:EE:FF", ip_address="192.168.1.20")


def _wait_idle(reprobes: ReprobeScheduler, backend: BackgroundScheduler) -> None:
    for _ in range(100):
        if reprobes.pending == 0 and not backend.get_jobs():
            return
        time.sleep(0.01)


class TestReprobeSchedulerRegistration:
    """Job registration against a mocked APScheduler."""

    def test_schedule_adds_date_job(self) -> None:
        backend = MagicMock()
        reprobes = ReprobeScheduler(scheduler=backend)
        device = _device()

        jid = reprobes.schedule(device, 5.0, MagicMock())

        assert jid == f"reprobe-{device.id}"
        kwargs = backend.add_job.call_args.kwargs
        assert isinstance(kwargs["trigger"], DateTrigger)
        assert kwargs["id"] == jid
        assert kwargs["replace_existing"] is True
        assert reprobes.pending == 1

    def test_rescheduling_keeps_one_pending(self) -> None:
        reprobes = ReprobeScheduler(scheduler=MagicMock())
        device = _device()
        reprobes.schedule(device, 5.0, MagicMock())
        reprobes.schedule(device, 5.0, MagicMock())
        assert reprobes.pending == 1

    def test_cancel_removes_job(self) -> None:
        backend = MagicMock()
        reprobes = ReprobeScheduler(scheduler=backend)
        device = _device()
        reprobes.schedule(device, 5.0, MagicMock())

        assert reprobes.cancel(device.id) is True
        backend.remove_job.assert_called_once_with(f"reprobe-{device.id}")
        assert reprobes.pending == 0

    def test_cancel_unknown_device(self) -> None:
        from apscheduler.jobstores.base import JobLookupError

        backend = MagicMock()
        backend.remove_job.side_effect = JobLookupError("reprobe-x")
        reprobes = ReprobeScheduler(scheduler=backend)

        assert reprobes.cancel(uuid.uuid4()) is False


class TestReprobeSchedulerIntegration:
    """Runs a real BackgroundScheduler with a short delay."""

    def test_callback_fires_once(self) -> None:
        fired = threading.Event()
        calls: list[Device] = []

        def callback(device: Device) -> None:
            calls.append(device)
            fired.set()

        backend = BackgroundScheduler(timezone="UTC")
        reprobes = ReprobeScheduler(scheduler=backend)
        reprobes.start()
        try:
            device = _device()
            reprobes.schedule(device, 0.05, callback)
            assert fired.wait(timeout=5)
            _wait_idle(reprobes, backend)
        finally:
            reprobes.stop()

        assert calls == [device]

    def test_pending_clears_after_run(self) -> None:
        done = threading.Event()
        backend = BackgroundScheduler(timezone="UTC")
        reprobes = ReprobeScheduler(scheduler=backend)
        reprobes.start()
        try:
            reprobes.schedule(_device(), 0.05, lambda d: done.set())
            assert done.wait(timeout=5)
            _wait_idle(reprobes, backend)
            assert reprobes.pending == 0
        finally:
            reprobes.stop()

    def test_callback_error_is_contained(self) -> None:
        done = threading.Event()

        def boom(device: Device) -> None:
            done.set()
            raise RuntimeError("probe could not start")

        backend = BackgroundScheduler(timezone="UTC")
        reprobes = ReprobeScheduler(scheduler=backend)
        reprobes.start()
        try:
            reprobes.schedule(_device(), 0.01, boom)
            assert done.wait(timeout=5)
            _wait_idle(reprobes, backend)
            assert reprobes.pending == 0
        finally:
            reprobes.stop()
