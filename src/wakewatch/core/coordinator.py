"""Wake and status-check orchestration for a collection of devices."""

import logging
import threading
import time
import uuid
from concurrent.futures import CancelledError, Future
from dataclasses import dataclass
from typing import Any, Callable, Optional

from wakewatch.core.errors import InvalidMacFormat, InvalidPort, ProbeCancelled, ProbeSetupError
from wakewatch.core.models import Device, DeviceStatus, DeviceUpdate, LogEntry
from wakewatch.core.packet import build_magic_packet
from wakewatch.core.prober import DEFAULT_COUNT, DEFAULT_INTERVAL, EchoTransport, Prober
from wakewatch.core.registry import ProbeHandle, ProbeRegistry
from wakewatch.core.sender import WakeOutcome, WakeResult, WakeSender, parse_port
from wakewatch.core.updates import UpdateDispatcher, UpdateSink
from wakewatch.scheduler.runner import ReprobeScheduler

logger = logging.getLogger(__name__)

MSG_INVALID_MAC = "Error: Invalid MAC address format."
MSG_INVALID_PORT = "Error: Invalid Port."
MSG_SENDING = "Sending WoL packet..."
MSG_SENT = "Magic packet sent successfully."


@dataclass
class Settings:
    """Tunables for probing and the post-wake re-probe."""

    probe_count: int = DEFAULT_COUNT
    probe_interval: float = DEFAULT_INTERVAL
    # Seconds to wait after a successful wake before probing; None disables it.
    reprobe_delay: Optional[float] = 5.0
    workers: int = 8


class ReachabilityCoordinator:
    """
    Runs wakes and probes concurrently and streams their results as DeviceUpdates.

    Every update goes through a single dispatcher thread, so ``sink`` sees them
    one at a time and in order. The coordinator never touches caller storage.

    Usage::

        devices = DeviceCollection(...)
        with ReachabilityCoordinator(devices.apply) as coordinator:
            coordinator.wake(device)
            coordinator.wait()
    """

    def __init__(
        self,
        sink: UpdateSink,
        settings: Optional[Settings] = None,
        sender: Optional[WakeSender] = None,
        registry: Optional[ProbeRegistry] = None,
        reprobes: Optional[ReprobeScheduler] = None,
        echo: Optional[EchoTransport] = None,
    ) -> None:
        self.settings = settings if settings is not None else Settings()
        self._dispatcher = UpdateDispatcher(sink)
        self._sender = sender if sender is not None else WakeSender()
        self._registry = (
            registry if registry is not None else ProbeRegistry(max_workers=self.settings.workers)
        )
        self._reprobes = reprobes if reprobes is not None else ReprobeScheduler()
        self._echo = echo
        self._lock = threading.Lock()
        self._outstanding: set["Future[Any]"] = set()

    # ── Lifecycle ────────────────────────────────────────────────────────────

    def start(self) -> "ReachabilityCoordinator":
        self._dispatcher.start()
        self._reprobes.start()
        return self

    def close(self) -> None:
        """Cancel probes and pending re-probes, then stop all workers."""
        self._reprobes.stop(wait=True)
        self._registry.shutdown(wait=True)
        self._sender.shutdown(wait=True)
        self._dispatcher.drain()
        self._dispatcher.stop()

    def __enter__(self) -> "ReachabilityCoordinator":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ── Updates ──────────────────────────────────────────────────────────────

    def _publish(
        self,
        device: Device,
        message: str,
        status: Optional[DeviceStatus] = None,
        notice: Optional[str] = None,
    ) -> None:
        self._dispatcher.publish(
            DeviceUpdate(
                device_id=device.id,
                log_entry=LogEntry(message=message),
                status=status,
                notice=notice or message,
            )
        )

    def _track(self, future: "Future[Any]", callback: Callable[["Future[Any]"], None]) -> None:
        with self._lock:
            self._outstanding.add(future)

        def _done(f: "Future[Any]") -> None:
            try:
                callback(f)
            finally:
                with self._lock:
                    self._outstanding.discard(f)

        future.add_done_callback(_done)

    # ── Wake ─────────────────────────────────────────────────────────────────

    def wake(self, device: Device, reprobe: bool = True) -> Optional["Future[WakeOutcome]"]:
        """
        Send a magic packet to ``device``.

        An invalid MAC address or port is logged and nothing is sent. Status is never
        changed by a wake; a successful send schedules one delayed
        ``check_status`` unless ``reprobe`` is False or the delay is disabled.

        Returns:
            Future resolving to the send outcome, or None if the MAC or port was invalid
        """
        try:
            payload = build_magic_packet(device.mac_address)
        except InvalidMacFormat:
            logger.warning("[%s] Invalid MAC address %r", device.name, device.mac_address)
            self._publish(device, MSG_INVALID_MAC)
            return None
        try:
            port = parse_port(device.port)
        except InvalidPort:
            logger.warning("[%s] Invalid port %r", device.name, device.port)
            self._publish(device, MSG_INVALID_PORT)
            return None

        logger.info(
            "[%s] Sending WOL packet → MAC %s via %s:%d",
            device.name,
            device.mac_address,
            device.broadcast_address,
            port,
        )
        self._publish(device, MSG_SENDING)
        future = self._sender.send(payload, device.broadcast_address, port)
        self._track(future, lambda f: self._on_wake_done(device, f, reprobe))
        return future

    def _on_wake_done(self, device: Device, future: "Future[WakeOutcome]", reprobe: bool) -> None:
        if future.cancelled():
            return
        try:
            outcome = future.result()
        except Exception as exc:
            logger.error("[%s] Wake raised: %s", device.name, exc)
            outcome = WakeOutcome(WakeResult.SEND_FAILED, str(exc))

        if outcome.result is WakeResult.SENT:
            self._publish(device, MSG_SENT, notice=f"Magic packet sent to {device.name}!")
            delay = self.settings.reprobe_delay
            if reprobe and delay is not None:
                self._reprobes.schedule(device, delay, self.check_status)
        elif outcome.result is WakeResult.INVALID_PORT:
            self._publish(device, MSG_INVALID_PORT)
        elif outcome.result is WakeResult.CONNECTION_FAILED:
            self._publish(device, f"WoL connection failed: {outcome.reason}")
        else:
            self._publish(device, f"Error sending WoL packet: {outcome.reason}")

    # ── Status check ─────────────────────────────────────────────────────────

    def check_status(self, device: Device) -> ProbeHandle:
        """
        Probe ``device`` and publish its new status.

        Any probe already running for the same device is cancelled and its
        result discarded.
        """
        prober = Prober(
            device.ip_address,
            count=self.settings.probe_count,
            interval=self.settings.probe_interval,
            echo=self._echo,
        )
        logger.info("[%s] Pinging %s", device.name, device.ip_address)

        def _on_start(_handle: ProbeHandle) -> None:
            self._publish(
                device,
                f"Pinging {device.ip_address}...",
                status=DeviceStatus.UNKNOWN,
                notice=f"Pinging {device.name}...",
            )

        return self._registry.start(
            device.id,
            prober,
            on_start=_on_start,
            on_done=lambda handle: self._on_probe_done(device, handle),
        )

    def _on_probe_done(self, device: Device, handle: ProbeHandle) -> None:
        try:
            verdict = handle.result()
        except (CancelledError, ProbeCancelled):
            self._registry.complete(handle, lambda: None)
            return
        except ProbeSetupError as exc:
            message = f"Ping setup failed: {exc}"
            logger.warning("[%s] %s", device.name, message)
            self._registry.complete(
                handle, lambda: self._publish(device, message, status=DeviceStatus.OFFLINE)
            )
            return
        except Exception as exc:
            message = f"Ping failed: {exc}"
            logger.error("[%s] %s", device.name, message)
            self._registry.complete(
                handle, lambda: self._publish(device, message, status=DeviceStatus.OFFLINE)
            )
            return

        if verdict.status is DeviceStatus.ONLINE:
            notice = f"{device.name} is online."
        else:
            notice = f"{device.name} appears to be offline."
        self._registry.complete(
            handle,
            lambda: self._publish(device, verdict.summary(), status=verdict.status, notice=notice),
        )

    # ── Housekeeping ─────────────────────────────────────────────────────────

    def forget(self, device_id: uuid.UUID) -> None:
        """Cancel outstanding work for a device that has been deleted."""
        self._reprobes.cancel(device_id)
        self._registry.cancel(device_id)

    def _busy(self) -> bool:
        with self._lock:
            outstanding = bool(self._outstanding)
        return outstanding or self._reprobes.pending > 0 or len(self._registry) > 0

    def wait(self, timeout: Optional[float] = None, poll_interval: float = 0.02) -> bool:
        """
        Block until all sends, probes, scheduled re-probes and updates are done.

        Returns:
            True once idle, False if ``timeout`` seconds elapsed first
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            if not self._busy():
                remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
                if not self._dispatcher.drain(remaining):
                    return False
                if not self._busy():
                    return True
            if deadline is not None and time.monotonic() >= deadline:
                return False
            time.sleep(poll_interval)
