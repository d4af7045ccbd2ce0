"""ICMP echo probing of a single host."""

import logging
import math
import re
import shutil
import socket
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from wakewatch.core.errors import EchoError, ProbeCancelled, ProbeSetupError
from wakewatch.core.models import DeviceStatus

logger = logging.getLogger(__name__)

DEFAULT_COUNT = 3
DEFAULT_INTERVAL = 0.8

_RTT_RE = re.compile(r"time[=<]\s*([\d.]+)\s*ms")
_POLL_SLICE = 0.05


@dataclass(frozen=True)
class Verdict:
    """Aggregated statistics of one probe run."""

    packets_transmitted: int
    packets_received: int
    round_trip_samples: tuple[float, ...] = ()
    last_error: Optional[str] = None

    @property
    def status(self) -> DeviceStatus:
        return DeviceStatus.ONLINE if self.packets_received > 0 else DeviceStatus.OFFLINE

    @property
    def average_rtt(self) -> Optional[float]:
        """Mean round-trip time in seconds, or None without replies."""
        if not self.round_trip_samples:
            return None
        return sum(self.round_trip_samples) / len(self.round_trip_samples)

    def summary(self) -> str:
        counts = f"{self.packets_received}/{self.packets_transmitted}"
        if self.status is DeviceStatus.ONLINE:
            avg = self.average_rtt
            if avg is None:
                return f"Online ({counts} packets)"
            return f"Online ({counts} packets, avg RTT: {avg * 1000:.2f} ms)"
        message = f"Offline ({counts} packets received)."
        if self.last_error:
            message += f" ({self.last_error})"
        return message


class EchoTransport(Protocol):
    """Anything that can send single echo requests on behalf of a Prober."""

    def check(self) -> None: ...

    def echo(self, address: str, timeout: float, cancel_event: threading.Event) -> float: ...


class SubprocessEcho:
    """Sends one ICMP echo request per call through the system ``ping`` binary."""

    def __init__(self, ping_binary: str = "ping") -> None:
        self.ping_binary = ping_binary

    def check(self) -> None:
        if shutil.which(self.ping_binary) is None:
            raise ProbeSetupError(f"'{self.ping_binary}' not found on PATH")

    def echo(self, address: str, timeout: float, cancel_event: threading.Event) -> float:
        """
        Send a single echo request and wait up to ``timeout`` seconds for the reply.

        Returns:
            Round-trip time in seconds

        Raises:
            EchoError: On timeout or when ping reports no reply
            ProbeCancelled: If ``cancel_event`` is set while waiting
        """
        cmd = [self.ping_binary, "-n", "-c", "1", "-W", str(max(1, math.ceil(timeout))), address]
        started = time.monotonic()
        deadline = started + timeout
        try:
            proc = subprocess.Popen(
                cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True
            )
        except OSError as exc:
            raise EchoError(str(exc)) from exc

        try:
            while True:
                if cancel_event.is_set():
                    raise ProbeCancelled()
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise EchoError("Request timed out")
                try:
                    proc.wait(timeout=min(remaining, _POLL_SLICE))
                    break
                except subprocess.TimeoutExpired:
                    continue
        finally:
            if proc.poll() is None:
                proc.kill()
            stdout, stderr = proc.communicate()

        elapsed = time.monotonic() - started
        if proc.returncode != 0:
            raise EchoError(stderr.strip() or "No reply")
        match = _RTT_RE.search(stdout)
        return float(match.group(1)) / 1000 if match else elapsed


class Prober:
    """
    Runs ``count`` echo attempts against ``host``, spaced ``interval`` seconds apart.

    Each attempt times out after ``interval`` seconds, so a host that never
    answers takes roughly ``count * interval`` to resolve as offline.
    """

    def __init__(
        self,
        host: str,
        count: int = DEFAULT_COUNT,
        interval: float = DEFAULT_INTERVAL,
        echo: Optional[EchoTransport] = None,
    ) -> None:
        if count < 1:
            raise ValueError("count must be at least 1")
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.host = host
        self.count = count
        self.interval = interval
        self._echo: EchoTransport = echo if echo is not None else SubprocessEcho()

    def _resolve(self) -> str:
        if not self.host or not self.host.strip():
            raise ProbeSetupError("no IP address configured")
        try:
            infos = socket.getaddrinfo(self.host.strip(), None)
        except (socket.gaierror, UnicodeError) as exc:
            raise ProbeSetupError(f"cannot resolve {self.host}: {exc}") from exc
        address: str = infos[0][4][0]
        return address

    def run(self, cancel_event: Optional[threading.Event] = None) -> Verdict:
        """
        Probe the host and return the aggregated verdict.

        Raises:
            ProbeSetupError: If the host cannot be resolved or ping is unavailable
            ProbeCancelled: If ``cancel_event`` is set before all attempts resolve
        """
        cancel_event = cancel_event or threading.Event()
        address = self._resolve()
        self._echo.check()

        samples: list[float] = []
        last_error: Optional[str] = None
        transmitted = 0
        started = time.monotonic()
        for attempt in range(self.count):
            delay = started + attempt * self.interval - time.monotonic()
            if delay > 0 and cancel_event.wait(delay):
                raise ProbeCancelled()
            if cancel_event.is_set():
                raise ProbeCancelled()
            transmitted += 1
            try:
                rtt = self._echo.echo(address, self.interval, cancel_event)
            except EchoError as exc:
                last_error = str(exc)
                logger.debug("Echo %d/%d to %s failed: %s", attempt + 1, self.count, address, exc)
                continue
            samples.append(rtt)
            logger.debug(
                "Echo %d/%d to %s: %.2f ms", attempt + 1, self.count, address, rtt * 1000
            )

        verdict = Verdict(
            packets_transmitted=transmitted,
            packets_received=len(samples),
            round_trip_samples=tuple(samples),
            last_error=last_error,
        )
        logger.info("Probe of %s finished: %s", self.host, verdict.summary())
        return verdict
