"""Shared fakes for network-free tests."""

import threading
from typing import Optional, Union

import pytest

from wakewatch.core.errors import EchoError, ProbeCancelled
from wakewatch.core.models import Device


class ScriptedEcho:
    """
    Echo transport that replays a script instead of pinging.

    Each script item is an RTT in seconds or an exception to raise. When
    ``gate`` is given, every call blocks until the gate opens or the probe is
    cancelled.
    """

    def __init__(
        self,
        script: Optional[list[Union[float, Exception]]] = None,
        gate: Optional[threading.Event] = None,
    ) -> None:
        self.script = list(script) if script is not None else []
        self.gate = gate
        self.calls: list[str] = []
        self.checked = 0
        self._lock = threading.Lock()

    def check(self) -> None:
        self.checked += 1

    def echo(self, address: str, timeout: float, cancel_event: threading.Event) -> float:
        with self._lock:
            self.calls.append(address)
        if self.gate is not None:
            while not self.gate.wait(0.01):
                if cancel_event.is_set():
                    raise ProbeCancelled()
        if cancel_event.is_set():
            raise ProbeCancelled()
        with self._lock:
            item = self.script.pop(0) if self.script else 0.001
        if isinstance(item, Exception):
            raise item
        return item


class FakeSocket:
    """Records what the sender does with its datagram socket."""

    def __init__(self, send_result: Union[int, Exception, None] = None) -> None:
        self.send_result = send_result
        self.options: list[tuple] = []
        self.connected_to: Optional[tuple] = None
        self.sent: list[bytes] = []
        self.closed = False

    def __call__(self, family: int, socktype: int, proto: int = 0) -> "FakeSocket":
        return self

    def setsockopt(self, level: int, option: int, value: int) -> None:
        self.options.append((level, option, value))

    def connect(self, address: tuple) -> None:
        self.connected_to = address

    def send(self, payload: bytes) -> int:
        if isinstance(self.send_result, Exception):
            raise self.send_result
        self.sent.append(payload)
        return len(payload) if self.send_result is None else self.send_result

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def device() -> Device:
    return Device(
        name="nas",
        mac_address="AA:BB:CC:DD:EE:FF",
        ip_address="192.168.1.20",
        broadcast_address="192.168.1.255",
        port=9,
    )


@pytest.fixture
def echo_error() -> EchoError:
    return EchoError("Request timed out")
