"""UDP delivery of Wake-on-LAN magic packets."""

import logging
import socket
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union

from wakewatch.core.errors import InvalidPort

logger = logging.getLogger(__name__)

SocketFactory = Callable[..., Any]


def parse_port(port: Union[int, str]) -> int:
    """
    Validate a UDP port given as an int or a decimal string.

    Raises:
        InvalidPort: If the value is not an integer in 1-65535
    """
    if isinstance(port, bool):
        raise InvalidPort(port)
    if isinstance(port, int):
        value = port
    else:
        text = str(port).strip()
        if not (text.isascii() and text.isdigit()):
            raise InvalidPort(port)
        value = int(text)
    if not 1 <= value <= 65535:
        raise InvalidPort(port)
    return value


class AssociationState(str, Enum):
    PREPARING = "preparing"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"


class WakeResult(str, Enum):
    SENT = "sent"
    SEND_FAILED = "send_failed"
    CONNECTION_FAILED = "connection_failed"
    INVALID_PORT = "invalid_port"


@dataclass(frozen=True)
class WakeOutcome:
    """Terminal outcome of a single wake send."""

    result: WakeResult
    reason: Optional[str] = None

    @property
    def sent(self) -> bool:
        return self.result is WakeResult.SENT


class UdpAssociation:
    """
    A connectionless UDP association to one host/port.

    ``open()`` moves the association from PREPARING to READY or FAILED;
    ``cancel()`` releases the socket and is safe to call more than once.
    """

    def __init__(
        self, host: str, port: int, socket_factory: SocketFactory = socket.socket
    ) -> None:
        self.host = host
        self.port = port
        self.state = AssociationState.PREPARING
        self.error: Optional[str] = None
        self._socket_factory = socket_factory
        self._sock: Optional[Any] = None

    def open(self) -> AssociationState:
        try:
            infos = socket.getaddrinfo(self.host, self.port, socket.AF_INET, socket.SOCK_DGRAM)
            family, socktype, proto, _, sockaddr = infos[0]
            self._sock = self._socket_factory(family, socktype, proto)
            self._sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
            self._sock.connect(sockaddr)
        except (OSError, IndexError) as exc:
            self.error = str(exc) or exc.__class__.__name__
            self.state = AssociationState.FAILED
            logger.debug("UDP association to %s:%d failed: %s", self.host, self.port, self.error)
            return self.state
        self.state = AssociationState.READY
        return self.state

    def send(self, payload: bytes) -> int:
        if self.state is not AssociationState.READY or self._sock is None:
            raise RuntimeError(f"Association is {self.state.value}, not ready")
        sent: int = self._sock.send(payload)
        return sent

    def cancel(self) -> None:
        if self._sock is not None:
            try:
                self._sock.close()
            finally:
                self._sock = None
        if self.state is not AssociationState.FAILED:
            self.state = AssociationState.CANCELLED


class WakeSender:
    """
    Sends magic packets on a worker pool and reports the outcome through a Future.

    Usage::

        sender = WakeSender()
        future = sender.send(payload, "192.168.1.255", 9)
        future.add_done_callback(lambda f: print(f.result()))
    """

    def __init__(
        self,
        executor: Optional[Executor] = None,
        socket_factory: SocketFactory = socket.socket,
    ) -> None:
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=4, thread_name_prefix="wake")
        self._socket_factory = socket_factory

    def send(self, payload: bytes, broadcast_host: str, port: Union[int, str]) -> "Future[WakeOutcome]":
        """
        Send ``payload`` once to ``broadcast_host:port`` without blocking.

        An invalid port completes the returned future immediately with
        ``INVALID_PORT``; nothing is submitted to the pool.
        """
        try:
            port_number = parse_port(port)
        except InvalidPort as exc:
            future: "Future[WakeOutcome]" = Future()
            future.set_result(WakeOutcome(WakeResult.INVALID_PORT, str(exc)))
            return future
        return self._executor.submit(self.send_blocking, payload, broadcast_host, port_number)

    def send_blocking(
        self, payload: bytes, broadcast_host: str, port: Union[int, str]
    ) -> WakeOutcome:
        """Run one complete send on the calling thread."""
        try:
            port_number = parse_port(port)
        except InvalidPort as exc:
            return WakeOutcome(WakeResult.INVALID_PORT, str(exc))

        association = UdpAssociation(broadcast_host, port_number, self._socket_factory)
        try:
            if association.open() is not AssociationState.READY:
                logger.warning(
                    "WOL connection to %s:%d failed: %s",
                    broadcast_host,
                    port_number,
                    association.error,
                )
                return WakeOutcome(WakeResult.CONNECTION_FAILED, association.error)
            try:
                sent = association.send(payload)
            except OSError as exc:
                logger.warning("WOL send to %s:%d failed: %s", broadcast_host, port_number, exc)
                return WakeOutcome(WakeResult.SEND_FAILED, str(exc) or exc.__class__.__name__)
            if sent != len(payload):
                reason = f"short write ({sent}/{len(payload)} bytes)"
                logger.warning("WOL send to %s:%d failed: %s", broadcast_host, port_number, reason)
                return WakeOutcome(WakeResult.SEND_FAILED, reason)
            logger.info("Sent %d-byte magic packet to %s:%d", sent, broadcast_host, port_number)
            return WakeOutcome(WakeResult.SENT)
        finally:
            association.cancel()

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
