"""Exception types raised by the wake and probe machinery."""


class WakeWatchError(Exception):
    """Base class for wakewatch errors."""


class InvalidMacFormat(WakeWatchError, ValueError):
    """Raised when a MAC address does not parse to exactly six hex octets."""

    def __init__(self, mac: str) -> None:
        super().__init__(f"Invalid MAC address: {mac!r}")
        self.mac = mac


class InvalidPort(WakeWatchError, ValueError):
    """Raised when a UDP port is non-numeric or out of range."""

    def __init__(self, port: object) -> None:
        super().__init__(f"Invalid port: {port!r}")
        self.port = port


class ProbeSetupError(WakeWatchError):
    """Raised when a probe cannot start (unresolvable host, missing ping tool)."""


class EchoError(WakeWatchError):
    """A single echo attempt failed (timeout, unreachable, ...)."""


class ProbeCancelled(WakeWatchError):
    """Raised inside a probe worker once its cancel event is set."""
