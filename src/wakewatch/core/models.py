"""Device, status and log data types shared by the core."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Union


class DeviceStatus(str, Enum):
    """Last known reachability of a device."""

    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass(frozen=True)
class Device:
    """Immutable snapshot of a registered device, taken when an operation starts."""

    name: str
    mac_address: str
    ip_address: str
    broadcast_address: str = "255.255.255.255"
    # Kept as entered (config files and forms hand us strings); validated on send.
    port: Union[int, str] = 9
    id: uuid.UUID = field(default_factory=uuid.uuid4)


@dataclass(frozen=True)
class LogEntry:
    """One line of a device's operation log."""

    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class DeviceUpdate:
    """
    A delta produced by the core for one device.

    The caller owns device storage and applies these in the order received.
    ``status`` is None when the update only appends to the log; ``notice`` is a
    short human-readable status line suitable for a status bar.
    """

    device_id: uuid.UUID
    log_entry: LogEntry
    status: Optional[DeviceStatus] = None
    notice: Optional[str] = None


@dataclass
class DeviceRecord:
    """Caller-side mutable state for a device."""

    device: Device
    status: DeviceStatus = DeviceStatus.UNKNOWN
    logs: list[LogEntry] = field(default_factory=list)

    @property
    def id(self) -> uuid.UUID:
        return self.device.id

    def latest_logs(self, limit: Optional[int] = None) -> list[LogEntry]:
        """Return log entries newest first."""
        ordered = self.logs[::-1]
        return ordered[:limit] if limit is not None else ordered
