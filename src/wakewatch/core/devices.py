"""In-memory device collection that applies core updates by identity."""

import logging
import threading
import uuid
from typing import Iterable, Iterator, Optional

from wakewatch.core.models import Device, DeviceRecord, DeviceUpdate

logger = logging.getLogger(__name__)


class DeviceCollection:
    """
    Authoritative store of device records.

    ``apply`` is the sink for the coordinator's update stream. Updates for a
    device that has since been removed are dropped without error.
    """

    def __init__(self, devices: Iterable[Device] = ()) -> None:
        self._lock = threading.Lock()
        self._records: dict[uuid.UUID, DeviceRecord] = {}
        for device in devices:
            self.add(device)

    def add(self, device: Device) -> DeviceRecord:
        record = DeviceRecord(device=device)
        with self._lock:
            self._records[device.id] = record
        return record

    def remove(self, device_id: uuid.UUID) -> bool:
        with self._lock:
            return self._records.pop(device_id, None) is not None

    def get(self, device_id: uuid.UUID) -> Optional[DeviceRecord]:
        with self._lock:
            return self._records.get(device_id)

    def find(self, name: str) -> Optional[DeviceRecord]:
        with self._lock:
            return next((r for r in self._records.values() if r.device.name == name), None)

    def apply(self, update: DeviceUpdate) -> bool:
        """Apply one update; returns False if the device no longer exists."""
        with self._lock:
            record = self._records.get(update.device_id)
            if record is None:
                logger.debug("Dropping update for removed device %s", update.device_id)
                return False
            record.logs.append(update.log_entry)
            if update.status is not None:
                record.status = update.status
            return True

    def __iter__(self) -> Iterator[DeviceRecord]:
        with self._lock:
            return iter(list(self._records.values()))

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, device_id: object) -> bool:
        with self._lock:
            return device_id in self._records
