"""YAML configuration loader and validator."""

import uuid
from pathlib import Path
from typing import Any, Optional

import yaml

from wakewatch.core.coordinator import Settings
from wakewatch.core.errors import InvalidMacFormat, InvalidPort
from wakewatch.core.models import Device
from wakewatch.core.packet import parse_mac
from wakewatch.core.sender import parse_port

DEFAULT_BROADCAST = "255.255.255.255"
DEFAULT_PORT = 9

# Namespace for ids derived from device names when the config gives none.
_ID_NAMESPACE = uuid.NAMESPACE_URL


class ConfigError(Exception):
    """Raised for invalid or missing configuration."""


def load_config(path: Path) -> Optional[dict[str, Any]]:
    """
    Load configuration from a YAML file.

    Args:
        path: Path to the YAML config file

    Returns:
        Parsed configuration dictionary, or None if file is empty

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
    """
    with open(path) as f:
        result: Optional[dict[str, Any]] = yaml.safe_load(f)
        return result


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_settings(settings: Any) -> list[str]:
    if not isinstance(settings, dict):
        return ["'settings' must be a mapping"]
    errors: list[str] = []
    count = settings.get("probe_count", 1)
    if not isinstance(count, int) or isinstance(count, bool) or count < 1:
        errors.append("settings.probe_count must be a positive integer")
    interval = settings.get("probe_interval", 1)
    if not _is_number(interval) or interval <= 0:
        errors.append("settings.probe_interval must be a positive number")
    delay = settings.get("reprobe_delay", 0)
    if delay is not None and (not _is_number(delay) or delay < 0):
        errors.append("settings.reprobe_delay must be a non-negative number or null")
    workers = settings.get("workers", 1)
    if not isinstance(workers, int) or isinstance(workers, bool) or workers < 1:
        errors.append("settings.workers must be a positive integer")
    return errors


def validate_config(config: dict[str, Any]) -> list[str]:
    """
    Validate a loaded configuration dictionary.

    Returns:
        List of validation error messages (empty list = valid)
    """
    errors: list[str] = []

    if not isinstance(config, dict):
        return ["Config root must be a YAML mapping"]

    if config.get("settings") is not None:
        errors.extend(_validate_settings(config["settings"]))

    devices = config.get("devices")
    if not devices:
        errors.append("'devices' key is required and must be a non-empty list")
        return errors

    if not isinstance(devices, list):
        errors.append("'devices' must be a list")
        return errors

    required_fields = ["name", "mac_address", "ip_address"]
    seen: set[str] = set()
    for i, raw in enumerate(devices):
        prefix = f"devices[{i}]"
        if not isinstance(raw, dict):
            errors.append(f"{prefix}: must be a mapping")
            continue
        for field in required_fields:
            if not raw.get(field):
                errors.append(f"{prefix}: missing required field '{field}'")
        name = raw.get("name")
        if name:
            if name in seen:
                errors.append(f"{prefix}: duplicate device name '{name}'")
            seen.add(name)
        mac = raw.get("mac_address")
        if mac:
            try:
                parse_mac(str(mac))
            except InvalidMacFormat:
                errors.append(f"{prefix}: invalid mac_address '{mac}'")
        if "port" in raw:
            try:
                parse_port(raw["port"])
            except InvalidPort:
                errors.append(f"{prefix}: invalid port '{raw['port']}'")
        if "id" in raw:
            try:
                uuid.UUID(str(raw["id"]))
            except ValueError:
                errors.append(f"{prefix}: invalid id '{raw['id']}'")

    return errors


def device_id_for(name: str) -> uuid.UUID:
    """Stable identity for a device configured without an explicit id."""
    return uuid.uuid5(_ID_NAMESPACE, f"wakewatch:{name}")


def devices_from_config(config: dict[str, Any]) -> list[Device]:
    """
    Construct Device snapshots from a validated config dict.

    Args:
        config: Parsed and validated config dictionary

    Returns:
        List of Device instances, in config order
    """
    devices: list[Device] = []
    for raw in config.get("devices", []):
        name = raw["name"]
        devices.append(
            Device(
                id=uuid.UUID(str(raw["id"])) if raw.get("id") else device_id_for(name),
                name=name,
                mac_address=str(raw["mac_address"]),
                ip_address=str(raw["ip_address"]),
                broadcast_address=raw.get("broadcast_address", DEFAULT_BROADCAST),
                port=raw.get("port", DEFAULT_PORT),
            )
        )
    return devices


def settings_from_config(config: dict[str, Any]) -> Settings:
    """Build coordinator Settings, falling back to defaults for missing keys."""
    raw = config.get("settings") or {}
    defaults = Settings()
    delay = raw.get("reprobe_delay", defaults.reprobe_delay)
    return Settings(
        probe_count=int(raw.get("probe_count", defaults.probe_count)),
        probe_interval=float(raw.get("probe_interval", defaults.probe_interval)),
        reprobe_delay=None if delay is None else float(delay),
        workers=int(raw.get("workers", defaults.workers)),
    )


def load_devices(path: Path) -> tuple[Settings, list[Device]]:
    """
    Load, validate and build everything the CLI needs from one config file.

    Raises:
        ConfigError: If the file is missing, empty, unparsable or invalid
    """
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw = load_config(path)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Config file is not valid YAML: {exc}") from exc
    if not raw:
        raise ConfigError("Config file is empty.")
    errors = validate_config(raw)
    if errors:
        raise ConfigError("Config validation errors:\n" + "\n".join(f"  • {e}" for e in errors))
    return settings_from_config(raw), devices_from_config(raw)
