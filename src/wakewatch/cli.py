"""Command-line interface for wakewatch."""

import logging
import sys
from pathlib import Path

import click

from wakewatch import __version__
from wakewatch.core.devices import DeviceCollection
from wakewatch.core.models import Device, DeviceRecord, DeviceStatus, DeviceUpdate

DEFAULT_CONFIG = Path.home() / ".config" / "wakewatch" / "config.yaml"

# Upper bound on how long a CLI command waits for background work.
_WAIT_TIMEOUT = 120.0


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )


def _load_cfg(config: str) -> tuple:
    from wakewatch.config.loader import ConfigError, load_devices

    try:
        return load_devices(Path(config))
    except ConfigError as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def _select(devices: list[Device], names: tuple[str, ...]) -> list[Device]:
    if not names:
        return devices
    by_name = {d.name: d for d in devices}
    missing = [n for n in names if n not in by_name]
    if missing:
        click.echo(f"Device(s) not found: {', '.join(missing)}", err=True)
        sys.exit(1)
    return [by_name[n] for n in names]


def _echo_update(device_names: dict, update: DeviceUpdate) -> None:
    ts = update.log_entry.timestamp.astimezone().strftime("%H:%M:%S")
    name = device_names.get(update.device_id, str(update.device_id))
    click.echo(f"[{ts}] {name}: {update.log_entry.message}")


def _status_mark(record: DeviceRecord) -> str:
    return {
        DeviceStatus.ONLINE: "●",
        DeviceStatus.OFFLINE: "○",
        DeviceStatus.UNKNOWN: "?",
    }[record.status]


# ── Root group ────────────────────────────────────────────────────────────────


@click.group()
@click.version_option(version=__version__, prog_name="wakewatch")
@click.option(
    "--config",
    "-c",
    default=str(DEFAULT_CONFIG),
    envvar="WAKEWATCH_CONFIG",
    show_default=True,
    help="Path to wakewatch config.yaml",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config: str, verbose: bool) -> None:
    """wakewatch — wake LAN devices and check whether they are up."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config"] = config


# ── devices command ───────────────────────────────────────────────────────────


@main.command("devices")
@click.pass_context
def devices_list(ctx: click.Context) -> None:
    """List all configured devices."""
    _, devices = _load_cfg(ctx.obj["config"])
    click.echo(f"{'NAME':<20} {'MAC':<19} {'IP':<16} {'BROADCAST':<16} {'PORT'}")
    click.echo("─" * 78)
    for d in devices:
        click.echo(
            f"{d.name:<20} {d.mac_address:<19} {d.ip_address:<16} "
            f"{d.broadcast_address:<16} {d.port}"
        )


# ── wake command ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("device_name")
@click.option(
    "--no-reprobe", is_flag=True, help="Do not check the device's status after the packet is sent"
)
@click.pass_context
def wake(ctx: click.Context, device_name: str, no_reprobe: bool) -> None:
    """Send a Wake-on-LAN packet to the named device."""
    from wakewatch.core.coordinator import ReachabilityCoordinator
    from wakewatch.core.sender import WakeResult

    settings, devices = _load_cfg(ctx.obj["config"])
    (device,) = _select(devices, (device_name,))
    collection = DeviceCollection([device])
    names = {device.id: device.name}

    def sink(update: DeviceUpdate) -> None:
        collection.apply(update)
        _echo_update(names, update)

    with ReachabilityCoordinator(sink, settings=settings) as coordinator:
        future = coordinator.wake(device, reprobe=not no_reprobe)
        finished = coordinator.wait(timeout=_WAIT_TIMEOUT)

    if future is None or not future.done() or future.result().result is not WakeResult.SENT:
        click.echo(f"✗  Could not wake {device.name}", err=True)
        sys.exit(2)
    if not finished:
        click.echo("Timed out waiting for the status check.", err=True)
    click.echo(f"✓  Magic packet sent to {device.name} ({device.mac_address})")


# ── status command ────────────────────────────────────────────────────────────


@main.command()
@click.argument("device_names", nargs=-1)
@click.pass_context
def status(ctx: click.Context, device_names: tuple[str, ...]) -> None:
    """Ping the named devices (all devices by default) and show their status."""
    from wakewatch.core.coordinator import ReachabilityCoordinator

    settings, devices = _load_cfg(ctx.obj["config"])
    chosen = _select(devices, device_names)
    collection = DeviceCollection(chosen)

    with ReachabilityCoordinator(collection.apply, settings=settings) as coordinator:
        for device in chosen:
            coordinator.check_status(device)
        if not coordinator.wait(timeout=_WAIT_TIMEOUT):
            click.echo("Timed out waiting for probes.", err=True)

    all_online = True
    for device in chosen:
        record = collection.get(device.id)
        if record is None:
            continue
        all_online = all_online and record.status is DeviceStatus.ONLINE
        last = record.latest_logs(1)
        detail = last[0].message if last else ""
        click.echo(f"{_status_mark(record)} {device.name:<20} {record.status.value:<8} {detail}")

    if not all_online:
        sys.exit(2)


if __name__ == "__main__":
    main()
