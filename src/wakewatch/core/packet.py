"""Wake-on-LAN magic packet construction."""

import re

from wakeonlan import create_magic_packet

from wakewatch.core.errors import InvalidMacFormat

MAGIC_PACKET_SIZE = 102

_SEPARATOR_RE = re.compile(r"[:\-]")
_OCTET_RE = re.compile(r"[0-9A-Fa-f]{1,2}")


def parse_mac(mac: str) -> bytes:
    """
    Parse a colon- or hyphen-delimited MAC address into its six bytes.

    Args:
        mac: MAC address string (e.g., "AA:BB:CC:DD:EE:FF" or "aa-bb-cc-dd-ee-ff")

    Returns:
        The 6-byte hardware address

    Raises:
        InvalidMacFormat: If any token is not a hex octet or there are not exactly six
    """
    tokens = _SEPARATOR_RE.split(mac.strip())
    if len(tokens) != 6 or not all(_OCTET_RE.fullmatch(t) for t in tokens):
        raise InvalidMacFormat(mac)
    return bytes(int(t, 16) for t in tokens)


def build_magic_packet(mac: str) -> bytes:
    """
    Build the 102-byte magic packet for a MAC address.

    The payload is six 0xFF bytes followed by the hardware address repeated 16 times.

    Raises:
        InvalidMacFormat: If the MAC address is malformed
    """
    address = parse_mac(mac)
    payload = create_magic_packet(address.hex())
    if len(payload) != MAGIC_PACKET_SIZE:
        raise InvalidMacFormat(mac)
    return payload
