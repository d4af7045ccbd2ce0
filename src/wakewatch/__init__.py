"""wakewatch — Wake-on-LAN and reachability monitor for LAN devices."""

__version__ = "0.1.0"
