"""
Dial-time options.

Nothing here is read from files or the environment; callers (or the
CLI) build a DialOptions and pass it to dial().
"""
from dataclasses import dataclass
from typing import Optional

from .inject.builder import DEFAULT_IP_ID, DEFAULT_TTL, DEFAULT_WINDOW


@dataclass
class DialOptions:
    """Options for establishing a hijacked connection."""
    handshake_timeout: Optional[float] = 10.0
    link_timeout: float = 5.0  # Seconds to wait for the first captured frame
    queue_size: int = 128  # Pending payloads before capture blocks
    snaplen: int = 65536
    promisc: bool = True
    ttl: int = DEFAULT_TTL
    window: int = DEFAULT_WINDOW
    ip_id: int = DEFAULT_IP_ID
