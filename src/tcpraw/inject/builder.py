"""Outbound segment construction."""
from __future__ import annotations

import struct
from typing import Optional

from scapy.error import Scapy_Exception
from scapy.layers.inet import IP, TCP
from scapy.packet import Raw

from ..exceptions import InjectionError
from ..models.connection import Endpoint, LinkTemplate

DEFAULT_TTL = 64
DEFAULT_WINDOW = 12580
DEFAULT_IP_ID = 1234


class SegmentBuilder:
    """Serializes link + IPv4 + TCP(PSH|ACK) + payload frames for one flow."""

    def __init__(self,
                 local: Endpoint,
                 remote: Endpoint,
                 ttl: int = DEFAULT_TTL,
                 window: int = DEFAULT_WINDOW,
                 ip_id: int = DEFAULT_IP_ID):
        self.local = local
        self.remote = remote
        self.ttl = ttl
        self.window = window
        self.ip_id = ip_id

    def build(self, template: Optional[LinkTemplate], payload: bytes, seq: int, ack: int) -> bytes:
        """Return the wire bytes; lengths and checksums are filled by scapy."""
        if template is None:
            raise InjectionError("No link-layer template captured for this interface")
        network = IP(
            src=self.local.ip,
            dst=self.remote.ip,
            flags="DF",
            ttl=self.ttl,
            id=self.ip_id,
            proto="tcp",
        )
        segment = TCP(
            sport=self.local.port,
            dport=self.remote.port,
            seq=seq,
            ack=ack,
            flags="PA",
            window=self.window,
        )
        frame = template.to_layer() / network / segment
        if payload:
            frame = frame / Raw(load=bytes(payload))
        try:
            return bytes(frame)
        except (Scapy_Exception, struct.error, ValueError, OSError) as e:
            raise InjectionError(f"Failed to serialize segment: {e}") from e
