# Packet data model
"""
Captured frame models for tcpraw.

THESE MODELS ARE IMMUTABLE. The capture thread creates them and hands
them to the dispatcher; nothing downstream modifies them.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

# TCP flag bits
TCP_FIN = 0x01
TCP_SYN = 0x02
TCP_RST = 0x04
TCP_PSH = 0x08
TCP_ACK = 0x10
TCP_URG = 0x20
TCP_ECE = 0x40
TCP_CWR = 0x80

@dataclass(frozen=True)
class RawPacket:
    """
    Frame as delivered by the capture backend: bytes + link metadata.
    """
    link_type: int
    """libpcap DLT_* constant (e.g., 1 = DLT_EN10MB for Ethernet)"""

    data: bytes
    """Raw frame bytes starting at the link-layer header."""

    timestamp_us: int = 0
    """Microseconds since Unix epoch."""

    interface: Optional[str] = None
    """Capture interface name."""

    @property
    def captured_length(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class DecodedSegment:
    """
    Captured frame decoded down to the TCP segment.

    Only what the dispatcher needs: link-layer addressing for the
    outbound template, the 4-tuple, seq/ack/flags and the payload.
    """
    raw_packet: RawPacket

    protocol_stack: Tuple[str, ...] = field(default_factory=tuple)
    """Stack of protocol names, e.g., ('ETH', 'IP4', 'TCP')"""

    # L2 metadata
    eth_type: Optional[int] = None
    """EtherType of the innermost Ethernet/VLAN header."""
    src_mac: Optional[str] = None
    dst_mac: Optional[str] = None
    loopback_family: Optional[int] = None
    """Address family from a DLT_NULL/DLT_LOOP header."""

    # L3/L4
    src_ip: Optional[str] = None
    dst_ip: Optional[str] = None
    ttl: Optional[int] = None
    src_port: Optional[int] = None
    dst_port: Optional[int] = None
    tcp_seq: Optional[int] = None
    tcp_ack: Optional[int] = None
    tcp_flags: Optional[int] = None
    """TCP flags bitmask (FIN=0x01, SYN=0x02, RST=0x04, PSH=0x08,
    ACK=0x10, URG=0x20, ECE=0x40, CWR=0x80)."""
    tcp_window: Optional[int] = None
    payload: bytes = b""

    quality_flags: int = 0
    """Bitmask of decode quality flags (see capture.packet_decoder)."""

    def __post_init__(self):
        if not isinstance(self.protocol_stack, tuple):
            object.__setattr__(self, 'protocol_stack', tuple(self.protocol_stack))

    @property
    def is_tcp(self) -> bool:
        return self.tcp_seq is not None and self.tcp_flags is not None

    @property
    def link_kind(self) -> Optional[str]:
        if "ETH" in self.protocol_stack:
            return "ethernet"
        if "LOOP" in self.protocol_stack:
            return "loopback"
        return None

    def has_flag(self, mask: int) -> bool:
        return bool(self.tcp_flags is not None and self.tcp_flags & mask)

    @property
    def segment_length(self) -> int:
        """Sequence space consumed by this segment (payload + SYN + FIN)."""
        length = len(self.payload)
        if self.has_flag(TCP_SYN):
            length += 1
        if self.has_flag(TCP_FIN):
            length += 1
        return length

    @property
    def stack_summary(self) -> str:
        return "/".join(self.protocol_stack) if self.protocol_stack else "UNKNOWN"

    @property
    def tcp_flag_names(self) -> Tuple[str, ...]:
        """Return tuple of TCP flag names in canonical order."""
        if self.tcp_flags is None:
            return tuple()
        flags = []
        flag_map = [
            (TCP_CWR, "CWR"),
            (TCP_ECE, "ECE"),
            (TCP_URG, "URG"),
            (TCP_ACK, "ACK"),
            (TCP_PSH, "PSH"),
            (TCP_RST, "RST"),
            (TCP_SYN, "SYN"),
            (TCP_FIN, "FIN"),
        ]
        for mask, name in flag_map:
            if self.tcp_flags & mask:
                flags.append(name)
        return tuple(flags)
