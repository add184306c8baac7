"""
Connection state models.

Endpoint and LinkTemplate are immutable. SequenceState is the only
mutable model here; every access goes through its lock so the capture
thread and writers never observe a torn update.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional, Tuple

SEQ_MODULUS = 1 << 32

LINK_ETHERNET = "ethernet"
LINK_LOOPBACK = "loopback"


@dataclass(frozen=True)
class Endpoint:
    """IPv4 address + TCP port."""
    ip: str
    port: int

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"

    def as_tuple(self) -> Tuple[str, int]:
        return (self.ip, self.port)


@dataclass(frozen=True)
class LinkTemplate:
    """
    Link-layer envelope for outbound frames.

    Derived from the first captured inbound frame. For Ethernet the
    addresses are already swapped: src_mac is our interface, dst_mac is
    the next hop toward the peer.
    """
    kind: str
    src_mac: Optional[str] = None
    dst_mac: Optional[str] = None
    eth_type: Optional[int] = None
    family: Optional[int] = None

    def to_layer(self):
        """Return a fresh scapy layer for this envelope."""
        from scapy.layers.l2 import Ether, Loopback

        if self.kind == LINK_ETHERNET:
            return Ether(src=self.src_mac, dst=self.dst_mac, type=self.eth_type)
        if self.kind == LINK_LOOPBACK:
            return Loopback(type=self.family)
        raise ValueError(f"Unknown link template kind: {self.kind}")


class SequenceState:
    """
    Shared seq/ack counters, unsigned 32-bit with TCP wraparound.

    seq: next sequence number this side sends.
    ack: next sequence number expected from the peer.
    """

    def __init__(self, seq: int = 0, ack: int = 0):
        self._lock = threading.Lock()
        self._seq = seq % SEQ_MODULUS
        self._ack = ack % SEQ_MODULUS

    def load(self) -> Tuple[int, int]:
        """Return (seq, ack) as one consistent snapshot."""
        with self._lock:
            return self._seq, self._ack

    @property
    def seq(self) -> int:
        with self._lock:
            return self._seq

    @property
    def ack(self) -> int:
        with self._lock:
            return self._ack

    def store(self, seq: Optional[int] = None, ack: Optional[int] = None) -> None:
        with self._lock:
            if seq is not None:
                self._seq = seq % SEQ_MODULUS
            if ack is not None:
                self._ack = ack % SEQ_MODULUS

    def add_seq(self, delta: int) -> int:
        """Advance seq by delta and return the new value."""
        with self._lock:
            self._seq = (self._seq + delta) % SEQ_MODULUS
            return self._seq

    def __repr__(self) -> str:
        seq, ack = self.load()
        return f"SequenceState(seq={seq}, ack={ack})"
