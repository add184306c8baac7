"""
Captured frame decoding (L2/L3/L4) for the hijacked flow.

This module is deterministic and best-effort:
- It never throws on malformed/truncated frames
- It returns quality flags to describe decode issues
- It decodes IPv4/TCP only; anything else is flagged and left undecoded
"""
from __future__ import annotations

from enum import IntFlag
import struct
from typing import Any, Dict, Optional, Tuple

from ..models.packet import RawPacket, DecodedSegment

# Link type constants (libpcap DLT_* / LINKTYPE_*)
DLT_NULL = 0
DLT_EN10MB = 1
DLT_RAW = 12
DLT_LINKTYPE_RAW = 101
DLT_LOOP = 108
DLT_LINUX_SLL = 113

# EtherType constants
ETH_TYPE_IPV4 = 0x0800
ETH_TYPE_VLAN = 0x8100
ETH_TYPE_QINQ = 0x88A8

# BSD loopback address families (AF_INET is 2 everywhere)
LOOP_AF_INET = 2
_LOOP_KNOWN_FAMILIES = (2, 24, 28, 30)

IP_PROTO_TCP = 6

class DecodeQuality(IntFlag):
    OK = 0
    TRUNCATED = 1 << 0
    UNSUPPORTED_LINKTYPE = 1 << 1
    MALFORMED_L2 = 1 << 2
    MALFORMED_L3 = 1 << 3
    MALFORMED_L4 = 1 << 4
    UNKNOWN_L3 = 1 << 5
    UNKNOWN_L4 = 1 << 6


def quality_flag_names(flags: int) -> Tuple[str, ...]:
    """Return decode quality flag names for display."""
    if flags == 0:
        return ("OK",)
    names = []
    for flag in DecodeQuality:
        if flag != DecodeQuality.OK and (flags & flag):
            names.append(flag.name)
    return tuple(names)


def decode_segment(raw: RawPacket) -> DecodedSegment:
    """Decode a captured frame into a DecodedSegment (best-effort)."""
    data = raw.data or b""
    fields: Dict[str, Any] = {}
    stack = []
    quality = DecodeQuality.OK
    l3_offset: Optional[int] = None

    if raw.link_type == DLT_EN10MB:
        stack.append("ETH")
        if len(data) < 14:
            quality |= DecodeQuality.MALFORMED_L2
            return _finish(raw, stack, fields, quality)
        fields["dst_mac"] = _format_mac(data[0:6])
        fields["src_mac"] = _format_mac(data[6:12])
        ethertype = struct.unpack_from("!H", data, 12)[0]
        offset = 14

        # VLAN tags (single or double)
        for _ in range(2):
            if ethertype not in (ETH_TYPE_VLAN, ETH_TYPE_QINQ):
                break
            if len(data) < offset + 4:
                quality |= DecodeQuality.MALFORMED_L2
                return _finish(raw, stack + ["VLAN"], fields, quality)
            stack.append("VLAN")
            ethertype = struct.unpack_from("!H", data, offset + 2)[0]
            offset += 4
        fields["eth_type"] = ethertype

        if ethertype == ETH_TYPE_IPV4:
            l3_offset = offset
        else:
            quality |= DecodeQuality.UNKNOWN_L3

    elif raw.link_type in (DLT_NULL, DLT_LOOP):
        stack.append("LOOP")
        if len(data) < 4:
            quality |= DecodeQuality.MALFORMED_L2
            return _finish(raw, stack, fields, quality)
        if raw.link_type == DLT_LOOP:
            family = struct.unpack_from(">I", data, 0)[0]
        else:
            # DLT_NULL is host byte order of the capturing machine
            family_le = struct.unpack_from("<I", data, 0)[0]
            family_be = struct.unpack_from(">I", data, 0)[0]
            family = family_le if family_le in _LOOP_KNOWN_FAMILIES else family_be
        fields["loopback_family"] = family
        if family == LOOP_AF_INET:
            l3_offset = 4
        else:
            quality |= DecodeQuality.UNKNOWN_L3

    elif raw.link_type == DLT_LINUX_SLL:
        stack.append("SLL")
        if len(data) < 16:
            quality |= DecodeQuality.MALFORMED_L2
            return _finish(raw, stack, fields, quality)
        ethertype = struct.unpack_from("!H", data, 14)[0]
        fields["eth_type"] = ethertype
        if ethertype == ETH_TYPE_IPV4:
            l3_offset = 16
        else:
            quality |= DecodeQuality.UNKNOWN_L3

    elif raw.link_type in (DLT_RAW, DLT_LINKTYPE_RAW):
        # Raw IP without L2 header
        if data and data[0] >> 4 == 4:
            l3_offset = 0
        else:
            quality |= DecodeQuality.UNKNOWN_L3

    else:
        quality |= DecodeQuality.UNSUPPORTED_LINKTYPE

    if l3_offset is None:
        return _finish(raw, stack, fields, quality)

    stack.append("IP4")
    l4_offset, l4_end, ip_protocol, l3_quality = _parse_ipv4(data, l3_offset, fields)
    quality |= l3_quality
    if l4_offset is None:
        return _finish(raw, stack, fields, quality)
    if ip_protocol != IP_PROTO_TCP:
        quality |= DecodeQuality.UNKNOWN_L4
        return _finish(raw, stack, fields, quality)

    stack.append("TCP")
    quality |= _parse_tcp(data, l4_offset, l4_end, fields)
    return _finish(raw, stack, fields, quality)


def _finish(raw: RawPacket, stack, fields: Dict[str, Any], quality: DecodeQuality) -> DecodedSegment:
    return DecodedSegment(
        raw_packet=raw,
        protocol_stack=tuple(stack),
        quality_flags=int(quality),
        **fields,
    )


def _parse_ipv4(data: bytes, offset: int, fields: Dict[str, Any]) -> Tuple[Optional[int], int, int, DecodeQuality]:
    """Parse an IPv4 header; return (l4_offset, l4_end, protocol, quality)."""
    cap_len = len(data)
    if offset + 20 > cap_len:
        return None, cap_len, 0, DecodeQuality.MALFORMED_L3
    vihl = data[offset]
    version = vihl >> 4
    ihl = (vihl & 0x0F) * 4
    if version != 4 or ihl < 20 or offset + ihl > cap_len:
        return None, cap_len, 0, DecodeQuality.MALFORMED_L3

    total_length = struct.unpack_from("!H", data, offset + 2)[0]
    fields["ttl"] = data[offset + 8]
    fields["src_ip"] = _format_ipv4(data[offset + 12:offset + 16])
    fields["dst_ip"] = _format_ipv4(data[offset + 16:offset + 20])

    quality = DecodeQuality.OK
    # Ethernet pads short frames; the IP total length bounds the payload
    end = offset + total_length
    if total_length < ihl:
        return None, cap_len, 0, DecodeQuality.MALFORMED_L3
    if end > cap_len:
        quality |= DecodeQuality.TRUNCATED
        end = cap_len
    return offset + ihl, end, data[offset + 9], quality


def _parse_tcp(data: bytes, offset: int, end: int, fields: Dict[str, Any]) -> DecodeQuality:
    if offset + 20 > end:
        return DecodeQuality.MALFORMED_L4
    src_port, dst_port, seq, ack = struct.unpack_from("!HHII", data, offset)
    fields["src_port"] = src_port
    fields["dst_port"] = dst_port
    fields["tcp_seq"] = seq
    fields["tcp_ack"] = ack
    data_offset = (data[offset + 12] >> 4) * 4
    if data_offset < 20 or offset + data_offset > end:
        return DecodeQuality.MALFORMED_L4
    fields["tcp_flags"] = data[offset + 13]
    fields["tcp_window"] = struct.unpack_from("!H", data, offset + 14)[0]
    fields["payload"] = bytes(data[offset + data_offset:end])
    return DecodeQuality.OK


def _format_ipv4(addr: bytes) -> Optional[str]:
    if len(addr) != 4:
        return None
    return "{}.{}.{}.{}".format(addr[0], addr[1], addr[2], addr[3])


def _format_mac(addr: Optional[bytes]) -> Optional[str]:
    if not addr or len(addr) != 6:
        return None
    return ":".join(f"{b:02x}" for b in addr)
