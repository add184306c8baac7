import pytest
from scapy.layers.inet import IP, TCP
from scapy.layers.l2 import Ether, Loopback

from tcpraw.exceptions import InjectionError
from tcpraw.inject.builder import SegmentBuilder
from tcpraw.models.connection import LINK_ETHERNET, LINK_LOOPBACK, LinkTemplate

from conftest import LOCAL, LOCAL_MAC, PEER_MAC, REMOTE

ETH_TEMPLATE = LinkTemplate(kind=LINK_ETHERNET, src_mac=LOCAL_MAC, dst_mac=PEER_MAC, eth_type=0x0800)


def _checksums_valid(pkt):
    rebuilt = pkt.copy()
    del rebuilt[IP].chksum
    del rebuilt[TCP].chksum
    rebuilt = pkt.__class__(bytes(rebuilt))
    return (rebuilt[IP].chksum == pkt[IP].chksum
            and rebuilt[TCP].chksum == pkt[TCP].chksum)


def test_ethernet_segment_layout():
    frame = SegmentBuilder(LOCAL, REMOTE).build(ETH_TEMPLATE, b"ping", seq=5001, ack=1001)
    pkt = Ether(frame)
    assert pkt[Ether].src == LOCAL_MAC
    assert pkt[Ether].dst == PEER_MAC
    assert pkt[IP].src == LOCAL.ip
    assert pkt[IP].dst == REMOTE.ip
    assert pkt[IP].ttl == 64
    assert pkt[IP].id == 1234
    assert pkt[IP].flags.DF
    assert pkt[IP].proto == 6
    assert pkt[IP].len == 20 + 20 + 4
    assert pkt[TCP].sport == LOCAL.port
    assert pkt[TCP].dport == REMOTE.port
    assert pkt[TCP].seq == 5001
    assert pkt[TCP].ack == 1001
    assert pkt[TCP].window == 12580
    assert str(pkt[TCP].flags) == "PA"
    assert bytes(pkt[TCP].payload) == b"ping"
    assert _checksums_valid(pkt)


def test_loopback_segment():
    template = LinkTemplate(kind=LINK_LOOPBACK, family=2)
    frame = SegmentBuilder(LOCAL, REMOTE).build(template, b"abc", seq=1, ack=2)
    pkt = Loopback(frame)
    assert pkt[Loopback].type == 2
    assert bytes(pkt[TCP].payload) == b"abc"
    assert _checksums_valid(pkt)


def test_custom_ttl_and_window():
    builder = SegmentBuilder(LOCAL, REMOTE, ttl=128, window=1024, ip_id=7)
    pkt = Ether(builder.build(ETH_TEMPLATE, b"x", seq=0, ack=0))
    assert pkt[IP].ttl == 128
    assert pkt[IP].id == 7
    assert pkt[TCP].window == 1024


def test_empty_payload_is_header_only():
    pkt = Ether(SegmentBuilder(LOCAL, REMOTE).build(ETH_TEMPLATE, b"", seq=9, ack=9))
    assert pkt[IP].len == 40
    assert bytes(pkt[TCP].payload) == b""


def test_wrapped_sequence_numbers_serialize():
    pkt = Ether(SegmentBuilder(LOCAL, REMOTE).build(ETH_TEMPLATE, b"z", seq=0xFFFFFFFF, ack=0))
    assert pkt[TCP].seq == 0xFFFFFFFF


def test_missing_template_is_an_injection_error():
    with pytest.raises(InjectionError):
        SegmentBuilder(LOCAL, REMOTE).build(None, b"ping", seq=1, ack=1)
