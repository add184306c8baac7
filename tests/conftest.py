"""
Shared fixtures: frame builders and fakes for the capture backend and
the raw injector, so connection logic runs without privileges.
"""
import queue
import re
import threading

import pytest
from scapy.layers.inet import IP, TCP
from scapy.layers.l2 import Ether
from scapy.packet import Raw

from tcpraw.capture.dispatcher import FlowDispatcher
from tcpraw.capture.icapture_backend import ICaptureBackend
from tcpraw.capture.packet_decoder import DLT_EN10MB
from tcpraw.conn import TCPConn
from tcpraw.exceptions import ConnectionClosedError
from tcpraw.inject.builder import SegmentBuilder
from tcpraw.models.connection import Endpoint, SequenceState
from tcpraw.models.packet import RawPacket

LOCAL = Endpoint("10.0.0.1", 40000)
REMOTE = Endpoint("10.0.0.2", 8080)
LOCAL_MAC = "02:00:00:00:00:01"
PEER_MAC = "02:00:00:00:00:02"


def peer_frame(seq, ack, flags="A", payload=b"", local=LOCAL, remote=REMOTE,
               src_mac=PEER_MAC, dst_mac=LOCAL_MAC):
    """Ethernet frame as the peer would send it to us."""
    pkt = (Ether(src=src_mac, dst=dst_mac)
           / IP(src=remote.ip, dst=local.ip)
           / TCP(sport=remote.port, dport=local.port, seq=seq, ack=ack, flags=flags))
    if payload:
        pkt = pkt / Raw(load=payload)
    return RawPacket(link_type=DLT_EN10MB, data=bytes(pkt))


class FakeInjector:
    def __init__(self, interface="fake0"):
        self.interface = interface
        self.frames = []
        self.closed = False
        self._lock = threading.Lock()

    def send(self, frame):
        if self.closed:
            raise ConnectionClosedError("raw socket is closed")
        with self._lock:
            self.frames.append(frame)
        return len(frame)

    def close(self):
        self.closed = True


class FakeBackend(ICaptureBackend):
    """Hands frames to the dispatcher on demand instead of sniffing.

    With auto_synack, a SYN-ACK for the filtered flow is delivered
    shortly after start, which is what a real capture sees first.
    """

    def __init__(self, interfaces=None, auto_synack=True, peer_isn=7000):
        self.interfaces = interfaces if interfaces is not None else [
            {'name': 'lo', 'description': 'loopback', 'mac': None, 'ips': ['127.0.0.1']},
        ]
        self.auto_synack = auto_synack
        self.peer_isn = peer_isn
        self.handler = None
        self.config = None
        self.started = False
        self.stopped = False
        self.local = None
        self.remote = None

    def list_interfaces(self):
        return list(self.interfaces)

    def start(self, config, handler):
        self.config = config
        self.handler = handler
        self.started = True
        m = re.search(r"src host (\S+) and src port (\d+) and dst host (\S+) and dst port (\d+)",
                      config.filter)
        self.remote = Endpoint(m.group(1), int(m.group(2)))
        self.local = Endpoint(m.group(3), int(m.group(4)))
        if self.auto_synack:
            threading.Timer(0.05, self._synack).start()
        return "fake_1"

    def _synack(self):
        self.deliver(seq=self.peer_isn, ack=1, flags="SA")

    def deliver(self, seq, ack, flags="A", payload=b""):
        self.handler(peer_frame(seq, ack, flags, payload, local=self.local, remote=self.remote))

    def stop(self, session_id):
        self.stopped = True
        return {'session_id': session_id, 'backend': 'fake'}

    def get_stats(self, session_id):
        return {}


@pytest.fixture
def fake_injector():
    return FakeInjector()


@pytest.fixture
def make_conn(fake_injector):
    """Build an established TCPConn over fakes; first frame already captured."""

    def _make(queue_size=128, first_frame=None):
        state = SequenceState()
        payloads = queue.Queue(maxsize=queue_size)
        dispatcher = FlowDispatcher(state, payloads)
        dispatcher.handle_frame(first_frame or peer_frame(seq=1000, ack=5001, flags="SA"))
        conn = TCPConn(
            LOCAL,
            REMOTE,
            state=state,
            payloads=payloads,
            dispatcher=dispatcher,
            builder=SegmentBuilder(LOCAL, REMOTE),
            injector=fake_injector,
            interface="fake0",
        )
        return conn, dispatcher

    return _make
