"""
Hijacked TCP connection.

The kernel owns the handshake and the port; payload segments are
captured on the way in and forged on the way out. The connection is
packet oriented: one write is one segment, one read is one push-flagged
segment. Nothing is retransmitted or reordered.
"""
from __future__ import annotations

import logging
import queue
import threading
import time
from contextlib import ExitStack
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from .capture.bpf import flow_filter
from .capture.dispatcher import FlowDispatcher
from .capture.icapture_backend import CaptureConfig, ICaptureBackend
from .config import DialOptions
from .exceptions import CaptureError, ConnectionClosedError, DeadlineExceededError
from .handshake import Handshake
from .inject.builder import SegmentBuilder
from .inject.injector import Injector
from .models.connection import Endpoint, SequenceState
from .resolver import resolve_interface

log = logging.getLogger(__name__)

# Longest a blocked read sleeps before rechecking close/deadline
_POLL_S = 0.05


class ConnState(Enum):
    ESTABLISHED = "established"
    CLOSED = "closed"


class TCPConn:
    """
    One hijacked TCP flow.

    Deadlines are absolute time.time() values (None disables them) and
    apply to pending calls as well as future ones.
    """

    def __init__(self,
                 local: Endpoint,
                 remote: Endpoint,
                 *,
                 state: SequenceState,
                 payloads: "queue.Queue[bytes]",
                 dispatcher: FlowDispatcher,
                 builder: SegmentBuilder,
                 injector: Injector,
                 handshake: Optional[Handshake] = None,
                 backend: Optional[ICaptureBackend] = None,
                 session_id: Optional[str] = None,
                 interface: Optional[str] = None):
        self.local = local
        self.remote = remote
        self.interface = interface
        self.state = state
        self._payloads = payloads
        self._dispatcher = dispatcher
        self._builder = builder
        self._injector = injector
        self._handshake = handshake
        self._backend = backend
        self._session_id = session_id

        self._conn_state = ConnState.ESTABLISHED
        self._state_lock = threading.Lock()
        self._closed = threading.Event()
        self._write_lock = threading.Lock()
        self._read_deadline: Optional[float] = None
        self._write_deadline: Optional[float] = None

    # ------------------------------------------------------------------
    # reading

    def read_from(self, buffer) -> Tuple[int, Endpoint]:
        """Copy the next pushed payload into buffer.

        Returns (bytes copied, peer endpoint). A payload longer than the
        buffer is truncated; the rest is lost.
        """
        payload = self._next_payload()
        view = memoryview(buffer).cast("B")
        n = min(len(view), len(payload))
        view[:n] = payload[:n]
        return n, self.remote

    def recv_from(self, bufsize: int = 65536) -> Tuple[bytes, Endpoint]:
        payload = self._next_payload()
        return payload[:bufsize], self.remote

    def _next_payload(self) -> bytes:
        while True:
            if self._closed.is_set():
                raise ConnectionClosedError("read on closed connection")
            wait = _POLL_S
            deadline = self._read_deadline
            if deadline is not None:
                remaining = deadline - time.time()
                if remaining <= 0:
                    raise DeadlineExceededError("read deadline exceeded")
                wait = min(wait, remaining)
            try:
                return self._payloads.get(timeout=wait)
            except queue.Empty:
                continue

    # ------------------------------------------------------------------
    # writing

    def write_to(self, data, addr=None) -> int:
        """Send data as a single PSH|ACK segment to the peer.

        addr is accepted for datagram-style callers; the flow has exactly
        one peer, so it is ignored. Returns len(data). Callers keep data
        within one frame; nothing is fragmented.
        """
        payload = bytes(data)
        self._check_open("write")
        deadline = self._write_deadline
        if deadline is None:
            acquired = self._write_lock.acquire()
        else:
            remaining = deadline - time.time()
            if remaining <= 0:
                raise DeadlineExceededError("write deadline exceeded")
            acquired = self._write_lock.acquire(timeout=remaining)
        if not acquired:
            raise DeadlineExceededError("write deadline exceeded")
        try:
            self._check_open("write")
            seq, ack = self.state.load()
            frame = self._builder.build(self._dispatcher.link_template, payload, seq, ack)
            self._injector.send(frame)
            self.state.add_seq(len(payload))
        finally:
            self._write_lock.release()
        log.debug("sent %d bytes seq=%d ack=%d", len(payload), seq, ack)
        return len(payload)

    # ------------------------------------------------------------------
    # lifecycle

    @property
    def conn_state(self) -> ConnState:
        return self._conn_state

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _check_open(self, op: str) -> None:
        if self._closed.is_set():
            raise ConnectionClosedError(f"{op} on closed connection")

    def close(self) -> None:
        """Release every resource; blocked reads/writes fail promptly.

        Safe to call more than once.
        """
        with self._state_lock:
            if self._conn_state is ConnState.CLOSED:
                return
            self._conn_state = ConnState.CLOSED
        self._closed.set()

        with ExitStack() as cleanup:
            # callbacks run in reverse order of registration
            cleanup.callback(self._injector.close)
            if self._handshake is not None:
                cleanup.callback(self._handshake.close)
            if self._backend is not None and self._session_id is not None:
                cleanup.callback(self._backend.stop, self._session_id)
            cleanup.callback(self._dispatcher.stop)
        log.info("closed %s -> %s", self.local, self.remote)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    # ------------------------------------------------------------------
    # addresses and deadlines

    def local_address(self) -> Endpoint:
        return self.local

    def remote_address(self) -> Endpoint:
        return self.remote

    def set_deadline(self, t: Optional[float]) -> None:
        """Set both read and write deadlines."""
        self._read_deadline = t
        self._write_deadline = t

    def set_read_deadline(self, t: Optional[float]) -> None:
        self._read_deadline = t

    def set_write_deadline(self, t: Optional[float]) -> None:
        self._write_deadline = t

    def __repr__(self) -> str:
        return (f"TCPConn({self.local} -> {self.remote}, "
                f"{self._conn_state.value}, {self.state!r})")


def dial(network: str,
         address: str,
         options: Optional[DialOptions] = None,
         *,
         backend: Optional[ICaptureBackend] = None,
         interfaces: Optional[List[Dict]] = None,
         injector_factory: Callable[[str], Injector] = Injector) -> TCPConn:
    """
    Establish a hijacked TCP connection to address ("host:port").

    Steps: resolve the outbound interface, reserve a local port, start
    the flow capture, let the kernel run the handshake, start draining
    the kernel socket, then wait for the first captured frame to fix the
    link-layer template. Anything acquired is released if a step fails.
    """
    options = options or DialOptions()
    if backend is None:
        from .capture.scapy_backend import ScapyBackend
        backend = ScapyBackend()
    if interfaces is None:
        interfaces = backend.list_interfaces()

    route = resolve_interface(network, address, interfaces)
    handshake = Handshake(route.local_ip, route.remote, timeout=options.handshake_timeout)
    local = handshake.local

    state = SequenceState()
    payloads: "queue.Queue[bytes]" = queue.Queue(maxsize=options.queue_size)
    dispatcher = FlowDispatcher(state, payloads)

    with ExitStack() as cleanup:
        cleanup.callback(handshake.close)

        config = CaptureConfig(
            interface=route.interface,
            snaplen=options.snaplen,
            promisc=options.promisc,
            filter=flow_filter(local, route.remote),
        )
        log.debug("capture filter: %s", config.filter)
        session_id = backend.start(config, dispatcher.handle_frame)
        cleanup.callback(backend.stop, session_id)
        cleanup.callback(dispatcher.stop)

        injector = injector_factory(route.interface)
        cleanup.callback(injector.close)

        handshake.connect()
        handshake.start_discard()

        if not dispatcher.wait_link_ready(options.link_timeout):
            raise CaptureError(
                f"No segment of {local} <- {route.remote} captured on "
                f"{route.interface} within {options.link_timeout}s")

        conn = TCPConn(
            local,
            route.remote,
            state=state,
            payloads=payloads,
            dispatcher=dispatcher,
            builder=SegmentBuilder(local, route.remote,
                                   ttl=options.ttl, window=options.window, ip_id=options.ip_id),
            injector=injector,
            handshake=handshake,
            backend=backend,
            session_id=session_id,
            interface=route.interface,
        )
        cleanup.pop_all()

    log.info("hijacked %s -> %s on %s", local, route.remote, route.interface)
    return conn
