"""
Capture dispatcher for a hijacked flow.

Runs on the capture thread. Every captured segment of the flow updates
the shared counters; the first frame also fixes the outbound link
template; push-flagged payloads go to the read queue.
"""
from __future__ import annotations

import logging
import queue
import threading
from typing import Optional

from ..models.connection import LINK_ETHERNET, LINK_LOOPBACK, LinkTemplate, SequenceState
from ..models.packet import TCP_PSH, DecodedSegment, RawPacket
from .packet_decoder import decode_segment, quality_flag_names

log = logging.getLogger(__name__)

# How often a blocked enqueue rechecks the stop flag
_PUT_POLL_S = 0.1


def derive_link_template(segment: DecodedSegment) -> Optional[LinkTemplate]:
    """Build the outbound envelope from an inbound frame, or None."""
    kind = segment.link_kind
    if kind == LINK_ETHERNET and segment.src_mac and segment.dst_mac:
        # inbound frame came from the peer side: reverse it
        return LinkTemplate(
            kind=LINK_ETHERNET,
            src_mac=segment.dst_mac,
            dst_mac=segment.src_mac,
            eth_type=segment.eth_type,
        )
    if kind == LINK_LOOPBACK and segment.loopback_family is not None:
        return LinkTemplate(kind=LINK_LOOPBACK, family=segment.loopback_family)
    return None


class FlowDispatcher:
    """Consumes captured frames of one flow."""

    def __init__(self, state: SequenceState, payloads: "queue.Queue[bytes]"):
        self.state = state
        self.payloads = payloads
        self.frames_seen = 0
        self._link_template: Optional[LinkTemplate] = None
        self._link_lock = threading.Lock()
        self._link_ready = threading.Event()
        self._stopped = threading.Event()

    @property
    def link_template(self) -> Optional[LinkTemplate]:
        """Template once the first frame arrived; None before or if unusable."""
        if not self._link_ready.is_set():
            return None
        return self._link_template

    def wait_link_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the first frame has been inspected."""
        return self._link_ready.wait(timeout)

    @property
    def link_ready(self) -> bool:
        return self._link_ready.is_set()

    def stop(self) -> None:
        """Release a handle_frame() blocked on a full queue."""
        self._stopped.set()

    def handle_frame(self, raw: RawPacket) -> None:
        if self._stopped.is_set():
            return
        segment = decode_segment(raw)
        if not segment.is_tcp:
            log.debug("dropping undecodable frame (%s): %s",
                      segment.stack_summary, ",".join(quality_flag_names(segment.quality_flags)))
            return
        self.frames_seen += 1

        # the peer's ack is where our next byte goes; its seq plus the
        # space it consumed is what we acknowledge
        self.state.store(
            seq=segment.tcp_ack,
            ack=segment.tcp_seq + segment.segment_length,
        )

        if not self._link_ready.is_set():
            self._init_link(segment)

        if segment.has_flag(TCP_PSH) and segment.payload:
            self._enqueue(segment.payload)

    def _init_link(self, segment: DecodedSegment) -> None:
        with self._link_lock:
            if self._link_ready.is_set():
                return
            self._link_template = derive_link_template(segment)
            if self._link_template is None:
                log.warning("first captured frame has no usable link layer (%s); "
                            "outbound framing unavailable", segment.stack_summary)
            else:
                log.debug("link template: %s", self._link_template)
            self._link_ready.set()

    def _enqueue(self, payload: bytes) -> None:
        # full queue: block the capture thread (backpressure), but stay stoppable
        while not self._stopped.is_set():
            try:
                self.payloads.put(payload, timeout=_PUT_POLL_S)
                return
            except queue.Full:
                continue
