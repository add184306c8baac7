"""Raw frame delivery on one interface."""
from __future__ import annotations

import logging
import threading

from scapy.all import conf
from scapy.error import Scapy_Exception

from ..exceptions import ConnectionClosedError, InjectionError

log = logging.getLogger(__name__)


class Injector:
    """Link-layer raw socket bound to the capture interface."""

    def __init__(self, interface: str):
        self.interface = interface
        self._lock = threading.Lock()
        self._closed = False
        try:
            self._socket = conf.L2socket(iface=interface)
        except (OSError, Scapy_Exception) as e:
            raise InjectionError(f"Cannot open raw socket on '{interface}': {e}") from e
        log.debug("raw socket open on %s", interface)

    def send(self, frame: bytes) -> int:
        with self._lock:
            if self._closed:
                raise ConnectionClosedError("raw socket is closed")
            sock = self._socket
        try:
            sock.send(frame)
        except (OSError, Scapy_Exception) as e:
            raise InjectionError(f"Raw send on '{self.interface}' failed: {e}") from e
        return len(frame)

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._socket.close()
        log.debug("raw socket closed on %s", self.interface)
