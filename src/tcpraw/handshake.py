"""
Kernel-side TCP connection backing a hijacked flow.

The OS performs the handshake and keeps the port reserved; everything
the peer sends on it is read and thrown away so the kernel keeps
acknowledging and the socket stays healthy.
"""
from __future__ import annotations

import logging
import socket
import threading
from typing import Optional

from .exceptions import HandshakeError
from .models.connection import Endpoint

log = logging.getLogger(__name__)

_DISCARD_CHUNK = 65536


class Handshake:
    """Kernel TCP socket bound on construction; connect(), then start_discard()."""

    def __init__(self, local_ip: str, remote: Endpoint, timeout: Optional[float] = 10.0):
        self.remote = remote
        self.timeout = timeout
        self.bytes_discarded = 0
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            self._sock.bind((local_ip, 0))
        except OSError as e:
            self._sock.close()
            raise HandshakeError(f"Cannot reserve a local port on {local_ip}: {e}") from e
        self.local = Endpoint(*self._sock.getsockname()[:2])

    def connect(self) -> None:
        """Run the three-way handshake through the OS stack."""
        self._sock.settimeout(self.timeout)
        try:
            self._sock.connect(self.remote.as_tuple())
        except OSError as e:
            self._sock.close()
            raise HandshakeError(f"Handshake {self.local} -> {self.remote} failed: {e}") from e
        self._sock.settimeout(None)
        log.debug("kernel handshake complete %s -> %s", self.local, self.remote)

    def start_discard(self) -> None:
        self._thread = threading.Thread(
            target=self._discard,
            name=f"tcpraw-discard-{self.local.port}",
            daemon=True,
        )
        self._thread.start()

    def _discard(self) -> None:
        while not self._stop.is_set():
            try:
                data = self._sock.recv(_DISCARD_CHUNK)
            except OSError as e:
                if not self._stop.is_set():
                    log.debug("discard loop ended: %s", e)
                return
            if not data:
                log.debug("peer closed kernel stream %s -> %s", self.local, self.remote)
                return
            self.bytes_discarded += len(data)

    def close(self) -> None:
        self._stop.set()
        try:
            # wakes a recv() blocked in the discard thread
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            log.debug("shutdown of kernel socket: %s", e)
        self._sock.close()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
