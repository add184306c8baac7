"""
tcpraw: packet conduit over a hijacked TCP connection.

The kernel performs the handshake; payload segments are captured and
injected at the link layer so the flow looks like ordinary TCP on the
wire.
"""

from .config import DialOptions
from .conn import ConnState, TCPConn, dial
from .exceptions import (
    TcpRawError,
    ResolutionError,
    HandshakeError,
    CaptureError,
    InjectionError,
    ConnectionClosedError,
    DeadlineExceededError,
)
from .models.connection import Endpoint

__version__ = "0.1.0"

__all__ = [
    'dial',
    'TCPConn',
    'ConnState',
    'DialOptions',
    'Endpoint',
    'TcpRawError',
    'ResolutionError',
    'HandshakeError',
    'CaptureError',
    'InjectionError',
    'ConnectionClosedError',
    'DeadlineExceededError',
]
