# Custom exceptions

"""
Custom exceptions for tcpraw connections.
"""

class TcpRawError(Exception):
    """Base exception for all hijacked-connection errors."""
    pass

class ResolutionError(TcpRawError):
    """Raised when no local interface carries the route to the target."""
    pass

class HandshakeError(TcpRawError):
    """Raised when the kernel three-way handshake fails or times out."""
    pass

class CaptureError(TcpRawError):
    """Raised when the capture session cannot be opened or never sees the flow."""
    pass

class InjectionError(TcpRawError):
    """Raised when a segment cannot be serialized or put on the wire."""
    pass

class ConnectionClosedError(TcpRawError):
    """Raised by operations on a closed connection."""
    pass

class DeadlineExceededError(TcpRawError, TimeoutError):
    """Raised when a read or write deadline expires."""

    timeout = True
