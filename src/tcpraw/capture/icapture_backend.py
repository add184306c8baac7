"""
Capture backend interface definition.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..models.packet import RawPacket

FrameHandler = Callable[[RawPacket], None]

@dataclass
class CaptureConfig:
    """Capture configuration."""
    interface: str
    snaplen: int = 65536
    promisc: bool = True
    filter: Optional[str] = None
    start_timeout: float = 5.0  # Seconds to wait for the sniffer to come up

class ICaptureBackend(ABC):
    """Capture backend interface."""

    @abstractmethod
    def start(self, config: CaptureConfig, handler: FrameHandler) -> str:
        """Start capture, deliver every frame to handler, return session_id.

        The handler runs on the capture thread; it may block, which
        stalls capture for that session.
        """
        pass

    @abstractmethod
    def stop(self, session_id: str) -> Dict[str, Any]:
        """Stop capture, return session metadata."""
        pass

    @abstractmethod
    def get_stats(self, session_id: str) -> Dict[str, Any]:
        """Get current capture statistics."""
        pass

    @abstractmethod
    def list_interfaces(self) -> List[Dict]:
        """List available network interfaces."""
        pass
