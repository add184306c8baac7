"""
Packet and connection data models.
"""

from .packet import RawPacket, DecodedSegment
from .connection import Endpoint, LinkTemplate, SequenceState

__all__ = [
    'RawPacket',
    'DecodedSegment',
    'Endpoint',
    'LinkTemplate',
    'SequenceState',
]
