"""
Segment construction and raw injection.
"""

from .builder import SegmentBuilder
from .injector import Injector

__all__ = [
    'SegmentBuilder',
    'Injector',
]
