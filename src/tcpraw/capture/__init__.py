"""
Live packet capture subsystem.
"""

from .icapture_backend import ICaptureBackend, CaptureConfig
from .scapy_backend import ScapyBackend
from .dispatcher import FlowDispatcher, derive_link_template
from .bpf import flow_filter

__all__ = [
    'ICaptureBackend',
    'CaptureConfig',
    'ScapyBackend',
    'FlowDispatcher',
    'derive_link_template',
    'flow_filter',
]
