"""Capture filter expressions for a single TCP flow."""
from __future__ import annotations

from ..models.connection import Endpoint


def flow_filter(local: Endpoint, remote: Endpoint) -> str:
    """BPF expression matching only segments sent by remote to local."""
    return (
        f"tcp and src host {remote.ip} and src port {remote.port}"
        f" and dst host {local.ip} and dst port {local.port}"
    )
