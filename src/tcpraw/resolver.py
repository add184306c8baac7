"""
Route discovery for a target address.

The OS decides which interface and source address reach the target; a
connected UDP socket exposes that decision without sending anything.
"""
from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from .exceptions import ResolutionError
from .models.connection import Endpoint

log = logging.getLogger(__name__)

SUPPORTED_NETWORKS = ("tcp", "tcp4")


@dataclass(frozen=True)
class Route:
    interface: str
    local_ip: str
    remote: Endpoint


def split_host_port(address: str) -> Tuple[str, int]:
    """Split "host:port"; the port must be numeric."""
    host, sep, port = address.rpartition(":")
    if not sep or not host:
        raise ResolutionError(f"Address {address!r} is missing a port")
    try:
        port_num = int(port)
    except ValueError:
        raise ResolutionError(f"Invalid port in address {address!r}") from None
    if not 0 < port_num < 65536:
        raise ResolutionError(f"Port out of range in address {address!r}")
    return host, port_num


def resolve_remote(network: str, address: str) -> Endpoint:
    if network not in SUPPORTED_NETWORKS:
        raise ResolutionError(f"Unsupported network {network!r} (IPv4 TCP only)")
    host, port = split_host_port(address)
    try:
        ip = socket.gethostbyname(host)
    except OSError as e:
        raise ResolutionError(f"Cannot resolve host {host!r}: {e}") from e
    return Endpoint(ip, port)


def local_address_for(remote: Endpoint) -> str:
    """Source address the OS would pick for remote (throwaway UDP dial)."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as dummy:
            dummy.connect(remote.as_tuple())
            return dummy.getsockname()[0]
    except OSError as e:
        raise ResolutionError(f"No route to {remote}: {e}") from e


def find_interface(local_ip: str, interfaces: List[Dict]) -> str:
    """Name of the interface that has local_ip configured."""
    for iface in interfaces:
        if local_ip in iface.get('ips', []):
            return iface['name']
    raise ResolutionError(f"Cannot find correct interface for local address {local_ip}")


def resolve_interface(network: str,
                      address: str,
                      interfaces: Optional[List[Dict]] = None) -> Route:
    """Resolve the interface and local address used to reach address."""
    remote = resolve_remote(network, address)
    local_ip = local_address_for(remote)
    if interfaces is None:
        from .capture.scapy_backend import ScapyBackend
        interfaces = ScapyBackend().list_interfaces()
    name = find_interface(local_ip, interfaces)
    log.debug("route to %s via %s (local %s)", remote, name, local_ip)
    return Route(interface=name, local_ip=local_ip, remote=remote)
