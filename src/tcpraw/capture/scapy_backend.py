import itertools
import logging
import threading
import time
from typing import Any, Dict, List

from scapy.all import AsyncSniffer, conf
from scapy.error import Scapy_Exception

from ..exceptions import CaptureError
from ..models.packet import RawPacket
from .icapture_backend import CaptureConfig, FrameHandler, ICaptureBackend
from .packet_decoder import DLT_EN10MB

log = logging.getLogger(__name__)

_session_ids = itertools.count(1)


def _link_type_of(packet) -> int:
    """Map the dissected top layer back to its DLT_* number."""
    return conf.l2types.layer2num.get(packet.__class__, DLT_EN10MB)


class ScapyBackend(ICaptureBackend):
    """Scapy-based capture backend (libpcap/BPF through AsyncSniffer)."""

    def __init__(self):
        self._sessions: Dict[str, Dict] = {}
        self._lock = threading.RLock()

    def list_interfaces(self) -> List[Dict]:
        """List network interfaces with their IPv4 addresses."""
        interfaces = []
        for iface in conf.ifaces.values():
            ips = getattr(iface, "ips", None) or {}
            interfaces.append({
                'name': iface.name,
                'description': getattr(iface, "description", iface.name),
                'mac': getattr(iface, "mac", None),
                'ips': list(ips.get(4, [])),
            })
        return interfaces

    def start(self, config: CaptureConfig, handler: FrameHandler) -> str:
        with self._lock:
            session_id = f"scapy_{next(_session_ids)}_{config.interface}"
            stats = {
                'packets_total': 0,
                'bytes_total': 0,
                'start_time': time.time(),
                'interface_name': config.interface,
            }
            started = threading.Event()

            def packet_callback(packet):
                """Callback for each captured packet."""
                data = bytes(packet)
                stats['packets_total'] += 1
                stats['bytes_total'] += len(data)
                frame = RawPacket(
                    link_type=_link_type_of(packet),
                    data=data,
                    timestamp_us=int(float(packet.time) * 1_000_000),
                    interface=config.interface,
                )
                try:
                    handler(frame)
                except Exception:
                    log.exception("capture handler failed on %s, stopping session %s",
                                  config.interface, session_id)
                    raise

            log.debug("starting capture iface=%s filter=%r", config.interface, config.filter)
            try:
                sniffer = AsyncSniffer(
                    iface=config.interface,
                    prn=packet_callback,
                    filter=config.filter,
                    store=False,  # Don't store in Scapy's memory
                    promisc=config.promisc,
                    started_callback=started.set,
                )
                sniffer.start()
            except (OSError, Scapy_Exception) as e:
                raise CaptureError(f"Failed to start capture on '{config.interface}': {e}") from e

            if not started.wait(config.start_timeout):
                _stop_sniffer(sniffer)
                raise CaptureError(
                    f"Capture on '{config.interface}' did not start within {config.start_timeout}s")

            self._sessions[session_id] = {
                'sniffer': sniffer,
                'config': config,
                'stats': stats,
            }

        log.info("capture session %s started on %s", session_id, config.interface)
        return session_id

    def stop(self, session_id: str) -> Dict[str, Any]:
        with self._lock:
            if session_id not in self._sessions:
                raise ValueError(f"Session {session_id} not found")
            session = self._sessions.pop(session_id)

        _stop_sniffer(session['sniffer'])
        metadata = {
            'session_id': session_id,
            'backend': 'scapy',
            'interface': session['config'].interface,
            'start_ts': session['stats']['start_time'],
            'end_ts': time.time(),
            'config': {
                'interface': session['config'].interface,
                'snaplen': session['config'].snaplen,
                'promisc': session['config'].promisc,
                'filter': session['config'].filter,
            },
            'stats_summary': session['stats'].copy(),
        }
        log.info("capture session %s stopped after %d packets",
                 session_id, metadata['stats_summary']['packets_total'])
        return metadata

    def get_stats(self, session_id: str) -> Dict[str, Any]:
        with self._lock:
            if session_id not in self._sessions:
                raise ValueError(f"Session {session_id} not found")
            return self._sessions[session_id]['stats'].copy()


def _stop_sniffer(sniffer) -> None:
    # A sniffer whose thread already died (handler error, interface gone)
    # refuses stop(); joining is all that is left to do.
    if sniffer.running:
        try:
            sniffer.stop(join=True)
            return
        except Scapy_Exception as e:
            log.debug("sniffer stop: %s", e)
    if sniffer.thread is not None:
        sniffer.thread.join(timeout=1.0)
