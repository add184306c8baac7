"""tcpraw command line interface."""
import logging
import time

import click

from ..config import DialOptions
from ..conn import dial
from ..exceptions import DeadlineExceededError, TcpRawError
from ..resolver import resolve_interface


def _setup_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    # scapy's own runtime chatter stays quiet unless asked for
    logging.getLogger("scapy.runtime").setLevel(max(level, logging.ERROR))


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase log verbosity (-v info, -vv debug)")
def cli(verbose: int):
    """Packet conduit over a hijacked TCP connection."""
    _setup_logging(verbose)


@cli.command()
def interfaces():
    """List capture interfaces and their IPv4 addresses."""
    from ..capture.scapy_backend import ScapyBackend

    for iface in ScapyBackend().list_interfaces():
        ips = ", ".join(iface['ips']) or "-"
        click.echo(f"{iface['name']:<16} {iface['mac'] or '-':<18} {ips}")


@cli.command()
@click.argument("address")
@click.option("--network", default="tcp", show_default=True, help="tcp or tcp4")
def route(address: str, network: str):
    """Show the interface and local address used to reach ADDRESS (host:port)."""
    try:
        found = resolve_interface(network, address)
    except TcpRawError as e:
        raise click.ClickException(str(e))
    click.echo(f"{found.remote} via {found.interface} from {found.local_ip}")


@cli.command()
@click.argument("address")
@click.argument("payload")
@click.option("--network", default="tcp", show_default=True, help="tcp or tcp4")
@click.option("--timeout", "timeout", type=float, default=5.0, show_default=True,
              help="Seconds to wait for a reply (0 = do not wait)")
@click.option("--handshake-timeout", "handshake_timeout", type=float, default=10.0, show_default=True,
              help="Seconds allowed for the kernel handshake")
@click.option("--link-timeout", "link_timeout", type=float, default=5.0, show_default=True,
              help="Seconds to wait for the first captured segment")
@click.option("--ttl", "ttl", type=click.IntRange(1, 255), default=64, show_default=True,
              help="IP TTL of forged segments")
def ping(address: str,
         payload: str,
         network: str,
         timeout: float,
         handshake_timeout: float,
         link_timeout: float,
         ttl: int):
    """
    Send PAYLOAD to ADDRESS over a hijacked connection and print the reply.

    Example:
      tcpraw ping 192.0.2.10:8080 ping --timeout 2
    """
    options = DialOptions(
        handshake_timeout=handshake_timeout,
        link_timeout=link_timeout,
        ttl=ttl,
    )
    try:
        with dial(network, address, options) as conn:
            click.echo(f"connected {conn.local_address()} -> {conn.remote_address()} on {conn.interface}")
            sent = conn.write_to(payload.encode("utf-8"))
            click.echo(f"sent {sent} bytes")
            if timeout <= 0:
                return
            conn.set_read_deadline(time.time() + timeout)
            buf = bytearray(65536)
            n, peer = conn.read_from(buf)
            click.echo(f"{peer}: {bytes(buf[:n])!r}")
    except DeadlineExceededError:
        raise click.ClickException(f"no reply within {timeout}s")
    except TcpRawError as e:
        raise click.ClickException(str(e))


def main():
    cli()
