from click.testing import CliRunner

from tcpraw.cli import main as cli_main
from tcpraw.exceptions import DeadlineExceededError, HandshakeError, ResolutionError
from tcpraw.models.connection import Endpoint
from tcpraw.resolver import Route


class StubConn:
    interface = "eth0"

    def __init__(self, reply=b"pong", read_error=None):
        self.reply = reply
        self.read_error = read_error
        self.written = []
        self.deadline = None
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True

    def local_address(self):
        return Endpoint("10.0.0.1", 40000)

    def remote_address(self):
        return Endpoint("10.0.0.2", 8080)

    def write_to(self, data, addr=None):
        self.written.append(data)
        return len(data)

    def set_read_deadline(self, t):
        self.deadline = t

    def read_from(self, buf):
        if self.read_error:
            raise self.read_error
        buf[:len(self.reply)] = self.reply
        return len(self.reply), self.remote_address()


def test_route(monkeypatch):
    monkeypatch.setattr(cli_main, "resolve_interface",
                        lambda network, address: Route("wg0", "10.8.0.2", Endpoint("10.8.0.1", 443)))
    result = CliRunner().invoke(cli_main.cli, ["route", "10.8.0.1:443"])
    assert result.exit_code == 0
    assert "10.8.0.1:443 via wg0 from 10.8.0.2" in result.output


def test_route_error(monkeypatch):
    def fail(network, address):
        raise ResolutionError("Cannot find correct interface")

    monkeypatch.setattr(cli_main, "resolve_interface", fail)
    result = CliRunner().invoke(cli_main.cli, ["route", "10.8.0.1:443"])
    assert result.exit_code == 1
    assert "Cannot find correct interface" in result.output


def test_ping_prints_reply(monkeypatch):
    stub = StubConn()
    seen = {}

    def fake_dial(network, address, options):
        seen.update(network=network, address=address, options=options)
        return stub

    monkeypatch.setattr(cli_main, "dial", fake_dial)
    result = CliRunner().invoke(cli_main.cli, ["ping", "10.0.0.2:8080", "ping", "--ttl", "32"])
    assert result.exit_code == 0, result.output
    assert stub.written == [b"ping"]
    assert stub.closed
    assert seen["options"].ttl == 32
    assert "sent 4 bytes" in result.output
    assert "10.0.0.2:8080: b'pong'" in result.output


def test_ping_without_waiting(monkeypatch):
    stub = StubConn()
    monkeypatch.setattr(cli_main, "dial", lambda network, address, options: stub)
    result = CliRunner().invoke(cli_main.cli, ["ping", "10.0.0.2:8080", "hi", "--timeout", "0"])
    assert result.exit_code == 0
    assert stub.deadline is None
    assert "pong" not in result.output


def test_ping_timeout(monkeypatch):
    stub = StubConn(read_error=DeadlineExceededError("read deadline exceeded"))
    monkeypatch.setattr(cli_main, "dial", lambda network, address, options: stub)
    result = CliRunner().invoke(cli_main.cli, ["ping", "10.0.0.2:8080", "hi", "--timeout", "0.5"])
    assert result.exit_code == 1
    assert "no reply within 0.5s" in result.output


def test_ping_dial_failure(monkeypatch):
    def fail(network, address, options):
        raise HandshakeError("connection refused")

    monkeypatch.setattr(cli_main, "dial", fail)
    result = CliRunner().invoke(cli_main.cli, ["ping", "10.0.0.2:8080", "hi"])
    assert result.exit_code == 1
    assert "connection refused" in result.output


def test_interfaces(monkeypatch):
    from tcpraw.capture.scapy_backend import ScapyBackend

    monkeypatch.setattr(ScapyBackend, "list_interfaces", lambda self: [
        {'name': 'eth0', 'description': 'eth0', 'mac': '02:00:00:00:00:01', 'ips': ['192.168.1.10']},
        {'name': 'lo', 'description': 'lo', 'mac': None, 'ips': []},
    ])
    result = CliRunner().invoke(cli_main.cli, ["interfaces"])
    assert result.exit_code == 0
    assert "eth0" in result.output
    assert "192.168.1.10" in result.output
    assert "lo" in result.output
