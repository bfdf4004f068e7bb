import socket
import time

import pytest

from envserver.config import Config
from envserver.providers import OceanData, StaticProvider, WaveData, WindData
from envserver.server import NetServer


@pytest.fixture
def provider():
    return StaticProvider(
        wind=WindData(angle=180.0, magnitude=12.5, gust=20.25),
        ocean=OceanData(current_angle=90.0, current_magnitude=0.5, ice_fraction=0.75),
        wave=WaveData(height=2.25),
    )


@pytest.fixture
def make_server(provider):
    """Start a server on an OS-assigned loopback port; stopped automatically."""
    servers = []

    def _make(provider_override=None, **overrides):
        defaults = {"host": "127.0.0.1", "port": 0}
        defaults.update(overrides)
        server = NetServer(Config(**defaults), provider_override or provider)
        server.initialize()
        servers.append(server)
        return server

    yield _make

    for server in servers:
        server.stop()


def connect(address, retries=10, delay=0.1):
    """Connect to the server with retries."""
    host, port = address
    for _ in range(retries):
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.settimeout(5.0)
        try:
            sock.connect((host, port))
            return sock
        except ConnectionRefusedError:
            sock.close()
            time.sleep(delay)
    raise ConnectionRefusedError(f"Could not connect to {host}:{port} after {retries} retries")


def recv_line(sock) -> bytes:
    """Read until a newline or EOF."""
    data = b""
    while b"\n" not in data:
        chunk = sock.recv(4096)
        if not chunk:
            break
        data += chunk
    return data


def recv_all(sock) -> bytes:
    """Read until the server closes the connection."""
    data = b""
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return data
        data += chunk


def wait_for(predicate, timeout=5.0, interval=0.02):
    """Poll *predicate* until it returns true or *timeout* expires."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
