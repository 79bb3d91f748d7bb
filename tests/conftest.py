import socket
import struct

import pytest

from xpconnector import XPlaneConnector


class FakeSimulator:
    """Plays X-Plane on the loopback interface."""

    def __init__(self):
        self.socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.socket.bind(("127.0.0.1", 0))
        self.socket.settimeout(2.0)
        self.client = None

    @property
    def port(self) -> int:
        return self.socket.getsockname()[1]

    def receive(self, timeout: float = 2.0) -> bytes:
        self.socket.settimeout(timeout)
        data, self.client = self.socket.recvfrom(2048)
        return data

    def receive_all(self, timeout: float = 0.2) -> list[bytes]:
        received = []
        while True:
            try:
                received.append(self.receive(timeout=timeout))
            except TimeoutError:
                return received

    def send(self, data: bytes, address=None):
        self.socket.sendto(data, address if address is not None else self.client)

    def close(self):
        self.socket.close()


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now = self.now + seconds


def rref_values(*pairs) -> bytes:
    """Inbound RREF datagram as X-Plane sends it."""
    return b"RREF," + b"".join(struct.pack("<if", dataref_id, value) for dataref_id, value in pairs)


@pytest.fixture
def simulator():
    sim = FakeSimulator()
    yield sim
    sim.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def connector(simulator, clock):
    xp = XPlaneConnector(
        "127.0.0.1",
        simulator.port,
        environ={"check-interval": 0.05, "socket-timeout": 0.05},
        clock=clock,
    )
    yield xp
    for token in list(xp.commands):
        token.cancel(timeout=1.0)
    xp.close()
