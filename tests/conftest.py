import socket
import threading

import pytest

from portprobe.models import ScanOutcome, Status
from portprobe.targets import ResolvedTarget


def fake_resolver(target: str) -> ResolvedTarget:
    return ResolvedTarget(target, socket.AF_INET, ("192.0.2.10", 0))


class MockTarget:
    """
    Deterministic stand-in for a remote host.

    Ports in `open_ports` accept, everything else refuses. Tracks how many
    probes are running at once.
    """

    def __init__(self, open_ports=(), delay: float = 0.0):
        self.open_ports = set(open_ports)
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.peak = 0
        self._lock = threading.Lock()

    def __call__(self, target, port, timeout, cancellation=None):
        with self._lock:
            self.calls.append(port)
            self.in_flight += 1
            self.peak = max(self.peak, self.in_flight)
        try:
            if self.delay:
                if cancellation is not None and cancellation.wait(self.delay):
                    return ScanOutcome(port, Status.ERROR, "cancelled")
            if port in self.open_ports:
                return ScanOutcome(port, Status.OPEN)
            return ScanOutcome(port, Status.CLOSED, "refused")
        finally:
            with self._lock:
                self.in_flight -= 1


def silent_probe(target, port, timeout, cancellation=None):
    """Never answers: waits out the full timeout unless cancelled."""
    if cancellation is not None and cancellation.wait(timeout):
        return ScanOutcome(port, Status.ERROR, "cancelled")
    return ScanOutcome(port, Status.CLOSED, "timeout", timeout)


@pytest.fixture
def listener():
    """A loopback TCP listener; yields its port."""
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    srv.bind(("127.0.0.1", 0))
    srv.listen(64)
    try:
        yield srv.getsockname()[1]
    finally:
        srv.close()


@pytest.fixture
def closed_port():
    """A loopback port with nothing listening on it."""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
