from __future__ import annotations

import errno
import os
import selectors
import socket
import threading
import time
from typing import Optional

from .models import CANCELLED, ScanOutcome, Status
from .targets import ResolvedTarget

_IN_PROGRESS = {
    errno.EINPROGRESS,
    errno.EWOULDBLOCK,
    errno.EAGAIN,
    errno.EALREADY,
    getattr(errno, "WSAEWOULDBLOCK", 10035),
}

# Failures on our side of the wire; they say nothing about the remote port.
_LOCAL_FAILURES = {
    errno.EADDRNOTAVAIL,
    errno.EAFNOSUPPORT,
    errno.EMFILE,
    errno.ENFILE,
    errno.ENOBUFS,
    errno.ENOMEM,
    errno.EACCES,
    errno.EPERM,
}

_SOCK = "sock"
_CANCEL = "cancel"


class Cancellation:
    """
    One-shot cancel flag that selectors can wait on.

    Setting it makes `fileno()` readable, so a probe blocked in select()
    wakes immediately instead of sitting out its timeout.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reader, self._writer = socket.socketpair()
        self._reader.setblocking(False)
        self._writer.setblocking(False)

    def set(self) -> None:
        # no locks here: this runs from signal handlers
        if self._event.is_set():
            return
        self._event.set()
        try:
            self._writer.send(b"\0")
        except OSError:
            pass  # already closed, or buffer full (reader is readable anyway)

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def fileno(self) -> int:
        return self._reader.fileno()

    def close(self) -> None:
        self._reader.close()
        self._writer.close()


def _elapsed(start: float) -> float:
    return round(time.perf_counter() - start, 4)


def _classify(port: int, err: int, start: float) -> ScanOutcome:
    if err == 0:
        return ScanOutcome(port, Status.OPEN, None, _elapsed(start))
    if err in _LOCAL_FAILURES:
        return ScanOutcome(port, Status.ERROR, os.strerror(err), _elapsed(start))
    if err == errno.ECONNREFUSED:
        return ScanOutcome(port, Status.CLOSED, "refused", _elapsed(start))
    return ScanOutcome(port, Status.CLOSED, os.strerror(err), _elapsed(start))


def connect_probe(
    target: ResolvedTarget,
    port: int,
    timeout: float,
    cancellation: Optional[Cancellation] = None,
) -> ScanOutcome:
    """
    One TCP handshake attempt against (target, port), never longer than `timeout`.

    - handshake completes: OPEN (connection closed right away)
    - refused / unreachable: CLOSED
    - no answer before the deadline: CLOSED, reason "timeout"
    - local failure (no socket, no buffers, ...): ERROR
    - cancellation fires first: ERROR, reason "cancelled"
    """
    start = time.perf_counter()
    if cancellation is not None and cancellation.is_set():
        return ScanOutcome(port, Status.ERROR, CANCELLED, 0.0)

    deadline = time.monotonic() + timeout
    sock: Optional[socket.socket] = None
    sel: Optional[selectors.BaseSelector] = None
    try:
        try:
            sock = socket.socket(target.family, socket.SOCK_STREAM)
            sock.setblocking(False)
            sel = selectors.DefaultSelector()
        except OSError as e:
            return ScanOutcome(port, Status.ERROR, f"socket: {e.strerror or e}", _elapsed(start))

        err = sock.connect_ex(target.for_port(port))
        if err not in _IN_PROGRESS:
            return _classify(port, err, start)

        sel.register(sock, selectors.EVENT_WRITE, _SOCK)
        if cancellation is not None:
            sel.register(cancellation.fileno(), selectors.EVENT_READ, _CANCEL)

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return ScanOutcome(port, Status.CLOSED, "timeout", _elapsed(start))
            ready = {key.data for key, _mask in sel.select(remaining)}
            # a handshake that already finished is still a definitive answer
            if _SOCK in ready:
                err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
                return _classify(port, err, start)
            if _CANCEL in ready:
                return ScanOutcome(port, Status.ERROR, CANCELLED, _elapsed(start))
    finally:
        if sel is not None:
            sel.close()
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass
