from __future__ import annotations

import ipaddress
import socket
from dataclasses import dataclass
from typing import Tuple

from .errors import ResolutionError


@dataclass(frozen=True)
class ResolvedTarget:
    host: str
    family: int
    sockaddr: Tuple

    @property
    def address(self) -> str:
        return self.sockaddr[0]

    def for_port(self, port: int) -> Tuple:
        # sockaddr is (host, port) for IPv4 and (host, port, flowinfo, scope_id) for IPv6
        return (self.sockaddr[0], port) + tuple(self.sockaddr[2:])


def resolve_target(target: str) -> ResolvedTarget:
    """
    Resolves the target once so every port is probed against the same address.
    Supports:
      - IP literal: "172.20.0.10", "::1"
      - Hostname: "webapp" (first TCP-capable address, IPv4 preferred)
    """
    target = target.strip()
    if not target:
        raise ResolutionError("Empty target")

    # Try IP literal first
    try:
        ip = ipaddress.ip_address(target)
    except ValueError:
        pass
    else:
        if ip.version == 4:
            return ResolvedTarget(target, socket.AF_INET, (str(ip), 0))
        return ResolvedTarget(target, socket.AF_INET6, (str(ip), 0, 0, 0))

    # Fallback: hostname
    try:
        infos = socket.getaddrinfo(target, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as e:
        raise ResolutionError(f"Could not resolve target '{target}': {e}") from e

    for family in (socket.AF_INET, socket.AF_INET6):
        for af, _socktype, _proto, _canon, sockaddr in infos:
            if af == family:
                return ResolvedTarget(target, af, tuple(sockaddr))
    raise ResolutionError(f"No usable address for target '{target}'")
