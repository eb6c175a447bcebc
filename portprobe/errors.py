from __future__ import annotations

from typing import Any, Optional


class PortProbeError(Exception):
    pass


class ConfigError(PortProbeError, ValueError):
    """Bad configuration or input. Always raised before any network activity."""


class PortSpecError(ConfigError):
    pass


class InvalidPort(PortSpecError):
    def __init__(self, token: str, message: Optional[str] = None):
        self.token = token
        super().__init__(message or f"Invalid port: {token!r}")


class InvalidRange(PortSpecError):
    def __init__(self, text: str, message: Optional[str] = None):
        self.text = text
        super().__init__(message or f"Invalid port range: {text!r}")


class ScanStalled(PortProbeError):
    """
    No slot became free within the allowed wait.
    `report` holds whatever outcomes were recorded before giving up.
    """

    def __init__(self, message: str, report: Any = None):
        self.report = report
        super().__init__(message)


class ResolutionError(PortProbeError):
    pass
