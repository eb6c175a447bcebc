from .errors import ConfigError, InvalidPort, InvalidRange, PortProbeError, ResolutionError, ScanStalled
from .models import ScanConfig, ScanOutcome, ScanReport, Status
from .ports import build_port_sequence, parse_port_list, parse_port_range
from .scanner import Scanner, scan

__version__ = "0.1.0"
