from __future__ import annotations

import csv
import json
from typing import List, Optional, TextIO

from .models import ScanOutcome, ScanReport, Status

FORMATS = ("txt", "csv", "json")


def format_line(r: ScanOutcome, verbose: bool = False) -> Optional[str]:
    """Streaming line for one outcome; None when verbosity hides it."""
    if r.status is Status.OPEN:
        return f"open:{r.port}"
    if r.status is Status.CLOSED:
        return f"closed:{r.port}" if verbose else None
    return f"error:{r.port} ({r.reason or 'unknown'})"


def _sorted(report: ScanReport, open_only: bool) -> List[ScanOutcome]:
    rows = [r for r in report.outcomes if r.is_open or not open_only]
    return sorted(rows, key=lambda x: x.port)


def summarize(report: ScanReport) -> str:
    target = report.target
    if report.address and report.address != report.target:
        target = f"{report.target} ({report.address})"
    text = (
        f"Found {len(report.open_ports)} open ports on {target} | "
        f"closed={len(report.closed_ports)} errors={len(report.errors)} "
        f"undetermined={len(report.undetermined)} | {report.elapsed_s:.2f}s"
    )
    if report.cancelled:
        text += " | scan cancelled"
    return text


def render_report(report: ScanReport, fmt: str, stream: TextIO, open_only: bool = False) -> None:
    rows = _sorted(report, open_only)

    if fmt == "txt":
        for r in rows:
            stream.write(f"{r.status.value}:{r.port}\n")

    elif fmt == "csv":
        w = csv.writer(stream)
        w.writerow(["port", "status", "reason", "elapsed_s"])
        for r in rows:
            w.writerow([r.port, r.status.value, r.reason or "", r.elapsed_s])

    elif fmt == "json":
        payload = {
            "target": report.target,
            "address": report.address,
            "cancelled": report.cancelled,
            "elapsed_s": report.elapsed_s,
            "open_ports": sorted(report.open_ports),
            "undetermined": sorted(report.undetermined),
            "results": [
                {
                    "port": r.port,
                    "status": r.status.value,
                    "reason": r.reason,
                    "elapsed_s": r.elapsed_s,
                }
                for r in rows
            ],
        }
        json.dump(payload, stream, indent=2)
        stream.write("\n")

    else:
        raise ValueError(f"Unsupported format: {fmt}")
