from __future__ import annotations

import argparse
import signal
import sys
import threading
import time
from typing import Dict, Optional

from .config import LOG_LEVELS, load_defaults
from .errors import ConfigError, ScanStalled
from .log import close_logger, create_logger
from .models import ScanConfig
from .output import FORMATS, format_line, render_report, summarize
from .ports import build_port_sequence
from .scanner import Scanner

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_CANCELLED = 130


def build_parser(defaults: Dict[str, object]) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="portprobe",
        description="TCP connect-scan of a single host. Only scan hosts you own or may test.",
    )
    p.add_argument("-t", "--target", required=True, help="Target host or IP")
    p.add_argument("-p", "--ports", help="Comma-separated ports (e.g. 22,80,443); wins over --range")
    p.add_argument("-r", "--range", dest="port_range", default=defaults["RANGE"],
                   help="Port range start-end (default: %(default)s)")
    p.add_argument("-T", "--timeout", type=float, default=defaults["TIMEOUT"],
                   help="Per-port connect timeout in seconds, fractions OK (default: %(default)s)")
    p.add_argument("-c", "--concurrency", type=int, default=defaults["CONCURRENCY"],
                   help="Parallel connection attempts (default: %(default)s)")
    p.add_argument("-v", "--verbose", action="store_true", help="Show closed ports and progress")
    p.add_argument("--format", choices=FORMATS,
                   help="Print the final result set in this format instead of streaming lines")
    p.add_argument("--progress-every", type=int, default=1000,
                   help="Progress update interval in verbose mode (default: %(default)s)")
    p.add_argument("--log-level", choices=LOG_LEVELS, default=defaults["LOG_LEVEL"],
                   help="Diagnostic log level on stderr (default: %(default)s)")
    p.add_argument("--log-file", help="Also append diagnostic logs to this file")
    return p


def _install_sigint(scanner: Scanner):
    # signal handlers can only be installed from the main thread
    if threading.current_thread() is not threading.main_thread():
        return None

    def _handler(signum, frame):
        scanner.cancel()

    return signal.signal(signal.SIGINT, _handler)


def main(argv=None) -> int:
    try:
        defaults = load_defaults()
    except ConfigError as e:
        print(f"portprobe: {e}", file=sys.stderr)
        return EXIT_USAGE

    parser = build_parser(defaults)
    args = parser.parse_args(argv)

    # Everything below can fail on bad input; nothing touches the network yet.
    try:
        ports = build_port_sequence(args.ports, args.port_range)
        config = ScanConfig(
            target=args.target,
            timeout=args.timeout,
            concurrency=args.concurrency,
            slot_grace=float(defaults["SLOT_GRACE"]),
        )
    except ConfigError as e:
        print(f"portprobe: {e}", file=sys.stderr)
        return EXIT_USAGE

    logger = create_logger(args.log_level, args.log_file)
    scanner = Scanner(config, logger=logger)
    previous = _install_sigint(scanner)
    try:
        return _run(scanner, ports, args)
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)
        close_logger(logger)


def _run(scanner: Scanner, ports, args) -> int:
    total = len(ports)
    scanned = 0
    start = time.perf_counter()

    if args.verbose:
        print(f"[*] Target: {args.target} | Ports: {total} | Concurrency: {args.concurrency} "
              f"| Timeout: {args.timeout}s", file=sys.stderr)

    try:
        for outcome in scanner.iter_outcomes(ports):
            scanned += 1
            if args.format is None:
                line = format_line(outcome, verbose=args.verbose)
                if line:
                    print(line, flush=True)
            if args.verbose and args.progress_every > 0 and (scanned % args.progress_every == 0 or scanned == total):
                elapsed = time.perf_counter() - start
                rate = scanned / elapsed if elapsed > 0 else 0.0
                print(f"\r[*] Scanned {scanned}/{total} | {rate:.0f} ports/s", end="", file=sys.stderr, flush=True)
    except ScanStalled as e:
        if args.verbose:
            print(file=sys.stderr)
        print(f"portprobe: {e}", file=sys.stderr)
        if e.report is not None:
            print(summarize(e.report), file=sys.stderr)
        return EXIT_FATAL

    if args.verbose:
        print(file=sys.stderr)  # newline after progress

    report = scanner.report
    if args.format is not None:
        render_report(report, args.format, sys.stdout)
    print(summarize(report), file=sys.stderr)

    if report.cancelled:
        return EXIT_CANCELLED
    return EXIT_OK


def run(argv: Optional[list] = None) -> None:
    sys.exit(main(argv))
