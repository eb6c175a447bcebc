import json
import logging
import os
import sys
import time
from typing import Any, Dict, Optional

LOGGER_NAME = "portprobe"


def create_logger(level: str = "WARNING", log_file: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))

    # Prevent duplicate handlers if called twice (tests, repeated main())
    if logger.handlers:
        return logger

    # stdout carries scan results, logs go to stderr
    sh = logging.StreamHandler(sys.stderr)

    # We write JSON ourselves; keep formatter minimal
    formatter = logging.Formatter("%(message)s")
    sh.setFormatter(formatter)
    logger.addHandler(sh)

    if log_file:
        parent = os.path.dirname(log_file)
        if parent:
            os.makedirs(parent, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(formatter)
        logger.addHandler(fh)

    logger.propagate = False
    return logger


def close_logger(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def log_event(
    logger: logging.Logger,
    event: str,
    fields: Dict[str, Any],
    level: int = logging.INFO,
) -> None:
    if not logger.isEnabledFor(level):
        return
    payload = {"ts": now_iso(), "event": event, **fields}
    logger.log(level, json.dumps(payload, ensure_ascii=False, default=str))
