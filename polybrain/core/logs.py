"""Logging setup shared by the CLI entry points.

Everything goes to stderr: in launcher mode stdout carries the MCP stdio
protocol and must stay clean.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, TextIO

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def get_state_dir() -> Path:
    """Directory holding the detached server's log file."""
    return Path.home() / ".config/polybrain"


def get_server_log_path() -> Path:
    return get_state_dir() / "server.log"


def to_logging_level(level: str) -> int:
    return _LEVELS.get(level.strip().lower(), logging.INFO)


def configure_logging(level: str = "info", stream: Optional[TextIO] = None) -> None:
    """Install a single stderr handler on the root logger at ``level``."""
    logging.basicConfig(
        level=to_logging_level(level),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        stream=stream or sys.stderr,
        force=True,
    )
    # httpx logs every request at INFO; keep it to warnings unless debugging
    if to_logging_level(level) > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
