"""Logging configuration for the dirsql shell.

Query output is written to stdout by the session; everything logged here goes
to stderr (and optionally a file) so piping ``dirsql -c`` stays clean.
"""
from __future__ import annotations
import logging
import os
import sys
from typing import List, Optional

from dirsql.core.errors import ConfigError

DEFAULT_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'
DEFAULT_LEVEL = 'WARNING'
LEVEL_ENV = 'DIRSQL_LOG_LEVEL'
QUIET_LOGGERS = ('duckdb', 'concurrent.futures')


def resolve_level(level: Optional[str] = None) -> int:
    """Map a level name (or ``$DIRSQL_LOG_LEVEL`` when ``level`` is None) to its number."""
    name = level or os.environ.get(LEVEL_ENV) or DEFAULT_LEVEL
    numeric = logging.getLevelName(name.strip().upper())
    if not isinstance(numeric, int):
        raise ConfigError(f"Invalid log level: {name}")
    return numeric


def configure_logging(level: Optional[str] = None,
                      log_file: Optional[str] = None,
                      format_str: Optional[str] = None) -> None:
    """Install the stderr handler (plus ``log_file`` if given) on the root logger.

    Calling it again replaces the handlers from the previous call.

    Args:
        level: Level name; falls back to ``$DIRSQL_LOG_LEVEL``, then WARNING
        log_file: Optional file that receives the same records
        format_str: Optional custom format string
    """
    numeric_level = resolve_level(level)
    formatter = logging.Formatter(format_str or DEFAULT_FORMAT)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        try:
            handlers.append(logging.FileHandler(os.path.expanduser(log_file), encoding='utf-8'))
        except OSError as e:
            print(f"Warning: Could not open log file {log_file}: {e}", file=sys.stderr)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))
