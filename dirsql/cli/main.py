"""CLI entry for dirsql.

Usage:
  dirsql [PATH_OR_GLOB ...] [-c QUERY] [-m table|tree] [--config FILE]
         [--history-file FILE] [-C DIR] [--workers N] [--log-level LEVEL] [--no-banner]

Files matching the given patterns are loaded as tables. With ``-c`` one query
(or meta-command) runs and the process exits; otherwise the interactive shell
starts.

Exit codes:
  0    success
  1    usage or other error
  2    no files matched the given patterns
  3    every matched file failed to load
  4    query error
  5    fatal I/O (history file, config file, working directory)
  130  interrupted
"""
from __future__ import annotations
import argparse
import sys
import logging
from typing import List, Optional

from dirsql import __version__
from dirsql.cli.commands import parse_command
from dirsql.cli.repl import Session, start_repl
from dirsql.core.errors import (
    ConfigError, DirSQLException, ErrorCategory, InterruptedLoad, UsageError,
)
from dirsql.utils.config import Config
from dirsql.utils.constants import (
    EXIT_ERROR, EXIT_FATAL_IO, EXIT_INTERRUPTED, EXIT_NO_MATCH, EXIT_OK, EXIT_PARSE_ERROR,
    EXIT_QUERY_ERROR, SUPPORTED_OUTPUT_MODES,
)
from dirsql.utils.logging_setup import configure_logging
from dirsql.utils.validation import ValidationError

logger = logging.getLogger(__name__)

ASCII_BANNER = r"""
     _ _                 _
  __| (_)_ __ ___  __ _ | |
 / _` | | '__/ __|/ _` || |
| (_| | | |  \__ \ (_| || |
 \__,_|_|_|  |___/\__, ||_|
                     |_|
    SQL over your CSV and TOML files
"""


def _positive_int(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an integer: {text}") from None
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1: {text}")
    return value


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog='dirsql', description='Query CSV and TOML files with SQL')
    p.add_argument('paths', nargs='*', metavar='PATH_OR_GLOB', help='Files or globs to load at startup')
    p.add_argument('-c', '--command', metavar='QUERY', help='Run one query or meta-command and exit')
    p.add_argument('-m', '--mode', choices=SUPPORTED_OUTPUT_MODES, help='Output mode')
    p.add_argument('--config', metavar='FILE', help='Config file (JSON)')
    p.add_argument('--history-file', metavar='FILE', help='History file for the interactive shell')
    p.add_argument('-C', '--directory', metavar='DIR', help='Working directory for relative globs')
    p.add_argument('--workers', type=_positive_int, metavar='N', help='Parallel readers for multi-file loads')
    p.add_argument('--log-level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                   help='Log level (default: $DIRSQL_LOG_LEVEL or WARNING)')
    p.add_argument('--log-file', metavar='FILE', help='Also write logs to FILE')
    p.add_argument('--no-banner', action='store_true', help='Suppress ASCII banner on start')
    p.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    return p


def _fail(error: DirSQLException) -> None:
    print(error.one_line(), file=sys.stderr)


def exit_code_for(error: DirSQLException) -> int:
    if isinstance(error, InterruptedLoad):
        return EXIT_INTERRUPTED
    if error.category in (ErrorCategory.FATAL, ErrorCategory.CONFIG):
        return EXIT_FATAL_IO
    if error.category is ErrorCategory.QUERY:
        return EXIT_QUERY_ERROR
    return EXIT_ERROR


def _load_config(args: argparse.Namespace) -> Config:
    config = Config(args.config)
    if args.mode:
        config.set('output_mode', args.mode)
    if args.workers:
        config.set('workers', args.workers)
    return config


def _run_command(session: Session, text: str) -> int:
    try:
        command = parse_command(text)
    except UsageError as e:
        session.report(e)
        return EXIT_ERROR
    session.dispatch(command)
    error = session.last_error
    if error is None:
        return EXIT_OK
    if error.category is ErrorCategory.LOAD and not isinstance(error, InterruptedLoad):
        # per-file failures only fail the command when nothing was loaded
        report = session.last_report
        return EXIT_OK if report is not None and report.loaded else EXIT_PARSE_ERROR
    return exit_code_for(error)


def _preload(session: Session, patterns: List[str]) -> int:
    paths = session.resolve(patterns)
    if not paths:
        print(f"No files matched: {' '.join(patterns)}", file=sys.stderr)
        return EXIT_NO_MATCH
    report = session.load_paths(paths)
    if not report.loaded:
        return EXIT_PARSE_ERROR
    return EXIT_OK


def run(args: argparse.Namespace) -> int:
    """Execute the parsed command line and return the process exit code."""
    try:
        config = _load_config(args)
    except ConfigError as e:
        _fail(e)
        return EXIT_FATAL_IO
    interactive = args.command is None
    history_file = (args.history_file or config.history_file) if interactive else None
    try:
        session = Session(config, working_directory=args.directory, history_file=history_file,
                          interactive=interactive)
    except ValidationError as e:
        _fail(e)
        return EXIT_FATAL_IO
    except UsageError as e:
        _fail(e)
        return EXIT_ERROR
    try:
        if interactive and not args.no_banner:
            print(ASCII_BANNER)
            print(f"dirsql {__version__} (DuckDB {session.engine.version()}). Type \\help for commands.")
        if args.paths:
            code = _preload(session, args.paths)
            if code != EXIT_OK:
                return code
        if not interactive:
            return _run_command(session, args.command)
        start_repl(session)
        return EXIT_OK
    except DirSQLException as e:
        _fail(e)
        return exit_code_for(e)
    finally:
        session.close()


# --- Main entry ---

def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging first
    try:
        configure_logging(args.log_level, log_file=args.log_file)
    except ConfigError as e:
        _fail(e)
        sys.exit(EXIT_FATAL_IO)
    logger.debug("dirsql %s starting with %s", __version__, args)

    try:
        code = run(args)
    except KeyboardInterrupt:
        logging.warning("Operation interrupted by user")
        code = EXIT_INTERRUPTED
    sys.exit(code)


if __name__ == '__main__':
    main()
