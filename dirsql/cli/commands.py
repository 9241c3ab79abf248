"""Input line parsing for the interactive shell.

Every line the user types becomes exactly one of the command values below.
Meta-commands start with a backslash (or a slash); anything else is SQL.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List, Optional, Union
import shlex

from dirsql.core.errors import UsageError
from dirsql.core.render import OutputMode
from dirsql.utils.constants import COMMAND_PREFIXES, SUPPORTED_EXPORT_FORMATS
from dirsql.utils.string_utils import normalize_smart_quotes

DEFAULT_HISTORY_COUNT = 20


@dataclass(frozen=True)
class Load:
    patterns: List[str]
    force: bool = False
    name: Optional[str] = None


@dataclass(frozen=True)
class ListTables:
    pass


@dataclass(frozen=True)
class Describe:
    table: str


@dataclass(frozen=True)
class Reload:
    table: str


@dataclass(frozen=True)
class Tree:
    target: Optional[str] = None


@dataclass(frozen=True)
class SetMode:
    mode: Optional[OutputMode] = None


@dataclass(frozen=True)
class Export:
    fmt: Optional[str] = None
    path: Optional[str] = None


@dataclass(frozen=True)
class ShowHistory:
    count: int = DEFAULT_HISTORY_COUNT
    clear: bool = False


@dataclass(frozen=True)
class ChangeDir:
    path: str = '~'


@dataclass(frozen=True)
class PrintDir:
    pass


@dataclass(frozen=True)
class Help:
    topic: Optional[str] = None


@dataclass(frozen=True)
class Quit:
    pass


@dataclass(frozen=True)
class Sql:
    text: str


@dataclass(frozen=True)
class Empty:
    pass


Command = Union[Load, ListTables, Describe, Reload, Tree, SetMode, Export,
                ShowHistory, ChangeDir, PrintDir, Help, Quit, Sql, Empty]

USAGE: Dict[str, str] = {
    'load': '\\load [-f|--force] <glob>... [as <name>]',
    'dt': '\\dt',
    'tables': '\\tables',
    'd': '\\d <table>',
    'reload': '\\reload <table>',
    'tree': '\\tree [table|dir]',
    'mode': '\\mode [table|tree]',
    'export': '\\export [csv|json|jsonl|table] [path]',
    'history': '\\history [n|clear]',
    'cd': '\\cd [dir]',
    'pwd': '\\pwd',
    'help': '\\help [cmd]',
    'q': '\\q',
    'quit': '\\quit',
}

HELP_TEXT: Dict[str, str] = {
    'load': 'Load files matching the globs as tables (-f replaces a table with the same name; '
            '"as <name>" picks the table name for a single file)',
    'dt': 'List loaded tables with their column count, row count and source file',
    'tables': 'Same as \\dt',
    'd': 'Describe the columns of a table and their inferred types',
    'reload': 'Re-read the source file of a table and replace it in place',
    'tree': 'Show a table, or a directory (default: working directory), as a tree',
    'mode': 'Show or set the output mode (table or tree)',
    'export': 'Export the last query result; prints to stdout when no path is given',
    'history': 'Show the last n inputs (default 20) or clear the history',
    'cd': 'Change the working directory used to resolve relative globs',
    'pwd': 'Print the working directory',
    'help': 'Show help, optionally for one command',
    'q': 'Exit the shell',
    'quit': 'Exit the shell',
}

COMMANDS = list(USAGE)


def _safe_split(cmd: str) -> List[str]:
    norm = normalize_smart_quotes(cmd.strip())
    try:
        return shlex.split(norm)
    except ValueError:
        # Try auto-closing unmatched quotes
        dq = norm.count('"') - norm.count('\\"')
        sq = norm.count("'") - norm.count("\\'")
        fixed = norm
        if dq % 2 == 1:
            fixed += '"'
        if sq % 2 == 1:
            fixed += "'"
        if fixed != norm:
            try:
                return shlex.split(fixed)
            except ValueError:
                pass
        return fixed.split()


def is_meta(line: str) -> bool:
    return line.lstrip().startswith(COMMAND_PREFIXES)


def _usage(cmd: str) -> UsageError:
    return UsageError(f"usage: {USAGE[cmd]}")


def _parse_load(args: List[str]) -> Load:
    force = False
    patterns: List[str] = []
    name = None
    i = 0
    while i < len(args):
        arg = args[i]
        if arg in ('-f', '--force'):
            force = True
        elif arg.lower() == 'as':
            if i + 2 != len(args):
                raise _usage('load')
            name = args[i + 1]
            break
        elif arg.startswith('-') and len(arg) > 1:
            raise UsageError(f"\\load: unknown option {arg}")
        else:
            patterns.append(arg)
        i += 1
    if not patterns:
        raise _usage('load')
    if name is not None and len(patterns) != 1:
        raise UsageError("\\load: 'as <name>' takes exactly one pattern")
    return Load(patterns=patterns, force=force, name=name)


def _one_arg(cmd: str, args: List[str]) -> str:
    if len(args) != 1:
        raise _usage(cmd)
    return args[0]


def _optional_arg(cmd: str, args: List[str]) -> Optional[str]:
    if len(args) > 1:
        raise _usage(cmd)
    return args[0] if args else None


def _parse_history(args: List[str]) -> ShowHistory:
    arg = _optional_arg('history', args)
    if arg is None:
        return ShowHistory()
    if arg.lower() == 'clear':
        return ShowHistory(clear=True)
    try:
        count = int(arg)
    except ValueError:
        raise _usage('history') from None
    if count < 1:
        raise UsageError("\\history: count must be a positive integer")
    return ShowHistory(count=count)


def _parse_export(args: List[str]) -> Export:
    if len(args) > 2:
        raise _usage('export')
    if not args:
        return Export()
    if len(args) == 2:
        fmt = args[0].lower()
        if fmt not in SUPPORTED_EXPORT_FORMATS:
            raise UsageError(f"\\export: unknown format '{args[0]}' "
                             f"(expected {', '.join(SUPPORTED_EXPORT_FORMATS)})")
        return Export(fmt=fmt, path=args[1])
    # One argument: a format name, otherwise a path
    if args[0].lower() in SUPPORTED_EXPORT_FORMATS:
        return Export(fmt=args[0].lower())
    return Export(path=args[0])


def _parse_mode(args: List[str]) -> SetMode:
    arg = _optional_arg('mode', args)
    if arg is None:
        return SetMode()
    return SetMode(OutputMode.parse(arg))


def parse_meta(line: str) -> Command:
    parts = _safe_split(line.lstrip()[1:])
    if not parts:
        raise UsageError("empty command (try \\help)")
    cmd, *args = parts
    cmd = cmd.lower()
    match cmd:
        case 'q' | 'quit':
            return Quit()
        case 'load':
            return _parse_load(args)
        case 'dt' | 'tables':
            if args:
                raise _usage(cmd)
            return ListTables()
        case 'd':
            return Describe(_one_arg(cmd, args))
        case 'reload':
            return Reload(_one_arg(cmd, args))
        case 'tree':
            return Tree(_optional_arg(cmd, args))
        case 'mode':
            return _parse_mode(args)
        case 'export':
            return _parse_export(args)
        case 'history':
            return _parse_history(args)
        case 'cd':
            target = _optional_arg(cmd, args)
            return ChangeDir(target) if target else ChangeDir()
        case 'pwd':
            if args:
                raise _usage(cmd)
            return PrintDir()
        case 'help' | '?':
            topic = _optional_arg('help', args)
            return Help(topic.lstrip('\\/').lower() if topic else None)
        case _:
            raise UsageError(f"unknown command \\{cmd} (try \\help)")


def parse_command(line: str) -> Command:
    """Turn one input line into a command value; bad meta-commands raise ``UsageError``."""
    text = line.strip()
    if not text:
        return Empty()
    if is_meta(text):
        return parse_meta(text)
    sql = text.rstrip().rstrip(';').rstrip()
    if not sql:
        return Empty()
    return Sql(sql)
