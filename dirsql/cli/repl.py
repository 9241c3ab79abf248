r"""Interactive shell (psql-like) for querying CSV and TOML files via DuckDB.
Commands (prefix with backslash or slash):
  \help [cmd]                     Show help (optionally for a specific command)
  \q / \quit                      Exit
  \load [-f] <glob>... [as name]  Load matching files as tables
  \dt / \tables                   List loaded tables
  \d <table>                      Describe the columns of a table
  \reload <table>                 Re-read a table from its source file
  \tree [table|dir]               Show a table or a directory as a tree
  \mode [table|tree]              Show / set output mode
  \export [fmt] [path]            Export last result (csv|json|jsonl|table)
  \history [n|clear]              Show last n inputs (default 20) or clear
  \cd [dir] / \pwd                Change / print the working directory
Anything else is run as SQL; a trailing ';' is optional.
Environment overrides (read at startup if set):
  DIRSQL_OUTPUT_MODE, DIRSQL_MAX_COL_WIDTH, DIRSQL_DISPLAY_LIMIT
"""
from __future__ import annotations
from enum import Enum
from typing import List, Optional, TextIO, assert_never
import glob
import os
import sys
import logging

from dirsql.cli.commands import (
    COMMANDS, HELP_TEXT, USAGE, ChangeDir, Command, Describe, Empty, Export, Help,
    ListTables, Load, PrintDir, Quit, Reload, SetMode, ShowHistory, Sql, Tree,
    parse_command,
)
from dirsql.core.batch import BatchReport, load_batch
from dirsql.core.errors import (
    DirSQLException, HistoryWriteError, InterruptedLoad, LoadError, UsageError,
)
from dirsql.core.export import export_result
from dirsql.core.path_resolver import resolve_patterns
from dirsql.core.progress import load_progress
from dirsql.core.registry import TableRegistry
from dirsql.core.render import (
    OutputMode, QueryResult, directory_tree, render, render_tree, table_tree,
)
from dirsql.core.sql_engine import SqlEngine
from dirsql.core.table_loader import Table, TableLoader
from dirsql.utils.config import Config
from dirsql.utils.constants import COMMAND_PREFIXES, SUPPORTED_EXPORT_FORMATS, SUPPORTED_OUTPUT_MODES
from dirsql.utils.validation import validate_directory

try:
    import readline  # type: ignore
except ImportError:  # pragma: no cover
    readline = None

logger = logging.getLogger(__name__)
PROMPT = "dirsql> "

SQL_KEYWORDS = [
    'SELECT','FROM','WHERE','GROUP','GROUP BY','HAVING','ORDER','ORDER BY','BY','LIMIT','OFFSET','JOIN','LEFT','LEFT JOIN',
    'RIGHT','RIGHT JOIN','FULL','FULL JOIN','INNER','INNER JOIN','OUTER','OUTER JOIN','CROSS','CROSS JOIN','UNION','UNION ALL',
    'EXCEPT','INTERSECT','ON','USING','AS','DISTINCT','ALL','CASE','WHEN','THEN','ELSE','END','AND','OR','NOT','IN','IS',
    'IS NULL','IS NOT NULL','BETWEEN','LIKE','ILIKE','EXISTS','WITH','WITH RECURSIVE','COUNT','SUM','AVG','MIN','MAX'
]


class SessionState(Enum):
    IDLE = 'idle'
    DISPATCHING = 'dispatching'
    EXITED = 'exited'


class Session:
    """Shell session: the working directory, the loaded tables and the output settings.

    The session is the only writer of its registry. Each input line is recorded
    in the history, parsed into a command and dispatched; errors are reported
    as one line and never leave a half-applied load behind.
    """

    def __init__(self, config: Optional[Config] = None, working_directory: Optional[str] = None,
                 history_file: Optional[str] = None, out: Optional[TextIO] = None,
                 err: Optional[TextIO] = None, interactive: bool = False):
        """Initialize a new session."""
        self.config = config if config is not None else Config()
        self.working_directory = validate_directory(
            working_directory or self.config.get('data_dir') or '.', base=os.getcwd())
        self.engine = SqlEngine()
        self.registry = TableRegistry(self.engine, collision_policy=self.config.get('collision_policy', 'suffix'))
        self.loader = TableLoader()
        self.output_mode = OutputMode.parse(self.config.get('output_mode', 'table'))
        self.history_file = history_file
        self.history: List[str] = []
        self.history_size = self.config.get('history_size') or 1000
        self.last_result: Optional[QueryResult] = None
        self.last_report: Optional[BatchReport] = None
        self.last_error: Optional[DirSQLException] = None
        self.state = SessionState.IDLE
        self.interactive = interactive
        self.out = out or sys.stdout
        self.err = err or sys.stderr

    # --- output ---

    def emit(self, text: str) -> None:
        print(text, file=self.out)

    def report(self, error: DirSQLException) -> None:
        self.last_error = error
        print(error.one_line(), file=self.err)

    def render(self, obj) -> str:
        return render(obj, self.output_mode,
                      null_marker=self.config.get('null_marker', 'NULL'),
                      max_col_width=self.config.get('max_col_width', 50),
                      limit=self.config.get('display_limit'))

    def _display_path(self, path: str) -> str:
        if path.startswith(self.working_directory + os.sep):
            return os.path.relpath(path, self.working_directory)
        return path

    # --- history ---

    def load_history(self) -> None:
        """Read previous inputs from the history file, if there is one."""
        if not self.history_file or not os.path.exists(self.history_file):
            return
        try:
            with open(self.history_file, 'r', encoding='utf-8') as f:
                lines = [line.rstrip('\n') for line in f if line.strip()]
        except OSError as e:
            logger.warning("Could not read history file %s: %s", self.history_file, e)
            return
        self.history = lines[-self.history_size:]

    def record_history(self, line: str) -> None:
        self.history.append(line)
        if len(self.history) > self.history_size:
            del self.history[:-self.history_size]
        if not self.history_file:
            return
        try:
            directory = os.path.dirname(self.history_file)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(self.history_file, 'a', encoding='utf-8') as f:
                f.write(line.replace('\n', ' ') + '\n')
        except OSError as e:
            raise HistoryWriteError(f"cannot write history file {self.history_file}: {e}") from e

    def clear_history(self) -> None:
        self.history.clear()
        if self.history_file and os.path.exists(self.history_file):
            try:
                open(self.history_file, 'w', encoding='utf-8').close()
            except OSError as e:
                raise HistoryWriteError(f"cannot clear history file {self.history_file}: {e}") from e
        if readline is not None and hasattr(readline, 'clear_history'):
            readline.clear_history()

    # --- dispatch ---

    def submit(self, line: str) -> bool:
        """Record, parse and run one input line. Returns False once the session has exited.

        ``HistoryWriteError`` propagates: losing the history file is fatal.
        """
        text = line.strip()
        if not text:
            return self.state is not SessionState.EXITED
        self.record_history(text)
        try:
            command = parse_command(text)
        except UsageError as e:
            self.report(e)
            return True
        self.dispatch(command)
        return self.state is not SessionState.EXITED

    def dispatch(self, command: Command) -> None:
        self.state = SessionState.DISPATCHING
        self.last_error = None
        self.last_report = None
        logger.debug("Dispatching %r", command)
        try:
            self._run(command)
        except HistoryWriteError:
            raise
        except InterruptedLoad as e:
            self.last_report = e.report
            if e.report is not None:
                self._summarize(e.report)
            self.report(e)
        except DirSQLException as e:
            self.report(e)
        finally:
            if self.state is SessionState.DISPATCHING:
                self.state = SessionState.IDLE

    def _run(self, command: Command) -> None:
        match command:
            case Empty():
                pass
            case Quit():
                self.state = SessionState.EXITED
            case Sql(text=sql):
                self.run_sql(sql)
            case Load(patterns=patterns, force=force, name=name):
                self.load(patterns, force=force, name=name)
            case ListTables():
                self.list_tables()
            case Describe(table=name):
                self.emit(self.render(self.require_table(name)))
            case Reload(table=name):
                self.reload(name)
            case Tree(target=target):
                self.tree(target)
            case SetMode(mode=mode):
                if mode is not None:
                    self.output_mode = mode
                self.emit(f"Output mode: {self.output_mode.value}")
            case Export(fmt=fmt, path=path):
                self.export(fmt, path)
            case ShowHistory(count=count, clear=clear):
                self.show_history(count, clear)
            case ChangeDir(path=path):
                self.working_directory = validate_directory(path, base=self.working_directory)
                self.emit(self.working_directory)
            case PrintDir():
                self.emit(self.working_directory)
            case Help(topic=topic):
                self.show_help(topic)
            case _:
                assert_never(command)

    # --- operations ---

    def require_table(self, name: str) -> Table:
        table = self.registry.get(name)
        if table is None:
            raise UsageError(f"no such table: {name}")
        return table

    def run_sql(self, sql: str) -> QueryResult:
        result = self.engine.execute(sql)
        self.last_result = result
        self.emit(self.render(result))
        return result

    def resolve(self, patterns: List[str]) -> List[str]:
        return resolve_patterns(patterns, cwd=self.working_directory,
                                ignores=self.config.get('ignores') or ())

    def load(self, patterns: List[str], force: bool = False, name: Optional[str] = None) -> BatchReport:
        paths = self.resolve(patterns)
        if not paths:
            self.emit(f"No files matched: {' '.join(patterns)}")
            return BatchReport()
        if name is not None and len(paths) != 1:
            raise UsageError(f"'as {name}' needs exactly one file, {len(paths)} matched")
        return self.load_paths(paths, force=force, name=name)

    def load_paths(self, paths: List[str], force: bool = False, name: Optional[str] = None) -> BatchReport:
        if len(paths) == 1:
            report = BatchReport()
            try:
                report.loaded.append(self.loader.load(paths[0], self.registry, force=force, name=name))
            except LoadError as e:
                report.failed.append(e)
        else:
            workers = self.config.get('workers', 4)
            with load_progress(len(paths), enabled=self.interactive) as progress:
                report = load_batch(paths, self.loader, self.registry, workers=workers, force=force,
                                    on_applied=lambda r, done, total: progress.update(done))
        self.last_report = report
        self._summarize(report)
        return report

    def _summarize(self, report: BatchReport) -> None:
        for table in report.loaded:
            self.emit(f"Loaded {table.name} from {self._display_path(table.source_path)} "
                      f"({table.row_count} rows, {len(table.columns)} columns)")
        for error in report.failed:
            self.report(error)
        if len(report.loaded) + len(report.failed) > 1:
            self.emit(f"{len(report.loaded)} loaded, {len(report.failed)} failed")

    def list_tables(self) -> None:
        tables = self.registry.tables()
        if not tables:
            self.emit("(no tables loaded)")
            return
        self.emit(self.render(tables))

    def reload(self, name: str) -> Table:
        current = self.require_table(name)
        table = self.registry.apply(self.loader.read(current.source_path))
        self.emit(f"Reloaded {table.name} ({table.row_count} rows, {len(table.columns)} columns)")
        return table

    def tree(self, target: Optional[str] = None) -> None:
        if target is not None:
            table = self.registry.get(target)
            if table is not None:
                self.emit(render_tree(table_tree(table)))
                return
        directory = validate_directory(target, base=self.working_directory) if target else self.working_directory
        self.emit(render_tree(directory_tree(directory, self.config.get('ignores') or ())))

    def export(self, fmt: Optional[str], path: Optional[str]) -> None:
        target = None
        if path:
            target = os.path.expanduser(path)
            if not os.path.isabs(target):
                target = os.path.join(self.working_directory, target)
        text = export_result(self.last_result, fmt=fmt, path=target,
                             null_marker=self.config.get('null_marker', 'NULL'))
        if text is not None:
            self.out.write(text)
        else:
            self.emit(f"Exported {self.last_result.row_count} rows to {self._display_path(target)}")

    def show_history(self, count: int, clear: bool = False) -> None:
        if clear:
            self.clear_history()
            self.emit("History cleared.")
            return
        start = max(0, len(self.history) - count)
        for idx, line in enumerate(self.history[start:], start=start + 1):
            self.emit(f"{idx:4d}  {line}")

    def show_help(self, topic: Optional[str] = None) -> None:
        if topic is None:
            self.emit((__doc__ or '').strip())
            return
        if topic not in HELP_TEXT:
            raise UsageError(f"no help for '{topic}'")
        self.emit(f"{USAGE[topic]}\n  {HELP_TEXT[topic]}")

    def table_names(self) -> List[str]:
        return self.registry.names()

    def close(self) -> None:
        self.engine.close()


class SessionCompleter:
    """Readline completer bound to one session.

    Completes meta-commands, table names, paths and SQL keywords. Readline
    calls the instance with ``state`` 0, 1, 2... until it returns None.
    """

    def __init__(self, session: Session):
        self.session = session
        self._matches: List[str] = []

    def __call__(self, text: str, state: int) -> Optional[str]:
        if state == 0:
            line_buffer = text or ''
            if readline:
                try:
                    line_buffer = readline.get_line_buffer()
                except Exception:
                    line_buffer = text or ''
            self._matches = self.candidates(line_buffer, text)
        return self._matches[state] if state < len(self._matches) else None

    def _tables(self, fragment: str) -> List[str]:
        low = fragment.lower()
        return [n for n in self.session.table_names() if n.lower().startswith(low)]

    def _paths(self, fragment: str, dirs_only: bool = False) -> List[str]:
        return _path_candidates(fragment, self.session.working_directory, dirs_only=dirs_only)

    def candidates(self, line_buffer: str, text: str) -> List[str]:
        # --------------------------------------------------
        # Backslash / slash command + argument completion
        # --------------------------------------------------
        if line_buffer.startswith(COMMAND_PREFIXES):
            prefix_char = line_buffer[0]
            body = line_buffer[1:]
            if ' ' not in body:
                frag = text[1:] if text.startswith(prefix_char) else body
                return [prefix_char + c for c in COMMANDS if c.startswith(frag)]
            parts = body.split()
            cmd = parts[0]
            arg_fragment = '' if line_buffer.endswith(' ') else parts[-1]
            if cmd in ('d', 'reload'):
                return self._tables(arg_fragment)
            if cmd == 'tree':
                return self._tables(arg_fragment) + self._paths(arg_fragment, dirs_only=True)
            if cmd == 'export' and len(parts) == 2 and arg_fragment:
                fmts = [f for f in SUPPORTED_EXPORT_FORMATS if f.startswith(arg_fragment.lower())]
                if fmts:
                    return fmts
            if cmd in ('load', 'cd', 'export'):
                return self._paths(arg_fragment, dirs_only=cmd == 'cd')
            if cmd == 'mode':
                return [m for m in SUPPORTED_OUTPUT_MODES if m.startswith(arg_fragment.lower())]
            if cmd == 'help':
                return [c for c in COMMANDS if c.startswith(arg_fragment.lstrip('\\/'))]
            return []

        # --------------------------------------------------
        # SQL / table / keyword completion context
        # --------------------------------------------------
        if text:
            up = text.upper()
            kw_matches = [kw for kw in SQL_KEYWORDS if kw.startswith(up)]
        else:
            kw_matches = ['SELECT', 'WITH']
        table_matches = self._tables(text)
        words = line_buffer.split()
        if text and words:
            words = words[:-1]
        prev_word = words[-1].upper() if words else ''
        if prev_word in ('FROM', 'JOIN'):
            first, second = table_matches, kw_matches
        else:
            first, second = kw_matches, table_matches
        ordered: List[str] = []
        for item in first + second:
            if item not in ordered:
                ordered.append(item)
        return ordered


def _path_candidates(fragment: str, base: str, dirs_only: bool = False) -> List[str]:
    expanded = os.path.expanduser(fragment)
    full = expanded if os.path.isabs(expanded) else os.path.join(base, expanded)
    out = []
    for match in sorted(glob.glob(full + '*')):
        if dirs_only and not os.path.isdir(match):
            continue
        shown = fragment + match[len(full):]
        out.append(shown + os.sep if os.path.isdir(match) else shown)
    return out


def _configure_readline(session: Session) -> None:
    if not readline:
        return
    try:
        readline.set_completer(SessionCompleter(session))
        readline.set_completer_delims(' \t\n,()')
        # libedit (macOS default) needs a different binding than GNU readline
        docstr = getattr(readline, '__doc__', '') or ''
        if 'libedit' in docstr.lower():
            readline.parse_and_bind('bind ^I rl_complete')
        else:
            readline.parse_and_bind('tab: complete')
        readline.parse_and_bind('set completion-ignore-case on')
        readline.parse_and_bind('set show-all-if-ambiguous on')
        readline.set_history_length(session.history_size)
        for line in session.history:
            readline.add_history(line)
    except Exception as e:  # pragma: no cover
        logger.debug("readline setup failed: %s", e)


def start_repl(session: Session) -> None:
    """Run the interactive loop until ``\\q`` or EOF.

    Ctrl-C at the prompt clears the line; Ctrl-C during a batch load is
    reported as an interrupted load. ``HistoryWriteError`` ends the loop.
    """
    session.interactive = True
    session.load_history()
    _configure_readline(session)

    while session.state is not SessionState.EXITED:
        try:
            try:
                line = input(PROMPT)
            except EOFError:
                print()  # newline on Ctrl-D
                break
            if not session.submit(line):
                break
        except KeyboardInterrupt:
            print('^C')
            session.state = SessionState.IDLE
            continue
    session.state = SessionState.EXITED
