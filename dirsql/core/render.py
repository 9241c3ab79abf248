"""Render query results and listings as text tables or trees.

Every function here is pure: it reads its arguments and returns text.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Union
from decimal import Decimal
import math
import os

from dirsql.core.errors import UsageError
from dirsql.core.path_resolver import is_ignored
from dirsql.core.table_loader import Table
from dirsql.utils.string_utils import pad_left, pad_right, display_width, truncate_string

DEFAULT_NULL_MARKER = 'NULL'


class OutputMode(Enum):
    TABLE = 'table'
    TREE = 'tree'

    @classmethod
    def parse(cls, text: str) -> 'OutputMode':
        try:
            return cls(text.strip().lower())
        except ValueError:
            raise UsageError(f"unknown output mode '{text}' (expected table or tree)") from None


@dataclass
class QueryResult:
    columns: List[str]
    rows: List[Tuple[Any, ...]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


@dataclass
class DisplayNode:
    label: str
    children: List['DisplayNode'] = field(default_factory=list)
    leaf_value: Optional[str] = None
    is_dir: bool = False

    def add(self, child: 'DisplayNode') -> 'DisplayNode':
        self.children.append(child)
        return child


# --- cell formatting ---

def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def format_value(value: Any, null_marker: str = DEFAULT_NULL_MARKER) -> str:
    if value is None:
        return null_marker
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float):
        if math.isnan(value):
            return 'NaN'
        if value.is_integer() and abs(value) < 1e16:
            return f"{value:.1f}"
        return repr(value)
    return str(value)


def _numeric_columns(result: QueryResult) -> List[bool]:
    flags = []
    for idx in range(len(result.columns)):
        values = [row[idx] for row in result.rows if row[idx] is not None]
        flags.append(bool(values) and all(_is_number(v) for v in values))
    return flags


def _plural(n: int) -> str:
    return f"({n} row{'s' if n != 1 else ''})"


# --- table mode ---

def render_table(
    result: QueryResult,
    null_marker: str = DEFAULT_NULL_MARKER,
    max_col_width: int = 50,
    limit: Optional[int] = None,
) -> str:
    """psql-like table: `` | `` separators, ``-+-`` rule, numbers right aligned."""
    shown = result.rows if limit is None else result.rows[:limit]
    numeric = _numeric_columns(result)
    headers = [truncate_string(str(c), max_col_width) for c in result.columns]
    cells = [
        [truncate_string(format_value(v, null_marker), max_col_width) for v in row]
        for row in shown
    ]
    widths = [display_width(h) for h in headers]
    for row in cells:
        for idx, text in enumerate(row):
            widths[idx] = max(widths[idx], display_width(text))

    def line(parts: Sequence[str], align_numeric: bool) -> str:
        out = []
        for idx, text in enumerate(parts):
            if align_numeric and numeric[idx]:
                out.append(pad_left(text, widths[idx]))
            else:
                out.append(pad_right(text, widths[idx]))
        return ' | '.join(out).rstrip()

    lines = []
    if result.columns:
        lines.append(line(headers, align_numeric=False))
        lines.append('-+-'.join('-' * w for w in widths))
        lines.extend(line(row, align_numeric=True) for row in cells)
    footer = _plural(len(result.rows))
    omitted = len(result.rows) - len(shown)
    if omitted > 0:
        footer = f"{footer[:-1]}, {omitted} not shown)"
    lines.append(footer)
    return '\n'.join(lines)


# --- tree mode ---

def render_tree(node: DisplayNode) -> str:
    """Draw ``node`` and its descendants, each generation one level deeper."""
    lines = [_node_text(node)]

    def walk(children: List[DisplayNode], prefix: str) -> None:
        for idx, child in enumerate(children):
            last = idx == len(children) - 1
            lines.append(prefix + ('└── ' if last else '├── ') + _node_text(child))
            walk(child.children, prefix + ('    ' if last else '│   '))

    walk(node.children, '')
    return '\n'.join(lines)


def _node_text(node: DisplayNode) -> str:
    if node.leaf_value is None:
        return node.label
    return f"{node.label}: {node.leaf_value}"


def directory_tree(path: str, ignores: Sequence[str] = ()) -> DisplayNode:
    """Directories become inner nodes, files leaves, siblings alphabetical."""
    root_path = os.path.abspath(path)
    root = DisplayNode(label=os.path.basename(root_path.rstrip(os.sep)) or root_path, is_dir=True)
    visited = set()

    def fill(node: DisplayNode, dir_path: str) -> None:
        real = os.path.realpath(dir_path)
        if real in visited:
            return
        visited.add(real)
        try:
            names = sorted(os.listdir(dir_path))
        except OSError:
            return
        for name in names:
            if is_ignored(name, ignores):
                continue
            full = os.path.join(dir_path, name)
            is_dir = os.path.isdir(full)
            child = node.add(DisplayNode(label=name, is_dir=is_dir))
            if is_dir:
                fill(child, full)

    fill(root, root_path)
    return root


def table_tree(table: Table) -> DisplayNode:
    root = DisplayNode(label=table.name)
    for col in table.columns:
        root.add(DisplayNode(label=col.name, leaf_value=col.type.value))
    return root


def tables_tree(tables: Sequence[Table], label: str = 'tables') -> DisplayNode:
    root = DisplayNode(label=label)
    for table in tables:
        root.add(table_tree(table))
    return root


def result_tree(result: QueryResult, null_marker: str = DEFAULT_NULL_MARKER,
                limit: Optional[int] = None) -> DisplayNode:
    root = DisplayNode(label=_plural(len(result.rows)).strip('()'))
    shown = result.rows if limit is None else result.rows[:limit]
    for idx, row in enumerate(shown, start=1):
        node = root.add(DisplayNode(label=f"row {idx}"))
        for col, value in zip(result.columns, row):
            node.add(DisplayNode(label=str(col), leaf_value=format_value(value, null_marker)))
    return root


# --- listings in table mode ---

def listing_result(tables: Sequence[Table]) -> QueryResult:
    rows = [(t.name, len(t.columns), t.row_count, t.source_path) for t in tables]
    return QueryResult(columns=['name', 'columns', 'rows', 'source'], rows=rows)


def describe_result(table: Table) -> QueryResult:
    rows = [(c.name, c.type.value, c.type.sql_name) for c in table.columns]
    return QueryResult(columns=['column', 'type', 'sql_type'], rows=rows)


def directory_result(node: DisplayNode, base: str = '') -> QueryResult:
    rows = []

    def walk(n: DisplayNode, prefix: str) -> None:
        for child in n.children:
            rel = f"{prefix}{child.label}"
            rows.append((rel, "dir" if child.is_dir else "file"))
            walk(child, rel + '/')

    walk(node, base)
    return QueryResult(columns=['path', 'kind'], rows=rows)


Renderable = Union[QueryResult, DisplayNode, Table, Sequence[Table]]


def render(obj: Renderable, mode: OutputMode, null_marker: str = DEFAULT_NULL_MARKER,
           max_col_width: int = 50, limit: Optional[int] = None) -> str:
    """Render a result, a table, a table listing or a prebuilt tree."""
    if isinstance(obj, DisplayNode):
        if mode is OutputMode.TREE:
            return render_tree(obj)
        return render_table(directory_result(obj), null_marker, max_col_width, limit)
    if isinstance(obj, Table):
        if mode is OutputMode.TREE:
            return render_tree(table_tree(obj))
        return render_table(describe_result(obj), null_marker, max_col_width, limit)
    if isinstance(obj, QueryResult):
        if mode is OutputMode.TREE:
            return render_tree(result_tree(obj, null_marker, limit))
        return render_table(obj, null_marker, max_col_width, limit)
    tables = list(obj)
    if mode is OutputMode.TREE:
        return render_tree(tables_tree(tables))
    return render_table(listing_result(tables), null_marker, max_col_width, limit)
