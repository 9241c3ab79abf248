"""Turn source files into typed, named tables ready for registration."""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Tuple, TYPE_CHECKING
import logging
import os

import pandas as pd

from dirsql.core.errors import IoError, ParseError
from dirsql.core.formats import Format, RawTable, detect_format, parse_file
from dirsql.core.schema import ColumnType, infer_column_type
from dirsql.utils.string_utils import sanitize_identifier

if TYPE_CHECKING:  # pragma: no cover
    from dirsql.core.registry import TableRegistry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceFile:
    path: str
    detected_format: Format


@dataclass(frozen=True)
class Column:
    name: str
    type: ColumnType


@dataclass
class Table:
    """A named relation derived from one source file."""
    name: str
    columns: List[Column]
    rows: List[Tuple[Any, ...]] = field(default_factory=list)
    source_path: str = ''

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def with_name(self, name: str) -> 'Table':
        return replace(self, name=name)

    def to_dataframe(self) -> pd.DataFrame:
        """DataFrame with nullable dtypes, columns in schema order."""
        data = {}
        for idx, col in enumerate(self.columns):
            values = [row[idx] for row in self.rows]
            data[col.name] = pd.array(values, dtype=col.type.pandas_dtype)
        df = pd.DataFrame(data, columns=self.column_names)
        return df


def sanitize_table_name(text: str) -> str:
    """SQL identifier for a table: non-alphanumerics to ``_``, no leading digit."""
    return sanitize_identifier(text, empty="table", digit_prefix="t_")


def derive_table_name(path: str) -> str:
    base = os.path.basename(path)
    stem, _ext = os.path.splitext(base)
    # dotfiles like ".env" are named after what follows the dot
    stem = stem.lstrip('.')
    return sanitize_table_name(stem)


def build_table(raw: RawTable, name: str, source_path: str) -> Table:
    """Infer column types and coerce every value accordingly."""
    columns: List[Column] = []
    for idx, col_name in enumerate(raw.columns):
        col_type = infer_column_type(row[idx] for row in raw.rows)
        columns.append(Column(col_name, col_type))
    rows = [
        tuple(col.type.coerce(value) for col, value in zip(columns, row))
        for row in raw.rows
    ]
    return Table(name=name, columns=columns, rows=rows, source_path=source_path)


class TableLoader:
    """Reads files into ``Table`` values; registration is left to the registry."""

    def source_file(self, path: str) -> SourceFile:
        path = os.path.abspath(path)
        if not os.path.exists(path):
            raise IoError(path, "no such file")
        if not os.path.isfile(path):
            raise IoError(path, "not a regular file")
        if not os.access(path, os.R_OK):
            raise IoError(path, "permission denied")
        return SourceFile(path=path, detected_format=detect_format(path))

    def read(self, path: str) -> Table:
        """Detect, parse and type one file. Safe to call from worker threads."""
        source = self.source_file(path)
        try:
            raw = parse_file(source.path, source.detected_format)
            table = build_table(raw, derive_table_name(source.path), source.path)
        except (ValueError, RecursionError) as e:
            raise ParseError(source.path, f"cannot read values: {e}") from e
        logger.debug("Read %s as %s: %d column(s), %d row(s)",
                      source.path, source.detected_format.value, len(table.columns), table.row_count)
        return table

    def load(self, path: str, registry: 'TableRegistry', force: bool = False,
             name: Optional[str] = None) -> Table:
        """Read one file and register it; the registry is untouched on failure."""
        table = self.read(path)
        return registry.apply(table, force=force, name=name)
