"""Source format detection and parsing into raw (untyped) tables."""
from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List
import csv
import json
import logging
import os
import re
import sys
import tomllib

import pandas as pd

from dirsql.core.errors import IoError, ParseError, UnknownFormat
from dirsql.utils.constants import FORMAT_EXTENSIONS, SNIFF_BYTES, SNIFF_LINES, TOML_KEY_COLUMN
from dirsql.utils.string_utils import dedupe_names

logger = logging.getLogger(__name__)

_TOML_ASSIGN_RE = re.compile(r'^\s*[A-Za-z0-9_\-."\']+\s*=\s*\S')
# pandas puts no cap on field size; the stdlib reader defaults to 128 KiB
_CSV_FIELD_LIMIT = min(sys.maxsize, 2 ** 31 - 1)


class Format(Enum):
    CSV = 'csv'
    TOML = 'toml'


@dataclass
class RawTable:
    """Header plus rows of raw parsed values (text, TOML scalars or None)."""
    columns: List[str]
    rows: List[List[Any]] = field(default_factory=list)


# --- detection ---

def _looks_like_toml(lines: List[str]) -> bool:
    for line in lines:
        stripped = line.strip()
        if not stripped or stripped.startswith('#'):
            continue
        if stripped.startswith('['):
            return True
        return bool(_TOML_ASSIGN_RE.match(stripped))
    return False


def _looks_like_csv(lines: List[str]) -> bool:
    sample = [ln for ln in lines if ln.strip()]
    if not sample:
        return False
    counts = [len(rec) for rec in csv.reader(sample)]
    if not counts or counts[0] < 2:
        return False
    return all(c == counts[0] for c in counts[1:])


def sniff_format(path: str) -> Format:
    """Guess the format of a file from its first few KiB."""
    try:
        with open(path, 'rb') as f:
            head = f.read(SNIFF_BYTES)
            truncated = bool(f.read(1))
    except OSError as e:
        raise IoError(path, e.strerror or str(e)) from e
    try:
        text = head.decode('utf-8-sig')
    except UnicodeDecodeError as e:
        raise UnknownFormat(path, "content is not UTF-8 text") from e
    lines = text.splitlines()
    if truncated and lines:
        lines = lines[:-1]  # last line may be cut mid-record
    lines = lines[:SNIFF_LINES]
    if _looks_like_toml(lines):
        return Format.TOML
    if _looks_like_csv(lines):
        return Format.CSV
    raise UnknownFormat(path)


def detect_format(path: str) -> Format:
    """Format from the file extension, falling back to content sniffing."""
    ext = os.path.splitext(path)[1].lower()
    known = FORMAT_EXTENSIONS.get(ext)
    if known:
        return Format(known)
    fmt = sniff_format(path)
    logger.debug("Sniffed %s as %s", path, fmt.value)
    return fmt


# --- CSV ---

def _check_field_counts(path: str) -> int:
    """Structural pass: every record must have as many fields as the header."""
    if csv.field_size_limit() < _CSV_FIELD_LIMIT:
        csv.field_size_limit(_CSV_FIELD_LIMIT)
    expected = None
    with open(path, newline='', encoding='utf-8-sig') as f:
        reader = csv.reader(f)
        for record in reader:
            if not record:
                continue
            if expected is None:
                expected = len(record)
                continue
            if len(record) != expected:
                raise ParseError(
                    path,
                    f"line {reader.line_num} has {len(record)} field(s), header has {expected}",
                )
    if expected is None:
        raise ParseError(path, "no header row")
    return expected


def parse_csv(path: str) -> RawTable:
    """Parse a CSV file: first record is the header, empty fields are NULL."""
    try:
        _check_field_counts(path)
        df = pd.read_csv(
            path,
            header=None,
            dtype=str,
            keep_default_na=False,
            na_values=[''],
            skip_blank_lines=True,
            encoding='utf-8-sig',
        )
    except (ParseError, IoError):
        raise
    except OSError as e:
        raise IoError(path, e.strerror or str(e)) from e
    except UnicodeDecodeError as e:
        raise ParseError(path, f"not valid UTF-8 ({e.reason})") from e
    except (pd.errors.ParserError, pd.errors.EmptyDataError, csv.Error) as e:
        raise ParseError(path, str(e)) from e
    header = [None if pd.isna(v) else v for v in df.iloc[0].tolist()]
    columns = dedupe_names(header)
    rows = [
        [None if pd.isna(v) else v for v in rec]
        for rec in df.iloc[1:].itertuples(index=False, name=None)
    ]
    return RawTable(columns=columns, rows=rows)


# --- TOML ---

def _is_table_array(value: Any) -> bool:
    return isinstance(value, list) and bool(value) and all(isinstance(v, dict) for v in value)


def _serialise(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def _put(row: Dict[str, Any], name: str, value: Any, path: str) -> None:
    if name in row:
        if name == TOML_KEY_COLUMN:
            raise ParseError(path, f"field '{name}' clashes with the table key column")
        raise ParseError(path, f"more than one key flattens to column '{name}'")
    row[name] = value


def _toml_row(key: Any, fields: Dict[str, Any], path: str) -> Dict[str, Any]:
    """One row: the ``_key`` column, then fields with one level of nesting as dotted columns.

    Anything deeper than one level is stored as JSON text.
    """
    row: Dict[str, Any] = {TOML_KEY_COLUMN: key}
    for name, value in fields.items():
        if isinstance(value, dict):
            for sub_key, sub_value in value.items():
                if isinstance(sub_value, (dict, list)):
                    sub_value = _serialise(sub_value)
                _put(row, f"{name}.{sub_key}", sub_value, path)
        elif isinstance(value, list):
            _put(row, name, _serialise(value), path)
        else:
            _put(row, name, value, path)
    return row


def parse_toml(path: str) -> RawTable:
    """Turn a TOML document into rows, one per top-level table entry.

    Top-level scalars share a single leading row (``_key`` NULL), each
    table-valued key yields one row and each array of tables yields one row
    per element.
    """
    try:
        with open(path, 'rb') as f:
            doc = tomllib.load(f)
    except OSError as e:
        raise IoError(path, e.strerror or str(e)) from e
    except UnicodeDecodeError as e:
        raise ParseError(path, f"not valid UTF-8 ({e.reason})") from e
    except tomllib.TOMLDecodeError as e:
        raise ParseError(path, str(e)) from e

    scalars = {k: v for k, v in doc.items() if not isinstance(v, dict) and not _is_table_array(v)}
    records: List[Dict[str, Any]] = []
    if scalars:
        records.append(_toml_row(None, scalars, path))
    for key, value in doc.items():
        if isinstance(value, dict):
            records.append(_toml_row(key, value, path))
        elif _is_table_array(value):
            records.extend(_toml_row(key, item, path) for item in value)

    columns: List[str] = [TOML_KEY_COLUMN]
    for rec in records:
        for name in rec:
            if name not in columns:
                columns.append(name)
    rows = [[rec.get(name) for name in columns] for rec in records]
    return RawTable(columns=columns, rows=rows)


PARSERS = {
    Format.CSV: parse_csv,
    Format.TOML: parse_toml,
}


def parse_file(path: str, fmt: Format) -> RawTable:
    return PARSERS[fmt](path)
