"""Column type inference shared by every source format.

Types form a small lattice: ``INTEGER < FLOAT < STRING`` and
``BOOLEAN < STRING``. A column gets the narrowest type accepting every
observed value; mixing booleans with numbers widens to ``STRING``.
"""
from __future__ import annotations
from enum import Enum
from typing import Any, Iterable, Optional
import datetime
import json
import re

_INT_RE = re.compile(r'^[+-]?\d+$')
_FLOAT_RE = re.compile(r'^[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?$')
_BOOL_TEXT = {'true': True, 'false': False}
_INT64_MIN, _INT64_MAX = -2 ** 63, 2 ** 63 - 1
_INT64_DIGITS = 19


class ColumnType(Enum):
    INTEGER = 'integer'
    FLOAT = 'float'
    BOOLEAN = 'boolean'
    STRING = 'string'

    @property
    def sql_name(self) -> str:
        return _SQL_NAMES[self]

    @property
    def pandas_dtype(self) -> str:
        return _PANDAS_DTYPES[self]

    @property
    def is_numeric(self) -> bool:
        return self in (ColumnType.INTEGER, ColumnType.FLOAT)

    def widen(self, other: Optional['ColumnType']) -> 'ColumnType':
        """Least type accepting values of both ``self`` and ``other``."""
        if other is None or other is self:
            return self
        pair = {self, other}
        if pair == {ColumnType.INTEGER, ColumnType.FLOAT}:
            return ColumnType.FLOAT
        return ColumnType.STRING

    def coerce(self, value: Any) -> Any:
        """Convert a raw parsed value into this column's Python type."""
        if value is None:
            return None
        if self is ColumnType.STRING:
            return to_text(value)
        if isinstance(value, str):
            text = value.strip()
            if self is ColumnType.INTEGER:
                return int(text)
            if self is ColumnType.FLOAT:
                return float(text)
            return _BOOL_TEXT[text.lower()]
        if self is ColumnType.INTEGER:
            return int(value)
        if self is ColumnType.FLOAT:
            return float(value)
        return bool(value)


_SQL_NAMES = {
    ColumnType.INTEGER: 'BIGINT',
    ColumnType.FLOAT: 'DOUBLE',
    ColumnType.BOOLEAN: 'BOOLEAN',
    ColumnType.STRING: 'VARCHAR',
}

_PANDAS_DTYPES = {
    ColumnType.INTEGER: 'Int64',
    ColumnType.FLOAT: 'Float64',
    ColumnType.BOOLEAN: 'boolean',
    ColumnType.STRING: 'string',
}


def to_text(value: Any) -> str:
    """Text form of a parsed value, TOML spelling for booleans."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, (list, dict)):
        return json.dumps(value, default=str, ensure_ascii=False)
    return str(value)


def _fits_int64(value: int) -> bool:
    return _INT64_MIN <= value <= _INT64_MAX


def observe(value: Any) -> Optional[ColumnType]:
    """Narrowest type that accepts a single value (``None`` for nulls)."""
    if value is None:
        return None
    if isinstance(value, bool):
        return ColumnType.BOOLEAN
    if isinstance(value, int):
        return ColumnType.INTEGER if _fits_int64(value) else ColumnType.STRING
    if isinstance(value, float):
        return ColumnType.FLOAT
    if isinstance(value, str):
        text = value.strip()
        if _INT_RE.match(text):
            # too long for int64; also keeps int() under its digit limit
            if len(text.lstrip('+-').lstrip('0')) > _INT64_DIGITS:
                return ColumnType.STRING
            return ColumnType.INTEGER if _fits_int64(int(text)) else ColumnType.STRING
        if _FLOAT_RE.match(text):
            return ColumnType.FLOAT
        if text.lower() in _BOOL_TEXT:
            return ColumnType.BOOLEAN
        return ColumnType.STRING
    return ColumnType.STRING


def infer_column_type(values: Iterable[Any]) -> ColumnType:
    """Reduce observed values to one column type; all-null columns are strings."""
    current: Optional[ColumnType] = None
    for value in values:
        seen = observe(value)
        if seen is None:
            continue
        current = seen if current is None else current.widen(seen)
        if current is ColumnType.STRING:
            break
    return current or ColumnType.STRING
