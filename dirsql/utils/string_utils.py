"""String manipulation utilities for dirsql."""
from __future__ import annotations
from typing import Dict, List, Set
import re
import unicodedata

# Collection of quote characters copied in from word processors / chat clients
SMART_QUOTE_MAP = {
    '“': '"',  # left double
    '”': '"',  # right double
    '„': '"',
    '‟': '"',
    '″': '"',
    '‘': "'",  # left single
    '’': "'",  # right single / apostrophe
    '‛': "'",
    '′': "'",
}

_NON_IDENT = re.compile(r'[^A-Za-z0-9_]')


def normalize_smart_quotes(s: str) -> str:
    return ''.join(SMART_QUOTE_MAP.get(ch, ch) for ch in s)


def sanitize_identifier(name: str, empty: str = "table", digit_prefix: str = "t_") -> str:
    """Convert a string to a valid SQL identifier.

    Every character outside ``[A-Za-z0-9_]`` becomes an underscore and a
    leading digit gets ``digit_prefix``. Applying it twice gives the same
    result as applying it once.
    """
    if not name:
        return empty
    clean = _NON_IDENT.sub('_', name)
    if clean[0].isdigit():
        clean = digit_prefix + clean
    return clean


def dedupe_names(names: List[str], blank: str = "column_{n}") -> List[str]:
    """Trim names, fill blanks and suffix repeats with ``_1``, ``_2``...

    A suffixed name never matches a name already in the output, so every
    returned name is unique.
    """
    counters: Dict[str, int] = {}
    taken: Set[str] = set()
    out = []
    for idx, raw in enumerate(names, start=1):
        name = str(raw).strip() if raw is not None else ''
        if not name:
            name = blank.format(n=idx)
        base = name
        n = counters.get(base, 0)
        while name in taken:
            n += 1
            name = f"{base}_{n}"
        counters[base] = n
        taken.add(name)
        out.append(name)
    return out


def display_width(s: str) -> int:
    """Terminal cell width; wide and full-width characters take two cells."""
    w = 0
    for ch in s:
        if unicodedata.east_asian_width(ch) in ('F', 'W'):
            w += 2
        else:
            w += 1
    return w


def pad_right(s: str, width: int) -> str:
    extra = width - display_width(s)
    return s + ' ' * extra if extra > 0 else s


def pad_left(s: str, width: int) -> str:
    extra = width - display_width(s)
    return ' ' * extra + s if extra > 0 else s


def truncate_string(s: str, max_length: int = 50, suffix: str = '…') -> str:
    """Truncate a string to a maximum display width."""
    if not s or display_width(s) <= max_length:
        return s
    budget = max_length - display_width(suffix)
    if budget <= 0:
        return suffix
    out = []
    used = 0
    for ch in s:
        w = display_width(ch)
        if used + w > budget:
            break
        out.append(ch)
        used += w
    return ''.join(out) + suffix

