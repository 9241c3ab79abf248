"""Expand user-supplied paths and glob patterns into concrete file paths."""
from __future__ import annotations
from typing import Iterable, List, Optional, Sequence
import fnmatch
import glob
import logging
import os

from dirsql.core.errors import PatternError

logger = logging.getLogger(__name__)


def _check_syntax(pattern: str) -> None:
    """Reject patterns glob would silently treat as literals."""
    if not pattern or not pattern.strip():
        raise PatternError(pattern, "empty pattern")
    depth = 0
    i = 0
    n = len(pattern)
    while i < n:
        ch = pattern[i]
        if ch == '[':
            j = i + 1
            if j < n and pattern[j] in '!^':
                j += 1
            if j < n and pattern[j] == ']':  # leading ] is a literal member
                j += 1
            while j < n and pattern[j] != ']':
                if pattern[j] == os.sep:
                    break
                j += 1
            if j >= n or pattern[j] != ']':
                raise PatternError(pattern, f"unclosed character class at offset {i}")
            i = j + 1
            continue
        if ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth < 0:
                raise PatternError(pattern, f"unmatched '}}' at offset {i}")
        i += 1
    if depth:
        raise PatternError(pattern, "unclosed '{' alternation")


def _split_alternatives(body: str) -> List[str]:
    parts = []
    depth = 0
    start = 0
    for i, ch in enumerate(body):
        if ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
        elif ch == ',' and depth == 0:
            parts.append(body[start:i])
            start = i + 1
    parts.append(body[start:])
    return parts


def expand_braces(pattern: str) -> List[str]:
    """Expand ``{a,b}`` alternations (nesting allowed) into plain globs."""
    open_idx = pattern.find('{')
    if open_idx == -1:
        return [pattern]
    depth = 0
    for close_idx in range(open_idx, len(pattern)):
        ch = pattern[close_idx]
        if ch == '{':
            depth += 1
        elif ch == '}':
            depth -= 1
            if depth == 0:
                break
    else:  # pragma: no cover - guarded by _check_syntax
        return [pattern]
    head = pattern[:open_idx]
    tail = pattern[close_idx + 1:]
    out: List[str] = []
    for alt in _split_alternatives(pattern[open_idx + 1:close_idx]):
        for expanded in expand_braces(head + alt + tail):
            if expanded not in out:
                out.append(expanded)
    return out


def is_ignored(path: str, ignores: Sequence[str]) -> bool:
    """True when any path component matches one of the ignore patterns."""
    if not ignores:
        return False
    parts = [p for p in os.path.normpath(path).split(os.sep) if p]
    return any(fnmatch.fnmatch(part, pat) for part in parts for pat in ignores)


def resolve_patterns(
    patterns: Iterable[str],
    cwd: Optional[str] = None,
    ignores: Sequence[str] = (),
) -> List[str]:
    """Resolve patterns into a sorted, de-duplicated list of absolute file paths.

    A leading ``~`` is expanded before matching and relative patterns are taken
    relative to ``cwd``. Zero matches is not an error; malformed patterns raise
    ``PatternError``.
    """
    base = os.path.abspath(cwd or os.getcwd())
    found = set()
    for raw in patterns:
        _check_syntax(raw)
        expanded = os.path.expanduser(raw)
        for pat in expand_braces(expanded):
            full = pat if os.path.isabs(pat) else os.path.join(base, pat)
            matches = glob.glob(full, recursive=True)
            logger.debug("Pattern %s -> %d match(es)", pat, len(matches))
            for m in matches:
                if not os.path.isfile(m):
                    continue
                absolute = os.path.abspath(m)
                rel_for_ignore = os.path.relpath(absolute, base) if absolute.startswith(base + os.sep) else absolute
                if is_ignored(rel_for_ignore, ignores):
                    logger.debug("Ignoring %s", absolute)
                    continue
                found.add(absolute)
    return sorted(found)
