# Error taxonomy shared by the loader, the engine wrapper and the shell.
from __future__ import annotations
from enum import Enum, auto
from typing import Optional


class ErrorCategory(Enum):
    USER_INPUT = auto()
    LOAD = auto()
    QUERY = auto()
    CONFIG = auto()
    FATAL = auto()
    INTERNAL = auto()


class DirSQLException(Exception):
    category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(self, message: str, *, category: ErrorCategory | None = None):
        super().__init__(message)
        self.message = message
        if category:
            self.category = category

    @property
    def kind(self) -> str:
        return type(self).__name__

    def one_line(self) -> str:
        """Single-line report shown to the user: ``Kind: detail``."""
        text = " ".join(str(self.message).split())
        return f"{self.kind}: {text}"


class UsageError(DirSQLException):
    category = ErrorCategory.USER_INPUT


class PatternError(DirSQLException):
    category = ErrorCategory.USER_INPUT

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"{reason} in pattern '{pattern}'")
        self.pattern = pattern
        self.reason = reason


# --- per-file load errors ---

class LoadError(DirSQLException):
    category = ErrorCategory.LOAD

    def __init__(self, path: Optional[str], message: str):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class IoError(LoadError):
    pass


class UnknownFormat(LoadError):
    def __init__(self, path: str, message: str = "cannot determine file format"):
        super().__init__(path, message)


class ParseError(LoadError):
    pass


class NameCollisionError(LoadError):
    def __init__(self, path: Optional[str], name: str, existing_path: str):
        super().__init__(path, f"table name '{name}' already used by {existing_path}")
        self.name = name
        self.existing_path = existing_path


class EngineRegistrationError(LoadError):
    pass


# --- session level ---

class SqlError(DirSQLException):
    category = ErrorCategory.QUERY

    def __init__(self, message: str, sql: str = ""):
        super().__init__(message)
        self.sql = sql


class InterruptedLoad(DirSQLException):
    category = ErrorCategory.LOAD

    def __init__(self, report, pending: int):
        applied = len(report.loaded) if report is not None else 0
        super().__init__(f"load interrupted; {applied} table(s) kept, {pending} file(s) discarded")
        self.report = report
        self.pending = pending


class ConfigError(DirSQLException):
    category = ErrorCategory.CONFIG


class HistoryWriteError(DirSQLException):
    category = ErrorCategory.FATAL


__all__ = [
    'ErrorCategory', 'DirSQLException', 'UsageError', 'PatternError', 'LoadError',
    'IoError', 'UnknownFormat', 'ParseError', 'NameCollisionError',
    'EngineRegistrationError', 'SqlError', 'InterruptedLoad', 'ConfigError',
    'HistoryWriteError',
]
