"""DuckDB connection wrapper: table registration and query execution."""
from __future__ import annotations
from typing import List, Optional, Set
import logging
import re

import duckdb

from dirsql.core.errors import EngineRegistrationError, SqlError
from dirsql.core.render import QueryResult
from dirsql.core.table_loader import Table

logger = logging.getLogger(__name__)
_TRAILING_SEMICOLONS = re.compile(r'[;\s]+$')


class SqlEngine:
    """One in-memory DuckDB connection per session."""

    def __init__(self, database: str = ':memory:'):
        self.con = duckdb.connect(database)
        self._reserved: Optional[Set[str]] = None

    def reserved_keywords(self) -> Set[str]:
        if self._reserved is None:
            rows = self.con.execute(
                "SELECT keyword_name FROM duckdb_keywords() WHERE keyword_category = 'reserved'"
            ).fetchall()
            self._reserved = {r[0].lower() for r in rows}
        return self._reserved

    def register(self, table: Table) -> None:
        """Expose ``table`` to SQL under ``table.name``, replacing any previous view."""
        if table.name.lower() in self.reserved_keywords():
            raise EngineRegistrationError(table.source_path, f"'{table.name}' is a reserved SQL keyword")
        try:
            df = table.to_dataframe()
            self.con.register(table.name, df)
        except (duckdb.Error, ValueError, TypeError) as e:
            raise EngineRegistrationError(table.source_path, f"cannot register '{table.name}': {e}") from e
        logger.debug("Registered %s (%d rows)", table.name, table.row_count)

    def unregister(self, name: str) -> None:
        try:
            self.con.unregister(name)
        except duckdb.Error as e:
            logger.debug("Unregister %s failed: %s", name, e)

    def execute(self, sql: str) -> QueryResult:
        sql = _TRAILING_SEMICOLONS.sub('', sql.strip())
        if not sql:
            raise SqlError("empty statement", sql)
        logger.debug("Executing SQL:\n%s", sql)
        try:
            cur = self.con.execute(sql)
            description = cur.description or []
            columns: List[str] = [d[0] for d in description]
            rows = [tuple(r) for r in cur.fetchall()] if description else []
        except duckdb.Error as e:
            logger.debug("Query execution failed: %s", e)
            raise SqlError(str(e), sql) from e
        return QueryResult(columns=columns, rows=rows)

    def version(self) -> str:
        return duckdb.__version__

    def close(self) -> None:
        self.con.close()
