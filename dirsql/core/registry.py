"""Session table registry: name allocation and engine registration."""
from __future__ import annotations
from typing import Dict, Iterator, List, Optional
import logging
import os

from dirsql.core.errors import DirSQLException, NameCollisionError, UsageError
from dirsql.core.sql_engine import SqlEngine
from dirsql.core.table_loader import Table, sanitize_table_name

logger = logging.getLogger(__name__)

COLLISION_POLICIES = ('suffix', 'error')


class TableRegistry:
    """Maps table names to tables; the only code that mutates that mapping.

    Every ``apply`` builds the new mapping first, then registers with the
    engine and swaps the mapping in. If registration fails or is interrupted,
    the previous view is put back and the mapping is left untouched.
    """

    def __init__(self, engine: SqlEngine, collision_policy: str = 'suffix'):
        if collision_policy not in COLLISION_POLICIES:
            raise UsageError(f"collision_policy must be one of {', '.join(COLLISION_POLICIES)}")
        self.engine = engine
        self.collision_policy = collision_policy
        self._tables: Dict[str, Table] = {}

    # --- lookup ---

    def __contains__(self, name: str) -> bool:
        return self.get(name) is not None

    def __len__(self) -> int:
        return len(self._tables)

    def __iter__(self) -> Iterator[Table]:
        return iter(list(self._tables.values()))

    def get(self, name: str) -> Optional[Table]:
        if name in self._tables:
            return self._tables[name]
        low = name.lower()
        for key, table in self._tables.items():
            if key.lower() == low:
                return table
        return None

    def find_by_path(self, path: str) -> Optional[Table]:
        target = os.path.abspath(path)
        for table in self._tables.values():
            if table.source_path == target:
                return table
        return None

    def names(self) -> List[str]:
        return list(self._tables.keys())

    def tables(self) -> List[Table]:
        return list(self._tables.values())

    # --- mutation ---

    def _owner(self, name: str) -> Optional[Table]:
        # DuckDB identifiers are case-insensitive
        return self.get(name)

    def _next_free(self, base: str) -> str:
        suffix = 2
        candidate = f"{base}_{suffix}"
        while self._owner(candidate) is not None:
            suffix += 1
            candidate = f"{base}_{suffix}"
        return candidate

    def resolve_name(self, table: Table, force: bool = False, name: Optional[str] = None) -> str:
        """Final name for ``table`` given the current registry state.

        Deterministic: depends only on the requested/derived name, the source
        path and what is already registered.
        """
        existing = self.find_by_path(table.source_path) if table.source_path else None
        if name is None and existing is not None:
            return existing.name
        wanted = sanitize_table_name(name) if name is not None else table.name
        owner = self._owner(wanted)
        if owner is None or owner.source_path == table.source_path:
            return wanted
        if force:
            return owner.name
        if name is not None or self.collision_policy == 'error':
            raise NameCollisionError(table.source_path, wanted, owner.source_path)
        return self._next_free(wanted)

    def apply(self, table: Table, force: bool = False, name: Optional[str] = None) -> Table:
        """Register ``table`` and record it; all or nothing."""
        final = table.with_name(self.resolve_name(table, force=force, name=name))
        displaced = self._owner(final.name)
        previous = self.find_by_path(final.source_path) if final.source_path else None

        tables = dict(self._tables)
        if displaced is not None:
            del tables[displaced.name]
        stale = None
        if previous is not None and previous.name in tables and previous.name != final.name:
            # same file loaded again under an explicit new name
            stale = previous
            del tables[previous.name]
        tables[final.name] = final

        # engine view and mapping change together or not at all
        try:
            self.engine.register(final)
            self._tables = tables
        except BaseException:
            self._restore_view(final.name, displaced)
            raise
        if stale is not None:
            self.engine.unregister(stale.name)
        if displaced is not None:
            logger.info("Replaced table %s (%s -> %s)", final.name, displaced.source_path, final.source_path)
        else:
            logger.info("Loaded table %s from %s (%d rows)", final.name, final.source_path, final.row_count)
        return final

    def _restore_view(self, name: str, displaced: Optional[Table]) -> None:
        """Point the engine view back at what the mapping still holds."""
        try:
            if displaced is not None:
                self.engine.register(displaced)
            else:
                self.engine.unregister(name)
        except DirSQLException as e:
            logger.warning("Could not restore view %s: %s", name, e.one_line())

    def remove(self, name: str) -> Table:
        table = self.get(name)
        if table is None:
            raise UsageError(f"no such table: {name}")
        del self._tables[table.name]
        self.engine.unregister(table.name)
        return table
