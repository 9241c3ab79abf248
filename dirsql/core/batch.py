"""Parallel multi-file loading with results applied by the calling thread.

Worker threads only read and type files; they hand a ``Table`` or a
``LoadError`` back and never touch the registry. The caller applies outcomes
one at a time, in input order, so the registry has a single writer and suffix
allocation does not depend on which worker finished first.
"""
from __future__ import annotations
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Union
import logging

from dirsql.core.errors import InterruptedLoad, LoadError
from dirsql.core.registry import TableRegistry
from dirsql.core.table_loader import Table, TableLoader

logger = logging.getLogger(__name__)

Outcome = Union[Table, LoadError]
ProgressCallback = Callable[['BatchReport', int, int], None]


@dataclass
class BatchReport:
    loaded: List[Table] = field(default_factory=list)
    failed: List[LoadError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _read_one(loader: TableLoader, path: str) -> Outcome:
    # Runs in a worker thread
    try:
        return loader.read(path)
    except LoadError as e:
        return e


def _apply(outcome: Outcome, registry: TableRegistry, force: bool, report: BatchReport) -> None:
    if isinstance(outcome, LoadError):
        logger.warning("Load failed: %s", outcome.one_line())
        report.failed.append(outcome)
        return
    try:
        report.loaded.append(registry.apply(outcome, force=force))
    except LoadError as e:
        logger.warning("Load failed: %s", e.one_line())
        report.failed.append(e)


def load_batch(
    paths: Sequence[str],
    loader: TableLoader,
    registry: TableRegistry,
    workers: int = 4,
    force: bool = False,
    on_applied: Optional[ProgressCallback] = None,
) -> BatchReport:
    """Load ``paths`` with up to ``workers`` concurrent reads.

    Per-file failures are collected in the report and do not stop the batch.
    An interrupt cancels what is still pending and raises ``InterruptedLoad``;
    tables applied before it stay registered.
    """
    report = BatchReport()
    if not paths:
        return report
    logger.debug("Loading %d file(s) with %d worker(s)", len(paths), workers)

    executor = ThreadPoolExecutor(max_workers=max(1, workers), thread_name_prefix="dirsql_load")
    futures: List[Future] = [executor.submit(_read_one, loader, p) for p in paths]
    done = 0
    try:
        # Input order, not completion order
        for future in futures:
            _apply(future.result(), registry, force, report)
            done += 1
            if on_applied is not None:
                on_applied(report, done, len(futures))
    except KeyboardInterrupt:
        executor.shutdown(wait=False, cancel_futures=True)
        raise InterruptedLoad(report, pending=len(futures) - done) from None
    except BaseException:
        executor.shutdown(wait=False, cancel_futures=True)
        raise
    executor.shutdown(wait=True)
    return report
