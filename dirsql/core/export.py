"""Export query results to stdout text or files (core implementation)."""
from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional

import pandas as pd

from dirsql.core.render import DEFAULT_NULL_MARKER, QueryResult, render_table
from dirsql.utils.constants import DEFAULT_EXPORT_FORMAT, SUPPORTED_EXPORT_FORMATS
from dirsql.utils.validation import ValidationError, validate_output_path

logger = logging.getLogger(__name__)


def result_to_dataframe(result: QueryResult) -> pd.DataFrame:
    return pd.DataFrame.from_records(result.rows, columns=result.columns)


def infer_export_format(path: Optional[str]) -> str:
    """Pick an export format from a file extension, csv when unknown."""
    if path:
        suffix = Path(path).suffix.lower().lstrip('.')
        if suffix in SUPPORTED_EXPORT_FORMATS:
            return suffix
        if suffix == 'txt':
            return 'table'
    return DEFAULT_EXPORT_FORMAT


def export_result(
    result: QueryResult,
    fmt: Optional[str] = None,
    path: Optional[str] = None,
    null_marker: str = DEFAULT_NULL_MARKER,
) -> Optional[str]:
    """Write ``result`` in ``fmt`` to ``path``, or return the text when no path is given.

    Supported formats: csv, json, jsonl, table.
    """
    if result is None:
        raise ValidationError("no result to export (run a query first)")
    fmt = (fmt or infer_export_format(path)).lower()
    if fmt not in SUPPORTED_EXPORT_FORMATS:
        raise ValidationError(f"Unsupported export format: {fmt} (expected {', '.join(SUPPORTED_EXPORT_FORMATS)})")

    df = result_to_dataframe(result)
    if fmt == 'table':
        text = render_table(result, null_marker=null_marker) + '\n'
    elif fmt == 'csv':
        text = df.to_csv(index=False)
    elif fmt == 'json':
        text = df.to_json(orient='records', indent=2, force_ascii=False) + '\n'
    else:
        text = df.to_json(orient='records', lines=True, force_ascii=False)
        if text and not text.endswith('\n'):
            text += '\n'

    if not path:
        return text
    target = Path(path).expanduser()
    validate_output_path(str(target), create_dirs=True)
    try:
        target.write_text(text, encoding='utf-8')
    except OSError as e:
        raise ValidationError(f"Failed to write {target}: {e}") from e
    logger.info("Wrote %d rows to %s (%s)", len(df), target, fmt)
    return None
