"""Flat-file (CSV) serialization of extracted records.

Columns are the union of keys across all records in first-seen order;
missing and ``None`` values are written as empty cells.  Quoting of values
containing the delimiter, quotes or newlines is left to :mod:`csv`.
"""

from __future__ import annotations

import csv
import io
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional, Sequence

from harvester.errors import SerializationFailure

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-zA-Z0-9]")


def _columns(records: Sequence[Mapping[str, Optional[str]]]) -> list[str]:
    columns: dict[str, None] = {}
    for record in records:
        for key in record:
            columns.setdefault(key, None)
    return list(columns)


def records_to_csv(records: Sequence[Mapping[str, Optional[str]]]) -> str:
    """Render *records* as CSV text (header row first).

    Raises:
        SerializationFailure: If *records* is empty.
    """
    if not records:
        raise SerializationFailure("No data to export")

    buffer = io.StringIO()
    writer = csv.DictWriter(
        buffer,
        fieldnames=_columns(records),
        restval="",
        lineterminator="\n",
    )
    writer.writeheader()
    for record in records:
        writer.writerow({k: "" if v is None else v for k, v in record.items()})
    return buffer.getvalue()


def build_export_filename(url: str, prompt: str) -> str:
    """Return ``scraped_<url-slug>_<prompt-slug>`` (no extension)."""
    url_slug = _NON_ALNUM.sub("_", url)[:50]
    prompt_slug = _NON_ALNUM.sub("_", prompt)[:30]
    return f"scraped_{url_slug}_{prompt_slug}"


def export_records(
    records: Sequence[Mapping[str, Optional[str]]],
    filename: str,
    output_dir: Path | str,
) -> Path:
    """Write *records* to ``output_dir/filename`` and return the path.

    A *filename* without a ``.csv`` suffix gets a UTC timestamp and the
    suffix appended.

    Raises:
        SerializationFailure: If *records* is empty or the file cannot be
            written.
    """
    content = records_to_csv(records)

    if not filename.lower().endswith(".csv"):
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-%fZ")
        filename = f"{filename}_{stamp}.csv"

    path = Path(output_dir) / filename
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise SerializationFailure(f"CSV export failed: {exc}") from exc

    logger.info(f"CSV exported successfully to: {path}")
    return path
