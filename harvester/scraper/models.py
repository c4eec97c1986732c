"""Data models for the acquisition-and-extraction pipeline.

Every entity is produced once by its stage and never mutated afterwards,
hence the frozen dataclasses and tuple-typed collections.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Literal, Mapping, Optional, Tuple, Union

# One logical entity (e.g. one product).  Field names are data, not schema.
ExtractedRecord = Dict[str, Optional[str]]

OutcomeSource = Literal["model", "heuristic", "merged", "schema"]


# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldSpec:
    """Target label plus the ordered field names to extract."""

    target: str
    fields: Tuple[str, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "fields", tuple(self.fields))


@dataclass(frozen=True)
class ScrapeRequest:
    url: str
    field_spec: FieldSpec
    max_scroll_attempts: int = 10
    scroll_delay_ms: int = 2000
    chunk_size_chars: int = 3500
    # Optional field -> CSS selector map for the DOM-schema fallback.
    selectors: Optional[Mapping[str, str]] = None

    def __post_init__(self) -> None:
        if self.max_scroll_attempts < 0:
            raise ValueError("max_scroll_attempts must be >= 0")
        if self.scroll_delay_ms < 0:
            raise ValueError("scroll_delay_ms must be >= 0")
        if self.chunk_size_chars <= 0:
            raise ValueError("chunk_size_chars must be positive")


# ---------------------------------------------------------------------------
# Acquisition
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PageSnapshot:
    """A single point-in-time capture of a rendered page."""

    url: str
    title: str
    raw_text: str
    raw_html: str
    fetched_at: datetime
    processing_time_ms: int
    content_length: int
    ok: bool = True
    error_detail: Optional[str] = None

    @classmethod
    def failed(cls, url: str, detail: str, processing_time_ms: int = 0) -> "PageSnapshot":
        """Build the snapshot recorded for an acquisition that did not complete."""
        return cls(
            url=url,
            title="",
            raw_text="",
            raw_html="",
            fetched_at=datetime.now(timezone.utc),
            processing_time_ms=processing_time_ms,
            content_length=0,
            ok=False,
            error_detail=detail,
        )


# ---------------------------------------------------------------------------
# Segmentation
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Heading:
    level: int
    text: str
    kind: str = field(default="heading", init=False)


@dataclass(frozen=True)
class Paragraph:
    text: str
    kind: str = field(default="paragraph", init=False)


@dataclass(frozen=True)
class ListSection:
    text: str
    items: Tuple[str, ...]
    kind: str = field(default="list", init=False)


@dataclass(frozen=True)
class Table:
    text: str
    kind: str = field(default="table", init=False)


ContentSection = Union[Heading, Paragraph, ListSection, Table]


@dataclass(frozen=True)
class ContentDocument:
    """Normalised view of a rendered page.

    ``sections`` are in extraction-pass order (headings, paragraphs, lists,
    tables), not visual order.  ``links`` and ``images`` are de-duplicated and
    keep first-seen order.
    """

    title: str
    full_text: str
    sections: Tuple[ContentSection, ...] = ()
    links: Tuple[str, ...] = ()
    images: Tuple[str, ...] = ()
    heading_texts: Tuple[str, ...] = ()
    metadata: Mapping[str, str] = field(default_factory=dict)
    url: str = ""


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def record_key(record: Mapping[str, Optional[str]]) -> str:
    """Return the canonical (key-sorted) JSON form of *record*."""
    return json.dumps(record, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


@dataclass(frozen=True)
class ExtractionOutcome:
    records: Tuple[ExtractedRecord, ...]
    source: OutcomeSource
    sufficient_content: bool

    def __len__(self) -> int:
        return len(self.records)
