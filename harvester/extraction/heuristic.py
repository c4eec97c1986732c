"""Deterministic, pattern-based record extraction.

This is the pipeline's floor: no collaborator is called and every value is
either a literal regex match or a direct copy of document text.

Per-field rules
---------------
``title``                  section text, else the document title
``description``/``content`` section text
``link``                   the document URL
``price``                  first currency-pattern match, else ``"Not found"``
anything else              ``None``
"""

from __future__ import annotations

import re
from typing import Optional

from harvester.scraper.models import ContentDocument, ExtractedRecord, FieldSpec

NOT_FOUND = "Not found"

# Tried in order; the first pattern with a match wins.
PRICE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\$\s?\d[\d,]*(?:\.\d+)?"),
    re.compile(r"€\s?\d[\d,]*(?:\.\d+)?"),
    re.compile(r"£\s?\d[\d,]*(?:\.\d+)?"),
    re.compile(r"¥\s?\d[\d,]*(?:\.\d+)?"),
    re.compile(r"\d[\d,]*(?:\.\d+)?\s*(?:USD|EUR|GBP|JPY)\b", re.IGNORECASE),
)

_SAMPLE_SIZE = 3
_TEXT_FIELDS = {"description", "content"}


def find_price(text: str) -> Optional[str]:
    """Return the first literal price in *text*, or ``None``."""
    for pattern in PRICE_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(0)
    return None


def _field_value(name: str, text: str, title: str, url: str) -> Optional[str]:
    key = name.lower()
    if key == "title":
        return text or title
    if key in _TEXT_FIELDS:
        return text
    if key == "link":
        return url or None
    if key == "price":
        return find_price(text) or NOT_FOUND
    return None


def _build_record(field_spec: FieldSpec, text: str, title: str, url: str) -> ExtractedRecord:
    return {name: _field_value(name, text, title, url) for name in field_spec.fields}


def extract_heuristic(document: ContentDocument, field_spec: FieldSpec) -> list[ExtractedRecord]:
    """Derive records from *document* without any model.

    Primary strategy: one record per non-empty section.  Secondary strategy
    (only when no section produced a record): a single record built from
    ``full_text`` plus sampled ``links`` and ``headings``.
    """
    records = [
        _build_record(field_spec, section.text, document.title, document.url)
        for section in document.sections
        if section.text
    ]
    if records:
        return records

    if not document.full_text and not document.links and not document.heading_texts:
        return []

    record = _build_record(field_spec, document.full_text, document.title, document.url)
    if document.links:
        record["links"] = ", ".join(document.links[:_SAMPLE_SIZE])
    if document.heading_texts:
        record["headings"] = ", ".join(document.heading_texts[:_SAMPLE_SIZE])
    return [record]
