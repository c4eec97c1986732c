"""Recover structured records from free-form model responses.

Models asked for "only a JSON array" routinely wrap it in prose, leave
trailing commas or answer with a single object.  :data:`STRATEGIES` is an
ordered tuple of pure ``str -> list | None`` functions; the first one that
returns a list wins:

1. ``parse_first_array``: the first balanced ``[...]`` span, as-is.
2. ``parse_normalized_array``: same, after stripping trailing commas and
   collapsing whitespace.
3. ``parse_first_object``: the first balanced ``{...}`` span; a lone
   object is wrapped in a one-element list.
4. ``parse_after_label``: the text after a lead-in label such as
   ``Result:`` is fed back through strategies 1 and 2.

An empty list is a *successful* parse (the model found nothing); ``None``
means the strategy could not read the response.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Callable, Mapping, Optional, Sequence

from harvester.scraper.models import ExtractedRecord, record_key

logger = logging.getLogger(__name__)

Strategy = Callable[[str], Optional[list]]

LEAD_IN_LABELS = ("JSON Array:", "Extracted Data:", "Result:", "Data:")

_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_WHITESPACE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _balanced_span(text: str, opener: str, closer: str) -> Optional[str]:
    """Return the first balanced ``opener ... closer`` span of *text*.

    Brackets inside JSON string literals are ignored.  Returns ``None`` if
    *opener* never occurs or is never closed.
    """
    start = text.find(opener)
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for pos in range(start, len(text)):
        char = text[pos]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start : pos + 1]
    return None


def _loads(fragment: Optional[str]) -> Any:
    if fragment is None:
        return None
    try:
        return json.loads(fragment)
    except json.JSONDecodeError:
        return None


def normalize_json_text(text: str) -> str:
    """Strip trailing commas before ``}``/``]`` and collapse whitespace."""
    text = _TRAILING_COMMA.sub(r"\1", text)
    return _WHITESPACE.sub(" ", text)


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

def parse_first_array(text: str) -> Optional[list]:
    value = _loads(_balanced_span(text, "[", "]"))
    return value if isinstance(value, list) else None


def parse_normalized_array(text: str) -> Optional[list]:
    return parse_first_array(normalize_json_text(text))


def parse_first_object(text: str) -> Optional[list]:
    span = _balanced_span(text, "{", "}")
    value = _loads(span)
    if value is None and span is not None:
        value = _loads(normalize_json_text(span))
    if isinstance(value, dict):
        return [value]
    return None


def parse_after_label(text: str) -> Optional[list]:
    lowered = text.lower()
    for label in LEAD_IN_LABELS:
        idx = lowered.find(label.lower())
        if idx == -1:
            continue
        tail = text[idx + len(label) :]
        items = parse_first_array(tail)
        if items is None:
            items = parse_normalized_array(tail)
        if items is not None:
            return items
    return None


STRATEGIES: tuple[Strategy, ...] = (
    parse_first_array,
    parse_normalized_array,
    parse_first_object,
    parse_after_label,
)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def to_record(item: Any) -> Optional[ExtractedRecord]:
    """Coerce one parsed JSON element into an :data:`ExtractedRecord`.

    Non-object elements are rejected (``None``).  Scalars become strings,
    nested containers are kept as compact JSON text, ``null`` stays ``None``.
    """
    if not isinstance(item, dict):
        return None
    record: ExtractedRecord = {}
    for key, value in item.items():
        if value is None or isinstance(value, str):
            record[str(key)] = value
        elif isinstance(value, (dict, list)):
            record[str(key)] = json.dumps(value, ensure_ascii=False)
        elif isinstance(value, bool):
            record[str(key)] = "true" if value else "false"
        else:
            record[str(key)] = str(value)
    return record


def recover_items(response: str, strategies: Sequence[Strategy] = STRATEGIES) -> Optional[list]:
    """Run *strategies* in order and return the first list produced."""
    for strategy in strategies:
        items = strategy(response)
        if items is not None:
            logger.debug(f"Recovered {len(items)} item(s) with {strategy.__name__}")
            return items
    return None


def recover_records(response: str) -> Optional[list[ExtractedRecord]]:
    """Return the records encoded in *response*, or ``None`` if unreadable."""
    items = recover_items(response)
    if items is None:
        return None
    records = [to_record(item) for item in items]
    return [r for r in records if r is not None]


def dedupe_records(records: Sequence[Mapping[str, Optional[str]]]) -> list[ExtractedRecord]:
    """Drop records whose canonical JSON was already seen; first one wins."""
    seen: set[str] = set()
    unique: list[ExtractedRecord] = []
    for record in records:
        key = record_key(record)
        if key not in seen:
            seen.add(key)
            unique.append(dict(record))
    return unique
