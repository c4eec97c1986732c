"""Keyword-based parsing of a free-form scrape request.

``parse_prompt("scrape products and prices")`` yields a :class:`ParsedPrompt`
whose :attr:`~ParsedPrompt.field_spec` feeds the extraction pipeline, and
:func:`generate_selector_schema` turns the same fields into CSS selectors for
the DOM-schema fallback.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Literal, Optional

from harvester.scraper.models import FieldSpec

logger = logging.getLogger(__name__)

Action = Literal["scrape", "extract", "analyze"]
OutputFormat = Literal["csv", "json", "text"]

DEFAULT_FIELDS = ("title", "content", "link")

# Order matters: it becomes the field order of the resulting FieldSpec.
_FIELD_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), name)
    for pattern, name in (
        (r"price|cost|amount|fee", "price"),
        (r"title|name|product", "title"),
        (r"description|desc|details", "description"),
        (r"link|url|href", "link"),
        (r"image|img|photo", "image"),
        (r"rating|score|stars", "rating"),
        (r"availability|stock|inventory", "availability"),
        (r"category|type|genre", "category"),
        (r"author|writer|creator", "author"),
        (r"date|time|published", "date"),
        (r"location|address|place", "location"),
        (r"phone|contact|number", "contact"),
    )
)

_TARGETS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("product",), "products"),
    (("article", "post"), "articles"),
    (("news", "story"), "news"),
    (("job", "career"), "jobs"),
    (("event", "meeting"), "events"),
    (("review", "rating"), "reviews"),
    (("item", "listing"), "items"),
)

_INSTRUCTIONS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("all", "every"), "Extract all available items"),
    (("first", "top"), "Extract only the first/top items"),
    (("latest", "recent"), "Focus on latest/recent content"),
    (("detailed", "complete"), "Extract detailed information"),
    (("brief", "short"), "Extract brief information only"),
)

_SELECTORS = {
    "title": "h1, .title, .product-title, .item-title",
    "price": '.price, .cost, .amount, [class*="price"]',
    "description": ".description, .content, .details, p",
    "link": "a@href",
    "image": "img@src",
    "rating": '.rating, .stars, .score, [class*="rating"]',
    "availability": ".availability, .stock, .inventory",
    "category": ".category, .type, .genre, .tag",
    "author": ".author, .writer, .byline",
    "date": ".date, .time, .published, time",
    "location": ".location, .address, .place",
    "contact": ".phone, .contact, .number",
}


@dataclass(frozen=True)
class ParsedPrompt:
    action: Action
    target: str
    fields: tuple[str, ...]
    format: OutputFormat
    additional_instructions: Optional[str] = None

    @property
    def field_spec(self) -> FieldSpec:
        return FieldSpec(target=self.target, fields=self.fields)


def _detect_action(lowered: str) -> Action:
    if "extract" in lowered or "get" in lowered:
        return "extract"
    if "analyze" in lowered or "summarize" in lowered:
        return "analyze"
    return "scrape"


def _detect_format(lowered: str) -> OutputFormat:
    if "json" in lowered:
        return "json"
    if "text" in lowered or "summary" in lowered:
        return "text"
    return "csv"


def _detect_target(lowered: str) -> str:
    for keywords, target in _TARGETS:
        if any(k in lowered for k in keywords):
            return target
    return "content"


def _detect_fields(prompt: str) -> tuple[str, ...]:
    fields = [name for pattern, name in _FIELD_PATTERNS if pattern.search(prompt)]
    return tuple(dict.fromkeys(fields)) or DEFAULT_FIELDS


def _detect_instructions(prompt: str) -> Optional[str]:
    found = [text for keywords, text in _INSTRUCTIONS if any(k in prompt for k in keywords)]
    return ". ".join(found) if found else None


def parse_prompt(prompt: str) -> ParsedPrompt:
    """Turn a free-form request into action, target, fields and format."""
    lowered = prompt.lower()
    parsed = ParsedPrompt(
        action=_detect_action(lowered),
        target=_detect_target(lowered),
        fields=_detect_fields(prompt),
        format=_detect_format(lowered),
        additional_instructions=_detect_instructions(lowered),
    )
    logger.debug(f"Parsed prompt {prompt!r}: {parsed}")
    return parsed


def generate_selector_schema(parsed: ParsedPrompt) -> dict[str, str]:
    """Map each parsed field to a CSS selector group for schema extraction."""
    return {
        name: _SELECTORS.get(name, f'.{name}, [class*="{name}"]')
        for name in parsed.fields
    }
