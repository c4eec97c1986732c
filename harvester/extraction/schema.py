"""Schema-based DOM extraction.

A schema maps field names to CSS selectors.  A selector may end in
``@attribute`` to read an attribute instead of text (``a@href``,
``img@src``); comma-separated selectors are tried as one group, as CSS
does.  The n-th match of every field is zipped into record n.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from bs4 import BeautifulSoup
from soupsieve import SelectorSyntaxError

from harvester.errors import CollaboratorUnavailable
from harvester.scraper.models import ExtractedRecord

logger = logging.getLogger(__name__)

# Common schemas for different types of content.
COMMON_SCHEMAS: dict[str, dict[str, str]] = {
    "news_article": {
        "title": "h1",
        "content": ".article-content p, .content p",
        "author": ".author",
        "date": ".date, .published",
    },
    "product": {
        "name": "h1, .product-title",
        "price": ".price, .cost",
        "description": ".description, .product-description",
        "image": "img@src",
        "rating": ".rating, .stars",
        "availability": ".availability, .stock",
    },
    "blog_post": {
        "title": "h1, .post-title",
        "content": ".post-content p, .entry-content p",
        "author": ".author, .byline",
        "date": ".date, .published, time",
    },
}


def _split_selector(selector: str) -> tuple[str, Optional[str]]:
    """Split ``"a.more@href"`` into ``("a.more", "href")``."""
    css, sep, attribute = selector.rpartition("@")
    if not sep or not css.strip():
        return selector.strip(), None
    return css.strip(), attribute.strip() or None


def _select_values(soup: BeautifulSoup, selector: str) -> list[str]:
    css, attribute = _split_selector(selector)
    values: list[str] = []
    for element in soup.select(css):
        if attribute:
            value = element.get(attribute)
            if isinstance(value, list):
                value = " ".join(value)
        else:
            value = " ".join(element.get_text(separator=" ").split())
        if value:
            values.append(value)
    return values


def extract_with_schema(html: str, schema: Mapping[str, str]) -> list[ExtractedRecord]:
    """Apply *schema* to *html* and return one record per match position.

    Raises:
        CollaboratorUnavailable: If a selector in *schema* is not valid CSS.
    """
    if not schema:
        return []

    soup = BeautifulSoup(html or "", "html.parser")
    columns: dict[str, list[str]] = {}
    for name, selector in schema.items():
        try:
            columns[name] = _select_values(soup, selector)
        except SelectorSyntaxError as exc:
            raise CollaboratorUnavailable(f"Invalid selector for {name!r}: {selector!r}") from exc

    total = max((len(values) for values in columns.values()), default=0)
    records: list[ExtractedRecord] = []
    for idx in range(total):
        records.append(
            {name: values[idx] if idx < len(values) else None for name, values in columns.items()}
        )

    logger.info(f"Schema extraction matched {len(records)} record(s) for {len(schema)} field(s)")
    return records
