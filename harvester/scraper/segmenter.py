"""Content segmentation: turns rendered HTML into a :class:`ContentDocument`.

Boilerplate (scripts, styles, navigation chrome, ad/sponsor/promo blocks) is
stripped first, so nothing downstream ever sees it.  Sections are then
collected in four independent passes (headings, paragraphs, lists, tables)
and concatenated in that order.
"""

from __future__ import annotations

import logging
import re
from typing import List

from bs4 import BeautifulSoup

from harvester.errors import SegmentationFailure
from harvester.scraper.models import (
    ContentDocument,
    ContentSection,
    Heading,
    ListSection,
    Paragraph,
    Table,
)

logger = logging.getLogger(__name__)

# Paragraphs/tables at or below these lengths are never turned into sections.
MIN_PARAGRAPH_CHARS = 20
MIN_TABLE_CHARS = 50

_HEADING_TAGS = ["h1", "h2", "h3", "h4", "h5", "h6"]

_NOISE_TAGS = ["script", "style", "noscript", "nav", "header", "footer", "aside"]

_NOISE_SELECTORS = (
    ".advertisement, .ads, .sidebar, "
    '[class*="ad-"], [class*="sponsor"], [class*="promo"], '
    "[data-ad], [data-sponsor], [data-promo]"
)

_WHITESPACE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _clean(text: str) -> str:
    """Collapse runs of whitespace to single spaces and trim."""
    return _WHITESPACE.sub(" ", text).strip()


def _strip_noise(soup: BeautifulSoup) -> None:
    """Remove non-content elements in place."""
    for tag in soup(_NOISE_TAGS):
        if not tag.decomposed:
            tag.decompose()
    for tag in soup.select(_NOISE_SELECTORS):
        # A matched ancestor may already have taken this node with it.
        if not tag.decomposed:
            tag.decompose()


def _extract_title(soup: BeautifulSoup) -> str:
    if soup.title is not None:
        title = _clean(soup.title.get_text())
        if title:
            return title
    heading = soup.find(_HEADING_TAGS)
    if heading is not None:
        text = _clean(heading.get_text())
        if text:
            return text
    return "Untitled"


def _extract_text(soup: BeautifulSoup) -> str:
    container = soup.body or soup
    return _clean(container.get_text(separator=" "))


def _extract_links(soup: BeautifulSoup) -> List[str]:
    """Return de-duplicated ``href`` values, skipping fragments and scripts."""
    links: dict[str, None] = {}
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith("#") or href.lower().startswith("javascript:"):
            continue
        links.setdefault(href, None)
    return list(links)


def _extract_images(soup: BeautifulSoup) -> List[str]:
    images: dict[str, None] = {}
    for img in soup.find_all("img", src=True):
        src = img["src"].strip()
        if src:
            images.setdefault(src, None)
    return list(images)


def _extract_metadata(soup: BeautifulSoup) -> dict[str, str]:
    metadata: dict[str, str] = {}
    for meta in soup.find_all("meta"):
        name = meta.get("name") or meta.get("property")
        content = meta.get("content")
        if name and content:
            metadata[name] = content
    return metadata


def _extract_sections(soup: BeautifulSoup) -> List[ContentSection]:
    sections: List[ContentSection] = []

    for tag in soup.find_all(_HEADING_TAGS):
        text = _clean(tag.get_text(separator=" "))
        if text:
            sections.append(Heading(level=int(tag.name[1]), text=text))

    for tag in soup.find_all("p"):
        text = _clean(tag.get_text(separator=" "))
        if len(text) > MIN_PARAGRAPH_CHARS:
            sections.append(Paragraph(text=text))

    for tag in soup.find_all(["ul", "ol"]):
        items = [
            _clean(li.get_text(separator=" "))
            for li in tag.find_all("li")
        ]
        items = [item for item in items if item]
        if items:
            sections.append(ListSection(text="\n".join(items), items=tuple(items)))

    for tag in soup.find_all("table"):
        text = _clean(tag.get_text(separator=" "))
        if len(text) > MIN_TABLE_CHARS:
            sections.append(Table(text=text))

    return sections


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def segment(html: str, url: str = "") -> ContentDocument:
    """Parse *html* into a :class:`ContentDocument`.

    Args:
        html: Serialized page HTML, typically ``PageSnapshot.raw_html``.
        url: Effective page URL, carried through for per-record ``link``
            values.

    Raises:
        SegmentationFailure: If the parser itself fails.  ``html.parser`` is
            permissive, so in practice this only happens on non-string input.
    """
    try:
        soup = BeautifulSoup(html or "", "html.parser")
        metadata = _extract_metadata(soup)
        _strip_noise(soup)
        title = _extract_title(soup)
        sections = _extract_sections(soup)
        document = ContentDocument(
            title=title,
            full_text=_extract_text(soup),
            sections=tuple(sections),
            links=tuple(_extract_links(soup)),
            images=tuple(_extract_images(soup)),
            heading_texts=tuple(s.text for s in sections if isinstance(s, Heading)),
            metadata=metadata,
            url=url,
        )
    except (TypeError, ValueError, AttributeError) as exc:
        raise SegmentationFailure(f"Could not parse HTML: {exc}") from exc

    logger.info(
        f"Parsed content: {len(document.sections)} sections, {len(document.links)} links"
    )
    return document
