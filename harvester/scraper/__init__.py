"""Scraper package: page acquisition and content segmentation."""

from harvester.scraper.fetcher import PageAcquirer
from harvester.scraper.models import ContentDocument, PageSnapshot, ScrapeRequest
from harvester.scraper.segmenter import segment

__all__ = ["PageAcquirer", "segment", "PageSnapshot", "ContentDocument", "ScrapeRequest"]
