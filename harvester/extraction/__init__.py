"""Structured extraction package: model path, heuristic floor and DOM schema."""

from harvester.extraction.chunker import chunk_text
from harvester.extraction.extractor import ChunkedStructuredExtractor, has_sufficient_content
from harvester.extraction.heuristic import extract_heuristic
from harvester.extraction.recovery import dedupe_records, recover_records
from harvester.extraction.schema import extract_with_schema

__all__ = [
    "ChunkedStructuredExtractor",
    "chunk_text",
    "dedupe_records",
    "extract_heuristic",
    "extract_with_schema",
    "has_sufficient_content",
    "recover_records",
]
