"""Chunked, model-assisted structured extraction.

``ChunkedStructuredExtractor.extract`` runs, in order:

    sufficiency gate → chunk → one completion per chunk (bounded thread
    pool) → multi-strategy response recovery → first-wins de-duplication

Chunk completions run concurrently, but results are consumed on the calling
thread in chunk order, so the de-duplication set has a single writer and the
"first occurrence wins" rule is deterministic.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Optional

from harvester.config import Settings
from harvester.errors import ExtractionRecoveryFailure, InsufficientContent
from harvester.extraction.chunker import chunk_text
from harvester.extraction.prompts import build_extraction_prompt
from harvester.extraction.recovery import recover_records
from harvester.llm.client import CompletionClient
from harvester.scraper.fetcher import is_challenge_page
from harvester.scraper.models import (
    ContentDocument,
    ExtractedRecord,
    ExtractionOutcome,
    FieldSpec,
    record_key,
)

logger = logging.getLogger(__name__)


def ensure_sufficient_content(document: ContentDocument, settings: Settings) -> None:
    """Raise :class:`InsufficientContent` for empty pages and challenge pages."""
    length = len(document.full_text)
    if length < settings.min_content_length:
        raise InsufficientContent(
            f"Page text is {length} chars (minimum {settings.min_content_length})"
        )
    signatures = settings.challenge_signatures
    if is_challenge_page(document.title, signatures) or is_challenge_page(
        document.full_text, signatures
    ):
        raise InsufficientContent(f"Challenge page detected: {document.title!r}")


def has_sufficient_content(document: ContentDocument, settings: Settings) -> bool:
    try:
        ensure_sufficient_content(document, settings)
    except InsufficientContent:
        return False
    return True


class ChunkedStructuredExtractor:
    """Derive records from a document with a text-completion collaborator."""

    def __init__(self, client: CompletionClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    def extract(
        self,
        document: ContentDocument,
        field_spec: FieldSpec,
        original_prompt: str,
        chunk_size: int | None = None,
    ) -> ExtractionOutcome:
        """Extract records for *field_spec* from *document*.

        Args:
            document: Segmented page content.
            field_spec: Target label and requested field names.
            original_prompt: The user's request, embedded verbatim in every
                chunk prompt.
            chunk_size: Overrides ``settings.chunk_size`` for this call.

        Returns:
            An outcome tagged ``source="model"``.  ``sufficient_content`` is
            ``False`` (and no completion is requested) when the page is too
            short or is a challenge page.

        Raises:
            ExtractionRecoveryFailure: If every chunk either raised or
                returned an unreadable response.
        """
        try:
            ensure_sufficient_content(document, self.settings)
        except InsufficientContent as exc:
            logger.warning(f"{exc}; returning no records to prevent fabricated data")
            return ExtractionOutcome(records=(), source="model", sufficient_content=False)

        chunks = chunk_text(document.full_text, chunk_size or self.settings.chunk_size)
        if not chunks:
            return ExtractionOutcome(records=(), source="model", sufficient_content=True)
        prompts = [build_extraction_prompt(c, field_spec, original_prompt) for c in chunks]
        logger.info(f"Processing {len(chunks)} content chunk(s) for model extraction")

        aggregated: list[ExtractedRecord] = []
        seen: set[str] = set()
        failures = 0

        for idx, response in enumerate(self._complete_all(prompts), start=1):
            if response is None:
                failures += 1
                continue

            records = recover_records(response)
            if records is None:
                logger.warning(f"Chunk {idx}/{len(chunks)}: response contains no parseable JSON")
                failures += 1
                continue

            logger.debug(f"Chunk {idx}/{len(chunks)}: {len(records)} record(s)")
            for record in records:
                key = record_key(record)
                if key not in seen:
                    seen.add(key)
                    aggregated.append(record)

        if failures == len(chunks):
            raise ExtractionRecoveryFailure(
                f"No chunk yielded a parseable record set ({failures} of {len(chunks)} failed)"
            )

        logger.info(f"Model extraction produced {len(aggregated)} unique record(s)")
        return ExtractionOutcome(
            records=tuple(aggregated),
            source="model",
            sufficient_content=True,
        )

    def _complete_all(self, prompts: list[str]) -> list[Optional[str]]:
        """Return one response per prompt, ``None`` where the call failed.

        At most ``max_concurrent_chunks`` calls are live at once.  A call
        still running ``completion_timeout`` seconds after it was started is
        abandoned: its chunk fails and its slot goes to the next queued
        chunk.  The pool has one worker per prompt, so a call is always
        picked up as soon as it is submitted and an abandoned call never
        holds a worker a later chunk needs.  Abandoned calls end on the
        client's own request timeout.
        """
        total = len(prompts)
        limit = max(1, min(self.settings.max_concurrent_chunks, total))
        timeout = self.settings.completion_timeout
        responses: list[Optional[str]] = [None] * total
        queued = deque(range(total))
        running: dict[Future, tuple[int, float]] = {}

        pool = ThreadPoolExecutor(max_workers=total)
        try:
            while queued or running:
                while queued and len(running) < limit:
                    idx = queued.popleft()
                    future = pool.submit(self._complete, prompts[idx])
                    running[future] = (idx, time.monotonic() + timeout)

                next_deadline = min(deadline for _, deadline in running.values())
                done, _ = wait(
                    list(running),
                    timeout=max(0.0, next_deadline - time.monotonic()),
                    return_when=FIRST_COMPLETED,
                )

                for future in done:
                    idx, _ = running.pop(future)
                    try:
                        responses[idx] = future.result()
                    except Exception as exc:  # noqa: BLE001
                        logger.warning(f"Chunk {idx + 1}/{total} failed: {exc}")

                now = time.monotonic()
                for future, (idx, deadline) in list(running.items()):
                    if deadline <= now:
                        del running[future]
                        future.cancel()
                        logger.warning(f"Chunk {idx + 1}/{total} timed out after {timeout}s")
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return responses

    def _complete(self, prompt: str) -> str:
        return self.client.complete(
            prompt,
            temperature=self.settings.completion_temperature,
            max_tokens=self.settings.completion_max_tokens,
        )
