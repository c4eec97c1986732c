"""High-level orchestration of one scrape request.

``ExtractionOrchestrator.run`` sequences the pipeline as a small state
machine::

    Acquire → Segment → Extract(model) → [Fallback?] → Done
       │          │
       └──────────┴──── failure → Done (success=False)

Expected failures never raise out of :meth:`run`; they come back as a
:class:`ScrapeResult` with ``success=False`` and a readable ``error``.
:meth:`run_many` runs a batch of requests in order, isolating failures per
URL.  :meth:`analyze` renders a page and returns a free-text
:class:`~harvester.analysis.ContentAnalysis` instead of records.

Fallback policies (``Settings.fallback_policy``)
------------------------------------------------
``merge`` (default)
    When the model path is unavailable, raises, hits the sufficiency gate or
    returns fewer than ``min_model_records`` records, the heuristic extractor
    (or the DOM-schema extractor, if the inference service is down and the
    request carries selectors) runs and its records are appended after the
    model's, de-duplicated by canonical JSON.
``strict``
    No fallback: anything short of a non-empty model result is a failure.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from harvester.analysis import (
    ANALYSIS_PROMPTS,
    DEFAULT_ANALYSIS_CHUNK_SIZE,
    ContentAnalysis,
    ContentAnalyzer,
)
from harvester.config import Settings
from harvester.errors import (
    AcquisitionFailure,
    CollaboratorUnavailable,
    ExtractionRecoveryFailure,
    InsufficientContent,
    SegmentationFailure,
)
from harvester.extraction.extractor import ChunkedStructuredExtractor, has_sufficient_content
from harvester.extraction.heuristic import extract_heuristic
from harvester.extraction.recovery import dedupe_records
from harvester.extraction.schema import extract_with_schema
from harvester.llm.client import CompletionClient, LangChainCompletionClient
from harvester.scraper.fetcher import PageAcquirer
from harvester.scraper.models import (
    ContentDocument,
    ExtractedRecord,
    ExtractionOutcome,
    PageSnapshot,
    ScrapeRequest,
)
from harvester.scraper.segmenter import segment

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = "Scraping failed - no data extracted"


@dataclass(frozen=True)
class ScrapeResult:
    """Terminal state of one request."""

    success: bool
    message: str
    outcome: Optional[ExtractionOutcome] = None
    snapshot: Optional[PageSnapshot] = None
    document: Optional[ContentDocument] = None
    error: Optional[str] = None

    @property
    def records(self) -> list[ExtractedRecord]:
        return list(self.outcome.records) if self.outcome else []


@dataclass(frozen=True)
class AnalysisResult:
    """Terminal state of one analysis request."""

    success: bool
    message: str
    analysis: Optional[ContentAnalysis] = None
    snapshot: Optional[PageSnapshot] = None
    error: Optional[str] = None


class ExtractionOrchestrator:
    """Wire acquirer, segmenter and extractors into one request pipeline."""

    def __init__(
        self,
        settings: Settings,
        acquirer: Optional[PageAcquirer] = None,
        client: Optional[CompletionClient] = None,
        extractor: Optional[ChunkedStructuredExtractor] = None,
    ) -> None:
        self.settings = settings
        self.acquirer = acquirer or PageAcquirer(settings)
        self.client = client or LangChainCompletionClient(settings)
        self.extractor = extractor or ChunkedStructuredExtractor(self.client, settings)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, request: ScrapeRequest, original_prompt: str = "") -> ScrapeResult:
        """Process *request* end to end.

        Args:
            request: What to scrape and which fields to extract.
            original_prompt: The user's free-form request, forwarded to the
                model prompt.  Defaults to a sentence built from the target.

        Returns:
            A :class:`ScrapeResult`.  ``outcome.source`` names the path that
            produced the final record set.
        """
        started = time.monotonic()
        prompt = original_prompt or f"Extract {request.field_spec.target} from the page"
        logger.info(f"Processing request for {request.url}")

        # ------------------------------------------------------------------
        # 1: Acquire
        # ------------------------------------------------------------------
        try:
            snapshot = self.acquirer.acquire(
                request.url,
                request.max_scroll_attempts,
                request.scroll_delay_ms,
            )
        except AcquisitionFailure as exc:
            logger.error(f"Acquisition failed for {request.url}: {exc}")
            elapsed = int((time.monotonic() - started) * 1000)
            return ScrapeResult(
                success=False,
                message=f"Scraping failed: {exc}",
                snapshot=PageSnapshot.failed(request.url, str(exc), elapsed),
                error=str(exc),
            )

        # ------------------------------------------------------------------
        # 2: Segment
        # ------------------------------------------------------------------
        try:
            document = segment(snapshot.raw_html, url=snapshot.url)
        except SegmentationFailure as exc:
            logger.error(f"Segmentation failed for {request.url}: {exc}")
            return ScrapeResult(
                success=False,
                message=f"Scraping failed: {exc}",
                snapshot=snapshot,
                error=str(exc),
            )

        # ------------------------------------------------------------------
        # 3: Model extraction
        # ------------------------------------------------------------------
        available = self._inference_available()
        outcome: Optional[ExtractionOutcome] = None
        model_error: Optional[str] = None

        if available:
            try:
                outcome = self.extractor.extract(
                    document,
                    request.field_spec,
                    prompt,
                    chunk_size=request.chunk_size_chars,
                )
            except (ExtractionRecoveryFailure, CollaboratorUnavailable) as exc:
                model_error = str(exc)
                logger.warning(f"Model extraction failed: {exc}")
            except Exception as exc:  # noqa: BLE001
                model_error = f"Model extraction failed: {exc}"
                logger.exception("Unexpected error in model extraction")

        # ------------------------------------------------------------------
        # 4: Policy
        # ------------------------------------------------------------------
        if self.settings.fallback_policy == "strict":
            return self._finish_strict(snapshot, document, available, outcome, model_error)
        return self._finish_merge(request, snapshot, document, available, outcome)

    def run_many(
        self,
        requests: Sequence[ScrapeRequest],
        original_prompt: str = "",
    ) -> list[ScrapeResult]:
        """Process *requests* one after another, one result per request.

        A request that fails, even with an unexpected exception, yields a
        failed :class:`ScrapeResult` and does not stop the batch.
        """
        results: list[ScrapeResult] = []
        total = len(requests)
        for idx, request in enumerate(requests, start=1):
            logger.info(f"Processing URL {idx}/{total}: {request.url}")
            try:
                result = self.run(request, original_prompt)
            except Exception as exc:  # noqa: BLE001
                logger.exception(f"Unexpected error while processing {request.url}")
                result = ScrapeResult(
                    success=False,
                    message=f"Scraping failed: {exc}",
                    snapshot=PageSnapshot.failed(request.url, str(exc)),
                    error=str(exc),
                )
            results.append(result)

        succeeded = sum(1 for result in results if result.success)
        logger.info(f"Batch finished: {succeeded}/{total} URL(s) succeeded")
        return results

    def analyze(
        self,
        url: str,
        analysis_type: str = "summary",
        max_scroll_attempts: Optional[int] = None,
        scroll_delay_ms: Optional[int] = None,
        chunk_size: int = DEFAULT_ANALYSIS_CHUNK_SIZE,
    ) -> AnalysisResult:
        """Render *url* and run a free-text analysis of its content.

        Raises:
            ValueError: If *analysis_type* is unknown.
        """
        if analysis_type not in ANALYSIS_PROMPTS:
            raise ValueError(
                f"analysis_type must be one of {', '.join(ANALYSIS_PROMPTS)}, got {analysis_type!r}"
            )
        logger.info(f"Analysing {url} ({analysis_type})")

        try:
            snapshot = self.acquirer.acquire(
                url,
                self.settings.max_scroll_attempts if max_scroll_attempts is None else max_scroll_attempts,
                self.settings.scroll_delay_ms if scroll_delay_ms is None else scroll_delay_ms,
            )
            document = segment(snapshot.raw_html, url=snapshot.url)
        except (AcquisitionFailure, SegmentationFailure) as exc:
            logger.error(f"Analysis failed for {url}: {exc}")
            return AnalysisResult(success=False, message=f"Analysis failed: {exc}", error=str(exc))

        if not self._inference_available():
            return AnalysisResult(
                success=False,
                message="Analysis failed: AI service unavailable",
                snapshot=snapshot,
                error="AI service unavailable",
            )

        try:
            analysis = ContentAnalyzer(self.client, self.settings).analyze(
                document.full_text, analysis_type, chunk_size
            )
        except (InsufficientContent, CollaboratorUnavailable) as exc:
            logger.warning(f"Analysis failed for {url}: {exc}")
            return AnalysisResult(
                success=False,
                message=f"Analysis failed: {exc}",
                snapshot=snapshot,
                error=str(exc),
            )

        message = f"Analysed {analysis.chunks_analyzed} chunk(s) via {analysis_type}"
        logger.info(message)
        return AnalysisResult(success=True, message=message, analysis=analysis, snapshot=snapshot)

    def health(self) -> dict[str, bool]:
        """Return the availability of external collaborators."""
        return {"inference": self._inference_available()}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _inference_available(self) -> bool:
        try:
            return bool(self.client.is_available())
        except Exception as exc:  # noqa: BLE001
            logger.warning(f"Inference availability check failed: {exc}")
            return False

    def _finish_strict(
        self,
        snapshot: PageSnapshot,
        document: ContentDocument,
        available: bool,
        outcome: Optional[ExtractionOutcome],
        model_error: Optional[str],
    ) -> ScrapeResult:
        if not available:
            error = "AI service unavailable"
        elif model_error is not None:
            error = model_error
        elif outcome is None or not outcome.records:
            error = NO_DATA_MESSAGE
        else:
            return self._success(snapshot, document, outcome)

        logger.warning(f"Request failed under strict policy: {error}")
        return ScrapeResult(
            success=False,
            message=error if error == NO_DATA_MESSAGE else f"Scraping failed: {error}",
            outcome=outcome,
            snapshot=snapshot,
            document=document,
            error=error,
        )

    def _finish_merge(
        self,
        request: ScrapeRequest,
        snapshot: PageSnapshot,
        document: ContentDocument,
        available: bool,
        outcome: Optional[ExtractionOutcome],
    ) -> ScrapeResult:
        model_records = list(outcome.records) if outcome else []
        sufficient = (
            outcome.sufficient_content if outcome else has_sufficient_content(document, self.settings)
        )

        if model_records and len(model_records) >= self.settings.min_model_records:
            return self._success(snapshot, document, outcome)

        if not available and request.selectors:
            logger.info("Inference unavailable; falling back to schema extraction")
            fallback_source = "schema"
            try:
                fallback = extract_with_schema(snapshot.raw_html, request.selectors)
            except CollaboratorUnavailable as exc:
                logger.warning(f"Schema extraction failed, using heuristics instead: {exc}")
                fallback_source = "heuristic"
                fallback = extract_heuristic(document, request.field_spec)
        else:
            logger.info(
                f"Model produced {len(model_records)} record(s); falling back to heuristics"
            )
            fallback_source = "heuristic"
            fallback = extract_heuristic(document, request.field_spec)

        records = dedupe_records(model_records + fallback)
        if model_records and len(records) > len(model_records):
            source = "merged"
        elif model_records:
            source = "model"
        else:
            source = fallback_source

        final = ExtractionOutcome(records=tuple(records), source=source, sufficient_content=sufficient)
        if not records:
            return ScrapeResult(
                success=False,
                message=NO_DATA_MESSAGE,
                outcome=final,
                snapshot=snapshot,
                document=document,
                error=NO_DATA_MESSAGE,
            )
        return self._success(snapshot, document, final)

    @staticmethod
    def _success(
        snapshot: PageSnapshot,
        document: ContentDocument,
        outcome: ExtractionOutcome,
    ) -> ScrapeResult:
        message = f"Extracted {len(outcome.records)} record(s) via {outcome.source}"
        logger.info(message)
        return ScrapeResult(
            success=True,
            message=message,
            outcome=outcome,
            snapshot=snapshot,
            document=document,
        )
