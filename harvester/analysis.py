"""Free-text analysis of a scraped page with the completion client.

Unlike the structured extraction path, analysis returns prose: the page
text is split into windows, each window is analysed on its own with the
requested prompt, and the joined partial answers are then summarised,
condensed into key points and categorised in three final calls.

Analysis types
--------------
``summary``     concise summary of the main topics
``extract``     key facts and data points
``categorize``  main category, subcategories and key topics
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from harvester.config import Settings
from harvester.errors import CollaboratorUnavailable, InsufficientContent
from harvester.extraction.chunker import chunk_text
from harvester.llm.client import CompletionClient

logger = logging.getLogger(__name__)

ANALYSIS_PROMPTS: dict[str, str] = {
    "summary": (
        "Please provide a concise summary of the following web content. "
        "Focus on the main topics, key information, and important details:"
        "\n\n{content}\n\nSummary:"
    ),
    "extract": (
        "Extract the most important information from the following web content. "
        "Return only the key facts, data points, and relevant details in a structured format:"
        "\n\n{content}\n\nKey Information:"
    ),
    "categorize": (
        "Analyze the following web content and categorize it. "
        "Provide the main category, subcategories, and key topics:"
        "\n\n{content}\n\nCategorization:"
    ),
}

ANALYSIS_TEMPERATURE = 0.3
DEFAULT_ANALYSIS_CHUNK_SIZE = 2000


@dataclass(frozen=True)
class ContentAnalysis:
    analysis_type: str
    analysis: str
    summary: str
    key_points: str
    categories: str
    chunks_analyzed: int


class ContentAnalyzer:
    """Run chunked free-text analysis through a :class:`CompletionClient`."""

    def __init__(self, client: CompletionClient, settings: Settings) -> None:
        self.client = client
        self.settings = settings

    def analyze(
        self,
        text: str,
        analysis_type: str = "summary",
        chunk_size: int = DEFAULT_ANALYSIS_CHUNK_SIZE,
    ) -> ContentAnalysis:
        """Analyse *text* and return the combined answers.

        Raises:
            ValueError: If *analysis_type* is unknown.
            InsufficientContent: If *text* is blank.
            CollaboratorUnavailable: If every window failed, or one of the
                three final calls failed.
        """
        if analysis_type not in ANALYSIS_PROMPTS:
            raise ValueError(
                f"analysis_type must be one of {', '.join(ANALYSIS_PROMPTS)}, got {analysis_type!r}"
            )
        if not text.strip():
            raise InsufficientContent("No text content to analyse")

        chunks = chunk_text(text, chunk_size)
        partials: list[str] = []
        for idx, chunk in enumerate(chunks, start=1):
            logger.info(f"Analysing chunk {idx}/{len(chunks)} ({analysis_type})")
            try:
                partials.append(self._ask(analysis_type, chunk))
            except CollaboratorUnavailable as exc:
                logger.warning(f"Analysis of chunk {idx}/{len(chunks)} failed: {exc}")

        if not partials:
            raise CollaboratorUnavailable(f"No chunk could be analysed ({len(chunks)} tried)")

        combined = "\n\n".join(partials)
        return ContentAnalysis(
            analysis_type=analysis_type,
            analysis=combined,
            summary=self._ask("summary", combined),
            key_points=self._ask("extract", combined),
            categories=self._ask("categorize", combined),
            chunks_analyzed=len(partials),
        )

    def _ask(self, analysis_type: str, content: str) -> str:
        prompt = ANALYSIS_PROMPTS[analysis_type].format(content=content)
        return self.client.complete(prompt, temperature=ANALYSIS_TEMPERATURE).strip()
