"""Request orchestration package.

Public API::

    from harvester.pipeline import ExtractionOrchestrator
    result = ExtractionOrchestrator(Settings()).run(request, "scrape products and prices")
"""

from harvester.pipeline.orchestrator import AnalysisResult, ExtractionOrchestrator, ScrapeResult

__all__ = ["AnalysisResult", "ExtractionOrchestrator", "ScrapeResult"]
