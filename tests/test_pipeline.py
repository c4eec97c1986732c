"""Tests for ExtractionOrchestrator: the request state machine and both
fallback policies.

Mocking strategy:
- The page acquirer is a ``MagicMock`` whose ``acquire`` returns a canned
  :class:`PageSnapshot` (or raises ``AcquisitionFailure``); segmentation
  runs for real on the snapshot HTML.
- The completion client is :class:`FakeClient`.  ``literal_model`` mimics
  a well-behaved model by copying ``Product N - $X.XX`` pairs out of the
  chunk embedded in the prompt.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from typing import Callable, Optional
from unittest.mock import MagicMock, patch

import pytest
from playwright.sync_api import Error as PlaywrightError

from harvester.config import Settings
from harvester.errors import AcquisitionFailure
from harvester.pipeline import AnalysisResult, ExtractionOrchestrator, ScrapeResult
from harvester.pipeline.orchestrator import NO_DATA_MESSAGE
from harvester.scraper.models import FieldSpec, PageSnapshot, ScrapeRequest

PRODUCTS = FieldSpec(target="products", fields=("title", "price"))

_PRODUCT_PAIR = re.compile(r"(Product \d+) - (\$\d+\.\d{2})")

_CATALOGUE_HTML = """
<html><head><title>Shop</title></head><body>
  <p>Product 1 - $10.00</p>
  <p>Product 2 - $20.00</p>
</body></html>
"""

# Paragraphs long enough to survive segmentation, for the heuristic path.
_WIDGET_HTML = """
<html><head><title>Widgets</title></head><body>
  <p>Widget A - $12.50 with free shipping</p>
  <p>Widget B - $30.00 ships next week</p>
  <span class="name">Widget A</span><span class="price">$12.50</span>
</body></html>
"""


# ---------------------------------------------------------------------------
# Fixtures / helpers
# ---------------------------------------------------------------------------

def literal_model(prompt: str) -> str:
    items = [{"title": t, "price": p} for t, p in _PRODUCT_PAIR.findall(prompt)]
    return json.dumps(items)


class FakeClient:
    def __init__(
        self,
        responder: Callable[[str], str] = literal_model,
        available: bool = True,
    ) -> None:
        self.responder = responder
        self.available = available
        self.calls = 0

    def complete(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        self.calls += 1
        return self.responder(prompt)

    def is_available(self) -> bool:
        return self.available


def _snapshot(html: str, url: str = "https://shop.example") -> PageSnapshot:
    return PageSnapshot(
        url=url,
        title="Shop",
        raw_text="",
        raw_html=html,
        fetched_at=datetime.now(timezone.utc),
        processing_time_ms=5,
        content_length=len(html),
    )


def _acquirer(html: str = _CATALOGUE_HTML) -> MagicMock:
    acquirer = MagicMock(name="acquirer")
    acquirer.acquire.return_value = _snapshot(html)
    return acquirer


def _request(**overrides) -> ScrapeRequest:
    values = dict(url="https://shop.example", field_spec=PRODUCTS, max_scroll_attempts=3)
    values.update(overrides)
    return ScrapeRequest(**values)


def _orchestrator(
    client: FakeClient,
    html: str = _CATALOGUE_HTML,
    **settings_overrides,
) -> ExtractionOrchestrator:
    values = dict(min_content_length=10, fallback_policy="merge")
    values.update(settings_overrides)
    return ExtractionOrchestrator(Settings(**values), acquirer=_acquirer(html), client=client)


# ---------------------------------------------------------------------------
# End to end
# ---------------------------------------------------------------------------

class TestEndToEnd:
    def test_two_products_with_literal_prices(self) -> None:
        orchestrator = _orchestrator(FakeClient())
        result = orchestrator.run(_request(), "get products and prices")

        assert isinstance(result, ScrapeResult)
        assert result.success is True
        assert result.outcome is not None
        assert len(result.outcome.records) == 2
        assert [r["price"] for r in result.outcome.records] == ["$10.00", "$20.00"]
        assert result.outcome.source == "model"
        assert result.outcome.sufficient_content is True
        assert result.message == "Extracted 2 record(s) via model"

    def test_acquirer_receives_request_parameters(self) -> None:
        orchestrator = _orchestrator(FakeClient())
        orchestrator.run(_request(scroll_delay_ms=750))
        orchestrator.acquirer.acquire.assert_called_once_with("https://shop.example", 3, 750)

    def test_document_and_snapshot_are_reported(self) -> None:
        result = _orchestrator(FakeClient()).run(_request())
        assert result.snapshot is not None and result.snapshot.ok
        assert result.document is not None
        assert result.document.title == "Shop"

    def test_default_prompt_names_the_target(self) -> None:
        seen: list[str] = []

        def responder(prompt: str) -> str:
            seen.append(prompt)
            return literal_model(prompt)

        _orchestrator(FakeClient(responder)).run(_request())
        assert '"Extract products from the page"' in seen[0]


# ---------------------------------------------------------------------------
# Merge policy
# ---------------------------------------------------------------------------

class TestMergePolicy:
    def test_unavailable_inference_uses_heuristics(self) -> None:
        client = FakeClient(available=False)
        result = _orchestrator(client, html=_WIDGET_HTML).run(_request())

        assert result.success is True
        assert result.outcome.source == "heuristic"
        assert result.records[0] == {
            "title": "Widget A - $12.50 with free shipping",
            "price": "$12.50",
        }
        assert client.calls == 0

    def test_unavailable_inference_with_selectors_uses_schema(self) -> None:
        client = FakeClient(available=False)
        request = _request(selectors={"title": ".name", "price": ".price"})
        result = _orchestrator(client, html=_WIDGET_HTML).run(request)

        assert result.success is True
        assert result.outcome.source == "schema"
        assert result.records == [{"title": "Widget A", "price": "$12.50"}]

    def test_invalid_selectors_fall_back_to_heuristics(self) -> None:
        request = _request(selectors={"title": "div[["})
        result = _orchestrator(FakeClient(available=False), html=_WIDGET_HTML).run(request)
        assert result.outcome.source == "heuristic"

    def test_selectors_ignored_while_inference_is_up(self) -> None:
        request = _request(selectors={"title": ".name", "price": ".price"})
        result = _orchestrator(FakeClient(lambda p: "[]"), html=_WIDGET_HTML).run(request)
        assert result.outcome.source == "heuristic"

    def test_empty_model_result_falls_back(self) -> None:
        result = _orchestrator(FakeClient(lambda p: "[]"), html=_WIDGET_HTML).run(_request())
        assert result.success is True
        assert result.outcome.source == "heuristic"
        assert len(result.records) == 2

    def test_model_failure_falls_back(self) -> None:
        result = _orchestrator(
            FakeClient(lambda p: "I cannot do that."), html=_WIDGET_HTML
        ).run(_request())
        assert result.success is True
        assert result.outcome.source == "heuristic"

    def test_unexpected_model_error_falls_back(self) -> None:
        extractor = MagicMock()
        extractor.extract.side_effect = KeyError("boom")
        orchestrator = ExtractionOrchestrator(
            Settings(min_content_length=10),
            acquirer=_acquirer(_WIDGET_HTML),
            client=FakeClient(),
            extractor=extractor,
        )
        result = orchestrator.run(_request())
        assert result.success is True
        assert result.outcome.source == "heuristic"

    def test_partial_model_output_is_merged_first(self) -> None:
        def one_record(prompt: str) -> str:
            return '[{"title": "Widget A", "price": "$12.50"}]'

        result = _orchestrator(
            FakeClient(one_record), html=_WIDGET_HTML, min_model_records=2
        ).run(_request())

        assert result.outcome.source == "merged"
        assert result.records[0] == {"title": "Widget A", "price": "$12.50"}
        assert len(result.records) == 3

    def test_merge_deduplicates_against_model_records(self) -> None:
        def echo_heuristic(prompt: str) -> str:
            return '[{"price": "$12.50", "title": "Widget A - $12.50 with free shipping"}]'

        result = _orchestrator(
            FakeClient(echo_heuristic), html=_WIDGET_HTML, min_model_records=5
        ).run(_request())

        titles = [r["title"] for r in result.records]
        assert titles.count("Widget A - $12.50 with free shipping") == 1
        assert result.outcome.source == "merged"

    def test_challenge_page_flags_insufficient_content(self) -> None:
        html = (
            "<html><head><title>Just a moment...</title></head>"
            "<body><p>Checking your browser before accessing shop.example.</p></body></html>"
        )
        client = FakeClient()
        result = _orchestrator(client, html=html).run(_request())

        assert client.calls == 0
        assert result.outcome.sufficient_content is False
        assert result.outcome.source == "heuristic"

    def test_nothing_anywhere_is_a_failure(self) -> None:
        result = _orchestrator(FakeClient(available=False), html="<html></html>").run(_request())
        assert result.success is False
        assert result.message == NO_DATA_MESSAGE
        assert result.error == NO_DATA_MESSAGE


# ---------------------------------------------------------------------------
# Strict policy
# ---------------------------------------------------------------------------

class TestStrictPolicy:
    def test_model_records_succeed(self) -> None:
        result = _orchestrator(FakeClient(), fallback_policy="strict").run(_request())
        assert result.success is True
        assert result.outcome.source == "model"

    def test_unavailable_inference_fails(self) -> None:
        result = _orchestrator(
            FakeClient(available=False), html=_WIDGET_HTML, fallback_policy="strict"
        ).run(_request())
        assert result.success is False
        assert result.error == "AI service unavailable"
        assert result.message == "Scraping failed: AI service unavailable"

    def test_zero_records_fail(self) -> None:
        result = _orchestrator(
            FakeClient(lambda p: "[]"), html=_WIDGET_HTML, fallback_policy="strict"
        ).run(_request())
        assert result.success is False
        assert result.error == NO_DATA_MESSAGE
        assert result.message == NO_DATA_MESSAGE

    def test_recovery_failure_fails_with_reason(self) -> None:
        result = _orchestrator(
            FakeClient(lambda p: "nope"), html=_WIDGET_HTML, fallback_policy="strict"
        ).run(_request())
        assert result.success is False
        assert "No chunk yielded" in result.error
        assert result.message == f"Scraping failed: {result.error}"


# ---------------------------------------------------------------------------
# Acquisition failure / health
# ---------------------------------------------------------------------------

class TestAcquisitionFailure:
    def test_failure_is_terminal(self) -> None:
        acquirer = MagicMock()
        acquirer.acquire.side_effect = AcquisitionFailure("Navigation failed: net::ERR_NAME_NOT_RESOLVED")
        client = FakeClient()
        orchestrator = ExtractionOrchestrator(Settings(), acquirer=acquirer, client=client)

        result = orchestrator.run(_request())

        assert result.success is False
        assert "ERR_NAME_NOT_RESOLVED" in result.error
        assert result.snapshot is not None
        assert result.snapshot.ok is False
        assert result.snapshot.error_detail == result.error
        assert result.document is None
        assert result.outcome is None
        assert client.calls == 0

    def test_driver_start_failure_is_reported_not_raised(self) -> None:
        client = FakeClient()
        orchestrator = ExtractionOrchestrator(Settings(), client=client)

        with patch("harvester.scraper.fetcher.sync_playwright") as manager:
            manager.return_value.__enter__.side_effect = PlaywrightError(
                "Executable doesn't exist at /ms-playwright/chromium"
            )
            result = orchestrator.run(_request())

        assert result.success is False
        assert "Browser session start failed" in result.error
        assert result.snapshot is not None and result.snapshot.ok is False
        assert client.calls == 0


class TestHealth:
    @pytest.mark.parametrize("available", [True, False])
    def test_reports_inference(self, available: bool) -> None:
        orchestrator = _orchestrator(FakeClient(available=available))
        assert orchestrator.health() == {"inference": available}

    def test_availability_check_exception_means_unavailable(self) -> None:
        client = MagicMock()
        client.is_available.side_effect = RuntimeError("check exploded")
        orchestrator = ExtractionOrchestrator(Settings(), acquirer=MagicMock(), client=client)
        assert orchestrator.health() == {"inference": False}


# ---------------------------------------------------------------------------
# Batch
# ---------------------------------------------------------------------------

class TestRunMany:
    def test_one_result_per_url_in_order(self) -> None:
        orchestrator = _orchestrator(FakeClient())
        requests = [_request(url="https://a.example"), _request(url="https://b.example")]

        results = orchestrator.run_many(requests, "get products and prices")

        assert len(results) == 2
        assert all(r.success for r in results)
        called = [c.args[0] for c in orchestrator.acquirer.acquire.call_args_list]
        assert called == ["https://a.example", "https://b.example"]

    def test_failed_url_does_not_stop_the_batch(self) -> None:
        acquirer = MagicMock()
        acquirer.acquire.side_effect = [
            AcquisitionFailure("Navigation failed: net::ERR_NAME_NOT_RESOLVED"),
            _snapshot(_CATALOGUE_HTML),
        ]
        orchestrator = ExtractionOrchestrator(
            Settings(min_content_length=10), acquirer=acquirer, client=FakeClient()
        )

        first, second = orchestrator.run_many(
            [_request(url="https://gone.example"), _request(url="https://shop.example")]
        )

        assert first.success is False
        assert "ERR_NAME_NOT_RESOLVED" in first.error
        assert second.success is True
        assert len(second.records) == 2

    def test_unexpected_error_becomes_a_failed_result(self) -> None:
        acquirer = MagicMock()
        acquirer.acquire.side_effect = [RuntimeError("driver crashed"), _snapshot(_CATALOGUE_HTML)]
        orchestrator = ExtractionOrchestrator(
            Settings(min_content_length=10), acquirer=acquirer, client=FakeClient()
        )

        first, second = orchestrator.run_many(
            [_request(url="https://a.example"), _request(url="https://b.example")]
        )

        assert first.success is False
        assert first.error == "driver crashed"
        assert first.message == "Scraping failed: driver crashed"
        assert first.snapshot is not None and first.snapshot.url == "https://a.example"
        assert second.success is True

    def test_empty_batch(self) -> None:
        assert _orchestrator(FakeClient()).run_many([]) == []


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------

def analysis_model(prompt: str) -> str:
    for marker in ("Summary:", "Key Information:", "Categorization:"):
        if prompt.endswith(marker):
            return f" {marker[:-1]} answer "
    return "unexpected"


class TestAnalyze:
    def test_summary_of_a_page(self) -> None:
        client = FakeClient(analysis_model)
        result = _orchestrator(client, html=_WIDGET_HTML).analyze("https://shop.example")

        assert isinstance(result, AnalysisResult)
        assert result.success is True
        assert result.analysis.analysis == "Summary answer"
        assert result.analysis.summary == "Summary answer"
        assert result.analysis.key_points == "Key Information answer"
        assert result.analysis.categories == "Categorization answer"
        assert result.message == "Analysed 1 chunk(s) via summary"
        assert client.calls == 4

    def test_scroll_defaults_come_from_settings(self) -> None:
        orchestrator = _orchestrator(FakeClient(analysis_model), max_scroll_attempts=2, scroll_delay_ms=100)
        orchestrator.analyze("https://shop.example", "categorize")
        orchestrator.acquirer.acquire.assert_called_once_with("https://shop.example", 2, 100)

    def test_unavailable_inference_fails(self) -> None:
        client = FakeClient(analysis_model, available=False)
        result = _orchestrator(client, html=_WIDGET_HTML).analyze("https://shop.example")

        assert result.success is False
        assert result.error == "AI service unavailable"
        assert result.snapshot is not None
        assert client.calls == 0

    def test_acquisition_failure_is_reported(self) -> None:
        acquirer = MagicMock()
        acquirer.acquire.side_effect = AcquisitionFailure("Browser launch failed")
        orchestrator = ExtractionOrchestrator(Settings(), acquirer=acquirer, client=FakeClient())

        result = orchestrator.analyze("https://shop.example")

        assert result.success is False
        assert result.message == "Analysis failed: Browser launch failed"

    def test_empty_page_fails(self) -> None:
        result = _orchestrator(FakeClient(analysis_model), html="<html></html>").analyze(
            "https://shop.example"
        )
        assert result.success is False
        assert "No text content" in result.error

    def test_unknown_type_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="analysis_type"):
            _orchestrator(FakeClient()).analyze("https://shop.example", "poem")
