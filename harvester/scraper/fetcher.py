"""Headless-browser page acquisition with infinite-scroll expansion.

:class:`PageAcquirer` renders a URL in a fresh, isolated Playwright browser
context, expands infinite-scroll listings, waits out bot-challenge
interstitials and returns a :class:`~harvester.scraper.models.PageSnapshot`.

Navigation policy
-----------------
1. ``goto`` with ``wait_until="networkidle"``.
2. On any Playwright error, one retry with ``wait_until="load"`` followed by
   a fixed settle delay.  Only if that also fails is the call fatal.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from harvester.config import Settings
from harvester.errors import AcquisitionFailure
from harvester.scraper.models import PageSnapshot

logger = logging.getLogger(__name__)

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

# ---------------------------------------------------------------------------
# In-page scripts
# ---------------------------------------------------------------------------
_HEIGHT_SCRIPT = "() => document.documentElement.scrollHeight"

_SCROLL_SCRIPT = "() => window.scrollTo(0, document.documentElement.scrollHeight)"

_METRICS_SCRIPT = """() => {
    const el = document.documentElement;
    return {
        scrollTop: window.scrollY || el.scrollTop,
        clientHeight: el.clientHeight,
        scrollHeight: el.scrollHeight,
    };
}"""

# Read in a single evaluation so later client-side mutation cannot tear it.
_SNAPSHOT_SCRIPT = """() => ({
    title: document.title,
    text: document.body ? document.body.innerText : '',
    html: document.documentElement.outerHTML,
    url: window.location.href,
})"""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def is_challenge_page(text: str, signatures: tuple[str, ...]) -> bool:
    """Return ``True`` if *text* contains a known bot-challenge signature."""
    lowered = text.lower()
    return any(sig in lowered for sig in signatures)


def _reached_end(metrics: dict[str, Any], previous_height: int, epsilon: int) -> bool:
    """Return ``True`` once a scroll produced no further document growth."""
    height = int(metrics.get("scrollHeight", 0))
    if height == previous_height:
        return True
    position = int(metrics.get("scrollTop", 0)) + int(metrics.get("clientHeight", 0))
    return position >= height - epsilon


def scroll_to_end(page: Any, max_attempts: int, delay_ms: int, epsilon: int = 10) -> int:
    """Scroll *page* to the bottom until the document stops growing.

    Each iteration scrolls to the current bottom, waits *delay_ms* and
    re-measures.  The loop stops on the first iteration that shows no growth
    (there are no grace iterations) or after *max_attempts* iterations.

    Returns:
        The number of scroll iterations performed.
    """
    if max_attempts <= 0:
        return 0

    previous_height = int(page.evaluate(_HEIGHT_SCRIPT))
    for attempt in range(1, max_attempts + 1):
        page.evaluate(_SCROLL_SCRIPT)
        page.wait_for_timeout(delay_ms)
        metrics = page.evaluate(_METRICS_SCRIPT)
        if _reached_end(metrics, previous_height, epsilon):
            logger.info(f"Reached end of page content after {attempt} scroll(s)")
            return attempt
        previous_height = int(metrics.get("scrollHeight", 0))
        logger.debug(f"Scroll {attempt}/{max_attempts} completed (height={previous_height})")

    logger.info(f"Stopped scrolling after the maximum of {max_attempts} attempt(s)")
    return max_attempts


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

class PageAcquirer:
    """Render pages in a headless Chromium browser.

    Every :meth:`acquire` call launches its own browser and context, so no
    cookies or storage leak between requests, and closes them on every exit
    path.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    def acquire(
        self,
        url: str,
        max_scroll_attempts: int,
        scroll_delay_ms: int,
    ) -> PageSnapshot:
        """Render *url* and return a :class:`PageSnapshot`.

        Raises:
            AcquisitionFailure: If the Playwright driver cannot start, the
                browser cannot be launched, or both the primary and the
                fallback navigation fail.
        """
        start = time.monotonic()
        logger.info(f"Acquiring {url} (max_scrolls={max_scroll_attempts}, delay={scroll_delay_ms}ms)")

        try:
            with sync_playwright() as pw:
                data = self._render(pw, url, max_scroll_attempts, scroll_delay_ms)
        except AcquisitionFailure:
            raise
        except PlaywrightError as exc:
            # Driver start/stop: missing driver, or sync API inside an event loop.
            raise AcquisitionFailure(f"Browser session start failed: {exc}") from exc

        text = data.get("text") or ""
        processing_time_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"Acquired {url} in {processing_time_ms}ms ({len(text)} chars)")

        return PageSnapshot(
            url=data.get("url") or url,
            title=data.get("title") or "Untitled",
            raw_text=text,
            raw_html=data.get("html") or "",
            fetched_at=datetime.now(timezone.utc),
            processing_time_ms=processing_time_ms,
            content_length=len(text),
        )

    # ------------------------------------------------------------------
    # Internal steps
    # ------------------------------------------------------------------

    def _render(
        self,
        pw: Any,
        url: str,
        max_scroll_attempts: int,
        scroll_delay_ms: int,
    ) -> dict[str, Any]:
        try:
            browser = pw.chromium.launch(
                headless=self.settings.headless,
                args=["--no-sandbox", "--disable-dev-shm-usage"],
            )
        except PlaywrightError as exc:
            raise AcquisitionFailure(f"Browser launch failed: {exc}") from exc

        context = None
        try:
            context = browser.new_context(
                viewport={
                    "width": self.settings.viewport_width,
                    "height": self.settings.viewport_height,
                },
                user_agent=_USER_AGENT,
            )
            page = context.new_page()
            page.set_default_timeout(self.settings.navigation_timeout_ms)

            self._navigate(page, url)
            self._wait_out_challenge(page)
            scroll_to_end(
                page,
                max_scroll_attempts,
                scroll_delay_ms,
                self.settings.scroll_epsilon_px,
            )
            return page.evaluate(_SNAPSHOT_SCRIPT)
        except AcquisitionFailure:
            raise
        except PlaywrightError as exc:
            raise AcquisitionFailure(f"Page acquisition failed for {url}: {exc}") from exc
        finally:
            self._close(context, browser)

    def _navigate(self, page: Any, url: str) -> None:
        timeout = self.settings.navigation_timeout_ms
        try:
            page.goto(url, wait_until="networkidle", timeout=timeout)
            page.wait_for_timeout(self.settings.post_navigation_delay_ms)
            return
        except PlaywrightError as exc:
            logger.warning(f"Navigation failed, trying with basic load: {exc}")

        try:
            page.goto(url, wait_until="load", timeout=timeout)
        except PlaywrightError as exc:
            raise AcquisitionFailure(f"Navigation failed for {url}: {exc}") from exc
        page.wait_for_timeout(self.settings.fallback_settle_delay_ms)

    def _wait_out_challenge(self, page: Any) -> None:
        title = page.title() or ""
        if is_challenge_page(title, self.settings.challenge_signatures):
            logger.info("Detected anti-bot protection, waiting longer...")
            page.wait_for_timeout(self.settings.challenge_wait_ms)

    @staticmethod
    def _close(context: Any, browser: Any) -> None:
        """Close *context* and *browser*; errors are logged, never raised."""
        for resource in (context, browser):
            if resource is None:
                continue
            try:
                resource.close()
            except Exception as exc:  # noqa: BLE001
                logger.warning(f"Error closing browser resource: {exc}")
