"""Harvester CLI: entry-point for prompt-driven scraping.

Usage:
    python cli/main.py --help

Commands:
    scrape    → render one or more URLs and extract records matching a prompt
    analyze   → render a URL and print a summary, key points and categories
    health    → report whether the inference service is reachable
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from harvester.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import json
import logging
from typing import List, Optional

import typer

from harvester.analysis import ANALYSIS_PROMPTS
from harvester.config import Settings
from harvester.errors import SerializationFailure
from harvester.export import build_export_filename, export_records
from harvester.pipeline import ExtractionOrchestrator, ScrapeResult
from harvester.prompt_parser import ParsedPrompt, generate_selector_schema, parse_prompt
from harvester.scraper.models import ScrapeRequest

app = typer.Typer(
    name="harvester",
    help="Prompt-driven structured scraper.",
    no_args_is_help=True,
)


def _configure_logging(settings: Settings, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _build_orchestrator(settings: Settings) -> ExtractionOrchestrator:
    return ExtractionOrchestrator(settings)


# ---------------------------------------------------------------------------
# Scrape
# ---------------------------------------------------------------------------
def _write_records(
    result: ScrapeResult,
    url: str,
    prompt: str,
    parsed: ParsedPrompt,
    out_dir: Path,
    no_export: bool,
) -> bool:
    """Print or export the records of one successful result."""
    records = result.records
    typer.echo(f"[scrape] {result.message}")

    if no_export or parsed.format == "text":
        for record in records:
            typer.echo(json.dumps(record, ensure_ascii=False))
        return True

    filename = build_export_filename(url, prompt)
    if parsed.format == "json":
        out_dir.mkdir(parents=True, exist_ok=True)
        path = out_dir / f"{filename}.json"
        path.write_text(json.dumps(records, ensure_ascii=False, indent=2), encoding="utf-8")
    else:
        try:
            path = export_records(records, filename, out_dir)
        except SerializationFailure as exc:
            typer.echo(f"[scrape] {exc}", err=True)
            return False

    typer.echo(f"[scrape] Wrote {len(records)} record(s) to {path}")
    return True


@app.command("scrape")
def scrape(
    url: List[str] = typer.Option(..., help="URL to scrape; repeat for a batch."),
    prompt: str = typer.Option(..., help='What to extract, e.g. "products and prices".'),
    max_scrolls: Optional[int] = typer.Option(None, help="Infinite-scroll attempts."),
    scroll_delay: Optional[int] = typer.Option(None, help="Delay after each scroll (ms)."),
    chunk_size: Optional[int] = typer.Option(None, help="Characters per model chunk."),
    policy: Optional[str] = typer.Option(None, help="Fallback policy: merge | strict."),
    output_dir: Optional[Path] = typer.Option(None, help="Directory for the export file."),
    no_export: bool = typer.Option(False, "--no-export", help="Print records only."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Render one or more URLs and extract the records described by a prompt."""
    try:
        settings = Settings(fallback_policy=policy) if policy else Settings()
        parsed = parse_prompt(prompt)
        requests = [
            ScrapeRequest(
                url=target_url,
                field_spec=parsed.field_spec,
                max_scroll_attempts=settings.max_scroll_attempts if max_scrolls is None else max_scrolls,
                scroll_delay_ms=settings.scroll_delay_ms if scroll_delay is None else scroll_delay,
                chunk_size_chars=settings.chunk_size if chunk_size is None else chunk_size,
                selectors=generate_selector_schema(parsed),
            )
            for target_url in url
        ]
    except ValueError as exc:
        typer.echo(f"[scrape] Invalid option: {exc}", err=True)
        raise typer.Exit(1)
    _configure_logging(settings, verbose)

    orchestrator = _build_orchestrator(settings)
    out_dir = output_dir or settings.output_dir

    if len(requests) == 1:
        typer.echo(f"[scrape] {url[0]!r}  target={parsed.target}  fields={', '.join(parsed.fields)}")
        results = [orchestrator.run(requests[0], prompt)]
    else:
        typer.echo(f"[scrape] {len(requests)} URLs  target={parsed.target}  fields={', '.join(parsed.fields)}")
        results = orchestrator.run_many(requests, prompt)

    failed = 0
    for request, result in zip(requests, results):
        if len(requests) > 1:
            typer.echo(f"[scrape] --- {request.url}")
        if not result.success:
            typer.echo(f"[scrape] {result.message}: {result.error}", err=True)
            failed += 1
        elif not _write_records(result, request.url, prompt, parsed, out_dir, no_export):
            failed += 1

    if len(requests) > 1:
        typer.echo(f"[scrape] {len(requests) - failed}/{len(requests)} URL(s) succeeded")
    if failed:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Analyze
# ---------------------------------------------------------------------------
@app.command("analyze")
def analyze(
    url: str = typer.Option(..., help="URL to analyse."),
    analysis_type: str = typer.Option(
        "summary", "--type", help="Analysis type: summary | extract | categorize."
    ),
    max_scrolls: Optional[int] = typer.Option(None, help="Infinite-scroll attempts."),
    scroll_delay: Optional[int] = typer.Option(None, help="Delay after each scroll (ms)."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Render a URL and print a free-text analysis of its content."""
    if analysis_type not in ANALYSIS_PROMPTS:
        typer.echo(
            f"[analyze] Unknown analysis type {analysis_type!r}; "
            f"choose one of {', '.join(ANALYSIS_PROMPTS)}",
            err=True,
        )
        raise typer.Exit(1)
    if (max_scrolls is not None and max_scrolls < 0) or (scroll_delay is not None and scroll_delay < 0):
        typer.echo("[analyze] Invalid option: scroll settings must be >= 0", err=True)
        raise typer.Exit(1)

    settings = Settings()
    _configure_logging(settings, verbose)

    typer.echo(f"[analyze] {url!r}  type={analysis_type}")
    result = _build_orchestrator(settings).analyze(
        url,
        analysis_type,
        max_scroll_attempts=max_scrolls,
        scroll_delay_ms=scroll_delay,
    )
    if not result.success:
        typer.echo(f"[analyze] {result.message}", err=True)
        raise typer.Exit(1)

    analysis = result.analysis
    typer.echo(f"[analyze] {result.message}")
    typer.echo("\n== Analysis ==")
    typer.echo(analysis.analysis)
    typer.echo("\n== Summary ==")
    typer.echo(analysis.summary)
    typer.echo("\n== Key points ==")
    typer.echo(analysis.key_points)
    typer.echo("\n== Categories ==")
    typer.echo(analysis.categories)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------
@app.command("health")
def health() -> None:
    """Report whether the configured inference service is reachable."""
    settings = Settings()
    status = _build_orchestrator(settings).health()
    for name, ok in status.items():
        typer.echo(f"  {name:<10} {'healthy' if ok else 'unhealthy'}")
    if not all(status.values()):
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
