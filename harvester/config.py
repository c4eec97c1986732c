"""Centralised settings for the harvester pipeline.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

There is no module-level ``settings`` instance: build a :class:`Settings`
once at the edge (the CLI, a test) and pass it into every component
constructor.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from this package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

# Substrings (lower-case) that identify an anti-automation interstitial.
CHALLENGE_SIGNATURES: tuple[str, ...] = (
    "just a moment",
    "checking your browser",
    "attention required",
)


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Inference collaborator
    # ------------------------------------------------------------------
    llm_provider: str = field(
        default_factory=lambda: os.environ.get("LLM_PROVIDER", "ollama")
    )
    ollama_base_url: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434")
    )
    ollama_chat_model: str = field(
        default_factory=lambda: os.environ.get("OLLAMA_CHAT_MODEL", "llama3.2:1b")
    )
    openai_chat_model: str = field(
        default_factory=lambda: os.environ.get("OPENAI_CHAT_MODEL", "gpt-4o-mini")
    )
    completion_temperature: float = field(
        default_factory=lambda: float(os.environ.get("COMPLETION_TEMPERATURE", "0.1"))
    )
    completion_max_tokens: int = field(
        default_factory=lambda: int(os.environ.get("COMPLETION_MAX_TOKENS", "2048"))
    )
    completion_timeout: float = field(
        default_factory=lambda: float(os.environ.get("COMPLETION_TIMEOUT", "120.0"))
    )
    availability_timeout: float = field(
        default_factory=lambda: float(os.environ.get("AVAILABILITY_TIMEOUT", "5.0"))
    )

    # ------------------------------------------------------------------
    # Browser / page acquisition
    # ------------------------------------------------------------------
    headless: bool = field(default_factory=lambda: _env_bool("BROWSER_HEADLESS", "true"))
    navigation_timeout_ms: int = field(
        default_factory=lambda: int(os.environ.get("NAVIGATION_TIMEOUT_MS", "60000"))
    )
    post_navigation_delay_ms: int = field(
        default_factory=lambda: int(os.environ.get("POST_NAVIGATION_DELAY_MS", "3000"))
    )
    fallback_settle_delay_ms: int = field(
        default_factory=lambda: int(os.environ.get("FALLBACK_SETTLE_DELAY_MS", "5000"))
    )
    challenge_wait_ms: int = field(
        default_factory=lambda: int(os.environ.get("CHALLENGE_WAIT_MS", "10000"))
    )
    scroll_epsilon_px: int = field(
        default_factory=lambda: int(os.environ.get("SCROLL_EPSILON_PX", "10"))
    )
    max_scroll_attempts: int = field(
        default_factory=lambda: int(os.environ.get("MAX_SCROLL_ATTEMPTS", "10"))
    )
    scroll_delay_ms: int = field(
        default_factory=lambda: int(os.environ.get("SCROLL_DELAY_MS", "2000"))
    )
    viewport_width: int = field(
        default_factory=lambda: int(os.environ.get("VIEWPORT_WIDTH", "1920"))
    )
    viewport_height: int = field(
        default_factory=lambda: int(os.environ.get("VIEWPORT_HEIGHT", "1080"))
    )

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------
    chunk_size: int = field(
        default_factory=lambda: int(os.environ.get("CHUNK_SIZE", "3500"))
    )
    max_concurrent_chunks: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONCURRENT_CHUNKS", "3"))
    )
    min_content_length: int = field(
        default_factory=lambda: int(os.environ.get("MIN_CONTENT_LENGTH", "100"))
    )
    min_model_records: int = field(
        default_factory=lambda: int(os.environ.get("MIN_MODEL_RECORDS", "1"))
    )
    fallback_policy: str = field(
        default_factory=lambda: os.environ.get("FALLBACK_POLICY", "merge")
    )
    challenge_signatures: tuple[str, ...] = CHALLENGE_SIGNATURES

    # ------------------------------------------------------------------
    # Output / logging
    # ------------------------------------------------------------------
    output_dir: Path = field(
        default_factory=lambda: Path(os.environ.get("OUTPUT_DIR", "./output"))
    )
    log_level: str = field(
        default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO")
    )

    def __post_init__(self) -> None:
        if self.fallback_policy not in {"merge", "strict"}:
            raise ValueError(
                f"fallback_policy must be 'merge' or 'strict', got {self.fallback_policy!r}"
            )
        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")

    def ensure_output_dir(self) -> None:
        """Create the output directory if it does not exist."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
