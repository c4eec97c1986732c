"""Tests for ContentAnalyzer: chunked free-text analysis.

Mocking strategy:
- The completion client is :class:`RecordingClient`, which stores every
  prompt and temperature and answers through a plain callable, so no
  model is involved.
"""

from __future__ import annotations

from typing import Callable, Optional

import pytest

from harvester.analysis import ANALYSIS_PROMPTS, ANALYSIS_TEMPERATURE, ContentAnalyzer
from harvester.config import Settings
from harvester.errors import CollaboratorUnavailable, InsufficientContent


class RecordingClient:
    def __init__(self, responder: Callable[[str], str]) -> None:
        self.responder = responder
        self.prompts: list[str] = []
        self.temperatures: list[Optional[float]] = []

    def complete(
        self,
        prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        self.prompts.append(prompt)
        self.temperatures.append(temperature)
        return self.responder(prompt)

    def is_available(self) -> bool:
        return True


def _label(prompt: str) -> str:
    return prompt.rsplit("\n\n", 1)[-1]


class TestContentAnalyzer:
    def test_each_chunk_then_three_final_calls(self) -> None:
        client = RecordingClient(lambda p: f"[{_label(p)} of {len(p)}]")
        analysis = ContentAnalyzer(client, Settings()).analyze("a" * 25, "extract", chunk_size=10)

        assert analysis.chunks_analyzed == 3
        assert analysis.analysis_type == "extract"
        assert [_label(p) for p in client.prompts] == [
            "Key Information:",
            "Key Information:",
            "Key Information:",
            "Summary:",
            "Key Information:",
            "Categorization:",
        ]
        assert analysis.analysis.count("\n\n") == 2
        assert analysis.analysis in client.prompts[3]

    def test_prompts_use_the_analysis_wording(self) -> None:
        client = RecordingClient(lambda p: "ok")
        ContentAnalyzer(client, Settings()).analyze("Widgets for sale", "categorize")

        assert client.prompts[0] == ANALYSIS_PROMPTS["categorize"].format(content="Widgets for sale")
        assert client.prompts[0].startswith("Analyze the following web content and categorize it.")
        assert set(client.temperatures) == {ANALYSIS_TEMPERATURE}

    def test_failed_chunk_is_skipped(self) -> None:
        def responder(prompt: str) -> str:
            if "bbbb" in prompt and _label(prompt) == "Summary:" and "aaaa" not in prompt:
                raise CollaboratorUnavailable("Completion failed: timeout")
            return "partial"

        client = RecordingClient(responder)
        analysis = ContentAnalyzer(client, Settings()).analyze("aaaabbbb", "summary", chunk_size=4)

        assert analysis.chunks_analyzed == 1
        assert analysis.analysis == "partial"

    def test_every_chunk_failing_raises(self) -> None:
        def responder(prompt: str) -> str:
            raise CollaboratorUnavailable("Completion failed: connection refused")

        with pytest.raises(CollaboratorUnavailable, match="No chunk could be analysed"):
            ContentAnalyzer(RecordingClient(responder), Settings()).analyze("some text")

    def test_blank_text_is_insufficient(self) -> None:
        client = RecordingClient(lambda p: "ok")
        with pytest.raises(InsufficientContent):
            ContentAnalyzer(client, Settings()).analyze("   \n ")
        assert client.prompts == []

    def test_unknown_type_is_rejected(self) -> None:
        with pytest.raises(ValueError, match="analysis_type"):
            ContentAnalyzer(RecordingClient(lambda p: "ok"), Settings()).analyze("text", "poem")
