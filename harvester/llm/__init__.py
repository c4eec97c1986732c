"""Inference collaborator package."""

from harvester.llm.client import CompletionClient, LangChainCompletionClient

__all__ = ["CompletionClient", "LangChainCompletionClient"]
