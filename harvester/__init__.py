"""Prompt-driven structured scraping: render, segment, extract."""

__version__ = "0.1.0"
