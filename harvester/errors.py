"""Exception taxonomy for the acquisition-and-extraction pipeline.

Every component wraps the third-party errors it owns (Playwright, httpx,
LangChain) into one of these types with ``raise ... from exc`` so the cause
survives up to the orchestrator, which turns them into a human-readable
failure string.
"""

from __future__ import annotations


class HarvesterError(Exception):
    """Base class for every error raised by this package."""


class AcquisitionFailure(HarvesterError):
    """The browser session could not be launched or navigation was exhausted."""


class SegmentationFailure(HarvesterError):
    """The HTML could not be parsed into a content document."""


class InsufficientContent(HarvesterError):
    """The page is empty or a bot-challenge interstitial."""


class ExtractionRecoveryFailure(HarvesterError):
    """No chunk produced a parseable record set."""


class CollaboratorUnavailable(HarvesterError):
    """The inference or DOM-schema collaborator could not be reached."""


class SerializationFailure(HarvesterError):
    """Records could not be written to a flat file."""
