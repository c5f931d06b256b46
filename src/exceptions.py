"""
Error taxonomy for backend adapters and augmenters.

None of these reach the end user for a normal chat turn: the orchestrator
turns generation errors into a fallback decision and augmenter errors into a
logged context gap.
"""

from typing import Optional


class GenerationError(Exception):
    """A backend adapter could not answer this turn."""

    kind = "GenerationError"

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider

    def __str__(self) -> str:
        base = super().__str__()
        if self.provider:
            return f"[{self.provider}] {self.kind}: {base}"
        return f"{self.kind}: {base}"


class BackendUnavailableError(GenerationError):
    """Backend unreachable, timed out, or its health probe failed."""

    kind = "Unavailable"


class BadResponseError(GenerationError):
    """Non-success status, undecodable payload, or no usable text."""

    kind = "BadResponse"


class BackendAPIError(GenerationError):
    """Backend reported a structured application-level error."""

    kind = "APIError"


class NotConfiguredError(GenerationError):
    """Backend is missing a credential and is never attempted."""

    kind = "NotConfigured"


class RetrievalError(Exception):
    """The document index or channel context could not be queried."""


class SearchError(Exception):
    """The web search backend failed or is disabled."""
