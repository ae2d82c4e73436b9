"""
Exception types for the citation checker.

Only InputError crosses the public boundary. The screening and ranking
exceptions are terminal outcomes turned into results by the engine, and
SourceUnavailable never leaves a source adapter.
"""

from typing import Optional


class CitationCheckerError(Exception):
    """Base class for citation checker errors."""


class InputError(CitationCheckerError):
    """Citation text is empty, too short or too long."""


class IncompleteCitation(CitationCheckerError):
    """Citation parses but lacks enough fields to search."""


class ImplausibleCitation(CitationCheckerError):
    """Citation fails a structural plausibility check."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class SourceUnavailable(CitationCheckerError):
    """A single source adapter failed, timed out or returned garbage."""

    def __init__(self, source: str, reason: str, status_code: Optional[int] = None):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason
        self.status_code = status_code


class NoMatchFound(CitationCheckerError):
    """Every source ran but none produced a candidate."""


class UpstreamError(CitationCheckerError):
    """The LLM fixer call failed or returned unusable output."""
