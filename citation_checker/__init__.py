"""
Citation Checker - Verify that academic citations refer to real works.

Modules:
- reference_extractor: Pull author/year/title/journal/DOI out of free text
- validators: Completeness and plausibility screens
- sources: CrossRef, OpenAlex, Google Books, arXiv and DOI-direct adapters
- match_scorer: Weighted citation-to-record relevance score
- verification_engine: Orchestrates screening, fan-out, ranking and caching
- citation_fixer: Database or LLM corrected-citation suggestions
- citation_formatter: APA/MLA/Chicago/Harvard rendering
- document_parser: Citation spans from document text
"""

__version__ = "1.0.0"

from .citation_fixer import CitationFixer, FixResult, LLMClient
from .document_parser import DocumentParser, extract_citations_from_text
from .errors import (
    CitationCheckerError,
    ImplausibleCitation,
    IncompleteCitation,
    InputError,
    NoMatchFound,
    SourceUnavailable,
    UpstreamError,
)
from .match_scorer import MatchScorer, ScoredCandidate, ScoringWeights
from .reference_extractor import CitationFormat, ParsedCitation, ReferenceExtractor, parse_citation
from .sources import CandidateWork, Source, SourceResult
from .verification_engine import (
    VerificationCache,
    VerificationEngine,
    VerificationResult,
    VerificationStatus,
)

__all__ = [
    # Version
    "__version__",
    # Parsing
    "ReferenceExtractor",
    "ParsedCitation",
    "CitationFormat",
    "parse_citation",
    "DocumentParser",
    "extract_citations_from_text",
    # Sources and scoring
    "Source",
    "CandidateWork",
    "SourceResult",
    "MatchScorer",
    "ScoringWeights",
    "ScoredCandidate",
    # Verification
    "VerificationEngine",
    "VerificationCache",
    "VerificationResult",
    "VerificationStatus",
    # Fixing
    "CitationFixer",
    "FixResult",
    "LLMClient",
    # Errors
    "CitationCheckerError",
    "InputError",
    "IncompleteCitation",
    "ImplausibleCitation",
    "SourceUnavailable",
    "NoMatchFound",
    "UpstreamError",
]
