"""
Citation Checker Configuration Settings

Endpoints, timeouts, scoring thresholds and cache settings for the
verification core. Values can be overridden through environment variables.
"""

import os
from typing import Optional


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


# Outbound client identification (CrossRef/OpenAlex "polite pool")
CONTACT_EMAIL: Optional[str] = os.getenv("CITATION_CHECKER_EMAIL")
USER_AGENT = "CitationChecker/1.0"

# External bibliographic sources
SOURCE_CONFIG = {
    "doi": {
        "base_url": os.getenv("CROSSREF_API_URL", "https://api.crossref.org/works"),
        "timeout": _env_float("DOI_TIMEOUT", 5.0),
        "max_results": 1,
    },
    "crossref": {
        "base_url": os.getenv("CROSSREF_API_URL", "https://api.crossref.org/works"),
        "timeout": _env_float("CROSSREF_TIMEOUT", 8.0),
        "max_results": 5,
    },
    "openalex": {
        "base_url": os.getenv("OPENALEX_API_URL", "https://api.openalex.org/works"),
        "timeout": _env_float("OPENALEX_TIMEOUT", 5.0),
        "max_results": 10,
    },
    "google_books": {
        "base_url": os.getenv("GOOGLE_BOOKS_API_URL", "https://www.googleapis.com/books/v1/volumes"),
        "timeout": _env_float("GOOGLE_BOOKS_TIMEOUT", 5.0),
        "max_results": 5,
    },
    "arxiv": {
        "base_url": os.getenv("ARXIV_API_URL", "http://export.arxiv.org/api/query"),
        "timeout": _env_float("ARXIV_TIMEOUT", 12.0),
        "max_results": 5,
    },
}

# Status tiers and identifier scores
SCORING_CONFIG = {
    "verified_threshold": 70,
    "likely_threshold": 50,
    "uncertain_threshold": 30,
    "fix_threshold": 45,
    "doi_match_score": 100,
    "arxiv_id_match_score": 98,
    "historical_boost": 40,
    "historical_cap": 85,
}

# Response cache
CACHE_CONFIG = {
    "ttl_seconds": _env_int("CITATION_CACHE_TTL", 24 * 60 * 60),
    "max_entries": _env_int("CITATION_CACHE_MAX_ENTRIES", 10000),
}

# LLM citation fixer (OpenAI-compatible chat completions)
LLM_CONFIG = {
    "api_url": os.getenv("LLM_API_URL", "https://api.groq.com/openai/v1/chat/completions"),
    "api_key_env": "GROQ_API_KEY",
    "model": os.getenv("LLM_MODEL", "llama-3.3-70b-versatile"),
    "temperature": 0.1,
    "max_tokens": 400,
    "timeout": _env_float("LLM_TIMEOUT", 20.0),
}

# Input limits
INPUT_LIMITS = {
    "min_citation_length": 3,
    "max_citation_length": 2000,
    "min_fixable_length": 15,
    "min_document_citation_length": 20,
    "max_document_citation_length": 500,
    "max_document_citations": 50,
    "max_fallback_lines": 20,
    "max_batch_size": 50,
}

LOGGING_CONFIG = {
    "level": os.getenv("CITATION_CHECKER_LOG_LEVEL", "INFO"),
    "format": "%(asctime)s %(levelname)s [%(name)s] %(message)s",
}


def get_llm_api_key() -> Optional[str]:
    """API key for the LLM fixer, read at call time."""
    return os.getenv(LLM_CONFIG["api_key_env"])
