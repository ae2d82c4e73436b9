"""
Verification Engine - Decide whether a free-text citation is real.

Pipeline per request:
1. Input check and cache lookup (keyed by the raw citation string)
2. Field extraction
3. Plausibility and completeness screens (no network)
4. DOI-direct lookup (exact hit short-circuits as verified)
5. Concurrent fan-out to CrossRef, OpenAlex, arXiv and Google Books
6. Uniform scoring and ranking of every candidate
7. Historical-paper boost and status classification

Failed sources only shrink the candidate pool; they never fail the request.
"""

import asyncio
import logging
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import httpx
from cachetools import TTLCache

from .config import CACHE_CONFIG, INPUT_LIMITS, SCORING_CONFIG
from .errors import ImplausibleCitation, IncompleteCitation, InputError, NoMatchFound
from .match_scorer import MatchScorer, ScoredCandidate
from .reference_extractor import ParsedCitation, ReferenceExtractor
from .sources import BaseSource, DOISource, SourceResult, create_http_client, default_sources
from .validators import detect_fake, is_historical_paper, is_incomplete

logger = logging.getLogger(__name__)


class VerificationStatus(str, Enum):
    """Outcome of verifying a single citation."""
    VERIFIED = "verified"           # score >= 70, or exact DOI hit
    LIKELY = "likely"               # 50-69
    UNCERTAIN = "uncertain"         # 30-49
    NOT_VERIFIED = "not_verified"   # candidates found, none convincing
    INCOMPLETE = "incomplete"       # too sparse to search
    FAKE = "fake"                   # structurally implausible
    NOT_FOUND = "not_found"         # no source returned anything
    ERROR = "error"                 # unexpected internal failure


@dataclass(frozen=True)
class VerificationDetails:
    format: str
    author: Optional[str] = None
    year: Optional[int] = None
    title: Optional[str] = None
    journal: Optional[str] = None
    doi: Optional[str] = None
    source: Optional[str] = None
    checks: Tuple[str, ...] = ()


@dataclass(frozen=True)
class VerificationResult:
    """Result of verifying one citation. Never mutated after construction."""
    verified: bool
    score: int
    status: VerificationStatus
    message: str
    details: VerificationDetails

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        data["details"]["checks"] = list(self.details.checks)
        return data


class VerificationCache:
    """
    In-memory response cache: per-entry TTL with least-recently-used eviction.

    The clock is injectable for tests.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, max_entries: Optional[int] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else CACHE_CONFIG["ttl_seconds"]
        self.max_entries = max_entries or CACHE_CONFIG["max_entries"]
        self._entries = TTLCache(maxsize=self.max_entries, ttl=self.ttl_seconds, timer=clock)

    def get(self, key: str) -> Optional[VerificationResult]:
        return self._entries.get(key)

    def set(self, key: str, result: VerificationResult) -> None:
        self._entries[key] = result

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)


class VerificationEngine:
    """
    Multi-source citation verification.

    Checks citations against:
    1. The DOI registry (exact lookup, when a DOI is present)
    2. CrossRef, OpenAlex, arXiv and Google Books, queried concurrently
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None,
                 sources: Optional[Sequence[BaseSource]] = None,
                 doi_source: Optional[BaseSource] = None,
                 scorer: Optional[MatchScorer] = None,
                 cache: Optional[VerificationCache] = None,
                 extractor: Optional[ReferenceExtractor] = None,
                 email: Optional[str] = None):
        """
        Initialize verification engine.

        Args:
            http_client: Shared httpx client (created and owned here if not provided)
            sources: Fan-out adapters (defaults to default_sources())
            doi_source: Exact DOI adapter (defaults to DOISource)
            scorer: MatchScorer with the weights to rank by
            cache: Response cache (a fresh 24h cache if not provided)
            extractor: Field extractor
            email: Contact address for the CrossRef/OpenAlex polite pool
        """
        self._email = email
        self._http_client = http_client
        self._owns_http_client = http_client is None
        self._sources = list(sources) if sources is not None else None
        self._doi_source = doi_source
        self.scorer = scorer or MatchScorer()
        self.cache = cache if cache is not None else VerificationCache()
        self.extractor = extractor or ReferenceExtractor()

    def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = create_http_client(self._email)
        return self._http_client

    def _get_sources(self) -> List[BaseSource]:
        if self._sources is None:
            self._sources = default_sources(self._get_http_client())
        return self._sources

    def _get_doi_source(self) -> BaseSource:
        if self._doi_source is None:
            self._doi_source = DOISource(self._get_http_client())
        return self._doi_source

    async def close(self):
        """Close the HTTP client if this engine created it."""
        if self._owns_http_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> "VerificationEngine":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # =========================================================================
    # Public API
    # =========================================================================

    async def verify(self, citation_text: str, user_email: Optional[str] = None) -> VerificationResult:
        """
        Verify a single citation.

        Raises:
            InputError: citation_text is empty, too short or too long.
        """
        text = validate_citation_text(citation_text)

        cached = self.cache.get(citation_text)
        if cached is not None:
            logger.debug("Cache hit for %r", text[:60])
            return cached

        if user_email:
            logger.info("Verification requested by %s", user_email)

        try:
            result = await self._verify_uncached(text)
        except Exception as e:
            logger.exception("Verification failed for %r", text[:60])
            return VerificationResult(
                verified=False,
                score=0,
                status=VerificationStatus.ERROR,
                message=f"Verification failed: {e}",
                details=VerificationDetails(format="Unknown"),
            )

        self.cache.set(citation_text, result)
        return result

    async def verify_batch(self, citation_texts: Sequence[str],
                           max_concurrent: int = 5) -> List[VerificationResult]:
        """
        Verify multiple citations with a concurrency limit.

        Every input is validated before any lookup starts, so one bad entry
        raises InputError without spending network calls on the others.
        """
        if len(citation_texts) > INPUT_LIMITS["max_batch_size"]:
            raise InputError(
                f"Too many citations: {len(citation_texts)} (max {INPUT_LIMITS['max_batch_size']})"
            )
        for text in citation_texts:
            validate_citation_text(text)

        semaphore = asyncio.Semaphore(max_concurrent)

        async def verify_with_limit(text):
            async with semaphore:
                return await self.verify(text)

        tasks = [verify_with_limit(text) for text in citation_texts]
        return list(await asyncio.gather(*tasks))

    def summarize(self, results: Sequence[VerificationResult]) -> Dict[str, int]:
        """Count results per status."""
        summary = {status.value: 0 for status in VerificationStatus}
        for result in results:
            summary[result.status.value] += 1
        summary["total"] = len(results)
        return summary

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _verify_uncached(self, text: str) -> VerificationResult:
        parsed = self.extractor.extract(text)
        logger.debug("Parsed citation: %s", parsed)

        try:
            self._screen(parsed)
        except ImplausibleCitation as e:
            logger.info("Rejected as fake: %s", e.reason)
            return self._terminal_result(parsed, VerificationStatus.FAKE,
                                         f"Fake - {e.reason}", (e.reason,))
        except IncompleteCitation as e:
            return self._terminal_result(parsed, VerificationStatus.INCOMPLETE,
                                         "Incomplete - could not extract enough information to search",
                                         (str(e),))

        checks: List[str] = []

        doi_source = self._get_doi_source()
        if doi_source.applicable(parsed):
            doi_result = await doi_source.search(parsed)
            ranked = self.scorer.rank(parsed, doi_result.candidates)
            if ranked and ranked[0].relevance_score >= SCORING_CONFIG["verified_threshold"]:
                best = ranked[0]
                checks.append(f"{doi_source.name}: DOI confirmed in registry")
                return self._matched_result(parsed, best, best.relevance_score,
                                            VerificationStatus.VERIFIED,
                                            "Verified - DOI confirmed", checks)
            checks.append(self._describe_source(doi_result, ranked))

        results = await self._search_all(parsed)
        candidates = [work for result in results for work in result.candidates]

        try:
            ranked = self._rank(parsed, candidates)
        except NoMatchFound:
            checks.extend(self._describe_source(r, []) for r in results)
            return self._terminal_result(parsed, VerificationStatus.NOT_FOUND,
                                         "Not found in any database", checks)

        for result in results:
            own = [s for s in ranked if any(s.work is c for c in result.candidates)]
            checks.append(self._describe_source(result, own))

        best = ranked[0]
        score = best.relevance_score

        boost_band = (SCORING_CONFIG["uncertain_threshold"], SCORING_CONFIG["verified_threshold"])
        if is_historical_paper(parsed) and boost_band[0] <= score < boost_band[1]:
            boosted = min(SCORING_CONFIG["historical_cap"], score + SCORING_CONFIG["historical_boost"])
            checks.append(f"Historical paper ({parsed.year}): score {score} -> {boosted}")
            score = boosted

        status = classify_score(score)
        return self._matched_result(parsed, best, score, status, status_message(status, score, best), checks)

    def _screen(self, parsed: ParsedCitation):
        """Raise ImplausibleCitation or IncompleteCitation; no network."""
        reason = detect_fake(parsed)
        if reason:
            raise ImplausibleCitation(reason)
        if is_incomplete(parsed):
            missing = [name for name in ("author", "year", "title") if not getattr(parsed, name)]
            raise IncompleteCitation(f"Missing: {', '.join(missing)}" if missing else "Title too vague to search")

    async def _search_all(self, parsed: ParsedCitation) -> List[SourceResult]:
        """Query every source concurrently; wait for all, fail none."""
        sources = self._get_sources()
        outcomes = await asyncio.gather(
            *(source.search(parsed) for source in sources), return_exceptions=True
        )

        results = []
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, BaseException):
                logger.warning("%s raised unexpectedly: %r", source.name, outcome)
                outcome = SourceResult(source_name=source.name, queried=True,
                                       error=str(outcome) or type(outcome).__name__)
            results.append(outcome)
        return results

    def _rank(self, parsed: ParsedCitation, candidates) -> List[ScoredCandidate]:
        if not candidates:
            raise NoMatchFound("No source returned a candidate")
        return self.scorer.rank(parsed, candidates)

    def _describe_source(self, result: SourceResult, ranked: Sequence[ScoredCandidate]) -> str:
        if not result.queried:
            return f"{result.source_name}: skipped (not enough fields)"
        if result.error:
            return f"{result.source_name}: failed ({result.error})"
        if not result.candidates:
            return f"{result.source_name}: no results"
        best = ranked[0].relevance_score if ranked else 0
        return f"{result.source_name}: {len(result.candidates)} results, best match {best}/100"

    # =========================================================================
    # Result construction
    # =========================================================================

    def _terminal_result(self, parsed: ParsedCitation, status: VerificationStatus,
                         message: str, checks: Sequence[str]) -> VerificationResult:
        return VerificationResult(
            verified=False,
            score=0,
            status=status,
            message=message,
            details=VerificationDetails(
                format=parsed.format.value,
                author=parsed.author,
                year=parsed.year,
                title=parsed.title,
                journal=parsed.journal,
                doi=parsed.doi,
                checks=tuple(checks),
            ),
        )

    def _matched_result(self, parsed: ParsedCitation, best: ScoredCandidate, score: int,
                        status: VerificationStatus, message: str,
                        checks: Sequence[str]) -> VerificationResult:
        work = best.work
        return VerificationResult(
            verified=status == VerificationStatus.VERIFIED,
            score=score,
            status=status,
            message=message,
            details=VerificationDetails(
                format=parsed.format.value,
                author=", ".join(work.authors) or parsed.author,
                year=work.year or parsed.year,
                title=work.title or parsed.title,
                journal=work.journal or parsed.journal,
                doi=parsed.doi or work.doi,
                source=work.source.value,
                checks=tuple(checks),
            ),
        )


def validate_citation_text(citation_text: str) -> str:
    """Return the stripped text, or raise InputError."""
    if not isinstance(citation_text, str) or not citation_text.strip():
        raise InputError("Citation cannot be empty")
    text = citation_text.strip()
    if len(text) < INPUT_LIMITS["min_citation_length"]:
        raise InputError(f"Citation too short (minimum {INPUT_LIMITS['min_citation_length']} characters)")
    if len(text) > INPUT_LIMITS["max_citation_length"]:
        raise InputError(f"Citation too long (maximum {INPUT_LIMITS['max_citation_length']} characters)")
    return text


def classify_score(score: int) -> VerificationStatus:
    if score >= SCORING_CONFIG["verified_threshold"]:
        return VerificationStatus.VERIFIED
    if score >= SCORING_CONFIG["likely_threshold"]:
        return VerificationStatus.LIKELY
    if score >= SCORING_CONFIG["uncertain_threshold"]:
        return VerificationStatus.UNCERTAIN
    return VerificationStatus.NOT_VERIFIED


def status_message(status: VerificationStatus, score: int, best: ScoredCandidate) -> str:
    source = best.work.source.value
    if status == VerificationStatus.VERIFIED:
        return f"Verified - matched in {source}"
    if status == VerificationStatus.LIKELY:
        return f"Likely real - {score}% confidence"
    if status == VerificationStatus.UNCERTAIN:
        return "Uncertain - verify manually"
    return "Not verified - no convincing match found"
