"""
Citation Fixer - Suggest a corrected citation for broken or malformed input.

Strategy:
1. Search OpenAlex and CrossRef for the work and rebuild the citation from
   the best database record (accepted at a relaxed score threshold).
2. Otherwise ask an LLM for a corrected APA entry, then try one OpenAlex
   lookup on the returned title to attach a DOI.

A suggestion that is textually near-identical to the input is reported as
already correct instead of as a fix.
"""

import asyncio
import json
import logging
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

import httpx
from rapidfuzz import fuzz

from .citation_formatter import format_all, work_metadata
from .config import INPUT_LIMITS, LLM_CONFIG, SCORING_CONFIG, get_llm_api_key
from .errors import InputError, UpstreamError
from .match_scorer import MatchScorer, ScoredCandidate, normalize_text
from .reference_extractor import ParsedCitation, ReferenceExtractor
from .sources import CrossRefSource, OpenAlexSource, SourceResult, create_http_client

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a citation expert. Identify the published work the user's citation refers to "
    "and return a JSON object with exactly these fields: "
    '"found" (boolean), '
    '"metadata" (object with "title", "authors" (list), "year", "journal", "doi"), '
    '"citations" (object with an "APA" string). '
    "No explanation, no intro, no conversational filler. "
    'If the work does not exist or cannot be identified, return {"found": false} or the word "INVALID".'
)

CONVERSATIONAL_PREFIX = re.compile(
    r"^(?:here\s+is\s+the\s+(?:corrected\s+)?citation|proper\s+apa\s+format|"
    r"the\s+corrected\s+citation\s+is|corrected\s+citation)\s*:?\s*",
    re.IGNORECASE,
)
CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
APA_TITLE = re.compile(r"\(\d{4}[a-z]?\)\.\s*([^.?!]+)[.?!]")

ENRICHMENT_MIN_SIMILARITY = 80
NOOP_MIN_RATIO = 97
NOOP_MAX_LENGTH_DELTA = 15

METADATA_TEXT_FIELDS = ("title", "journal", "doi", "url")


@dataclass
class FixResult:
    """Outcome of a fix attempt."""
    success: bool
    suggestion: Optional[Dict[str, str]] = None
    metadata: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    already_correct: bool = False
    source: Optional[str] = None
    confidence: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


class LLMClient:
    """Minimal OpenAI-compatible chat-completions client."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None, api_key: Optional[str] = None,
                 api_url: Optional[str] = None, model: Optional[str] = None,
                 timeout: Optional[float] = None):
        self._http_client = http_client
        self._api_key = api_key
        self.api_url = api_url or LLM_CONFIG["api_url"]
        self.model = model or LLM_CONFIG["model"]
        self.timeout = timeout or LLM_CONFIG["timeout"]

    @property
    def api_key(self) -> Optional[str]:
        return self._api_key or get_llm_api_key()

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = create_http_client()
        return self._http_client

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Send one chat completion and return the assistant text."""
        if not self.api_key:
            raise UpstreamError("No LLM API key configured")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": LLM_CONFIG["temperature"],
            "max_tokens": LLM_CONFIG["max_tokens"],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            response = await self._get_http_client().post(
                self.api_url, json=payload, headers=headers, timeout=self.timeout
            )
        except httpx.TimeoutException:
            raise UpstreamError(f"LLM request timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            raise UpstreamError(f"LLM request failed: {e}")

        if response.status_code != 200:
            raise UpstreamError(f"LLM returned HTTP {response.status_code}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError):
            raise UpstreamError("LLM response had no message content")
        if not isinstance(content, str) or not content.strip():
            raise UpstreamError("LLM returned an empty answer")
        return content.strip()


def parse_llm_answer(answer: str) -> Tuple[str, Dict[str, Any]]:
    """
    Turn an LLM answer into (APA citation, metadata).

    Accepts either the JSON schema from SYSTEM_PROMPT or a bare citation
    string.

    Raises:
        UpstreamError: the model could not identify the work, or the answer
            has no usable citation.
    """
    text = CODE_FENCE.sub("", answer.strip()).strip()

    if text.startswith("{"):
        try:
            data = json.loads(text)
        except ValueError:
            data = None
        if isinstance(data, dict):
            if not data.get("found", True):
                raise UpstreamError("Could not verify or fix this citation")
            citations = data.get("citations") or {}
            apa = citations.get("APA") if isinstance(citations, dict) else citations
            if not isinstance(apa, str) or len(apa.strip()) < 10:
                raise UpstreamError("LLM answer contained no citation")
            return _clean_suggestion(apa), _clean_metadata(data.get("metadata"))

    if "INVALID" in text.upper() or len(text) < 10:
        raise UpstreamError("Could not verify or fix this citation")
    return _clean_suggestion(text), {}


def _clean_metadata(metadata: Any) -> Dict[str, Any]:
    """Keep only well-typed fields of the model's metadata object."""
    if not isinstance(metadata, dict):
        return {}
    cleaned: Dict[str, Any] = {}
    for key in METADATA_TEXT_FIELDS:
        value = metadata.get(key)
        if isinstance(value, str) and value.strip():
            cleaned[key] = value.strip()
    authors = metadata.get("authors")
    if isinstance(authors, list):
        names = [a.strip() for a in authors if isinstance(a, str) and a.strip()]
        if names:
            cleaned["authors"] = names
    year = metadata.get("year")
    if isinstance(year, str) and year.strip().isdigit():
        year = int(year.strip())
    if isinstance(year, int) and not isinstance(year, bool):
        cleaned["year"] = year
    return cleaned


def _clean_suggestion(text: str) -> str:
    text = CONVERSATIONAL_PREFIX.sub("", text.strip())
    return text.strip().strip('"').strip()


def _compact(text: str) -> str:
    return re.sub(r"[^\w]", "", text.lower())


def is_noop(original: str, proposed: str) -> bool:
    """True when a proposed fix is only a cosmetic variant of the input."""
    a, b = _compact(original), _compact(proposed)
    if not b:
        return False
    if a == b:
        return True
    if b in a and len(original) - len(proposed) < NOOP_MAX_LENGTH_DELTA:
        return True
    return fuzz.ratio(a, b) >= NOOP_MIN_RATIO


class CitationFixer:
    """
    Suggest corrected citations from database records or an LLM.
    """

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None,
                 openalex: Optional[OpenAlexSource] = None,
                 crossref: Optional[CrossRefSource] = None,
                 llm: Optional[LLMClient] = None,
                 scorer: Optional[MatchScorer] = None,
                 extractor: Optional[ReferenceExtractor] = None,
                 email: Optional[str] = None):
        self._owns_http_client = http_client is None
        self._http_client = http_client or create_http_client(email)
        self.openalex = openalex or OpenAlexSource(self._http_client)
        self.crossref = crossref or CrossRefSource(self._http_client)
        self.llm = llm or LLMClient(self._http_client)
        self.scorer = scorer or MatchScorer()
        self.extractor = extractor or ReferenceExtractor()

    async def close(self):
        if self._owns_http_client:
            await self._http_client.aclose()

    async def __aenter__(self) -> "CitationFixer":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def fix(self, citation_text: str) -> FixResult:
        """
        Suggest a corrected citation.

        Raises:
            InputError: citation_text is empty or too long.
        """
        if not isinstance(citation_text, str) or not citation_text.strip():
            raise InputError("Citation cannot be empty")
        text = citation_text.strip()
        if len(text) > INPUT_LIMITS["max_citation_length"]:
            raise InputError(f"Citation too long (maximum {INPUT_LIMITS['max_citation_length']} characters)")

        parsed = self.extractor.extract(text)
        match = await self._database_match(parsed, text)

        if match is not None:
            work = match.work
            suggestion = format_all(work)
            if is_noop(text, suggestion["APA"]):
                return FixResult(
                    success=True,
                    suggestion={"APA": text},
                    metadata=work_metadata(work),
                    already_correct=True,
                    source=work.source.value,
                    confidence=95,
                )
            logger.info("Fixed from %s (score %d)", work.source.value, match.relevance_score)
            return FixResult(
                success=True,
                suggestion=suggestion,
                metadata=work_metadata(work),
                source=work.source.value,
                confidence=95,
            )

        return await self._llm_fix(text)

    async def _database_match(self, parsed: ParsedCitation, text: str) -> Optional[ScoredCandidate]:
        searches = []
        if self.openalex.applicable(parsed):
            searches.append(self.openalex.search(parsed))
        else:
            searches.append(self.openalex.search_text(text))
        if self.crossref.applicable(parsed):
            searches.append(self.crossref.search(parsed))

        outcomes = await asyncio.gather(*searches, return_exceptions=True)
        candidates = []
        for outcome in outcomes:
            if isinstance(outcome, SourceResult):
                candidates.extend(outcome.candidates)
            elif isinstance(outcome, asyncio.CancelledError):
                raise outcome
            else:
                logger.warning("Fixer search raised unexpectedly: %r", outcome)

        if not candidates:
            return None

        for scored in self.scorer.rank(parsed, candidates):
            if scored.relevance_score < SCORING_CONFIG["fix_threshold"]:
                break
            # Author and year alone can reach the threshold; a fix must be the same work
            if scored.breakdown.fixed_score is not None or scored.breakdown.title_matched:
                return scored
            logger.debug("Database match %r scored %d without title evidence",
                         scored.work.title, scored.relevance_score)
        return None

    async def _llm_fix(self, text: str) -> FixResult:
        if len(text) < INPUT_LIMITS["min_fixable_length"]:
            return FixResult(success=False, error="Input too short to fix")
        if not self.llm.configured:
            return FixResult(success=False, error="Could not fix citation")

        try:
            answer = await self.llm.complete(SYSTEM_PROMPT, f'Citation to fix: "{text}"')
            suggestion, metadata = parse_llm_answer(answer)
        except UpstreamError as e:
            logger.warning("LLM fix failed: %s", e)
            return FixResult(success=False, error=str(e))

        if is_noop(text, suggestion):
            return FixResult(success=True, suggestion={"APA": text}, metadata=metadata or None,
                             already_correct=True, source="LLM", confidence=70)

        suggestion, metadata, enriched = await self._enrich(suggestion, metadata)
        return FixResult(
            success=True,
            suggestion={"APA": suggestion},
            metadata=metadata or None,
            source="LLM + OpenAlex" if enriched else "LLM",
            confidence=95 if enriched else 70,
        )

    async def _enrich(self, suggestion: str, metadata: Dict[str, Any]) -> Tuple[str, Dict[str, Any], bool]:
        """One OpenAlex lookup on the suggested title to attach a DOI."""
        title = metadata.get("title")
        if not title:
            match = APA_TITLE.search(suggestion)
            title = match.group(1).strip() if match else None
        if not title:
            return suggestion, metadata, False

        result = await self.openalex.search_text(title, per_page=1)
        if not result.candidates:
            return suggestion, metadata, False

        best = result.candidates[0]
        similarity = fuzz.token_set_ratio(normalize_text(title), normalize_text(best.title))
        if similarity < ENRICHMENT_MIN_SIMILARITY:
            logger.debug("Enrichment candidate %r too dissimilar (%.0f)", best.title, similarity)
            return suggestion, metadata, False

        enriched = dict(metadata)
        enriched.update({
            "title": best.title,
            "year": best.year,
            "doi": best.doi or enriched.get("doi"),
            "url": best.url or enriched.get("url"),
        })
        if best.doi and best.doi.lower() not in suggestion.lower() and "doi.org" not in suggestion:
            suggestion = suggestion.rstrip(".") + f". https://doi.org/{best.doi}"
        return suggestion, enriched, True

