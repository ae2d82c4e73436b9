"""
Match Scorer - Deterministic relevance score between a parsed citation and a
candidate work.

Signals are accumulated as named, signed contributions and clamped to 0-100
at the end. Penalties are deliberately heavier than the matching credit: a
false "verified" is worse than a false "uncertain".
"""

import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from .reference_extractor import ParsedCitation
from .sources import CandidateWork

logger = logging.getLogger(__name__)


@dataclass
class ScoringWeights:
    """Tunable weights. Credits are positive, penalties negative."""
    doi_match: int = 100
    arxiv_id_match: int = 98
    doi_conflict: int = -25

    author_first: int = 35
    author_coauthor: int = 25
    author_mismatch: int = -40
    max_authors_checked: int = 10

    title_exact: int = 55
    title_substring: int = 50
    title_overlap_high: int = 40
    title_overlap_partial: int = 20
    title_mismatch: int = -20
    generic_title_wrong_author: int = -60
    short_title_wrong_author: int = -30
    overlap_high: float = 0.7
    overlap_partial: float = 0.4
    substring_min_length: int = 20
    short_title_length: int = 30

    year_exact: int = 30
    year_near: int = 15
    year_gap_per_year: int = -15
    year_gap_cap: int = -50

    citations_very_high: int = 10
    citations_high: int = 5
    very_highly_cited: int = 1000
    highly_cited: int = 100
    journal_match: int = 5

    rejection_penalty: int = 40


# Words too common in titles to count as evidence of a match
GENERIC_TITLE_WORDS = frozenset([
    "using", "based", "approach", "study", "review", "method", "methods",
    "towards", "toward", "language", "models", "model", "learning", "neural",
    "network", "networks", "deep", "large", "analysis", "artificial",
    "intelligence", "data",
])

# "A study on X", "Impact of Y", "The role of Z in ..."
GENERIC_TITLE_PATTERN = re.compile(
    r"^(?:(?:a|an|the)\s+)?(?:study|research|survey|analysis|investigation|impact|effect|effects|role)"
    r"\s+(?:on|of|into|in)\b",
    re.IGNORECASE,
)


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, strip accents and punctuation, collapse whitespace."""
    if not text:
        return ""
    text = unicodedata.normalize("NFKD", text)
    text = "".join(c for c in text if not unicodedata.combining(c))
    text = re.sub(r"[^\w\s]", " ", text.lower())
    return re.sub(r"\s+", " ", text).strip()


def normalize_doi(doi: Optional[str]) -> str:
    if not doi:
        return ""
    doi = re.sub(r"^(?:https?://(?:dx\.)?doi\.org/|doi:\s*)", "", doi.strip(), flags=re.IGNORECASE)
    return re.sub(r"\s+", "", doi).rstrip(".").lower()


@dataclass
class Contribution:
    signal: str
    points: int
    note: str = ""

    def __str__(self) -> str:
        text = f"{self.signal} {self.points:+d}"
        return f"{text} ({self.note})" if self.note else text


@dataclass
class ScoreBreakdown:
    """Ordered record of every signal that moved the score."""
    contributions: List[Contribution] = field(default_factory=list)
    author_supplied: bool = False
    author_matched: bool = False
    rejected: bool = False
    fixed_score: Optional[int] = None  # exact identifier match, bypasses signals

    def add(self, signal: str, points: int, note: str = "") -> None:
        self.contributions.append(Contribution(signal, points, note))

    @property
    def credit(self) -> int:
        return sum(c.points for c in self.contributions if c.points > 0)

    @property
    def penalty(self) -> int:
        return -sum(c.points for c in self.contributions if c.points < 0)

    @property
    def title_matched(self) -> bool:
        """Exact, substring or overlapping title credit was awarded."""
        return any(c.signal == "title" and c.points > 0 for c in self.contributions)

    @property
    def total(self) -> int:
        if self.fixed_score is not None:
            return self.fixed_score
        if self.rejected:
            return 0
        return max(0, min(100, self.credit - self.penalty))

    def describe(self) -> List[str]:
        lines = [str(c) for c in self.contributions]
        if self.rejected:
            lines.append("rejected: wrong author with heavy penalties")
        return lines


@dataclass
class ScoredCandidate:
    work: CandidateWork
    relevance_score: int
    breakdown: ScoreBreakdown


class MatchScorer:
    """
    Score candidate works against a parsed citation.

    evaluate() returns the full breakdown; score() returns only the clamped
    total; rank() scores a list and orders it best-first, breaking ties by
    source priority.
    """

    def __init__(self, weights: Optional[ScoringWeights] = None):
        self.weights = weights or ScoringWeights()

    def score(self, parsed: ParsedCitation, work: CandidateWork) -> int:
        return self.evaluate(parsed, work).total

    def rank(self, parsed: ParsedCitation, works: Sequence[CandidateWork]) -> List[ScoredCandidate]:
        scored = []
        for work in works:
            breakdown = self.evaluate(parsed, work)
            scored.append(ScoredCandidate(work, breakdown.total, breakdown))
        scored.sort(key=lambda s: (-s.relevance_score, s.work.priority))
        return scored

    def evaluate(self, parsed: ParsedCitation, work: CandidateWork) -> ScoreBreakdown:
        w = self.weights
        breakdown = ScoreBreakdown(author_supplied=bool(parsed.author))

        # DOI is ground truth
        if parsed.doi and work.doi:
            input_doi = normalize_doi(parsed.doi)
            if input_doi == normalize_doi(work.doi):
                breakdown.fixed_score = w.doi_match
                breakdown.add("doi", w.doi_match, "exact DOI match")
                return breakdown
            if "arxiv" not in input_doi:
                breakdown.add("doi", w.doi_conflict, "DOI mismatch")

        if work.identifier_match and parsed.arxiv_id:
            breakdown.fixed_score = w.arxiv_id_match
            breakdown.add("arxiv_id", w.arxiv_id_match, "exact arXiv id match")
            return breakdown

        self._score_author(parsed, work, breakdown)
        self._score_title(parsed, work, breakdown)
        self._score_year(parsed, work, breakdown)

        if work.citation_count > w.very_highly_cited:
            breakdown.add("citations", w.citations_very_high, f"{work.citation_count} citations")
        elif work.citation_count > w.highly_cited:
            breakdown.add("citations", w.citations_high, f"{work.citation_count} citations")

        if parsed.journal and work.journal:
            input_journal = normalize_text(parsed.journal)
            work_journal = normalize_text(work.journal)
            if input_journal and (input_journal in work_journal or work_journal in input_journal):
                breakdown.add("journal", w.journal_match)

        if (breakdown.author_supplied and not breakdown.author_matched
                and breakdown.penalty > w.rejection_penalty):
            breakdown.rejected = True

        logger.debug("Score %d for %r: %s", breakdown.total, work.title, breakdown.describe())
        return breakdown

    def _score_author(self, parsed: ParsedCitation, work: CandidateWork, breakdown: ScoreBreakdown):
        if not parsed.author:
            return

        position = self._author_position(parsed.author, work.authors)
        if position == 0:
            breakdown.author_matched = True
            breakdown.add("author", self.weights.author_first, "first author")
        elif position is not None:
            breakdown.author_matched = True
            breakdown.add("author", self.weights.author_coauthor, "co-author")
        else:
            breakdown.add("author", self.weights.author_mismatch, "author mismatch")

    def _author_position(self, author: str, work_authors: Sequence[str]) -> Optional[int]:
        """Index of the first work author matching the input name, or None."""
        input_author = normalize_text(author)
        input_tokens = [t for t in input_author.split() if len(t) >= 3]
        if not input_author:
            return None

        for i, name in enumerate(work_authors[:self.weights.max_authors_checked]):
            work_author = normalize_text(name)
            if not work_author:
                continue
            work_tokens = work_author.split()
            if f" {input_author} " in f" {work_author} ":
                return i
            for token in input_tokens:
                if token in work_author or any(wt.startswith(token) for wt in work_tokens):
                    return i
        return None

    def _score_title(self, parsed: ParsedCitation, work: CandidateWork, breakdown: ScoreBreakdown):
        w = self.weights
        if not parsed.title or not work.title:
            return

        input_title = normalize_text(parsed.title)
        work_title = normalize_text(work.title)

        if (GENERIC_TITLE_PATTERN.match(input_title) and breakdown.author_supplied
                and not breakdown.author_matched):
            breakdown.add("title", w.generic_title_wrong_author, "generic title, wrong author")

        if input_title == work_title:
            breakdown.add("title", w.title_exact, "exact")
        elif (len(input_title) >= w.substring_min_length and len(work_title) >= w.substring_min_length
              and (input_title in work_title or work_title in input_title)):
            breakdown.add("title", w.title_substring, "substring")
        else:
            overlap = title_overlap(input_title, work_title)
            if overlap >= w.overlap_high:
                breakdown.add("title", w.title_overlap_high, f"overlap {overlap:.0%}")
            elif overlap >= w.overlap_partial:
                breakdown.add("title", w.title_overlap_partial, f"overlap {overlap:.0%}")
            else:
                breakdown.add("title", w.title_mismatch, f"overlap {overlap:.0%}")

        if (breakdown.author_supplied and not breakdown.author_matched
                and len(parsed.title) < w.short_title_length):
            breakdown.add("title", w.short_title_wrong_author, "short title, wrong author")

    def _score_year(self, parsed: ParsedCitation, work: CandidateWork, breakdown: ScoreBreakdown):
        w = self.weights
        if not parsed.year or not work.year:
            return

        diff = abs(parsed.year - work.year)
        if diff == 0:
            breakdown.add("year", w.year_exact, "exact")
        elif diff == 1:
            breakdown.add("year", w.year_near, "off by one")
        else:
            penalty = max(w.year_gap_cap, diff * w.year_gap_per_year)
            breakdown.add("year", penalty, f"{parsed.year} vs {work.year}")


def title_overlap(input_title: str, work_title: str) -> float:
    """Share of significant words in common, relative to the shorter title."""
    input_words = {t for t in input_title.split() if len(t) > 3 and t not in GENERIC_TITLE_WORDS}
    work_words = {t for t in work_title.split() if len(t) > 3 and t not in GENERIC_TITLE_WORDS}
    shortest = min(len(input_words), len(work_words))
    if shortest == 0:
        return 0.0
    return len(input_words & work_words) / shortest
