"""
Reference Extractor - Parse free-text citations into structured data.

Extracts from raw citation text:
- DOI, arXiv ID, URL, ISBN
- Year
- First author surname (or corporate author)
- Title
- Journal / venue
- Format (Article, Book, BibTeX)

Citations arrive in APA, MLA, Chicago, informal and corporate-author styles,
so every field is produced by an ordered list of rules, most specific first.
The first rule that yields a value wins.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, NamedTuple, Optional

logger = logging.getLogger(__name__)


class CitationFormat(str, Enum):
    """Coarse citation type."""
    ARTICLE = "Article"
    BOOK = "Book"
    BIBTEX = "BibTeX"
    UNKNOWN = "Unknown"


@dataclass
class ParsedCitation:
    """Structured representation of a citation. Every field is best-effort."""
    raw_text: str = ""
    author: Optional[str] = None
    year: Optional[int] = None
    title: Optional[str] = None
    journal: Optional[str] = None
    doi: Optional[str] = None
    url: Optional[str] = None
    isbn: Optional[str] = None
    arxiv_id: Optional[str] = None
    format: CitationFormat = CitationFormat.UNKNOWN


@dataclass
class _ParseContext:
    text: str      # original text, whitespace-collapsed
    working: str   # text with DOI/URL/ISBN spans removed
    author: Optional[str] = None
    year: Optional[int] = None
    title: Optional[str] = None


class Rule(NamedTuple):
    """One extraction heuristic: applies when `applies(ctx)` holds."""
    name: str
    applies: Callable[[_ParseContext], bool]
    extract: Callable[[_ParseContext], Optional[str]]


def _always(ctx: _ParseContext) -> bool:
    return True


# Uppercase / lowercase letter classes including Latin-1 accented letters
_UP = "A-ZÀ-Þ"
_LO = "a-zß-ÿ"
_NAME = rf"[{_UP}][{_LO}]+"

_PARTICLES = (
    r"(?:[Vv]an|[Vv]on|[Dd]e|[Dd]er|[Dd]en|[Dd]el|[Dd]ella|[Dd]i|[Dd]u|[Dd]a|"
    r"[Dd]os|[Dd]as|[Ll]a|[Ll]e|[Tt]en|[Tt]er|bin|ibn|[Aa]l)"
)

_CORPORATE_SUFFIXES = (
    r"(?:Organi[sz]ation|Institute|Association|Agency|Department|Committee|Council|"
    r"Foundation|Society|Bureau|Commission|Office|Centre|Center)"
)


class ReferenceExtractor:
    """
    Parse individual citations into structured data.

    `extract()` never raises; a field whose rules all fail stays None.
    """

    # DOI: canonical 10.NNNN/suffix shape
    DOI_PATTERN = re.compile(r"\b(10\.\d{4,9}/[-._;()/:A-Za-z0-9]+)")
    ARXIV_DOI_PATTERN = re.compile(r"^10\.48550/arxiv\.(.+)$", re.IGNORECASE)

    _ARXIV_ID = r"((?:\d{4}\.\d{4,5}|[a-z\-]+(?:\.[A-Za-z]{2})?/\d{7})(?:v\d+)?)"
    ARXIV_PATTERNS = [
        re.compile(r"arXiv:\s*" + _ARXIV_ID, re.IGNORECASE),
        re.compile(r"arxiv\.org/(?:abs|pdf)/" + _ARXIV_ID, re.IGNORECASE),
        re.compile(r"\barXiv\s+(\d{4}\.\d{4,5}(?:v\d+)?)", re.IGNORECASE),
    ]

    URL_PATTERN = re.compile(r"https?://[^\s,)]+", re.IGNORECASE)
    ISBN_PATTERN = re.compile(r"ISBN(?:-1[03])?[:\s]*(\d[\d-]{8,15}[\dXx])", re.IGNORECASE)

    YEAR_PATTERNS = [
        ("parenthesized", re.compile(r"\((\d{4})[a-z]?\)")),
        ("after_comma", re.compile(r",\s*(\d{4})[a-z]?(?=[,.;:\s)]|$)")),
        ("bare", re.compile(r"\b(19\d{2}|20[0-2]\d)\b")),
    ]

    AUTHOR_PATTERNS = [
        ("corporate", re.compile(
            rf"^((?:[{_UP}][\w&'.-]*\s+(?:(?:of|for|and|on|the)\s+)*){{0,6}}{_CORPORATE_SUFFIXES}"
            rf"(?:\s+(?:of|for|on)(?:\s+the)?\s+[{_UP}][\w&'-]*(?:\s+[{_UP}][\w&'-]*){{0,4}})?)"
        )),
        ("corporate_acronym", re.compile(
            r"^(WHO|CDC|NIH|FDA|NICE|OECD|UNESCO|UNICEF|IEEE|ACM|NASA|IPCC|EPA|IMF)\b"
        )),
        ("particle_surname", re.compile(rf"^((?:{_PARTICLES}\s+)+[{_UP}][\w'-]+)\s*,")),
        ("two_word_surname", re.compile(rf"^({_NAME}\s+{_NAME})\s*,\s*[{_UP}]\.")),
        ("hyphenated_surname", re.compile(rf"^({_NAME}-{_NAME})\s*,")),
        ("apostrophe_surname", re.compile(
            rf"^([{_UP}]'[{_UP}][{_LO}]+|[{_UP}][{_LO}]*'[{_UP}]?[{_LO}]+)\s*,"
        )),
        ("surname_comma", re.compile(rf"^({_NAME})\s*,")),
        ("name_before_paren", re.compile(
            rf"^({_NAME})(?:\s+(?:et\s+al\.?|and\s+{_NAME}|&\s+{_NAME}))?\s*\("
        )),
        ("name_before_year", re.compile(rf"^({_NAME})(?:\s+et\s+al\.?)?,?\s+\d{{4}}\b")),
    ]

    # Words that look like names at the start of a string but never are
    AUTHOR_STOPWORDS = {
        "The", "A", "An", "In", "On", "Of", "For", "And", "To", "At", "By", "With",
        "From", "This", "That", "These", "Some", "Introduction", "Abstract",
        "Journal", "Proceedings", "Nature", "Science", "Retrieved", "Available",
    }

    JOURNAL_PATTERNS = [
        ("named_series", re.compile(
            r"\b((?:(?:IEEE|ACM)\s+)?(?:(?:International|American|European|British)\s+)?"
            r"(?:Journal of|Proceedings of(?: the)?|Advances in|Transactions on|Annals of|"
            r"Annual Review of)\s+[A-Z][^,.\d()]*)"
        )),
        ("title_then_journal", re.compile(r"\.\s+([A-Z][A-Za-z&:'\- ]{2,80}?),\s*\d+")),
        ("well_known_venue", re.compile(
            r"(?:^|[.,]\s+|\bIn\s+)(New England Journal of Medicine|The Lancet|Lancet|"
            r"Nature|Science|Cell|JAMA|NEJM|BMJ|PNAS)\b"
        )),
    ]

    PUBLISHER_PATTERN = re.compile(
        r"\b(Addison-Wesley|Springer|Wiley|O'Reilly|MIT Press|Cambridge University Press|"
        r"Oxford University Press|Princeton University Press|Cambridge|Oxford|Pearson|"
        r"McGraw-Hill|Routledge|Penguin|HarperCollins|Basic Books)\b"
    )
    EDITION_PATTERN = re.compile(r"\(\d+(?:st|nd|rd|th)?\s*ed\.?\)", re.IGNORECASE)
    BIBTEX_PATTERN = re.compile(
        r"@(?:article|book|inproceedings|incollection|misc|phdthesis|techreport)\s*\{",
        re.IGNORECASE,
    )

    MAX_TITLE_LENGTH = 200

    def __init__(self):
        self._title_rules: List[Rule] = [
            Rule("quoted", _always, self._title_quoted),
            Rule("after_year", _always, self._title_after_year),
            Rule("author_year_title", _always, self._title_author_year_comma),
            Rule("title_only", lambda ctx: ctx.author is None, self._title_before_year),
            Rule("author_date_periods", _always, self._title_author_date_periods),
            Rule("generic", _always, self._title_generic),
        ]

    def extract(self, citation_text: str) -> ParsedCitation:
        """
        Parse a raw citation text into structured data.

        Args:
            citation_text: The raw citation text

        Returns:
            ParsedCitation with whatever fields could be extracted
        """
        text = re.sub(r"\s+", " ", citation_text or "").strip()
        parsed = ParsedCitation(raw_text=citation_text or "")
        if not text:
            return parsed

        parsed.doi = self._extract_doi(text)
        if parsed.doi:
            arxiv_doi = self.ARXIV_DOI_PATTERN.match(parsed.doi)
            if arxiv_doi:
                parsed.arxiv_id = arxiv_doi.group(1)
        if not parsed.arxiv_id:
            parsed.arxiv_id = self._extract_arxiv_id(text)

        parsed.url = self._extract_url(text)
        parsed.isbn = self._extract_isbn(text)

        ctx = _ParseContext(text=text, working=self._working_text(text, parsed))
        ctx.year = parsed.year = self._extract_year(ctx.working)
        ctx.author = parsed.author = self._extract_author(ctx.working)
        ctx.title = parsed.title = self._extract_title(ctx)
        parsed.journal = self._extract_journal(ctx)
        parsed.format = self._classify_format(text, parsed)

        logger.debug("Parsed citation: %s", parsed)
        return parsed

    def extract_batch(self, entries: List[str]) -> List[ParsedCitation]:
        """Parse multiple citation entries."""
        return [self.extract(entry) for entry in entries]

    # ------------------------------------------------------------------
    # Identifiers
    # ------------------------------------------------------------------

    def _extract_doi(self, text: str) -> Optional[str]:
        match = self.DOI_PATTERN.search(text)
        if not match:
            return None
        doi = match.group(1).rstrip(".,;:")
        # Drop a closing paren that belongs to the surrounding text
        while doi.endswith(")") and doi.count(")") > doi.count("("):
            doi = doi[:-1].rstrip(".,;:")
        return doi

    def _extract_arxiv_id(self, text: str) -> Optional[str]:
        for pattern in self.ARXIV_PATTERNS:
            match = pattern.search(text)
            if match:
                return match.group(1)
        return None

    def _extract_url(self, text: str) -> Optional[str]:
        match = self.URL_PATTERN.search(text)
        if match:
            return match.group().rstrip(".;:")
        return None

    def _extract_isbn(self, text: str) -> Optional[str]:
        match = self.ISBN_PATTERN.search(text)
        if match:
            return re.sub(r"[-\s]", "", match.group(1)).upper()
        return None

    def _working_text(self, text: str, parsed: ParsedCitation) -> str:
        """Remove identifier and edition spans so their digits are never read as years."""
        working = self.URL_PATTERN.sub(" ", text)
        if parsed.doi:
            working = working.replace(parsed.doi, " ")
        working = re.sub(r"\bdoi:\s*", " ", working, flags=re.IGNORECASE)
        working = self.ISBN_PATTERN.sub(" ", working)
        working = re.sub(r"\barXiv:\s*\S+", " ", working, flags=re.IGNORECASE)
        working = self.EDITION_PATTERN.sub(" ", working)
        return re.sub(r"\s+", " ", working).strip()

    # ------------------------------------------------------------------
    # Year and author
    # ------------------------------------------------------------------

    def _extract_year(self, text: str) -> Optional[int]:
        for name, pattern in self.YEAR_PATTERNS:
            match = pattern.search(text)
            if match:
                logger.debug("Year rule %s matched %s", name, match.group(1))
                return int(match.group(1))
        return None

    def _extract_author(self, text: str) -> Optional[str]:
        for name, pattern in self.AUTHOR_PATTERNS:
            match = pattern.search(text)
            if not match:
                continue
            author = match.group(1).strip().rstrip(",.")
            if author in self.AUTHOR_STOPWORDS:
                continue
            logger.debug("Author rule %s matched %r", name, author)
            return author
        return None

    # ------------------------------------------------------------------
    # Title
    # ------------------------------------------------------------------

    def _extract_title(self, ctx: _ParseContext) -> Optional[str]:
        for rule in self._title_rules:
            if not rule.applies(ctx):
                continue
            candidate = rule.extract(ctx)
            if not candidate:
                continue
            title = self._clean_title(candidate)
            if title:
                logger.debug("Title rule %s matched %r", rule.name, title)
                return title
        return None

    def _title_quoted(self, ctx: _ParseContext) -> Optional[str]:
        match = re.search(r"[\"“]([^\"”]{4,300})[\"”]", ctx.working)
        if not match:
            match = re.search(r"‘([^’]{4,300})’", ctx.working)
        return match.group(1) if match else None

    def _title_after_year(self, ctx: _ParseContext) -> Optional[str]:
        match = re.search(r"\(\d{4}[a-z]?\)[.,:]?\s*([^.?!]{3,}[?!]?)", ctx.working)
        if not match:
            return None
        title = match.group(1)
        # Stop at an inline venue marker: "..., In Proceedings of", "..., Journal of"
        return re.split(
            r",\s*(?:In|Journal|Proceedings|Retrieved)\b|\s+(?:Journal of|Proceedings of)\b",
            title,
            maxsplit=1,
        )[0]

    def _title_author_year_comma(self, ctx: _ParseContext) -> Optional[str]:
        match = re.search(
            r"^[^()\d]{2,80}?,\s*\(?\d{4}[a-z]?\)?\s*[,.]\s*([^.,]{4,}?)\s*(?:[.,]|$)",
            ctx.working,
        )
        return match.group(1) if match else None

    def _title_before_year(self, ctx: _ParseContext) -> Optional[str]:
        match = re.search(r"^\s*([A-Z][^()]{9,}?)\s*[.,]?\s*\(\d{4}[a-z]?\)", ctx.working)
        return match.group(1) if match else None

    def _title_author_date_periods(self, ctx: _ParseContext) -> Optional[str]:
        match = re.search(r"^[^()]+?\.\s+\d{4}[a-z]?\.\s+([^.]{4,}?)\.", ctx.working)
        return match.group(1) if match else None

    def _title_generic(self, ctx: _ParseContext) -> Optional[str]:
        match = re.search(r"\(\d{4}[a-z]?\)\.\s*(.{10,150}?)\.(?:\s|$)", ctx.working)
        return match.group(1) if match else None

    def _clean_title(self, title: str) -> Optional[str]:
        """Normalize a raw title candidate; None when nothing usable remains."""
        title = re.sub(r"\s+", " ", title).strip()
        title = re.sub(r"^\(?\d{4}[a-z]?\)?[.,:]?\s+", "", title)
        title = re.sub(r"^et\s+al\.?,?\s*", "", title, flags=re.IGNORECASE)
        title = re.sub(r"\s*\(\d+(?:st|nd|rd|th)?\s*ed\.?\)\.?$", "", title, flags=re.IGNORECASE)
        # Trailing volume(issue), pages
        title = re.sub(r"[,.]?\s*\d+\s*\(\d+\)(?:\s*[,:]\s*\d+(?:\s*[-–]\s*\d+)?)?\s*$", "", title)
        title = re.sub(r",\s*(?:pp?\.\s*)?\d+\s*[-–]\s*\d+\s*$", "", title)
        title = title.strip(" \"'“”‘’").rstrip(".,;:").strip()
        if len(title) > self.MAX_TITLE_LENGTH:
            title = title[:self.MAX_TITLE_LENGTH].rstrip()
        return title if len(title) >= 2 else None

    # ------------------------------------------------------------------
    # Journal and format
    # ------------------------------------------------------------------

    def _extract_journal(self, ctx: _ParseContext) -> Optional[str]:
        for name, pattern in self.JOURNAL_PATTERNS:
            for match in pattern.finditer(ctx.working):
                journal = match.group(1).strip().rstrip(".,;:")
                if len(journal) < 3:
                    continue
                if ctx.title and journal.lower() == ctx.title.lower():
                    continue
                if ctx.author and journal == ctx.author:
                    continue
                logger.debug("Journal rule %s matched %r", name, journal)
                return journal
        return None

    def _classify_format(self, text: str, parsed: ParsedCitation) -> CitationFormat:
        if self.BIBTEX_PATTERN.search(text):
            return CitationFormat.BIBTEX

        publisher = self.PUBLISHER_PATTERN.search(text)
        if publisher or self.EDITION_PATTERN.search(text) or parsed.isbn:
            if publisher and not parsed.journal:
                parsed.journal = publisher.group(1)
            return CitationFormat.BOOK

        if parsed.author or parsed.title or parsed.year or parsed.doi:
            return CitationFormat.ARTICLE
        return CitationFormat.UNKNOWN


_default_extractor = ReferenceExtractor()


def parse_citation(citation_text: str) -> ParsedCitation:
    """Parse a citation with a shared extractor instance."""
    return _default_extractor.extract(citation_text)
