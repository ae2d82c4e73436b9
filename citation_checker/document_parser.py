"""
Document Parser - Pull candidate citation strings out of raw document text.

The caller supplies already-extracted text (PDF/DOCX extraction happens
elsewhere). Three span shapes are collected:
- DOI-shaped spans
- "Author (Year) ... ." spans
- reference-list lines ("Smith, J. ... (2020) ...")

Spans are cleaned, filtered, de-duplicated and capped. When none of the
shapes match, lines following a References/Bibliography header are used.
"""

import logging
import re
from typing import List, Optional

from .config import INPUT_LIMITS
from .errors import InputError

logger = logging.getLogger(__name__)


class DocumentParser:
    """
    Regex-based citation span extraction from plain text.
    """

    CITATION_PATTERNS = [
        # DOI
        re.compile(r"\b10\.\d{4,9}/[-._;()/:A-Z0-9]+\b", re.IGNORECASE),
        # Author (Year) ... up to the first period or venue keyword
        re.compile(
            r"(?:[A-Z][a-z]+(?:, [A-Z]\.)?(?:, (?:&|and) [A-Z][a-z]+(?:, [A-Z]\.)?)?|et al\.)"
            r" \(\d{4}\)(?:\.|\s).*?(?:\.|Journal|Proceedings)"
        ),
        # Reference-list line: Surname, I. ... (Year) ...
        re.compile(r"^[A-Z][a-z]+, [A-Z]\..*?\(\d{4}\).*?$", re.MULTILINE),
    ]

    # Headers that start a reference list
    REFERENCE_HEADERS = [
        r"(?:^|\n)\s*references?\s*:?\s*(?:\n|$)",
        r"(?:^|\n)\s*bibliography\s*:?\s*(?:\n|$)",
        r"(?:^|\n)\s*works?\s+cited\s*:?\s*(?:\n|$)",
    ]

    # Patterns that indicate table content (not references)
    TABLE_INDICATORS = [
        r"^\s*[\d.,]+\s*$",  # Just numbers
        r"^\s*[\d.,]+\s*%\s*$",  # Percentages
        r"^\s*[<>≤≥=±]\s*[\d.,]+",  # Statistical values
        r"^\s*p\s*[<>=]\s*[\d.,]+",  # P-values
        r"^\s*n\s*=\s*\d+",  # Sample sizes
        r"^\s*\(\s*[\d.,-]+\s*,\s*[\d.,-]+\s*\)\s*$",  # CI ranges like "(1.2, 3.4)"
        r"^\s*Table\s+\d+",
        r"^\s*Figure\s+\d+",
    ]

    YEAR_PATTERN = re.compile(r"\b(?:1[6-9]|20)\d{2}\b")
    EXCLUDED_PHRASES = ("copyright", "all rights reserved")
    FALLBACK_MIN_LINE_LENGTH = 30

    def __init__(self, min_length: Optional[int] = None, max_length: Optional[int] = None,
                 max_citations: Optional[int] = None):
        self.min_length = min_length or INPUT_LIMITS["min_document_citation_length"]
        self.max_length = max_length or INPUT_LIMITS["max_document_citation_length"]
        self.max_citations = max_citations or INPUT_LIMITS["max_document_citations"]
        self.max_fallback_lines = INPUT_LIMITS["max_fallback_lines"]

    def extract_citations(self, raw_text: str) -> List[str]:
        """
        Extract candidate citation strings from document text.

        Returns:
            De-duplicated spans in order of discovery, at most max_citations.

        Raises:
            InputError: raw_text is empty.
        """
        if not raw_text or not raw_text.strip():
            raise InputError("Document text cannot be empty")

        spans = []
        for pattern in self.CITATION_PATTERNS:
            spans.extend(m.group(0) for m in pattern.finditer(raw_text))

        citations = self._dedupe(
            span for span in (self._clean(s) for s in spans) if self._is_citation(span)
        )

        if not citations:
            citations = self._fallback_lines(raw_text)
            if citations:
                logger.info("No citation spans matched; using %d reference-section lines", len(citations))

        logger.debug("Extracted %d citations from %d chars", len(citations), len(raw_text))
        return citations[:self.max_citations]

    def _clean(self, span: str) -> str:
        return re.sub(r"\s+", " ", span).strip()

    def _is_citation(self, span: str) -> bool:
        if not (self.min_length < len(span) < self.max_length):
            return False
        if not self.YEAR_PATTERN.search(span):
            return False
        lower = span.lower()
        if any(phrase in lower for phrase in self.EXCLUDED_PHRASES):
            return False
        return not self._is_table_content(span)

    def _is_table_content(self, text: str) -> bool:
        """Detect text that looks like table data rather than a reference."""
        for pattern in self.TABLE_INDICATORS:
            if re.match(pattern, text, re.IGNORECASE):
                return True

        # Very few alphabetic characters
        alpha_count = sum(1 for c in text if c.isalpha())
        return alpha_count / len(text) < 0.3

    def _dedupe(self, spans) -> List[str]:
        seen = set()
        unique = []
        for span in spans:
            if span not in seen:
                seen.add(span)
                unique.append(span)
        return unique

    def _find_references_section(self, text: str) -> str:
        for pattern in self.REFERENCE_HEADERS:
            match = re.search(pattern, text, re.IGNORECASE)
            if match:
                return text[match.end():]
        return ""

    def _fallback_lines(self, text: str) -> List[str]:
        section = self._find_references_section(text)
        lines = []
        for line in section.splitlines():
            line = self._clean(line)
            if len(line) > self.FALLBACK_MIN_LINE_LENGTH and self.YEAR_PATTERN.search(line):
                lines.append(line)
        return self._dedupe(lines)[:self.max_fallback_lines]


def extract_citations_from_text(raw_text: str) -> List[str]:
    """Module-level convenience wrapper around DocumentParser."""
    return DocumentParser().extract_citations(raw_text)
