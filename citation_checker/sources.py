"""
Source Adapters - Query external bibliographic databases.

Sources:
- DOI registry (CrossRef /works/{doi}, exact lookup)
- CrossRef search
- OpenAlex search
- Google Books
- arXiv (id lookup or title search, Atom XML)

Each adapter issues one GET with its own timeout and maps the provider's
response into CandidateWork records. Failures never propagate: a timeout,
non-200 status or malformed body is logged and reported as an empty
SourceResult with `error` set.
"""

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from .config import CONTACT_EMAIL, SOURCE_CONFIG, USER_AGENT
from .errors import SourceUnavailable
from .reference_extractor import ParsedCitation
from .validators import is_valid_doi, is_valid_isbn

logger = logging.getLogger(__name__)


class Source(str, Enum):
    """Database a candidate work came from."""
    CROSSREF = "CrossRef"
    OPENALEX = "OpenAlex"
    GOOGLE_BOOKS = "GoogleBooks"
    ARXIV = "arXiv"


# Tie-break order when two candidates score the same; exact identifier
# lookups (DOI, arXiv id) rank ahead of every fuzzy source.
IDENTIFIER_PRIORITY = 0
SOURCE_PRIORITY = {
    Source.CROSSREF: 1,
    Source.OPENALEX: 2,
    Source.ARXIV: 3,
    Source.GOOGLE_BOOKS: 4,
}


@dataclass
class CandidateWork:
    """A bibliographic record returned by a source, not yet known to match."""
    source: Source
    title: Optional[str] = None
    authors: List[str] = field(default_factory=list)
    year: Optional[int] = None
    journal: Optional[str] = None
    doi: Optional[str] = None
    citation_count: int = 0
    isbn: Optional[str] = None
    url: Optional[str] = None
    identifier_match: bool = False  # produced by an exact DOI / arXiv id lookup

    @property
    def priority(self) -> int:
        if self.identifier_match:
            return IDENTIFIER_PRIORITY
        return SOURCE_PRIORITY.get(self.source, len(SOURCE_PRIORITY) + 1)


@dataclass
class SourceResult:
    """Outcome of one adapter call."""
    source_name: str
    queried: bool = False
    candidates: List[CandidateWork] = field(default_factory=list)
    error: Optional[str] = None


def create_http_client(email: Optional[str] = None) -> httpx.AsyncClient:
    """Shared async client with a descriptive User-Agent."""
    email = email or CONTACT_EMAIL
    user_agent = f"{USER_AGENT} (mailto:{email})" if email else USER_AGENT
    return httpx.AsyncClient(headers={"User-Agent": user_agent}, follow_redirects=True)


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _year_from_text(value: Any) -> Optional[int]:
    if value is None:
        return None
    match = re.match(r"^(\d{4})", str(value))
    return int(match.group(1)) if match else None


def _clean_doi(doi: Optional[str]) -> Optional[str]:
    if not doi:
        return None
    return re.sub(r"^https?://(?:dx\.)?doi\.org/", "", doi.strip(), flags=re.IGNORECASE) or None


class BaseSource:
    """Base class for source adapters."""

    name = ""
    config_key = ""

    def __init__(self, client: httpx.AsyncClient, base_url: Optional[str] = None,
                 timeout: Optional[float] = None, max_results: Optional[int] = None):
        settings = SOURCE_CONFIG[self.config_key]
        self.client = client
        self.base_url = base_url or settings["base_url"]
        self.timeout = timeout if timeout is not None else settings["timeout"]
        self.max_results = max_results or settings["max_results"]

    def applicable(self, parsed: ParsedCitation) -> bool:
        """Whether the parsed citation has enough fields for this source."""
        raise NotImplementedError("Subclasses must implement applicable")

    def build_request(self, parsed: ParsedCitation) -> Tuple[str, Dict[str, Any]]:
        """Return (url, query params) for the parsed citation."""
        raise NotImplementedError("Subclasses must implement build_request")

    def parse_response(self, response: httpx.Response) -> List[CandidateWork]:
        """Map the provider's response into candidate works."""
        raise NotImplementedError("Subclasses must implement parse_response")

    async def search(self, parsed: ParsedCitation) -> SourceResult:
        """Query the source; never raises."""
        result = SourceResult(source_name=self.name)
        if not self.applicable(parsed):
            return result

        result.queried = True
        url, params = self.build_request(parsed)
        try:
            result.candidates = await self._fetch(url, params)
        except SourceUnavailable as e:
            logger.warning("Source unavailable: %s", e)
            result.error = e.reason
        return result

    async def _fetch(self, url: str, params: Optional[Dict[str, Any]]) -> List[CandidateWork]:
        response = await self._get(url, params)
        try:
            candidates = self.parse_response(response)
        except (KeyError, TypeError, ValueError, IndexError, AttributeError, ET.ParseError) as e:
            raise SourceUnavailable(self.name, f"malformed response: {e}")
        logger.debug("%s returned %d candidates", self.name, len(candidates))
        return candidates[:self.max_results]

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        try:
            response = await self.client.get(url, params=params, timeout=self.timeout)
        except httpx.TimeoutException:
            raise SourceUnavailable(self.name, f"timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            raise SourceUnavailable(self.name, f"transport error: {e}")

        if response.status_code != 200:
            raise SourceUnavailable(self.name, f"HTTP {response.status_code}", response.status_code)
        return response

    def _json(self, response: httpx.Response) -> Dict[str, Any]:
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        return data


# =============================================================================
# CrossRef
# =============================================================================

def crossref_item_to_work(item: Dict[str, Any], identifier_match: bool = False) -> CandidateWork:
    """Map a CrossRef work item into a CandidateWork."""
    authors = []
    for author in item.get("author") or []:
        if author.get("family"):
            name = author["family"]
            if author.get("given"):
                name = f"{author['given']} {name}"
            authors.append(name)
        elif author.get("name"):
            authors.append(author["name"])

    year = None
    for key in ("issued", "published", "published-print", "published-online"):
        parts = (item.get(key) or {}).get("date-parts") or []
        if parts and parts[0] and parts[0][0]:
            year = int(parts[0][0])
            break

    doi = _clean_doi(item.get("DOI"))
    return CandidateWork(
        source=Source.CROSSREF,
        title=_first(item.get("title")),
        authors=authors,
        year=year,
        journal=_first(item.get("container-title")),
        doi=doi,
        citation_count=int(item.get("is-referenced-by-count") or 0),
        url=f"https://doi.org/{doi}" if doi else None,
        identifier_match=identifier_match,
    )


class DOISource(BaseSource):
    """Exact DOI lookup against the CrossRef registry."""

    name = "DOI"
    config_key = "doi"

    def applicable(self, parsed: ParsedCitation) -> bool:
        return is_valid_doi(parsed.doi)

    def build_request(self, parsed: ParsedCitation) -> Tuple[str, Dict[str, Any]]:
        return f"{self.base_url}/{quote(parsed.doi, safe='/')}", {}

    def parse_response(self, response: httpx.Response) -> List[CandidateWork]:
        item = self._json(response).get("message")
        if not item:
            return []
        work = crossref_item_to_work(item, identifier_match=True)
        if not work.doi:
            return []
        return [work]


class CrossRefSource(BaseSource):
    """CrossRef bibliographic search by title and author."""

    name = "CrossRef"
    config_key = "crossref"

    SELECT_FIELDS = "DOI,title,author,issued,published,container-title,is-referenced-by-count"

    def applicable(self, parsed: ParsedCitation) -> bool:
        return bool(parsed.title)

    def build_request(self, parsed: ParsedCitation) -> Tuple[str, Dict[str, Any]]:
        params = {
            "query.title": parsed.title[:200],
            "rows": self.max_results,
            "select": self.SELECT_FIELDS,
        }
        if parsed.author:
            params["query.author"] = parsed.author
        return self.base_url, params

    def parse_response(self, response: httpx.Response) -> List[CandidateWork]:
        items = self._json(response).get("message", {}).get("items", [])
        return [crossref_item_to_work(item) for item in items if item.get("title")]


# =============================================================================
# OpenAlex
# =============================================================================

class OpenAlexSource(BaseSource):
    """OpenAlex full-text work search."""

    name = "OpenAlex"
    config_key = "openalex"

    def applicable(self, parsed: ParsedCitation) -> bool:
        return bool(parsed.title)

    def build_request(self, parsed: ParsedCitation) -> Tuple[str, Dict[str, Any]]:
        query = parsed.title[:100]
        if parsed.author:
            query += f" {parsed.author[:30]}"
        return self.base_url, self._params(query, self.max_results)

    def _params(self, query: str, per_page: int) -> Dict[str, Any]:
        params = {"search": query, "per-page": per_page}
        if CONTACT_EMAIL:
            params["mailto"] = CONTACT_EMAIL
        return params

    async def search_text(self, query: str, per_page: Optional[int] = None) -> SourceResult:
        """Free-text search, used when no structured title is available."""
        result = SourceResult(source_name=self.name)
        query = re.sub(r"\s+", " ", query or "").strip()
        if not query:
            return result

        result.queried = True
        try:
            result.candidates = await self._fetch(
                self.base_url, self._params(query[:200], per_page or self.max_results)
            )
        except SourceUnavailable as e:
            logger.warning("Source unavailable: %s", e)
            result.error = e.reason
        return result

    def parse_response(self, response: httpx.Response) -> List[CandidateWork]:
        works = []
        for work in self._json(response).get("results") or []:
            authors = [
                a["author"]["display_name"]
                for a in work.get("authorships") or []
                if (a.get("author") or {}).get("display_name")
            ]
            source = (work.get("primary_location") or {}).get("source") or {}
            doi = _clean_doi(work.get("doi"))
            works.append(CandidateWork(
                source=Source.OPENALEX,
                title=work.get("title") or work.get("display_name"),
                authors=authors,
                year=work.get("publication_year"),
                journal=source.get("display_name"),
                doi=doi,
                citation_count=int(work.get("cited_by_count") or 0),
                url=work.get("doi") or work.get("id"),
            ))
        return works


# =============================================================================
# Google Books
# =============================================================================

class GoogleBooksSource(BaseSource):
    """Google Books volume search, by ISBN when one is available."""

    name = "Google Books"
    config_key = "google_books"

    def applicable(self, parsed: ParsedCitation) -> bool:
        return bool(parsed.title) or is_valid_isbn(parsed.isbn)

    def build_request(self, parsed: ParsedCitation) -> Tuple[str, Dict[str, Any]]:
        if is_valid_isbn(parsed.isbn):
            query = f"isbn:{parsed.isbn}"
        else:
            query = f"intitle:{parsed.title[:100]}"
            if parsed.author:
                query += f" inauthor:{parsed.author[:30]}"
        return self.base_url, {"q": query, "maxResults": self.max_results}

    def parse_response(self, response: httpx.Response) -> List[CandidateWork]:
        works = []
        for item in self._json(response).get("items") or []:
            info = item.get("volumeInfo") or {}
            if not info.get("title"):
                continue
            identifiers = {
                ident.get("type"): ident.get("identifier")
                for ident in info.get("industryIdentifiers") or []
            }
            works.append(CandidateWork(
                source=Source.GOOGLE_BOOKS,
                title=info["title"],
                authors=list(info.get("authors") or []),
                year=_year_from_text(info.get("publishedDate")),
                journal=info.get("publisher"),
                isbn=identifiers.get("ISBN_13") or identifiers.get("ISBN_10"),
                url=info.get("infoLink"),
            ))
        return works


# =============================================================================
# arXiv
# =============================================================================

ATOM_NS = {
    "atom": "http://www.w3.org/2005/Atom",
    "arxiv": "http://arxiv.org/schemas/atom",
}


def _strip_version(arxiv_id: str) -> str:
    return re.sub(r"v\d+$", "", arxiv_id)


class ArxivSource(BaseSource):
    """arXiv query API: direct id lookup, or title search."""

    name = "arXiv"
    config_key = "arxiv"

    def applicable(self, parsed: ParsedCitation) -> bool:
        return bool(parsed.arxiv_id or parsed.title)

    def build_request(self, parsed: ParsedCitation) -> Tuple[str, Dict[str, Any]]:
        if parsed.arxiv_id:
            return self.base_url, {"id_list": parsed.arxiv_id, "max_results": 1}
        title = re.sub(r"[^\w\s-]", " ", parsed.title)
        title = re.sub(r"\s+", " ", title).strip()
        return self.base_url, {
            "search_query": f'ti:"{title}"',
            "start": 0,
            "max_results": self.max_results,
        }

    async def search(self, parsed: ParsedCitation) -> SourceResult:
        result = await super().search(parsed)
        if parsed.arxiv_id:
            wanted = _strip_version(parsed.arxiv_id).lower()
            for work in result.candidates:
                found = _strip_version(work.url.rsplit("/abs/", 1)[-1]).lower() if work.url else ""
                work.identifier_match = found == wanted
        return result

    def parse_response(self, response: httpx.Response) -> List[CandidateWork]:
        root = ET.fromstring(response.text)
        works = []
        for entry in root.findall("atom:entry", ATOM_NS):
            entry_id = (entry.findtext("atom:id", default="", namespaces=ATOM_NS) or "").strip()
            # The API reports bad queries as a single "Error" entry
            if "/api/errors" in entry_id:
                continue

            title = entry.findtext("atom:title", default="", namespaces=ATOM_NS) or ""
            title = re.sub(r"\s+", " ", title).strip()
            if not title:
                continue

            authors = [
                name.strip()
                for name in (
                    a.findtext("atom:name", default="", namespaces=ATOM_NS)
                    for a in entry.findall("atom:author", ATOM_NS)
                )
                if name and name.strip()
            ]
            journal_ref = entry.findtext("arxiv:journal_ref", default=None, namespaces=ATOM_NS)
            doi = entry.findtext("arxiv:doi", default=None, namespaces=ATOM_NS)

            works.append(CandidateWork(
                source=Source.ARXIV,
                title=title,
                authors=authors,
                year=_year_from_text(entry.findtext("atom:published", default=None, namespaces=ATOM_NS)),
                journal=journal_ref.strip() if journal_ref else "arXiv",
                doi=_clean_doi(doi),
                url=entry_id.replace("http://", "https://", 1) if entry_id else None,
            ))
        return works


def default_sources(client: httpx.AsyncClient) -> List[BaseSource]:
    """The fuzzy-search fan-out set, in tie-break order."""
    return [
        CrossRefSource(client),
        OpenAlexSource(client),
        ArxivSource(client),
        GoogleBooksSource(client),
    ]
