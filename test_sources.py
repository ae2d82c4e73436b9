"""
Tests for source adapters against mocked HTTP transports.

No network access: every adapter gets an httpx.AsyncClient built on
httpx.MockTransport.
"""

import asyncio

import httpx

from citation_checker.reference_extractor import ParsedCitation
from citation_checker.sources import (
    ArxivSource,
    CrossRefSource,
    DOISource,
    GoogleBooksSource,
    OpenAlexSource,
    Source,
    default_sources,
)

ATTENTION = ParsedCitation(author="Vaswani", year=2017, title="Attention is all you need")

CROSSREF_ITEM = {
    "DOI": "10.5555/3295222.3295349",
    "title": ["Attention is all you need"],
    "author": [
        {"given": "Ashish", "family": "Vaswani"},
        {"given": "Noam", "family": "Shazeer"},
    ],
    "issued": {"date-parts": [[2017, 12]]},
    "container-title": ["Advances in Neural Information Processing Systems"],
    "is-referenced-by-count": 90000,
}

ARXIV_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom" xmlns:arxiv="http://arxiv.org/schemas/atom">
  <entry>
    <id>http://arxiv.org/abs/1706.03762v7</id>
    <published>2017-06-12T17:57:34Z</published>
    <title>Attention Is All
      You Need</title>
    <author><name>Ashish Vaswani</name></author>
    <author><name>Noam Shazeer</name></author>
  </entry>
</feed>
"""

ARXIV_ERROR_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <id>http://arxiv.org/api/errors#incorrect_id_format_for_bad</id>
    <title>Error</title>
  </entry>
</feed>
"""


class Recorder:
    """MockTransport handler that records requests and replies from a callable."""

    def __init__(self, reply):
        self.reply = reply
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.reply(request)


def run_search(source_cls, parsed, reply):
    recorder = Recorder(reply)

    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
            return await source_cls(client).search(parsed)

    return asyncio.run(go()), recorder


class TestCrossRef:

    def test_maps_items(self):
        result, recorder = run_search(
            CrossRefSource, ATTENTION,
            lambda r: httpx.Response(200, json={"message": {"items": [CROSSREF_ITEM]}}),
        )
        assert result.queried and result.error is None
        work = result.candidates[0]
        assert work.source == Source.CROSSREF
        assert work.title == "Attention is all you need"
        assert work.authors == ["Ashish Vaswani", "Noam Shazeer"]
        assert work.year == 2017
        assert work.journal == "Advances in Neural Information Processing Systems"
        assert work.citation_count == 90000

        params = recorder.requests[0].url.params
        assert params["query.title"] == "Attention is all you need"
        assert params["query.author"] == "Vaswani"

    def test_http_error_is_absence(self):
        result, _ = run_search(CrossRefSource, ATTENTION, lambda r: httpx.Response(503))
        assert result.queried
        assert result.candidates == []
        assert result.error == "HTTP 503"

    def test_malformed_body_is_absence(self):
        result, _ = run_search(CrossRefSource, ATTENTION, lambda r: httpx.Response(200, text="<html>"))
        assert result.candidates == []
        assert result.error.startswith("malformed response")

    def test_timeout_is_absence(self):
        def reply(request):
            raise httpx.ReadTimeout("slow", request=request)

        result, _ = run_search(CrossRefSource, ATTENTION, reply)
        assert result.candidates == []
        assert "timed out" in result.error

    def test_skipped_without_title(self):
        result, recorder = run_search(
            CrossRefSource, ParsedCitation(author="Smith", year=2020),
            lambda r: httpx.Response(200, json={}),
        )
        assert not result.queried
        assert recorder.requests == []


class TestDOI:

    def test_exact_lookup(self):
        parsed = ParsedCitation(doi="10.5555/3295222.3295349")
        result, recorder = run_search(
            DOISource, parsed, lambda r: httpx.Response(200, json={"message": CROSSREF_ITEM})
        )
        assert recorder.requests[0].url.path == "/works/10.5555/3295222.3295349"
        assert len(result.candidates) == 1
        assert result.candidates[0].identifier_match
        assert result.candidates[0].url == "https://doi.org/10.5555/3295222.3295349"

    def test_not_found(self):
        parsed = ParsedCitation(doi="10.1234/missing")
        result, _ = run_search(DOISource, parsed, lambda r: httpx.Response(404))
        assert result.candidates == []
        assert result.error == "HTTP 404"


class TestOpenAlex:

    OPENALEX_BODY = {
        "results": [
            {
                "id": "https://openalex.org/W2963403868",
                "doi": "https://doi.org/10.48550/arxiv.1706.03762",
                "title": "Attention Is All You Need",
                "publication_year": 2017,
                "cited_by_count": 100000,
                "authorships": [{"author": {"display_name": "Ashish Vaswani"}}],
                "primary_location": {"source": {"display_name": "arXiv (Cornell University)"}},
            },
            {
                "id": "https://openalex.org/W1",
                "doi": None,
                "title": "Another work",
                "publication_year": 2019,
                "authorships": [],
                "primary_location": None,
            },
        ]
    }

    def test_maps_results(self):
        result, recorder = run_search(
            OpenAlexSource, ATTENTION, lambda r: httpx.Response(200, json=self.OPENALEX_BODY)
        )
        first, second = result.candidates
        assert first.doi == "10.48550/arxiv.1706.03762"
        assert first.journal == "arXiv (Cornell University)"
        assert first.citation_count == 100000
        assert second.journal is None and second.doi is None
        assert recorder.requests[0].url.params["search"] == "Attention is all you need Vaswani"

    def test_search_text(self):
        recorder = Recorder(lambda r: httpx.Response(200, json=self.OPENALEX_BODY))

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(recorder)) as client:
                return await OpenAlexSource(client).search_text("  attention   need ", per_page=1)

        result = asyncio.run(go())
        assert result.queried
        assert recorder.requests[0].url.params["search"] == "attention need"
        assert recorder.requests[0].url.params["per-page"] == "1"


class TestGoogleBooks:

    BOOKS_BODY = {
        "items": [
            {
                "volumeInfo": {
                    "title": "The Art of Computer Programming",
                    "authors": ["Donald E. Knuth"],
                    "publishedDate": "1997-07-04",
                    "publisher": "Addison-Wesley",
                    "industryIdentifiers": [
                        {"type": "ISBN_10", "identifier": "0201896834"},
                        {"type": "ISBN_13", "identifier": "9780201896831"},
                    ],
                }
            },
            {"volumeInfo": {}},
        ]
    }

    def test_title_query(self):
        parsed = ParsedCitation(author="Knuth", year=1997, title="The Art of Computer Programming")
        result, recorder = run_search(
            GoogleBooksSource, parsed, lambda r: httpx.Response(200, json=self.BOOKS_BODY)
        )
        assert recorder.requests[0].url.params["q"] == "intitle:The Art of Computer Programming inauthor:Knuth"
        assert len(result.candidates) == 1, "Volumes without a title are skipped"
        book = result.candidates[0]
        assert book.year == 1997
        assert book.journal == "Addison-Wesley"
        assert book.isbn == "9780201896831"

    def test_isbn_query(self):
        parsed = ParsedCitation(isbn="9780306406157")
        _, recorder = run_search(GoogleBooksSource, parsed, lambda r: httpx.Response(200, json={}))
        assert recorder.requests[0].url.params["q"] == "isbn:9780306406157"

    def test_skipped_without_title_or_isbn(self):
        result, recorder = run_search(
            GoogleBooksSource, ParsedCitation(author="Knuth", year=1997), lambda r: httpx.Response(200)
        )
        assert not result.queried
        assert recorder.requests == []


class TestArxiv:

    def test_id_lookup(self):
        parsed = ParsedCitation(arxiv_id="1706.03762")
        result, recorder = run_search(ArxivSource, parsed, lambda r: httpx.Response(200, text=ARXIV_FEED))
        assert recorder.requests[0].url.params["id_list"] == "1706.03762"
        paper = result.candidates[0]
        assert paper.identifier_match
        assert paper.title == "Attention Is All You Need"
        assert paper.authors == ["Ashish Vaswani", "Noam Shazeer"]
        assert paper.year == 2017
        assert paper.journal == "arXiv"

    def test_title_search(self):
        result, recorder = run_search(ArxivSource, ATTENTION, lambda r: httpx.Response(200, text=ARXIV_FEED))
        assert recorder.requests[0].url.params["search_query"] == 'ti:"Attention is all you need"'
        assert not result.candidates[0].identifier_match

    def test_error_entry_skipped(self):
        parsed = ParsedCitation(arxiv_id="bad")
        result, _ = run_search(ArxivSource, parsed, lambda r: httpx.Response(200, text=ARXIV_ERROR_FEED))
        assert result.candidates == []
        assert result.error is None

    def test_invalid_xml(self):
        result, _ = run_search(ArxivSource, ATTENTION, lambda r: httpx.Response(200, text="not xml"))
        assert result.candidates == []
        assert result.error.startswith("malformed response")


def test_default_sources_order():
    async def go():
        async with httpx.AsyncClient() as client:
            return [s.name for s in default_sources(client)]

    assert asyncio.run(go()) == ["CrossRef", "OpenAlex", "arXiv", "Google Books"]
