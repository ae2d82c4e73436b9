"""
Verification engine scenarios against mocked sources.

Tests:
1. DOI dominance (exact DOI hit verifies regardless of other fields)
2. Plausibility and completeness short-circuits make no network calls
3. Partial source outage still verifies from the surviving source
4. Zero candidates yields not_found
5. Idempotence through the response cache
6. Historical-paper boost
"""

import asyncio

import httpx
import pytest

from citation_checker.errors import InputError
from citation_checker.sources import CrossRefSource, OpenAlexSource
from citation_checker.verification_engine import (
    VerificationCache,
    VerificationEngine,
    VerificationStatus,
    classify_score,
)

EMPTY_FEED = '<feed xmlns="http://www.w3.org/2005/Atom"></feed>'

ARXIV_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <entry>
    <id>http://arxiv.org/abs/1706.03762v7</id>
    <published>2017-06-12T17:57:34Z</published>
    <title>Attention Is All You Need</title>
    <author><name>Ashish Vaswani</name></author>
  </entry>
</feed>
"""

ATTENTION_TEXT = (
    "Vaswani, A. (2017). Attention is all you need. "
    "Advances in Neural Information Processing Systems, 30."
)

DOI_TEXT = (
    "Smith, J. (2020). Completely Wrong Title. Some Journal, 1(1), 1-2. "
    "https://doi.org/10.1234/real.5678"
)

EINSTEIN_TEXT = (
    "Einstein, A. (1905). On the electrodynamics of moving bodies. Annalen der Physik, 17, 891-921."
)


def empty_reply(request: httpx.Request) -> httpx.Response:
    """Every source answers successfully with nothing."""
    host = request.url.host
    if host == "export.arxiv.org":
        return httpx.Response(200, text=EMPTY_FEED)
    if host == "api.openalex.org":
        return httpx.Response(200, json={"results": []})
    if host == "www.googleapis.com":
        return httpx.Response(200, json={"totalItems": 0})
    return httpx.Response(200, json={"message": {"items": []}})


class MockSources:
    """Routes requests by host; counts every call."""

    def __init__(self, overrides=None):
        self.overrides = overrides or {}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handler = self.overrides.get(request.url.host, empty_reply)
        return handler(request)

    def hosts(self):
        return [r.url.host for r in self.requests]


def verify(mock, *texts, cache=None):
    async def go():
        async with httpx.AsyncClient(transport=httpx.MockTransport(mock)) as client:
            engine = VerificationEngine(http_client=client, cache=cache)
            return [await engine.verify(text) for text in texts]

    return asyncio.run(go())


class TestDoiDominance:

    def test_doi_hit_verifies_at_100(self):
        def crossref(request):
            assert request.url.path == "/works/10.1234/real.5678"
            return httpx.Response(200, json={"message": {
                "DOI": "10.1234/REAL.5678",
                "title": ["An Entirely Different Paper"],
                "author": [{"given": "Ana", "family": "Jones"}],
                "issued": {"date-parts": [[1999]]},
                "container-title": ["Other Journal"],
            }})

        mock = MockSources({"api.crossref.org": crossref})
        [result] = verify(mock, DOI_TEXT)

        assert result.status == VerificationStatus.VERIFIED
        assert result.score == 100
        assert result.verified
        assert result.details.doi == "10.1234/real.5678"
        assert mock.hosts() == ["api.crossref.org"], "DOI hit must skip the fuzzy fan-out"

    def test_unresolved_doi_falls_through_to_search(self):
        def crossref(request):
            if request.url.path.startswith("/works/10."):
                return httpx.Response(404)
            return httpx.Response(200, json={"message": {"items": []}})

        mock = MockSources({"api.crossref.org": crossref})
        [result] = verify(mock, DOI_TEXT)

        assert result.status == VerificationStatus.NOT_FOUND
        assert len(mock.requests) == 5, "DOI lookup plus four fan-out sources"
        assert result.details.checks[0] == "DOI: failed (HTTP 404)"


class TestShortCircuits:

    def test_future_year_is_fake_without_network(self):
        mock = MockSources()
        [result] = verify(mock, "Jones, A. (2099). Time Travel Basics.")
        assert result.status == VerificationStatus.FAKE
        assert result.score == 0
        assert not result.verified
        assert mock.requests == [], f"Expected zero calls, got {mock.hosts()}"

    def test_lone_word_is_incomplete_without_network(self):
        mock = MockSources()
        [result] = verify(mock, "Hello")
        assert result.status == VerificationStatus.INCOMPLETE
        assert result.score == 0
        assert mock.requests == []

    @pytest.mark.parametrize("text", ["", "   ", "ab", "x" * 2001])
    def test_input_errors(self, text):
        with pytest.raises(InputError):
            verify(MockSources(), text)


class TestFanOut:

    def test_partial_outage_verifies_from_google_books(self):
        def crossref(request):
            return httpx.Response(500)

        def openalex(request):
            raise httpx.ReadTimeout("slow", request=request)

        def books(request):
            return httpx.Response(200, json={"items": [{"volumeInfo": {
                "title": "Attention Is All You Need",
                "authors": ["Ashish Vaswani", "Noam Shazeer"],
                "publishedDate": "2017",
            }}]})

        mock = MockSources({
            "api.crossref.org": crossref,
            "api.openalex.org": openalex,
            "www.googleapis.com": books,
        })
        [result] = verify(mock, ATTENTION_TEXT)

        assert result.status == VerificationStatus.VERIFIED
        assert result.score >= 70
        assert result.details.source == "GoogleBooks"
        checks = " | ".join(result.details.checks)
        assert "CrossRef: failed (HTTP 500)" in checks
        assert "OpenAlex: failed (timed out" in checks
        assert "arXiv: no results" in checks
        assert "Google Books: 1 results, best match 100/100" in checks

    def test_no_candidates_is_not_found(self):
        mock = MockSources()
        [result] = verify(mock, ATTENTION_TEXT)
        assert result.status == VerificationStatus.NOT_FOUND
        assert result.score == 0
        assert len(result.details.checks) == 4

    def test_wrong_author_is_not_verified(self):
        def crossref(request):
            return httpx.Response(200, json={"message": {"items": [{
                "DOI": "10.9999/other",
                "title": ["Attention is all you need"],
                "author": [{"given": "Maria", "family": "Garcia"}],
                "issued": {"date-parts": [[2003]]},
            }]}})

        mock = MockSources({"api.crossref.org": crossref})
        [result] = verify(mock, ATTENTION_TEXT)
        assert result.status == VerificationStatus.NOT_VERIFIED
        assert result.score == 0

    def test_historical_boost(self):
        def openalex(request):
            return httpx.Response(200, json={"results": [{
                "id": "https://openalex.org/W1",
                "title": "Zur Elektrodynamik bewegter Körper",
                "publication_year": 1905,
                "authorships": [{"author": {"display_name": "A. Einstein"}}],
                "primary_location": {"source": {"display_name": "Annalen der Physik"}},
            }]})

        mock = MockSources({"api.openalex.org": openalex})
        [result] = verify(mock, EINSTEIN_TEXT)
        assert result.score == 85, f"Expected boosted score, got {result.score}: {result.details.checks}"
        assert result.status == VerificationStatus.VERIFIED
        assert any("Historical paper" in c for c in result.details.checks)


    def test_arxiv_id_lookup_verifies(self):
        def arxiv(request):
            assert request.url.params["id_list"] == "1706.03762"
            return httpx.Response(200, text=ARXIV_FEED)

        mock = MockSources({"export.arxiv.org": arxiv})
        [result] = verify(mock, "Vaswani, A. (2017). Attention is all you need. arXiv:1706.03762")
        assert result.status == VerificationStatus.VERIFIED
        assert result.score == 98
        assert result.details.source == "arXiv"

    def test_raising_source_does_not_sink_siblings(self):
        class BrokenCrossRef(CrossRefSource):
            async def search(self, parsed):
                raise RuntimeError("adapter bug")

        def openalex(request):
            return httpx.Response(200, json={"results": [{
                "id": "https://openalex.org/W2963403868",
                "title": "Attention is all you need",
                "publication_year": 2017,
                "authorships": [{"author": {"display_name": "Ashish Vaswani"}}],
            }]})

        mock = MockSources({"api.openalex.org": openalex})

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(mock)) as client:
                engine = VerificationEngine(
                    http_client=client, sources=[BrokenCrossRef(client), OpenAlexSource(client)]
                )
                return await engine.verify(ATTENTION_TEXT)

        result = asyncio.run(go())
        assert result.status == VerificationStatus.VERIFIED
        assert result.details.source == "OpenAlex"
        assert "CrossRef: failed (adapter bug)" in result.details.checks

class TestCache:

    def test_idempotent_within_ttl(self):
        mock = MockSources()
        first, second = verify(mock, ATTENTION_TEXT, ATTENTION_TEXT)
        assert first.to_dict() == second.to_dict()
        assert len(mock.requests) == 4, "Second call must be served from cache"

    def test_expired_entries_are_refetched(self):
        now = [0.0]
        cache = VerificationCache(ttl_seconds=10, clock=lambda: now[0])
        mock = MockSources()

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(mock)) as client:
                engine = VerificationEngine(http_client=client, cache=cache)
                await engine.verify(ATTENTION_TEXT)
                now[0] = 11.0
                await engine.verify(ATTENTION_TEXT)

        asyncio.run(go())
        assert len(mock.requests) == 8

    def test_entry_expires_at_ttl(self):
        now = [0.0]
        cache = VerificationCache(ttl_seconds=10, clock=lambda: now[0])
        [result] = verify(MockSources(), "Hello")
        cache.set("key", result)
        now[0] = 5.0
        assert cache.get("key") is result
        now[0] = 10.0
        assert cache.get("key") is None
        assert len(cache) == 0

    def test_lru_eviction(self):
        cache = VerificationCache(ttl_seconds=100, max_entries=2)
        results = verify(MockSources(), "Hello", "World", cache=cache)
        cache.set("a", results[0])
        cache.set("b", results[1])
        cache.get("a")
        cache.set("c", results[0])
        assert cache.get("b") is None, "Least recently used entry evicted"
        assert cache.get("a") is not None
        assert len(cache) == 2


class TestBatch:

    def test_batch_and_summary(self):
        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(MockSources())) as client:
                engine = VerificationEngine(http_client=client)
                results = await engine.verify_batch(
                    ["Hello", "Jones, A. (2099). Time Travel Basics.", ATTENTION_TEXT]
                )
                return results, engine.summarize(results)

        results, summary = asyncio.run(go())
        assert [r.status for r in results] == [
            VerificationStatus.INCOMPLETE, VerificationStatus.FAKE, VerificationStatus.NOT_FOUND
        ]
        assert summary["incomplete"] == 1
        assert summary["fake"] == 1
        assert summary["not_found"] == 1
        assert summary["total"] == 3

    def test_batch_rejects_bad_entry_before_network(self):
        mock = MockSources()

        async def go():
            async with httpx.AsyncClient(transport=httpx.MockTransport(mock)) as client:
                await VerificationEngine(http_client=client).verify_batch([ATTENTION_TEXT, ""])

        with pytest.raises(InputError):
            asyncio.run(go())
        assert mock.requests == []


def test_classification_thresholds():
    assert classify_score(100) == VerificationStatus.VERIFIED
    assert classify_score(70) == VerificationStatus.VERIFIED
    assert classify_score(69) == VerificationStatus.LIKELY
    assert classify_score(50) == VerificationStatus.LIKELY
    assert classify_score(49) == VerificationStatus.UNCERTAIN
    assert classify_score(30) == VerificationStatus.UNCERTAIN
    assert classify_score(29) == VerificationStatus.NOT_VERIFIED


def test_result_to_dict_is_json_ready():
    [result] = verify(MockSources(), "Jones, A. (2099). Time Travel Basics.")
    data = result.to_dict()
    assert data["status"] == "fake"
    assert isinstance(data["details"]["checks"], list)
    assert data["details"]["year"] == 2099
