"""Tests for the Readwise client and highlight normalization."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from glean.llm.retry import RetryPolicy
from glean.sources.readwise import (
    DEFAULT_SOURCE_DOMAIN,
    READWISE_API_BASE,
    RateLimitError,
    ReadwiseClient,
    SourceAuthenticationError,
    SourceRequestError,
    normalize_highlight,
    sample_highlights,
)
from tests.conftest import raw_highlight


def _client(handler, token: str = "test-token", attempts: int = 3) -> ReadwiseClient:
    http = httpx.AsyncClient(
        base_url=READWISE_API_BASE, transport=httpx.MockTransport(handler)
    )
    return ReadwiseClient(token, http_client=http, retry_policy=RetryPolicy.immediate(attempts))


def _fetch(client: ReadwiseClient, **kwargs) -> list[dict]:
    async def go() -> list[dict]:
        try:
            return await client.fetch_highlights(**kwargs)
        finally:
            await client.close()

    return asyncio.run(go())


# ---------------------------------------------------------------------------
# normalization
# ---------------------------------------------------------------------------


def test_normalize_full_record() -> None:
    """Test normalizing a complete Readwise record."""
    normalized = normalize_highlight(
        {
            "id": 42,
            "text": "Latency budgets matter.",
            "title": "On latency",
            "author": "A. Writer",
            "source_url": "https://blog.example.org/latency",
            "created_at": "2024-05-01T12:00:00Z",
            "note": "use this",
            "tags": [{"id": 1, "name": "AI"}, {"id": 2, "name": "infra"}],
        }
    )

    assert normalized.external_id == "42"
    assert normalized.url == "https://blog.example.org/latency"
    assert normalized.source_domain == "blog.example.org"
    assert normalized.tags == ["AI", "infra"]
    assert normalized.created_at == datetime(2024, 5, 1, 12, tzinfo=timezone.utc)
    assert normalized.note == "use this"


def test_normalize_fallbacks() -> None:
    """Test the defaults used for missing fields."""
    normalized = normalize_highlight(
        {"id": 7, "url": "https://readwise.io/open/7", "highlighted_at": "2024-01-02"}
    )

    assert normalized.title == "Untitled"
    assert normalized.text == ""
    assert normalized.url == "https://readwise.io/open/7"
    # Domain only comes from source_url
    assert normalized.source_domain == DEFAULT_SOURCE_DOMAIN
    assert normalized.created_at.date() == datetime(2024, 1, 2).date()
    assert normalized.created_at.tzinfo is not None
    assert normalized.tags == []
    assert normalized.author is None


def test_normalize_never_raises_on_junk() -> None:
    """Test that junk input still normalizes."""
    before = datetime.now(timezone.utc)
    normalized = normalize_highlight(
        {"source_url": "http://[not-a-host", "created_at": "not a date", "tags": "AI"}
    )

    assert normalized.external_id is None
    assert normalized.source_domain == DEFAULT_SOURCE_DOMAIN
    assert normalized.created_at >= before
    assert normalized.tags == []


# ---------------------------------------------------------------------------
# fetching
# ---------------------------------------------------------------------------


def test_fetch_follows_page_cursor() -> None:
    """Test following the pagination cursor."""
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        params = dict(request.url.params)
        seen.append(params)
        if "pageCursor" not in params:
            return httpx.Response(
                200,
                json={
                    "results": [raw_highlight(1, "a"), raw_highlight(2, "b")],
                    "nextPageCursor": "cursor-2",
                },
            )
        return httpx.Response(
            200, json={"results": [raw_highlight(3, "c")], "nextPageCursor": None}
        )

    results = _fetch(_client(handler))

    assert [r["id"] for r in results] == [1, 2, 3]
    assert len(seen) == 2
    assert seen[0]["page_size"] == "1000"
    assert seen[1]["pageCursor"] == "cursor-2"


def test_fetch_skips_deleted_and_old_highlights() -> None:
    """Test that deleted and stale highlights are skipped."""
    old = (datetime.now(timezone.utc) - timedelta(days=45)).isoformat()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "results": [
                    raw_highlight(1, "fresh"),
                    raw_highlight(2, "deleted", is_deleted=True),
                    raw_highlight(3, "old", created_at=old),
                    raw_highlight(4, "old by highlight date", created_at=None, highlighted_at=old),
                ]
            },
        )

    assert [r["id"] for r in _fetch(_client(handler), max_age_days=30)] == [1]


def test_fetch_age_filter_disabled() -> None:
    """Test that a max age of zero keeps old highlights."""
    old = (datetime.now(timezone.utc) - timedelta(days=400)).isoformat()

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"results": [raw_highlight(1, "old", created_at=old)]})

    assert len(_fetch(_client(handler), max_age_days=0)) == 1


def test_fetch_passes_updated_after() -> None:
    """Test the updated-after filter sent to Readwise."""
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        return httpx.Response(200, json={"results": []})

    _fetch(_client(handler), updated_after=datetime(2024, 3, 1, 8, 30))

    assert seen[0]["updated__gt"] == "2024-03-01T08:30:00+00:00"


def test_unauthorized_is_not_retried() -> None:
    """Test that a 401 fails immediately."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(401)

    with pytest.raises(SourceAuthenticationError, match="401"):
        _fetch(_client(handler))
    assert len(calls) == 1


def test_forbidden_is_distinct() -> None:
    """Test that a 403 raises an authentication error."""
    with pytest.raises(SourceAuthenticationError, match="403"):
        _fetch(_client(lambda request: httpx.Response(403)))


def test_rate_limit_is_retried() -> None:
    """Test that a 429 is retried."""
    responses = iter(
        [
            httpx.Response(429, headers={"Retry-After": "0"}),
            httpx.Response(200, json={"results": [raw_highlight(1, "ok")]}),
        ]
    )

    results = _fetch(_client(lambda request: next(responses)))

    assert len(results) == 1


def test_rate_limit_exhausted_carries_retry_after() -> None:
    """Test the Retry-After value on an exhausted rate limit."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(429, headers={"Retry-After": "7"})

    with pytest.raises(RateLimitError) as exc_info:
        _fetch(_client(handler, attempts=2))

    assert exc_info.value.retry_after == 7.0
    assert len(calls) == 2


def test_server_error_retried_then_raised() -> None:
    """Test that server errors are retried and then raised."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(SourceRequestError) as exc_info:
        _fetch(_client(handler))

    assert exc_info.value.status_code == 502
    assert len(calls) == 3


def test_client_error_not_retried() -> None:
    """Test that other client errors are not retried."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(404, text="nope")

    with pytest.raises(SourceRequestError):
        _fetch(_client(handler))
    assert len(calls) == 1


def test_no_token_returns_samples_without_http() -> None:
    """Test the sample highlights used without a token."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    results = _fetch(_client(handler, token=""))

    assert len(results) == len(sample_highlights())
    assert all(r["text"] for r in results)


def test_verify_token() -> None:
    """Test token verification."""
    client = _client(lambda request: httpx.Response(204))
    assert asyncio.run(client.verify_token()) is True

    rejected = _client(lambda request: httpx.Response(401))
    assert asyncio.run(rejected.verify_token()) is False
