"""Readwise API client and highlight normalization.

Uses the v2 highlights endpoint (https://readwise.io/api/v2/highlights/)
with ``Authorization: Token <token>``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from urllib.parse import urlparse

import httpx
from dateutil import parser as dateparser
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt
from tenacity.wait import wait_base

from glean.llm.retry import RetryPolicy

logger = logging.getLogger(__name__)

READWISE_API_BASE = "https://readwise.io/api/v2"
DEFAULT_SOURCE_DOMAIN = "readwise.io"
PAGE_SIZE = 1000
MAX_PAGES = 100


class SourceError(RuntimeError):
    """Base class for highlight source failures."""


class SourceAuthenticationError(SourceError):
    """The access token was rejected (401) or lacks permission (403)."""


class RateLimitError(SourceError):
    """Readwise answered 429."""

    def __init__(self, retry_after: float | None = None) -> None:
        wait = f"{retry_after:g}" if retry_after is not None else "60"
        super().__init__(f"Rate limit exceeded. Wait {wait} seconds.")
        self.retry_after = retry_after


class SourceRequestError(SourceError):
    """Any other failed request; ``status_code`` is None for transport errors."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class NormalizedHighlight:
    """A highlight in glean's canonical shape, before it is stored."""

    external_id: str | None
    url: str
    title: str
    created_at: datetime
    text: str
    source_domain: str
    author: str | None = None
    note: str | None = None
    tags: list[str] = field(default_factory=list)


def _parse_timestamp(value: object) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = dateparser.parse(str(value))
        except (ValueError, OverflowError, TypeError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _domain_of(url: str) -> str:
    if not url:
        return DEFAULT_SOURCE_DOMAIN
    try:
        host = urlparse(url).hostname
    except ValueError:
        return DEFAULT_SOURCE_DOMAIN
    return host or DEFAULT_SOURCE_DOMAIN


def _tag_names(tags: object) -> list[str]:
    if not isinstance(tags, list):
        return []
    names: list[str] = []
    for tag in tags:
        if isinstance(tag, dict) and tag.get("name"):
            names.append(str(tag["name"]))
        elif isinstance(tag, str) and tag:
            names.append(tag)
    return names


def normalize_highlight(raw: dict) -> NormalizedHighlight:
    """Map a Readwise highlight record onto the canonical highlight shape."""
    raw_id = raw.get("id")
    source_url = raw.get("source_url") or ""
    url = source_url or raw.get("url") or ""
    created_at = (
        _parse_timestamp(raw.get("created_at"))
        or _parse_timestamp(raw.get("highlighted_at"))
        or datetime.now(timezone.utc)
    )
    return NormalizedHighlight(
        external_id=str(raw_id) if raw_id is not None else None,
        url=str(url),
        title=raw.get("title") or "Untitled",
        author=raw.get("author") or None,
        created_at=created_at,
        text=raw.get("text") or "",
        note=raw.get("note") or None,
        tags=_tag_names(raw.get("tags")),
        source_domain=_domain_of(str(source_url)),
    )


def sample_highlights() -> list[dict]:
    """Two canned highlights used when no access token is configured."""
    now = datetime.now(timezone.utc).isoformat()
    return [
        {
            "id": 1,
            "text": (
                "Vector databases are becoming essential for AI applications "
                "that require semantic search."
            ),
            "title": "Building Scalable AI Infrastructure",
            "author": "Jane Doe",
            "source_url": "https://example.com/ai-infrastructure",
            "highlighted_at": now,
            "category": "articles",
            "note": "Key insight: Need to consider both performance and cost.",
            "tags": [{"id": 1, "name": "AI"}, {"id": 2, "name": "infrastructure"}],
        },
        {
            "id": 2,
            "text": (
                "The key to successful AI product launches is understanding the "
                "user journey before the AI interaction."
            ),
            "title": "Product Strategy for AI Services",
            "author": "John Smith",
            "source_url": "https://example.com/product-management",
            "highlighted_at": now,
            "category": "articles",
            "note": "Important for our roadmap planning.",
            "tags": [{"id": 3, "name": "product-management"}, {"id": 4, "name": "AI"}],
        },
    ]


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, RateLimitError):
        return True
    if isinstance(exc, SourceRequestError):
        return exc.status_code is None or exc.status_code >= 500
    return False


class _WaitForRateLimit(wait_base):
    """Sleep for the server's Retry-After hint when there is one, else back off."""

    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy
        self._fallback = policy.wait()

    def __call__(self, retry_state) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if (
            self._policy.respect_retry_after
            and isinstance(exc, RateLimitError)
            and exc.retry_after is not None
        ):
            return exc.retry_after
        return self._fallback(retry_state)


def _format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


class ReadwiseClient:
    """Fetch highlights from Readwise with pagination and retry."""

    def __init__(
        self,
        token: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._token = token
        self._client = http_client or httpx.AsyncClient(
            base_url=READWISE_API_BASE,
            headers={
                "Authorization": f"Token {token}",
                "Content-Type": "application/json",
            },
            timeout=30.0,
        )
        self._retry_policy = retry_policy or RetryPolicy()

    @property
    def has_token(self) -> bool:
        return bool(self._token)

    def normalize_highlight(self, raw: dict) -> NormalizedHighlight:
        return normalize_highlight(raw)

    async def verify_token(self) -> bool:
        """Return True when Readwise accepts the token (204 from /auth/)."""
        if not self._token:
            return False
        try:
            resp = await self._client.get("/auth/")
        except httpx.HTTPError as exc:
            logger.error("Error verifying Readwise token: %s", exc)
            return False
        return resp.status_code == 204

    async def fetch_highlights(
        self,
        updated_after: datetime | None = None,
        max_age_days: int = 30,
    ) -> list[dict]:
        """Fetch every non-deleted highlight, newest window only.

        ``updated_after`` is passed to Readwise as ``updated__gt``.
        ``max_age_days`` drops highlights created (or, lacking that,
        highlighted) more than that many days ago; 0 or less disables it.
        """
        if not self._token:
            logger.warning(
                "READWISE_ACCESS_TOKEN not set; using sample highlights. "
                "Get a token from https://readwise.io/access_token"
            )
            return sample_highlights()

        min_created_at = (
            datetime.now(timezone.utc) - timedelta(days=max_age_days)
            if max_age_days > 0
            else None
        )

        collected: list[dict] = []
        cursor: str | None = None
        skipped_deleted = 0
        skipped_old = 0

        for page in range(1, MAX_PAGES + 1):
            params: dict[str, str] = {"page_size": str(PAGE_SIZE)}
            if cursor:
                params["pageCursor"] = cursor
            if updated_after:
                params["updated__gt"] = _format_timestamp(updated_after)

            data = await self._get_page(params)
            logger.debug("Readwise page %d: %d results", page, len(data.get("results") or []))

            for highlight in data.get("results") or []:
                if highlight.get("is_deleted"):
                    skipped_deleted += 1
                    continue
                if min_created_at and self._is_older_than(highlight, min_created_at):
                    skipped_old += 1
                    continue
                collected.append(highlight)

            cursor = data.get("nextPageCursor")
            if not cursor:
                break
        else:
            logger.warning(
                "Reached the %d page limit; there may be more highlights", MAX_PAGES
            )

        logger.info(
            "Fetched %d highlights (%d deleted, %d older than %d days skipped)",
            len(collected),
            skipped_deleted,
            skipped_old,
            max_age_days,
        )
        return collected

    @staticmethod
    def _is_older_than(highlight: dict, cutoff: datetime) -> bool:
        created = _parse_timestamp(highlight.get("created_at")) or _parse_timestamp(
            highlight.get("highlighted_at")
        )
        return created is not None and created < cutoff

    async def _get_page(self, params: dict[str, str]) -> dict:
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_retryable),
            stop=stop_after_attempt(self._retry_policy.max_attempts),
            wait=_WaitForRateLimit(self._retry_policy),
            reraise=True,
        ):
            with attempt:
                return await self._request_page(params)
        raise AssertionError("unreachable")

    async def _request_page(self, params: dict[str, str]) -> dict:
        try:
            resp = await self._client.get("/highlights/", params=params)
        except httpx.HTTPError as exc:
            raise SourceRequestError(f"Readwise request failed: {exc}") from exc

        if resp.status_code == 401:
            raise SourceAuthenticationError(
                "Authentication failed (401). Please check your Readwise access token."
            )
        if resp.status_code == 403:
            raise SourceAuthenticationError(
                "Access forbidden (403). Check your Readwise token permissions."
            )
        if resp.status_code == 429:
            raise RateLimitError(_retry_after(resp))
        if resp.is_error:
            raise SourceRequestError(
                f"Readwise API error: {resp.status_code} - {resp.text[:100]}",
                status_code=resp.status_code,
            )
        return resp.json()

    async def close(self) -> None:
        await self._client.aclose()


def _retry_after(resp: httpx.Response) -> float | None:
    value = resp.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
