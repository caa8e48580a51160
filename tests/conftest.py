"""Shared test fixtures."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from glean.brand.profile import BrandProfile
from glean.config import Settings
from glean.llm.client import ClaudeClient
from glean.llm.retry import RetryPolicy
from glean.sources.readwise import NormalizedHighlight, SourceRequestError, normalize_highlight
from glean.storage.models import Highlight
from glean.storage.repository import Store
from glean.storage.vectors import VectorStore

VOCABULARY = ("ai", "infrastructure", "product", "strategy", "cooking", "recipe")


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Create test settings with temporary paths."""
    return Settings(
        anthropic_api_key="test-key-not-real",
        model="claude-sonnet-4-20250514",
        max_tokens=1024,
        temperature=0.7,
        db_path=tmp_path / "test.db",
        brand_config_path=tmp_path / "brand-config.json",
    )


@pytest.fixture
def store(settings: Settings) -> Store:
    return Store(settings.db_path)


@pytest.fixture
def vectors(settings: Settings) -> VectorStore:
    return VectorStore(settings.db_path)


@pytest.fixture
def brand() -> BrandProfile:
    return BrandProfile.default()


@pytest.fixture
def mock_claude_client(settings: Settings) -> ClaudeClient:
    """Create a ClaudeClient with a mocked Anthropic SDK and no retry delays."""
    client = ClaudeClient(settings, retry_policy=RetryPolicy.immediate())
    # Replace the internal Anthropic client with a mock
    mock_anthropic = MagicMock()
    mock_anthropic.messages.create = AsyncMock()
    client._client = mock_anthropic
    return client


def make_mock_response(text: str, input_tokens: int = 100, output_tokens: int = 200):
    """Helper to create a mock Anthropic API response."""
    mock_response = MagicMock()
    mock_response.content = [MagicMock(text=text)]
    mock_response.usage.input_tokens = input_tokens
    mock_response.usage.output_tokens = output_tokens
    return mock_response


class FakeEmbedder:
    """Bag-of-words embedder over a tiny fixed vocabulary.

    The trailing constant dimension keeps every vector non-zero.
    """

    model = "fake-embedding"

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        words = text.lower().split()
        return [float(words.count(term)) for term in VOCABULARY] + [0.1]


class FakeSource:
    """In-memory highlight source with the Readwise client's interface."""

    def __init__(self, highlights: list[dict] | None = None, fail: bool = False) -> None:
        self.highlights = highlights or []
        self.fail = fail
        self.calls: list[datetime | None] = []

    async def fetch_highlights(
        self, updated_after: datetime | None = None, max_age_days: int = 30
    ) -> list[dict]:
        self.calls.append(updated_after)
        if self.fail:
            raise SourceRequestError("Readwise API error: 500 - boom", status_code=500)
        return list(self.highlights)

    def normalize_highlight(self, raw: dict) -> NormalizedHighlight:
        return normalize_highlight(raw)


def raw_highlight(external_id: int, text: str, **overrides) -> dict:
    """A Readwise-shaped highlight record."""
    record = {
        "id": external_id,
        "text": text,
        "title": f"Article {external_id}",
        "author": "Jane Doe",
        "source_url": f"https://example.com/{external_id}",
        "created_at": datetime.now(timezone.utc).isoformat(),
        "note": None,
        "tags": [],
    }
    record.update(overrides)
    return record


def add_highlight(
    store: Store,
    text: str,
    *,
    title: str = "Untitled",
    note: str | None = None,
    tags: list[str] | None = None,
    external_id: str | None = None,
    age_days: int = 0,
) -> Highlight:
    return store.add_highlight(
        NormalizedHighlight(
            external_id=external_id,
            url="https://example.com/post",
            title=title,
            created_at=datetime.now(timezone.utc) - timedelta(days=age_days),
            text=text,
            source_domain="example.com",
            note=note,
            tags=tags or [],
        )
    )


def idea_payload(highlight_ids: list, **overrides) -> dict:
    """One idea in the camelCase shape the model returns."""
    idea = {
        "title": "Scaling AI infrastructure for product teams",
        "oneSentenceHook": (
            "Most AI product launches stall on infrastructure that nobody planned for."
        ),
        "whyNow": "Inference costs now dominate AI budgets.",
        "targetAudience": "Product managers shipping AI services",
        "outlineBullets": [
            "Why inference cost surprises product teams every quarter",
            "Capacity planning for bursty model traffic patterns",
            "Choosing between hosted APIs and self-managed GPU clusters",
            "Observability signals that predict latency regressions early",
            "A rollout checklist product managers can own end to end",
        ],
        "supportingHighlightIds": [str(i) for i in highlight_ids],
        "riskOfGeneric": 0.2,
        "noveltyScoreGuess": 0.8,
    }
    idea.update(overrides)
    return idea


def ideas_response(ideas: list[dict]) -> str:
    return json.dumps({"ideas": ideas})


def draft_payload(word_count: int = 1500, **overrides) -> dict:
    body = " ".join(["insight"] * 1300)
    draft = {
        "detailedOutline": {
            "introduction": "Why AI infrastructure is a product problem.",
            "sections": [
                {"heading": "Cost", "bullets": ["Inference dominates"]},
                {"heading": "Capacity", "bullets": ["Plan for bursts"]},
                {"heading": "Rollout", "bullets": ["Own the checklist"]},
            ],
            "conclusion": "Treat infrastructure as part of the product.",
        },
        "fullDraft": body,
        "wordCount": word_count,
        "alternativeHooks": [f"Hook {i}" for i in range(5)],
        "socialPostBullets": [f"Bullet {i}" for i in range(10)],
    }
    draft.update(overrides)
    return draft
