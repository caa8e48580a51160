"""Tests for the idea generator agent."""

from __future__ import annotations

import asyncio

import pytest

from glean.agents.idea_generator import IdeaGeneratorAgent
from glean.brand.profile import BrandProfile
from glean.llm.client import ClaudeClient, LLMResponseError
from glean.storage.repository import Store
from glean.storage.vectors import VectorStore
from tests.conftest import (
    FakeEmbedder,
    add_highlight,
    idea_payload,
    ideas_response,
    make_mock_response,
)


def _agent(client, store, vectors, brand, embedder=None) -> IdeaGeneratorAgent:
    return IdeaGeneratorAgent(client, store, vectors, embedder or FakeEmbedder(), brand)


def _embed(vectors: VectorStore, highlight) -> None:
    vector = asyncio.run(FakeEmbedder().embed(f"{highlight.text} {highlight.note or ''}"))
    vectors.store(highlight.id, vector)


# ---------------------------------------------------------------------------
# topic filter
# ---------------------------------------------------------------------------


def test_keyword_fallback_when_embedding_fails(
    mock_claude_client: ClaudeClient, store: Store, vectors: VectorStore, brand: BrandProfile
) -> None:
    """Test the keyword filter used when embeddings are unavailable."""
    ai = add_highlight(store, "AI infrastructure is the new bottleneck")
    cooking = add_highlight(store, "Slow-cooked tomato sauce for weeknight dinners", tags=["cooking"])
    tagged = add_highlight(store, "Notes from the offsite", tags=["Product Management"])
    agent = _agent(mock_claude_client, store, vectors, brand, FakeEmbedder(fail=True))

    kept = asyncio.run(agent.filter_highlights_by_topic([ai, cooking, tagged]))

    assert [h.id for h in kept] == [ai.id, tagged.id]


def test_semantic_filter_keeps_ranked_and_keyword_matches(
    mock_claude_client: ClaudeClient, store: Store, vectors: VectorStore, brand: BrandProfile
) -> None:
    """Test the embedding filter with keyword matches kept."""
    ai = add_highlight(store, "AI infrastructure product strategy")
    cooking = add_highlight(store, "Slow-cooked tomato sauce for weeknight dinners")
    titled = add_highlight(store, "Notes from the offsite", title="Strategy offsite recap")
    _embed(vectors, ai)
    # cooking and titled have no embedding, so they never rank

    kept = asyncio.run(
        _agent(mock_claude_client, store, vectors, brand).filter_highlights_by_topic(
            [cooking, titled, ai]
        )
    )

    assert [h.id for h in kept] == [ai.id, titled.id]


def test_filter_without_topics_keeps_everything(
    mock_claude_client: ClaudeClient, store: Store, vectors: VectorStore
) -> None:
    """Test that an empty topic list filters nothing."""
    brand = BrandProfile(topics=[])
    h = add_highlight(store, "anything")

    kept = asyncio.run(
        _agent(mock_claude_client, store, vectors, brand).filter_highlights_by_topic([h])
    )

    assert [k.id for k in kept] == [h.id]


# ---------------------------------------------------------------------------
# generation
# ---------------------------------------------------------------------------


def test_generate_validates_citations_and_persists(
    mock_claude_client: ClaudeClient, store: Store, vectors: VectorStore, brand: BrandProfile
) -> None:
    """Test citation checks and storage of a generated batch."""
    h1 = add_highlight(store, "AI infrastructure costs")
    h2 = add_highlight(store, "Product strategy for AI services")
    create = mock_claude_client._client.messages.create
    create.return_value = make_mock_response(
        ideas_response(
            [
                idea_payload([h1.id, h2.id], title="Both"),
                idea_payload([999], title="Hallucinated"),
                idea_payload(["abc", h1.id], title="Partly valid"),
                idea_payload([h1.id, h1.id], title="Duplicate cites"),
                idea_payload([h2.id], title="Single"),
            ]
        )
    )

    result = asyncio.run(
        _agent(mock_claude_client, store, vectors, brand).generate_ideas([h1, h2])
    )

    assert result.batch_id == 1
    assert [i.title for i in result.ideas] == ["Both", "Partly valid", "Duplicate cites", "Single"]
    assert len(result.idea_ids) == 4

    stored = {idea.title: idea for idea in store.ideas_in_batch(1)}
    assert set(stored) == {"Both", "Partly valid", "Duplicate cites", "Single"}
    assert store.idea_highlight_ids(stored["Both"].id) == [h1.id, h2.id]
    assert store.idea_highlight_ids(stored["Partly valid"].id) == [h1.id]
    assert store.idea_highlight_ids(stored["Duplicate cites"].id) == [h1.id]
    assert stored["Both"].outline_bullets == idea_payload([])["outlineBullets"]

    assert create.call_args.kwargs["temperature"] == 0.8


def test_batches_increment(
    mock_claude_client: ClaudeClient, store: Store, vectors: VectorStore, brand: BrandProfile
) -> None:
    """Test that each generation gets the next batch id."""
    h = add_highlight(store, "AI infrastructure costs")
    mock_claude_client._client.messages.create.return_value = make_mock_response(
        ideas_response([idea_payload([h.id], title=f"Idea {i}") for i in range(5)])
    )
    agent = _agent(mock_claude_client, store, vectors, brand)

    first = asyncio.run(agent.generate_ideas([h]))
    second = asyncio.run(agent.generate_ideas([h]))

    assert (first.batch_id, second.batch_id) == (1, 2)
    assert len(store.ideas_in_batch(2)) == 5


def test_feedback_reaches_the_prompt(
    mock_claude_client: ClaudeClient, store: Store, vectors: VectorStore, brand: BrandProfile
) -> None:
    """Test that regeneration feedback is sent to Claude."""
    h = add_highlight(store, "AI infrastructure costs")
    create = mock_claude_client._client.messages.create
    create.return_value = make_mock_response(
        ideas_response([idea_payload([h.id]) for _ in range(5)])
    )

    asyncio.run(
        _agent(mock_claude_client, store, vectors, brand).generate_ideas(
            [h], feedback="Focus on improving: groundedness"
        )
    )

    user_message = create.call_args.kwargs["messages"][0]["content"]
    assert "Previous feedback: Focus on improving: groundedness" in user_message
    assert f"[ID: {h.id}]" in user_message


def test_off_topic_highlights_still_used_when_nothing_matches(
    mock_claude_client: ClaudeClient, store: Store, vectors: VectorStore, brand: BrandProfile
) -> None:
    """Test that all highlights are used when none match a topic."""
    h = add_highlight(store, "Slow-cooked tomato sauce for weeknight dinners")
    create = mock_claude_client._client.messages.create
    create.return_value = make_mock_response(
        ideas_response([idea_payload([h.id]) for _ in range(5)])
    )

    asyncio.run(
        _agent(
            mock_claude_client, store, vectors, brand, FakeEmbedder(fail=True)
        ).generate_ideas([h])
    )

    assert f"[ID: {h.id}]" in create.call_args.kwargs["messages"][0]["content"]


def test_malformed_response_raises_and_stores_nothing(
    mock_claude_client: ClaudeClient, store: Store, vectors: VectorStore, brand: BrandProfile
) -> None:
    """Test that an invalid batch raises and stores no ideas."""
    h = add_highlight(store, "AI infrastructure costs")
    create = mock_claude_client._client.messages.create
    # Only three ideas: below the minimum batch size
    create.return_value = make_mock_response(
        ideas_response([idea_payload([h.id]) for _ in range(3)])
    )

    with pytest.raises(LLMResponseError) as exc_info:
        asyncio.run(_agent(mock_claude_client, store, vectors, brand).generate_ideas([h]))

    assert exc_info.value.errors[0].path == "ideas"
    assert create.call_count == 3
    assert store.count_ideas() == 0


@pytest.mark.parametrize(("topics", "kept"), [(["AI infrastructure"], 3), (["cooking"], 0)])
def test_keyword_fallback_scenario(
    mock_claude_client: ClaudeClient,
    store: Store,
    vectors: VectorStore,
    topics: list[str],
    kept: int,
) -> None:
    """Test keyword filtering by topic and the prompt that follows."""
    highlights = [
        add_highlight(store, "AI infrastructure spend doubled this year"),
        add_highlight(store, "Teams underestimate AI infrastructure lead times"),
        add_highlight(store, "Notes", title="AI infrastructure field guide"),
    ]
    agent = _agent(
        mock_claude_client, store, vectors, BrandProfile(topics=topics), FakeEmbedder(fail=True)
    )

    assert len(asyncio.run(agent.filter_highlights_by_topic(highlights))) == kept

    create = mock_claude_client._client.messages.create
    create.return_value = make_mock_response(
        ideas_response([idea_payload([highlights[0].id]) for _ in range(5)])
    )
    asyncio.run(agent.generate_ideas(highlights))

    prompt = create.call_args.kwargs["messages"][0]["content"]
    assert all(f"[ID: {h.id}]" in prompt for h in highlights)
