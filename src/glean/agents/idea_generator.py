"""Generate candidate blog ideas grounded in highlights."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

from glean.agents.schemas import BlogIdea, IdeasResponse
from glean.brand.profile import BrandProfile
from glean.llm.client import ClaudeClient
from glean.llm.embeddings import EmbeddingClient
from glean.llm.prompts import render
from glean.storage.models import Highlight
from glean.storage.repository import Store
from glean.storage.vectors import VectorStore

logger = logging.getLogger(__name__)

RELEVANCE_THRESHOLD = 0.3
MIN_IDEAS, MAX_IDEAS = 5, 10
MIN_BULLETS, MAX_BULLETS = 5, 7


@dataclass
class IdeaGeneratorResult:
    ideas: list[BlogIdea]
    batch_id: int
    idea_ids: list[int] = field(default_factory=list)


def _matches_topic(text: str, topics: Sequence[str]) -> bool:
    text = text.lower()
    return any(topic.lower() in text for topic in topics)


def _format_highlights(highlights: Sequence[Highlight]) -> str:
    return "\n\n".join(
        f"[ID: {h.id}]\n"
        f"Title: {h.title}\n"
        f"Highlight: {h.text}\n"
        f"Note: {h.note or 'None'}\n"
        f"Tags: {', '.join(h.tags)}\n"
        f"URL: {h.url}"
        for h in highlights
    )


class IdeaGeneratorAgent:
    """Filter highlights to the brand's topics and ask Claude for a batch of ideas."""

    def __init__(
        self,
        client: ClaudeClient,
        store: Store,
        vectors: VectorStore,
        embedder: EmbeddingClient,
        brand: BrandProfile,
        *,
        max_retries: int = 3,
    ) -> None:
        self._client = client
        self._embedder = embedder
        self._store = store
        self._vectors = vectors
        self._brand = brand
        self._max_retries = max_retries

    async def filter_highlights_by_topic(
        self, highlights: Sequence[Highlight]
    ) -> list[Highlight]:
        """Keep highlights that rank well against the topics or mention one.

        Relevance is rank-based: the i-th of K search results scores
        ``1 - i/K``. When embedding or search fails, falls back to keyword
        matching over text, title, note and tags.
        """
        topics = self._brand.topics
        if not highlights or not topics:
            return list(highlights)

        try:
            topic_vector = await self._embedder.embed(" ".join(topics))
            results = self._vectors.find_similar(
                topic_vector, len(highlights), among=[h.id for h in highlights]
            )
        except Exception as exc:
            logger.warning("Semantic topic filter failed, using keyword fallback: %s", exc)
            filtered = [
                h
                for h in highlights
                if _matches_topic(f"{h.text} {h.title} {h.note or ''} {' '.join(h.tags)}", topics)
            ]
            logger.info("Keyword filter kept %d of %d highlights", len(filtered), len(highlights))
            return filtered

        relevance = {
            r.highlight_id: 1 - index / len(results) for index, r in enumerate(results)
        }
        scored = [(h, relevance.get(h.id, 0.0)) for h in highlights]
        kept = [
            (h, score)
            for h, score in scored
            if score > RELEVANCE_THRESHOLD
            or _matches_topic(f"{h.text} {h.title} {h.note or ''}", topics)
        ]
        kept.sort(key=lambda pair: pair[1], reverse=True)
        logger.info("Topic filter kept %d of %d highlights", len(kept), len(highlights))
        return [h for h, _ in kept]

    async def generate_ideas(
        self, highlights: Sequence[Highlight], feedback: str | None = None
    ) -> IdeaGeneratorResult:
        """Generate, validate and store one batch of ideas.

        ``feedback`` from a rejected batch is passed to the model as
        guidance. Raises ``LLMResponseError`` when the model never produces
        a valid batch.
        """
        filtered = await self.filter_highlights_by_topic(highlights)
        if not filtered:
            logger.warning("No highlights match the topic filter; using all %d", len(highlights))
        to_use = filtered or list(highlights)

        batch_id = self._store.max_batch_id() + 1

        system = render(
            "idea_generation.j2",
            brand=self._brand,
            min_ideas=MIN_IDEAS,
            max_ideas=MAX_IDEAS,
            min_bullets=MIN_BULLETS,
            max_bullets=MAX_BULLETS,
        )
        highlights_text = _format_highlights(to_use)
        if feedback:
            user_message = (
                f"Previous feedback: {feedback}\n\n"
                f"Generate NEW ideas that address this feedback.\n\n"
                f"Highlights:\n{highlights_text}"
            )
        else:
            user_message = f"Generate blog ideas from these highlights:\n\n{highlights_text}"
        user_message += f"\n\nGenerate {MIN_IDEAS}-{MAX_IDEAS} different ideas, not just one."

        response = await self._client.generate_structured(
            system=system,
            messages=[{"role": "user", "content": user_message}],
            schema=IdeasResponse,
            max_retries=self._max_retries,
            temperature=0.8,
        )
        logger.info("Received %d ideas from the model", len(response.ideas))

        valid_ideas = self.validate_ideas(response.ideas)
        logger.info("%d of %d ideas passed validation", len(valid_ideas), len(response.ideas))

        idea_ids: list[int] = []
        for idea in valid_ideas:
            stored = self._store.add_idea(
                title=idea.title,
                hook=idea.one_sentence_hook,
                why_now=idea.why_now,
                target_audience=idea.target_audience,
                outline_bullets=idea.outline_bullets,
                risk_of_generic=idea.risk_of_generic,
                novelty_score_guess=idea.novelty_score_guess,
                batch_id=batch_id,
                highlight_ids=[int(i) for i in idea.supporting_highlight_ids],
            )
            idea_ids.append(stored.id)

        return IdeaGeneratorResult(ideas=valid_ideas, batch_id=batch_id, idea_ids=idea_ids)

    def validate_ideas(self, ideas: Sequence[BlogIdea]) -> list[BlogIdea]:
        """Drop cited ids that are not stored highlights, then ideas left with none."""
        valid: list[BlogIdea] = []
        for idea in ideas:
            kept_ids: list[str] = []
            for raw_id in idea.supporting_highlight_ids:
                highlight_id = self._parse_id(raw_id)
                if highlight_id is not None and self._store.highlight_exists(highlight_id):
                    if str(highlight_id) not in kept_ids:
                        kept_ids.append(str(highlight_id))
                else:
                    logger.warning("Highlight ID %s not found in database", raw_id)

            if kept_ids:
                valid.append(idea.model_copy(update={"supporting_highlight_ids": kept_ids}))
            else:
                logger.warning("Idea %r dropped: no valid highlights", idea.title)
        return valid

    @staticmethod
    def _parse_id(raw_id: str) -> int | None:
        try:
            return int(str(raw_id).strip())
        except ValueError:
            return None
