"""Turn a shortlisted idea into a full blog draft."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from glean.agents.schemas import BlogDraft
from glean.brand.profile import BrandProfile
from glean.llm.client import ClaudeClient, LLMResponseError
from glean.llm.embeddings import EmbeddingClient
from glean.llm.prompts import render
from glean.storage.models import Highlight, Idea
from glean.storage.repository import IdeaNotFoundError, Store, count_words
from glean.storage.vectors import VectorStore

logger = logging.getLogger(__name__)

ADDITIONAL_HIGHLIGHTS = 5


class DraftCreationError(RuntimeError):
    """The model could not produce a well-formed draft."""


@dataclass
class CreatorResult:
    draft_id: int
    word_count: int


class CreatorAgent:
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
        self._store = store
        self._vectors = vectors
        self._embedder = embedder
        self._brand = brand
        self._max_retries = max_retries

    async def create_draft(self, idea_id: int) -> CreatorResult:
        """Write and store a draft for ``idea_id``.

        The draft is grounded in the idea's cited highlights plus up to five
        semantically similar ones. Raises ``IdeaNotFoundError`` for an unknown
        idea and ``DraftCreationError`` when the model's reply stays malformed.
        """
        idea = self._store.get_idea(idea_id)
        if idea is None:
            raise IdeaNotFoundError(idea_id)
        logger.info("Creating draft for idea %d: %r", idea_id, idea.title)

        cited = self._store.get_highlights(self._store.idea_highlight_ids(idea_id))
        additional = await self._find_additional_highlights(idea, [h.id for h in cited])

        grounding: list[Highlight] = []
        seen: set[int] = set()
        for highlight in [*cited, *additional]:
            if highlight.id not in seen:
                seen.add(highlight.id)
                grounding.append(highlight)

        system = render(
            "draft_creation.j2",
            brand=self._brand,
            min_words=1200,
            max_words=1800,
            min_sections=3,
            hook_count=5,
            social_count=10,
        )
        try:
            draft = await self._client.generate_structured(
                system=system,
                messages=[{"role": "user", "content": self._user_message(idea, grounding)}],
                schema=BlogDraft,
                max_retries=self._max_retries,
                temperature=0.7,
            )
        except LLMResponseError as exc:
            raise DraftCreationError(
                f"Failed to generate draft for idea {idea_id}: {exc}. "
                "The AI response was incorrectly formatted; try again."
            ) from exc

        word_count = count_words(draft.full_draft)
        if word_count != draft.word_count:
            logger.debug(
                "Model reported %d words, body has %d", draft.word_count, word_count
            )

        stored = self._store.add_draft(
            idea_id=idea_id,
            outline=draft.detailed_outline.model_dump(by_alias=True),
            body=draft.full_draft,
            word_count=word_count,
            alternative_hooks=draft.alternative_hooks,
            social_post_bullets=draft.social_post_bullets,
            highlight_ids=[h.id for h in grounding],
        )
        logger.info("Draft %d saved (%d words, %d highlights)", stored.id, word_count, len(grounding))
        return CreatorResult(draft_id=stored.id, word_count=word_count)

    async def _find_additional_highlights(
        self, idea: Idea, exclude_ids: list[int]
    ) -> list[Highlight]:
        query = f"{idea.title} {idea.hook} {' '.join(idea.outline_bullets)}"
        try:
            vector = await self._embedder.embed(query)
            similar = self._vectors.find_similar(vector, ADDITIONAL_HIGHLIGHTS, exclude_ids)
        except Exception as exc:
            logger.warning(
                "Semantic search failed for idea %d; using cited highlights only: %s",
                idea.id,
                exc,
            )
            return []
        return self._store.get_highlights([r.highlight_id for r in similar])

    @staticmethod
    def _user_message(idea: Idea, highlights: list[Highlight]) -> str:
        outline = "\n".join(f"- {bullet}" for bullet in idea.outline_bullets)
        highlights_text = "\n\n".join(
            f"[ID: {h.id}]\nTitle: {h.title}\nHighlight: {h.text}\n"
            f"Note: {h.note or 'None'}\nURL: {h.url}"
            for h in highlights
        )
        return (
            f"Idea:\n"
            f"Title: {idea.title}\n"
            f"Hook: {idea.hook}\n"
            f"Why Now: {idea.why_now}\n"
            f"Target Audience: {idea.target_audience}\n"
            f"Outline:\n{outline}\n\n"
            f"Supporting Highlights:\n{highlights_text}\n\n"
            "Create a full blog draft. Write fullDraft as plain text with blank "
            "lines between paragraphs."
        )
