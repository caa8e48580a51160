"""LLM-as-judge evaluation of a stored draft."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from glean.agents.schemas import JudgeScore
from glean.brand.profile import BrandProfile
from glean.llm.client import ClaudeClient
from glean.llm.prompts import render
from glean.storage.repository import DraftNotFoundError, Store

logger = logging.getLogger(__name__)


@dataclass
class JudgeResult:
    accuracy: float
    readability: float
    brand_relevance: float
    style_consistency: float
    overall_score: float
    feedback: str


class JudgeAgent:
    """Rate a draft on accuracy, readability, brand relevance and style.

    ``client`` should be built with the judge model (and judge API key when
    one is configured) so drafts are not graded by the model that wrote them.
    """

    def __init__(
        self,
        client: ClaudeClient,
        store: Store,
        brand: BrandProfile,
        *,
        max_retries: int = 3,
    ) -> None:
        self._client = client
        self._store = store
        self._brand = brand
        self._max_retries = max_retries

    async def judge_draft(self, draft_id: int, custom_prompt: str | None = None) -> JudgeResult:
        draft = self._store.get_draft(draft_id)
        if draft is None:
            raise DraftNotFoundError(draft_id)
        idea = self._store.get_idea(draft.idea_id)

        user_message = (
            "Evaluate this blog draft:\n\n"
            f"Idea Title: {idea.title if idea else 'Unknown'}\n"
            f"Hook: {idea.hook if idea else 'Unknown'}\n\n"
            f"Brand Context:\n{self._brand.to_prompt_fragment()}\n\n"
            f"Draft Content:\n{draft.body}"
        )
        if custom_prompt:
            user_message += f"\n\nCustom Evaluation Criteria:\n{custom_prompt}"

        score = await self._client.generate_structured(
            system=render("draft_judge.j2", custom_prompt=custom_prompt),
            messages=[{"role": "user", "content": user_message}],
            schema=JudgeScore,
            max_retries=self._max_retries,
            temperature=0.3,
        )
        logger.info("Draft %d judged: overall %.2f", draft_id, score.overall_score)
        return JudgeResult(
            accuracy=score.accuracy,
            readability=score.readability,
            brand_relevance=score.brand_relevance,
            style_consistency=score.style_consistency,
            overall_score=score.overall_score,
            feedback=score.feedback,
        )
