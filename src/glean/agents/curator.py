"""Score a batch of ideas against a fixed rubric and shortlist the best."""

from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from glean.brand.profile import BrandProfile
from glean.storage.models import CuratorScore, Idea
from glean.storage.repository import Store

logger = logging.getLogger(__name__)

AVERAGE_SCORE_THRESHOLD = 0.6
MAX_GENERIC_RISK = 0.7
SHORTLIST_SIZE = 3
MIN_SHORTLISTED = 2

STRENGTH_THRESHOLD = 0.7
ISSUE_THRESHOLD = 0.5

# (attribute, label used in regeneration feedback)
DIMENSIONS = (
    ("groundedness", "groundedness"),
    ("originality", "originality"),
    ("brand_fit", "brand fit"),
    ("diversity", "diversity"),
    ("clarity", "clarity"),
)

_ISSUES = {
    "groundedness": "Needs more supporting highlights",
    "originality": "Too generic or low novelty",
    "brand_fit": "Weak alignment with brand profile",
    "diversity": "Outline covers too little ground",
    "clarity": "Hook needs more clarity",
}

_STRENGTHS = {
    "groundedness": "Well-grounded",
    "originality": "Original",
    "brand_fit": "Strong brand fit",
    "diversity": "Broad outline",
    "clarity": "Clear hook",
}


@dataclass(frozen=True)
class IdeaFeatures:
    """The parts of an idea the rubric looks at."""

    title: str
    hook: str
    target_audience: str
    outline_bullets: Sequence[str]
    risk_of_generic: float
    novelty_score_guess: float
    cited_highlights: int

    @classmethod
    def from_idea(cls, idea: Idea, cited_highlights: int) -> IdeaFeatures:
        return cls(
            title=idea.title,
            hook=idea.hook,
            target_audience=idea.target_audience,
            outline_bullets=idea.outline_bullets,
            risk_of_generic=idea.risk_of_generic,
            novelty_score_guess=idea.novelty_score_guess,
            cited_highlights=cited_highlights,
        )


@dataclass(frozen=True)
class CuratorRubric:
    groundedness: float
    originality: float
    brand_fit: float
    diversity: float
    clarity: float


@dataclass
class CuratorFeedback:
    scores: CuratorRubric
    average_score: float
    shortlisted: bool
    feedback: str


@dataclass
class CuratorResult:
    shortlisted_ideas: list[int]
    feedback: dict[int, CuratorFeedback] = field(default_factory=dict)
    should_regenerate: bool = False


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def score_idea(idea: IdeaFeatures, brand_keywords: Sequence[str]) -> CuratorRubric:
    """Score one idea on the five rubric dimensions, each in [0, 1]."""
    groundedness = min(idea.cited_highlights / 3, 1.0)

    originality = (1 - idea.risk_of_generic) * 0.7 + idea.novelty_score_guess * 0.3

    text = f"{idea.title} {idea.hook} {idea.target_audience}".lower()
    keyword_matches = sum(1 for kw in brand_keywords if kw.lower() in text)
    brand_fit = min(keyword_matches / 3, 1.0)

    unique_words = {word for bullet in idea.outline_bullets for word in bullet.lower().split()}
    diversity = min(len(unique_words) / 50, 1.0)

    hook_length = len(idea.hook)
    if 50 <= hook_length <= 200:
        clarity = 1.0
    else:
        clarity = max(0.5, 1 - abs(hook_length - 125) / 125)

    return CuratorRubric(
        groundedness=_clamp(groundedness),
        originality=_clamp(originality),
        brand_fit=_clamp(brand_fit),
        diversity=_clamp(diversity),
        clarity=_clamp(clarity),
    )


def average_score(rubric: CuratorRubric) -> float:
    return sum(getattr(rubric, name) for name, _ in DIMENSIONS) / len(DIMENSIONS)


def is_shortlisted(average: float, risk_of_generic: float) -> bool:
    return average >= AVERAGE_SCORE_THRESHOLD and risk_of_generic < MAX_GENERIC_RISK


def feedback_text(rubric: CuratorRubric, risk_of_generic: float) -> str:
    strengths = [
        _STRENGTHS[name] for name, _ in DIMENSIONS if getattr(rubric, name) > STRENGTH_THRESHOLD
    ]
    issues = [_ISSUES[name] for name, _ in DIMENSIONS if getattr(rubric, name) < ISSUE_THRESHOLD]

    parts = []
    if strengths:
        parts.append(f"Strengths: {', '.join(strengths)}")
    if issues:
        parts.append(f"Issues: {', '.join(issues)}")
    if risk_of_generic > MAX_GENERIC_RISK:
        parts.append("High risk of being generic")
    return ". ".join(parts) or "No specific feedback"


class CuratorAgent:
    """Deterministic scoring of an idea batch; no LLM involved."""

    def __init__(self, store: Store, brand: BrandProfile) -> None:
        self._store = store
        self._brand = brand

    async def curate_ideas(self, batch_id: int) -> CuratorResult:
        """Score every idea in ``batch_id``, persist the scores, pick the shortlist.

        The shortlist holds at most three ideas, best average first with ties
        going to the lower idea id. A batch with fewer than two shortlisted
        ideas, or none at all, asks for regeneration.
        """
        ideas = self._store.ideas_in_batch(batch_id)
        feedback_map: dict[int, CuratorFeedback] = {}

        for idea in ideas:
            cited = len(self._store.idea_highlight_ids(idea.id))
            rubric = score_idea(IdeaFeatures.from_idea(idea, cited), self._brand.brand_keywords)
            average = average_score(rubric)
            shortlisted = is_shortlisted(average, idea.risk_of_generic)
            text = feedback_text(rubric, idea.risk_of_generic)

            self._store.add_curator_score(
                CuratorScore(
                    idea_id=idea.id,
                    groundedness=rubric.groundedness,
                    originality=rubric.originality,
                    brand_fit=rubric.brand_fit,
                    diversity=rubric.diversity,
                    clarity=rubric.clarity,
                    average_score=average,
                    shortlisted=shortlisted,
                    feedback=text,
                )
            )
            feedback_map[idea.id] = CuratorFeedback(
                scores=rubric, average_score=average, shortlisted=shortlisted, feedback=text
            )

        ranked = sorted(
            (idea_id for idea_id, fb in feedback_map.items() if fb.shortlisted),
            key=lambda idea_id: (-feedback_map[idea_id].average_score, idea_id),
        )
        shortlist = ranked[:SHORTLIST_SIZE]

        should_regenerate = len(shortlist) < MIN_SHORTLISTED or all(
            fb.average_score < AVERAGE_SCORE_THRESHOLD for fb in feedback_map.values()
        )

        logger.info(
            "Batch %d: %d ideas scored, %d shortlisted%s",
            batch_id,
            len(ideas),
            len(shortlist),
            ", regeneration needed" if should_regenerate else "",
        )
        return CuratorResult(
            shortlisted_ideas=shortlist,
            feedback=feedback_map,
            should_regenerate=should_regenerate,
        )

    @staticmethod
    def regeneration_feedback(feedback_map: Mapping[int, CuratorFeedback]) -> str:
        """Summarize what a rejected batch got wrong, for the next generation pass."""
        low: Counter[str] = Counter()
        for fb in feedback_map.values():
            for name, label in DIMENSIONS:
                if getattr(fb.scores, name) < ISSUE_THRESHOLD:
                    low[label] += 1

        parts = []
        if low:
            parts.append(f"Focus on improving: {', '.join(label for label, _ in low.most_common())}")
        parts.append("Ensure ideas cite at least 3-4 specific highlights")
        parts.append("Avoid generic topics - aim for unique angles")
        return ". ".join(parts)
