"""Response shapes the LLM must return, plus the rubric value types.

JSON keys are camelCase on the wire (``oneSentenceHook``), snake_case in
Python (``one_sentence_hook``).
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BlogIdea(_WireModel):
    title: str
    one_sentence_hook: str
    why_now: str
    target_audience: str
    outline_bullets: list[str] = Field(min_length=5, max_length=7)
    supporting_highlight_ids: list[str]
    risk_of_generic: float = Field(ge=0, le=1)
    novelty_score_guess: float = Field(ge=0, le=1)

    @field_validator("supporting_highlight_ids", mode="before")
    @classmethod
    def _ids_as_strings(cls, value: object) -> object:
        # Models often cite ids as bare numbers
        if isinstance(value, list):
            return [str(v) if isinstance(v, int) and not isinstance(v, bool) else v for v in value]
        return value


class IdeasResponse(_WireModel):
    ideas: list[BlogIdea] = Field(min_length=5, max_length=10)


class OutlineSection(_WireModel):
    heading: str
    bullets: list[str]


class DetailedOutline(_WireModel):
    introduction: str
    sections: list[OutlineSection] = Field(min_length=3)
    conclusion: str


class BlogDraft(_WireModel):
    detailed_outline: DetailedOutline
    full_draft: str
    word_count: int
    alternative_hooks: list[str] = Field(min_length=5, max_length=5)
    social_post_bullets: list[str] = Field(min_length=10, max_length=10)


class JudgeScore(_WireModel):
    accuracy: float = Field(ge=0, le=1)
    readability: float = Field(ge=0, le=1)
    brand_relevance: float = Field(ge=0, le=1)
    style_consistency: float = Field(ge=0, le=1)
    overall_score: float = Field(ge=0, le=1)
    feedback: str
