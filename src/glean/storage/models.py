"""SQLModel database models."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Highlight(SQLModel, table=True):
    """A captured excerpt plus metadata from a reading source."""

    id: int | None = Field(default=None, primary_key=True)
    external_id: str | None = Field(default=None, index=True, unique=True)
    url: str = ""
    title: str = "Untitled"
    author: str | None = None
    created_at: datetime = Field(default_factory=utcnow)  # from the source
    text: str = ""
    note: str | None = None
    tags_json: str = "[]"
    source_domain: str = ""
    synced_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def tags(self) -> list[str]:
        return json.loads(self.tags_json)


class Embedding(SQLModel, table=True):
    """One vector for a highlight. Re-embedding appends a new row."""

    id: int | None = Field(default=None, primary_key=True)
    highlight_id: int = Field(foreign_key="highlight.id", index=True)
    vector_json: str
    model: str = "text-embedding-3-small"
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def vector(self) -> list[float]:
        return json.loads(self.vector_json)


class Idea(SQLModel, table=True):
    """An LLM-proposed blog topic belonging to a generation batch."""

    id: int | None = Field(default=None, primary_key=True)
    title: str
    hook: str
    why_now: str
    target_audience: str
    outline_json: str = "[]"
    risk_of_generic: float
    novelty_score_guess: float
    generation_batch: int = Field(index=True)
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def outline_bullets(self) -> list[str]:
        return json.loads(self.outline_json)


class IdeaHighlight(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    idea_id: int = Field(foreign_key="idea.id", index=True)
    highlight_id: int = Field(foreign_key="highlight.id", index=True)


class CuratorScore(SQLModel, table=True):
    """Rubric scores for one idea from one curation pass."""

    id: int | None = Field(default=None, primary_key=True)
    idea_id: int = Field(foreign_key="idea.id", index=True)
    groundedness: float
    originality: float
    brand_fit: float
    diversity: float
    clarity: float
    average_score: float
    shortlisted: bool = False
    feedback: str = ""
    created_at: datetime = Field(default_factory=utcnow)


class Draft(SQLModel, table=True):
    """Full blog content generated for an idea."""

    id: int | None = Field(default=None, primary_key=True)
    idea_id: int = Field(foreign_key="idea.id", index=True)
    outline_json: str = "{}"
    body: str
    word_count: int = 0
    alternative_hooks_json: str = "[]"
    social_post_bullets_json: str = "[]"
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def outline(self) -> dict:
        return json.loads(self.outline_json)

    @property
    def alternative_hooks(self) -> list[str]:
        return json.loads(self.alternative_hooks_json)

    @property
    def social_post_bullets(self) -> list[str]:
        return json.loads(self.social_post_bullets_json)


class DraftHighlight(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    draft_id: int = Field(foreign_key="draft.id", index=True)
    highlight_id: int = Field(foreign_key="highlight.id", index=True)


class SyncLog(SQLModel, table=True):
    """Audit record of one retriever run."""

    id: int | None = Field(default=None, primary_key=True)
    sync_type: str  # full | incremental
    status: str = "in_progress"  # in_progress | success | error
    highlights_count: int = 0
    error_message: str | None = None
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: datetime | None = None
