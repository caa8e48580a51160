"""Structured store: the queries the pipeline runs against the database."""

from __future__ import annotations

import json
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from sqlalchemy import func
from sqlmodel import col, select

from glean.storage.database import get_session
from glean.storage.models import (
    CuratorScore,
    Draft,
    DraftHighlight,
    Embedding,
    Highlight,
    Idea,
    IdeaHighlight,
    SyncLog,
    utcnow,
)

if TYPE_CHECKING:
    from glean.sources.readwise import NormalizedHighlight


class NotFoundError(LookupError):
    """A referenced record does not exist."""


class IdeaNotFoundError(NotFoundError):
    def __init__(self, idea_id: int) -> None:
        super().__init__(f"Idea {idea_id} not found")
        self.idea_id = idea_id


class DraftNotFoundError(NotFoundError):
    def __init__(self, draft_id: int) -> None:
        super().__init__(f"Draft {draft_id} not found")
        self.draft_id = draft_id


def count_words(text: str) -> int:
    return len(text.split())


def _unique(ids: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(ids))


class Store:
    """Short-lived sessions over one SQLite file; every method commits its own work."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    @property
    def db_path(self) -> Path:
        return self._db_path

    # -- highlights ---------------------------------------------------------

    def get_highlight(self, highlight_id: int) -> Highlight | None:
        with get_session(self._db_path) as session:
            return session.get(Highlight, highlight_id)

    def highlight_exists(self, highlight_id: int) -> bool:
        return self.get_highlight(highlight_id) is not None

    def get_highlight_by_external_id(self, external_id: str) -> Highlight | None:
        with get_session(self._db_path) as session:
            return session.exec(
                select(Highlight).where(Highlight.external_id == external_id)
            ).first()

    def get_highlights(self, highlight_ids: Sequence[int]) -> list[Highlight]:
        """Fetch highlights, preserving the order of ``highlight_ids``."""
        if not highlight_ids:
            return []
        with get_session(self._db_path) as session:
            rows = session.exec(
                select(Highlight).where(col(Highlight.id).in_(list(highlight_ids)))
            ).all()
        by_id = {h.id: h for h in rows}
        return [by_id[i] for i in _unique(highlight_ids) if i in by_id]

    def add_highlight(self, normalized: NormalizedHighlight) -> Highlight:
        highlight = Highlight(
            external_id=normalized.external_id,
            url=normalized.url,
            title=normalized.title,
            author=normalized.author,
            created_at=normalized.created_at,
            text=normalized.text,
            note=normalized.note,
            tags_json=json.dumps(normalized.tags),
            source_domain=normalized.source_domain,
        )
        with get_session(self._db_path) as session:
            session.add(highlight)
            session.commit()
            session.refresh(highlight)
        return highlight

    def update_highlight(self, highlight_id: int, normalized: NormalizedHighlight) -> Highlight:
        """Overwrite the mutable fields of an existing highlight."""
        with get_session(self._db_path) as session:
            highlight = session.get(Highlight, highlight_id)
            if highlight is None:
                raise NotFoundError(f"Highlight {highlight_id} not found")
            highlight.url = normalized.url
            highlight.title = normalized.title
            highlight.author = normalized.author
            highlight.text = normalized.text
            highlight.note = normalized.note
            highlight.tags_json = json.dumps(normalized.tags)
            highlight.source_domain = normalized.source_domain
            highlight.updated_at = utcnow()
            session.add(highlight)
            session.commit()
            session.refresh(highlight)
        return highlight

    def recent_highlights(self, limit: int = 20, offset: int = 0) -> list[Highlight]:
        with get_session(self._db_path) as session:
            return list(
                session.exec(
                    select(Highlight)
                    .order_by(col(Highlight.created_at).desc(), col(Highlight.id).desc())
                    .offset(offset)
                    .limit(limit)
                ).all()
            )

    def count_highlights(self) -> int:
        with get_session(self._db_path) as session:
            return session.exec(select(func.count()).select_from(Highlight)).one()

    def clear_highlights(self) -> int:
        """Delete every highlight together with its embeddings and idea/draft links."""
        count = 0
        with get_session(self._db_path) as session:
            # Children first; each table is flushed before its parent goes.
            for model in (DraftHighlight, IdeaHighlight, Embedding, Highlight):
                for row in session.exec(select(model)).all():
                    session.delete(row)
                    if model is Highlight:
                        count += 1
                session.flush()
            session.commit()
        return count

    # -- ideas ----------------------------------------------------------------

    def max_batch_id(self) -> int:
        with get_session(self._db_path) as session:
            value = session.exec(select(func.max(Idea.generation_batch))).one()
        return value or 0

    def add_idea(
        self,
        *,
        title: str,
        hook: str,
        why_now: str,
        target_audience: str,
        outline_bullets: list[str],
        risk_of_generic: float,
        novelty_score_guess: float,
        batch_id: int,
        highlight_ids: Sequence[int],
    ) -> Idea:
        """Insert an idea and one link row per supporting highlight."""
        idea = Idea(
            title=title,
            hook=hook,
            why_now=why_now,
            target_audience=target_audience,
            outline_json=json.dumps(outline_bullets),
            risk_of_generic=risk_of_generic,
            novelty_score_guess=novelty_score_guess,
            generation_batch=batch_id,
        )
        with get_session(self._db_path) as session:
            session.add(idea)
            session.commit()
            session.refresh(idea)
            for highlight_id in _unique(highlight_ids):
                session.add(IdeaHighlight(idea_id=idea.id, highlight_id=highlight_id))
            session.commit()
        return idea

    def get_idea(self, idea_id: int) -> Idea | None:
        with get_session(self._db_path) as session:
            return session.get(Idea, idea_id)

    def ideas_in_batch(self, batch_id: int) -> list[Idea]:
        with get_session(self._db_path) as session:
            return list(
                session.exec(
                    select(Idea)
                    .where(Idea.generation_batch == batch_id)
                    .order_by(col(Idea.id))
                ).all()
            )

    def list_ideas(self, limit: int = 50) -> list[Idea]:
        with get_session(self._db_path) as session:
            return list(
                session.exec(select(Idea).order_by(col(Idea.id).desc()).limit(limit)).all()
            )

    def count_ideas(self) -> int:
        with get_session(self._db_path) as session:
            return session.exec(select(func.count()).select_from(Idea)).one()

    def idea_highlight_ids(self, idea_id: int) -> list[int]:
        with get_session(self._db_path) as session:
            return list(
                session.exec(
                    select(IdeaHighlight.highlight_id)
                    .where(IdeaHighlight.idea_id == idea_id)
                    .order_by(col(IdeaHighlight.id))
                ).all()
            )

    def add_curator_score(self, score: CuratorScore) -> CuratorScore:
        with get_session(self._db_path) as session:
            session.add(score)
            session.commit()
            session.refresh(score)
        return score

    def latest_score(self, idea_id: int) -> CuratorScore | None:
        with get_session(self._db_path) as session:
            return session.exec(
                select(CuratorScore)
                .where(CuratorScore.idea_id == idea_id)
                .order_by(col(CuratorScore.id).desc())
            ).first()

    # -- drafts ---------------------------------------------------------------

    def add_draft(
        self,
        *,
        idea_id: int,
        outline: dict,
        body: str,
        word_count: int,
        alternative_hooks: list[str],
        social_post_bullets: list[str],
        highlight_ids: Sequence[int],
    ) -> Draft:
        """Insert a draft and link each grounding highlight to it exactly once."""
        draft = Draft(
            idea_id=idea_id,
            outline_json=json.dumps(outline),
            body=body,
            word_count=word_count,
            alternative_hooks_json=json.dumps(alternative_hooks),
            social_post_bullets_json=json.dumps(social_post_bullets),
        )
        with get_session(self._db_path) as session:
            session.add(draft)
            session.commit()
            session.refresh(draft)
            for highlight_id in _unique(highlight_ids):
                session.add(DraftHighlight(draft_id=draft.id, highlight_id=highlight_id))
            session.commit()
        return draft

    def get_draft(self, draft_id: int) -> Draft | None:
        with get_session(self._db_path) as session:
            return session.get(Draft, draft_id)

    def list_drafts(self, limit: int = 50) -> list[Draft]:
        with get_session(self._db_path) as session:
            return list(
                session.exec(select(Draft).order_by(col(Draft.id).desc()).limit(limit)).all()
            )

    def count_drafts(self) -> int:
        with get_session(self._db_path) as session:
            return session.exec(select(func.count()).select_from(Draft)).one()

    def draft_highlight_ids(self, draft_id: int) -> list[int]:
        with get_session(self._db_path) as session:
            return list(
                session.exec(
                    select(DraftHighlight.highlight_id)
                    .where(DraftHighlight.draft_id == draft_id)
                    .order_by(col(DraftHighlight.id))
                ).all()
            )

    def update_draft_body(self, draft_id: int, body: str) -> Draft:
        """Replace a draft's body and recompute its word count."""
        with get_session(self._db_path) as session:
            draft = session.get(Draft, draft_id)
            if draft is None:
                raise DraftNotFoundError(draft_id)
            draft.body = body
            draft.word_count = count_words(body)
            draft.updated_at = utcnow()
            session.add(draft)
            session.commit()
            session.refresh(draft)
        return draft

    # -- sync logs ------------------------------------------------------------

    def start_sync_log(self, sync_type: str) -> SyncLog:
        log = SyncLog(sync_type=sync_type)
        with get_session(self._db_path) as session:
            session.add(log)
            session.commit()
            session.refresh(log)
        return log

    def finish_sync_log(
        self,
        sync_log_id: int,
        *,
        status: str,
        highlights_count: int = 0,
        error_message: str | None = None,
    ) -> SyncLog:
        with get_session(self._db_path) as session:
            log = session.get(SyncLog, sync_log_id)
            if log is None:
                raise NotFoundError(f"Sync log {sync_log_id} not found")
            log.status = status
            log.highlights_count = highlights_count
            log.error_message = error_message
            log.completed_at = utcnow()
            session.add(log)
            session.commit()
            session.refresh(log)
        return log

    def last_successful_sync(self) -> SyncLog | None:
        with get_session(self._db_path) as session:
            return session.exec(
                select(SyncLog)
                .where(SyncLog.status == "success")
                .where(col(SyncLog.completed_at).is_not(None))
                .order_by(col(SyncLog.completed_at).desc(), col(SyncLog.id).desc())
            ).first()

    def latest_sync(self) -> SyncLog | None:
        with get_session(self._db_path) as session:
            return session.exec(
                select(SyncLog).order_by(col(SyncLog.started_at).desc(), col(SyncLog.id).desc())
            ).first()
