"""Sync highlights from Readwise into the local store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from glean.llm.embeddings import EmbeddingClient
from glean.sources.readwise import NormalizedHighlight
from glean.storage.models import Highlight
from glean.storage.repository import Store
from glean.storage.vectors import VectorStore

logger = logging.getLogger(__name__)


class HighlightSource(Protocol):
    async def fetch_highlights(
        self, updated_after: datetime | None = None, max_age_days: int = 30
    ) -> list[dict]: ...

    def normalize_highlight(self, raw: dict) -> NormalizedHighlight: ...


@dataclass
class RetrieverResult:
    highlights_count: int
    new_highlights: int
    updated_highlights: int
    sync_log_id: int


class RetrieverAgent:
    """Pull highlights, dedupe by external id, embed the new ones, log the run."""

    def __init__(
        self,
        source: HighlightSource,
        store: Store,
        vectors: VectorStore,
        embedder: EmbeddingClient,
        *,
        max_age_days: int = 30,
    ) -> None:
        self._source = source
        self._store = store
        self._vectors = vectors
        self._embedder = embedder
        self._max_age_days = max_age_days

    async def sync_highlights(self, incremental: bool = False) -> RetrieverResult:
        """Run one sync.

        An incremental sync only asks for highlights updated after the last
        successful sync finished. Work done before a failure is kept; the
        sync log records the error and the exception is re-raised.
        """
        sync_log = self._store.start_sync_log("incremental" if incremental else "full")

        try:
            updated_after = None
            if incremental:
                last = self._store.last_successful_sync()
                if last and last.completed_at:
                    updated_after = last.completed_at
                    logger.info("Incremental sync: highlights updated after %s", updated_after)

            raw_highlights = await self._source.fetch_highlights(
                updated_after=updated_after, max_age_days=self._max_age_days
            )
            logger.info("Received %d highlights from source", len(raw_highlights))

            new_count = 0
            updated_count = 0
            for raw in raw_highlights:
                normalized = self._source.normalize_highlight(raw)
                existing = (
                    self._store.get_highlight_by_external_id(normalized.external_id)
                    if normalized.external_id
                    else None
                )
                if existing:
                    self._store.update_highlight(existing.id, normalized)
                    updated_count += 1
                else:
                    highlight = self._store.add_highlight(normalized)
                    await self._embed(highlight)
                    new_count += 1

            self._store.finish_sync_log(
                sync_log.id, status="success", highlights_count=len(raw_highlights)
            )
        except Exception as exc:
            self._store.finish_sync_log(sync_log.id, status="error", error_message=str(exc))
            raise

        return RetrieverResult(
            highlights_count=len(raw_highlights),
            new_highlights=new_count,
            updated_highlights=updated_count,
            sync_log_id=sync_log.id,
        )

    async def _embed(self, highlight: Highlight) -> None:
        text = f"{highlight.text} {highlight.note or ''}".strip()
        if not text:
            return
        try:
            vector = await self._embedder.embed(text)
            self._vectors.store(highlight.id, vector, self._embedder.model)
        except Exception as exc:
            logger.warning("Failed to create embedding for highlight %s: %s", highlight.id, exc)

    def get_top_highlights(self, limit: int = 20) -> list[Highlight]:
        """Most recent highlights by source creation time."""
        return self._store.recent_highlights(limit)
