"""Brute-force embedding index over the embeddings table.

Every lookup loads all stored vectors and scores them against the query,
which is fine for a few thousand highlights. A larger corpus needs an indexed
nearest-neighbour store behind the same three methods.
"""

from __future__ import annotations

import json
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from pathlib import Path

import numpy as np
from sqlmodel import col, select

from glean.storage.database import get_session
from glean.storage.models import Embedding


class DimensionMismatchError(ValueError):
    """Two vectors being compared have different lengths."""


@dataclass(frozen=True)
class VectorSearchResult:
    highlight_id: int
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between ``a`` and ``b``; 0.0 when either is all zeros."""
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise DimensionMismatchError(
            f"Vectors must have the same length ({va.size} != {vb.size})"
        )
    denominator = np.linalg.norm(va) * np.linalg.norm(vb)
    if denominator == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / denominator, -1.0, 1.0))


class VectorStore:
    """Stores highlight embeddings and answers nearest-neighbour queries."""

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path

    def store(
        self,
        highlight_id: int,
        vector: Sequence[float],
        model: str = "text-embedding-3-small",
    ) -> None:
        with get_session(self._db_path) as session:
            session.add(
                Embedding(
                    highlight_id=highlight_id,
                    vector_json=json.dumps([float(x) for x in vector]),
                    model=model,
                )
            )
            session.commit()

    def get_embedding(self, highlight_id: int) -> list[float] | None:
        """Return the most recently stored vector for a highlight."""
        with get_session(self._db_path) as session:
            row = session.exec(
                select(Embedding)
                .where(Embedding.highlight_id == highlight_id)
                .order_by(col(Embedding.created_at).desc(), col(Embedding.id).desc())
            ).first()
        return row.vector if row else None

    def find_similar(
        self,
        query: Sequence[float],
        limit: int = 10,
        exclude_ids: Collection[int] = (),
        *,
        among: Collection[int] | None = None,
    ) -> list[VectorSearchResult]:
        """Top ``limit`` highlights by cosine similarity to ``query``.

        Only the latest embedding of each highlight is scored. ``among``
        restricts the scan to the given highlight ids. Results are ordered by
        descending score, then ascending highlight id.
        """
        if limit <= 0:
            return []

        statement = select(Embedding).order_by(
            col(Embedding.created_at).desc(), col(Embedding.id).desc()
        )
        if exclude_ids:
            statement = statement.where(col(Embedding.highlight_id).not_in(list(exclude_ids)))
        if among is not None:
            statement = statement.where(col(Embedding.highlight_id).in_(list(among)))

        with get_session(self._db_path) as session:
            rows = session.exec(statement).all()

        results: list[VectorSearchResult] = []
        seen: set[int] = set()
        for row in rows:
            if row.highlight_id in seen:
                continue
            seen.add(row.highlight_id)
            results.append(
                VectorSearchResult(
                    highlight_id=row.highlight_id,
                    score=cosine_similarity(query, row.vector),
                )
            )

        results.sort(key=lambda r: (-r.score, r.highlight_id))
        return results[:limit]
