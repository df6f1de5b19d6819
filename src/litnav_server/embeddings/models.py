"""
Document and Chunk Data Models

This module defines the in-memory data model owned by a workspace session.

A Document is keyed by its file path and owns an ordered list of Chunks.
A Chunk corresponds to ONE window of page text and, once the embed phase
has reached it, ONE embedding vector.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

import numpy as np
from pydantic import BaseModel, Field, ConfigDict, model_validator


class Chunk(BaseModel):
    """
    A single chunk of page text.

    Invariant: ``embedding`` and ``norm`` are either both None or both set,
    with ``norm`` equal to the Euclidean norm of ``embedding``. Use
    ``attach_embedding`` rather than assigning the fields directly.
    """

    id: int = Field(
        ...,
        ge=0,
        description="Ordinal assigned during preprocessing; unique within a run.",
    )

    page: int = Field(
        ...,
        ge=1,
        description="1-based source page number.",
    )

    text: str = Field(
        ...,
        min_length=1,
        description="Raw text slice of the page.",
    )

    embedding: Optional[List[float]] = None
    norm: Optional[float] = Field(default=None, ge=0.0)

    model_config = ConfigDict(extra="forbid")

    @model_validator(mode="after")
    def _embedding_and_norm_together(self) -> "Chunk":
        if (self.embedding is None) != (self.norm is None):
            raise ValueError("embedding and norm must be set together")
        return self

    @property
    def has_embedding(self) -> bool:
        return self.embedding is not None

    def attach_embedding(self, vector: Sequence[float]) -> None:
        values = [float(x) for x in vector]
        self.embedding = values
        self.norm = float(np.linalg.norm(np.asarray(values, dtype=np.float64)))


class Document(BaseModel):
    """A preprocessed source file and its chunks, in ordinal order."""

    id: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)
    page_count: int = Field(default=0, ge=0)
    chunks: List[Chunk] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @property
    def embedded_chunk_count(self) -> int:
        return sum(1 for c in self.chunks if c.has_embedding)


class SearchHit(BaseModel):
    """One ranked chunk for a query. Derived, never stored."""

    document_id: str
    chunk_id: int
    score: float
    page: int
    text: str

    model_config = ConfigDict(extra="forbid", frozen=True)


class DocumentHits(BaseModel):
    """Top hits of one document, best first."""

    document_id: str
    path: str
    hits: List[SearchHit] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @property
    def best_score(self) -> float:
        return self.hits[0].score if self.hits else 0.0
