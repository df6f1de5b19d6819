"""
In-Memory Vector Index

This module holds the Documents of a workspace session and ranks their chunks
against a query embedding by cosine similarity.

Key Properties
--------------
- Volatile: nothing is persisted, the index is rebuilt by each preprocessing run
- Documents are kept in insertion (include-list) order
- Zero norms score 0.0 instead of dividing by zero
- Equal scores keep ascending chunk ordinal order
- Thread-safe via an internal lock
"""

from __future__ import annotations

from threading import RLock
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .models import Chunk, Document, DocumentHits, SearchHit
from ..core.errors import NotReady


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors, 0.0 when either has zero norm.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    return float(np.dot(va, vb) / (na * nb))


class VectorIndex:
    """
    Per-session store of Documents with per-document top-N ranking.

    Only the preprocessing orchestrator mutates the index; search and the
    exhaustive classifier read it.
    """

    def __init__(self) -> None:
        self._documents: Dict[str, Document] = {}
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def add_document(self, document: Document) -> None:
        with self._lock:
            self._documents[document.id] = document

    def clear(self) -> None:
        with self._lock:
            self._documents.clear()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def get(self, document_id: str) -> Optional[Document]:
        with self._lock:
            return self._documents.get(document_id)

    def documents(self) -> List[Document]:
        with self._lock:
            return list(self._documents.values())

    def all_chunks(self) -> List[Tuple[Document, Chunk]]:
        """Every chunk, documents in insertion order, chunks in ordinal order."""
        with self._lock:
            return [
                (doc, chunk)
                for doc in self._documents.values()
                for chunk in sorted(doc.chunks, key=lambda c: c.id)
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._documents)

    @property
    def has_embeddings(self) -> bool:
        with self._lock:
            return any(
                chunk.has_embedding
                for doc in self._documents.values()
                for chunk in doc.chunks
            )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        query_vector: Sequence[float],
        query_norm: float,
        per_doc_n: int,
    ) -> List[DocumentHits]:
        """
        Rank every document's chunks against the query.

        Returns one entry per document that has chunks, holding its top
        ``per_doc_n`` hits best-first. Entries are ordered by their best
        hit, highest first.

        Raises
        ------
        NotReady
            If nothing has been embedded yet, or the stored vectors have a
            different dimension than the query.
        """
        if per_doc_n < 1:
            raise ValueError("per_doc_n must be at least 1")

        q = np.asarray(query_vector, dtype=np.float64)

        with self._lock:
            if not self.has_embeddings:
                raise NotReady("Preprocessing has not completed; no embeddings available.")

            results: List[DocumentHits] = []
            for doc in self._documents.values():
                hits = self._rank_document(doc, q, query_norm, per_doc_n)
                if hits:
                    results.append(
                        DocumentHits(document_id=doc.id, path=doc.path, hits=hits)
                    )

        # sorted() is stable: ties keep include-list order
        results.sort(key=lambda r: -r.best_score)
        return results

    @staticmethod
    def _rank_document(
        doc: Document,
        q: np.ndarray,
        query_norm: float,
        per_doc_n: int,
    ) -> List[SearchHit]:
        chunks = sorted(doc.chunks, key=lambda c: c.id)
        if not chunks:
            return []

        scores = np.zeros(len(chunks), dtype=np.float64)
        embedded = [
            i for i, c in enumerate(chunks)
            if c.has_embedding and c.norm
        ]

        if embedded and query_norm:
            for i in embedded:
                if len(chunks[i].embedding) != q.shape[0]:
                    raise NotReady(
                        "Stored embeddings do not match the query dimension; "
                        "re-run preprocessing with the current embedding model."
                    )

            matrix = np.asarray([chunks[i].embedding for i in embedded], dtype=np.float64)
            norms = np.asarray([chunks[i].norm for i in embedded], dtype=np.float64)
            scores[embedded] = (matrix @ q) / (norms * query_norm)

        order = np.argsort(-scores, kind="stable")[:per_doc_n]

        return [
            SearchHit(
                document_id=doc.id,
                chunk_id=chunks[i].id,
                score=float(scores[i]),
                page=chunks[i].page,
                text=chunks[i].text,
            )
            for i in order
        ]

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def stats(self) -> dict:
        """
        Return index statistics for diagnostics.
        """
        with self._lock:
            per_document = {
                doc.id: len(doc.chunks) for doc in self._documents.values()
            }
            return {
                "document_count": len(self._documents),
                "chunk_count": sum(per_document.values()),
                "embedded_chunk_count": sum(
                    doc.embedded_chunk_count for doc in self._documents.values()
                ),
                "chunks_per_document": per_document,
            }
