import math

import pytest

from litnav_server.core.errors import NotReady
from litnav_server.embeddings.index import VectorIndex, cosine_similarity
from litnav_server.embeddings.models import Chunk, Document


def embedded_chunk(chunk_id, vector, page=1, text=None):
    chunk = Chunk(id=chunk_id, page=page, text=text or f"chunk {chunk_id}")
    chunk.attach_embedding(vector)
    return chunk


def test_cosine_similarity_properties():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([0, 0], [1, 0]) == 0.0
    assert cosine_similarity([1, 0], [0, 0]) == 0.0
    assert not math.isnan(cosine_similarity([0, 0], [0, 0]))


def test_attach_embedding_sets_norm():
    chunk = embedded_chunk(0, [3.0, 4.0])

    assert chunk.has_embedding
    assert chunk.norm == pytest.approx(5.0)


def test_chunk_rejects_embedding_without_norm():
    with pytest.raises(ValueError):
        Chunk(id=0, page=1, text="t", embedding=[1.0, 0.0])


def test_equal_scores_keep_ordinal_order():
    same = [0.9, math.sqrt(1 - 0.81)]
    lower = [0.5, math.sqrt(1 - 0.25)]
    doc = Document(
        id="a.pdf",
        path="a.pdf",
        chunks=[
            embedded_chunk(2, same),
            embedded_chunk(0, same),
            embedded_chunk(1, lower),
        ],
    )
    index = VectorIndex()
    index.add_document(doc)

    results = index.search([1.0, 0.0], 1.0, per_doc_n=2)

    hits = results[0].hits
    assert [h.chunk_id for h in hits] == [0, 2]
    assert [h.score for h in hits] == pytest.approx([0.9, 0.9])


def test_documents_ordered_by_best_hit():
    index = VectorIndex()
    index.add_document(Document(id="weak", path="weak.pdf", chunks=[embedded_chunk(0, [0.1, 1.0])]))
    index.add_document(Document(id="strong", path="strong.pdf", chunks=[embedded_chunk(1, [1.0, 0.1])]))
    index.add_document(Document(id="empty", path="empty.pdf", chunks=[]))

    results = index.search([1.0, 0.0], 1.0, per_doc_n=3)

    assert [r.document_id for r in results] == ["strong", "weak"]
    assert results[0].best_score > results[1].best_score


def test_zero_norm_chunk_scores_zero():
    index = VectorIndex()
    index.add_document(
        Document(
            id="a",
            path="a.pdf",
            chunks=[embedded_chunk(0, [0.0, 0.0]), embedded_chunk(1, [1.0, 0.0])],
        )
    )

    hits = index.search([1.0, 0.0], 1.0, per_doc_n=2)[0].hits

    assert [(h.chunk_id, h.score) for h in hits] == [(1, pytest.approx(1.0)), (0, 0.0)]


def test_zero_query_norm_scores_zero():
    index = VectorIndex()
    index.add_document(Document(id="a", path="a.pdf", chunks=[embedded_chunk(0, [1.0, 0.0])]))

    hits = index.search([0.0, 0.0], 0.0, per_doc_n=1)[0].hits

    assert hits[0].score == 0.0


def test_search_before_embedding_raises_not_ready():
    index = VectorIndex()
    with pytest.raises(NotReady):
        index.search([1.0], 1.0, per_doc_n=3)

    index.add_document(Document(id="a", path="a.pdf", chunks=[Chunk(id=0, page=1, text="raw")]))
    with pytest.raises(NotReady):
        index.search([1.0], 1.0, per_doc_n=3)


def test_dimension_mismatch_raises_not_ready():
    index = VectorIndex()
    index.add_document(Document(id="a", path="a.pdf", chunks=[embedded_chunk(0, [1.0, 0.0, 0.0])]))

    with pytest.raises(NotReady):
        index.search([1.0, 0.0], 1.0, per_doc_n=1)


def test_per_doc_n_must_be_positive():
    index = VectorIndex()
    index.add_document(Document(id="a", path="a.pdf", chunks=[embedded_chunk(0, [1.0])]))

    with pytest.raises(ValueError):
        index.search([1.0], 1.0, per_doc_n=0)


def test_stats_and_clear():
    index = VectorIndex()
    index.add_document(
        Document(
            id="a",
            path="a.pdf",
            chunks=[embedded_chunk(0, [1.0]), Chunk(id=1, page=2, text="pending")],
        )
    )

    stats = index.stats()
    assert stats["document_count"] == 1
    assert stats["chunk_count"] == 2
    assert stats["embedded_chunk_count"] == 1
    assert stats["chunks_per_document"] == {"a": 2}

    index.clear()
    assert len(index) == 0
    assert not index.has_embeddings
