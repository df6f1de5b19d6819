"""
Search Routes

This module defines the dense, vector-based search endpoint. One query
embedding is computed and every document's chunks are ranked by cosine
similarity; the top ``per_doc_n`` hits of each document are returned.
"""

from fastapi import APIRouter, Depends, status
from typing import Annotated

from .models import SearchRequest, SearchResponse
from .dependencies import get_session
from ..sessions.workspace import WorkspaceSession

router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "",
    response_model=SearchResponse,
    summary="Vector-based semantic search",
    status_code=status.HTTP_200_OK,
)
async def search(
    req: SearchRequest,
    session: Annotated[WorkspaceSession, Depends(get_session)],
) -> SearchResponse:
    """
    Perform a vector-based semantic search over the preprocessed workspace.

    Parameters
    ----------
    req : SearchRequest
        Contains:
        - query: Search query string
        - per_doc_n: Number of hits to keep per document

    Returns
    -------
    SearchResponse
        Documents ordered by their best hit, each with its ranked hits.
    """
    # NotReady / provider errors are translated by the registered handlers
    results = await session.search(req.query, req.per_doc_n)
    return SearchResponse(results=results)
