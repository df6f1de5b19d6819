"""
Exhaustive Search Routes

Each ``mode`` (``all`` or ``document``) addresses its own independent sweep
slot. Per-chunk verdicts are pushed on the ``exhaustive:<mode>`` channel of
``GET /events`` and retained for ``GET /exhaustive/{mode}/results``.
"""

from fastapi import APIRouter, Depends, Response, status
from typing import Annotated

from .models import (
    CancelResponse,
    ExhaustiveRequest,
    ExhaustiveResultsResponse,
    ExhaustiveStartResponse,
    ReclassifyRequest,
)
from .dependencies import get_session
from ..pipeline.exhaustive import ClassificationResult, SweepMode, count_buckets
from ..sessions.workspace import WorkspaceSession

router = APIRouter(prefix="/exhaustive", tags=["exhaustive"])


@router.post(
    "/{mode}",
    response_model=ExhaustiveStartResponse,
    summary="Classify every chunk with the LLM",
)
async def start_exhaustive(
    mode: SweepMode,
    req: ExhaustiveRequest,
    session: Annotated[WorkspaceSession, Depends(get_session)],
    response: Response,
) -> ExhaustiveStartResponse:
    """
    Start a sweep in the slot for ``mode``.

    By default the call returns 202 as soon as the sweep is running; with
    ``wait=true`` it returns the final summary instead.
    """
    classifier = session.classifier

    if not req.wait:
        classifier.start(mode, req.query, req.document_id)
        response.status_code = status.HTTP_202_ACCEPTED
        return ExhaustiveStartResponse(status="started", total=classifier.slot(mode).total)

    summary = await classifier.sweep(mode, req.query, req.document_id)
    return ExhaustiveStartResponse(status=summary.status, total=summary.total, summary=summary)


@router.post(
    "/{mode}/cancel",
    response_model=CancelResponse,
    summary="Cancel the sweep of one mode",
)
async def cancel_exhaustive(
    mode: SweepMode,
    session: Annotated[WorkspaceSession, Depends(get_session)],
) -> CancelResponse:
    return CancelResponse(cancelled=session.classifier.cancel(mode))


@router.get(
    "/{mode}/results",
    response_model=ExhaustiveResultsResponse,
    summary="Results retained by the last sweep of one mode",
)
async def get_exhaustive_results(
    mode: SweepMode,
    session: Annotated[WorkspaceSession, Depends(get_session)],
) -> ExhaustiveResultsResponse:
    slot = session.classifier.slot(mode)
    results = session.classifier.results(mode)
    return ExhaustiveResultsResponse(
        mode=slot.mode.value,
        state=slot.state.value,
        total=slot.total,
        results=results,
        counts=count_buckets(results),
    )


@router.patch(
    "/{mode}/results",
    response_model=ClassificationResult,
    summary="Move an uncertain result into another bucket",
)
async def reclassify_result(
    mode: SweepMode,
    req: ReclassifyRequest,
    session: Annotated[WorkspaceSession, Depends(get_session)],
) -> ClassificationResult:
    return session.classifier.reclassify(mode, req.document_id, req.chunk_id, req.classification)
