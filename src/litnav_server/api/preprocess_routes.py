"""
Preprocessing Routes

Start, cancel and inspect the preprocessing run of the current workspace.
Progress is pushed on the ``preprocess`` channel of ``GET /events``.
"""

from fastapi import APIRouter, Depends, Response, status
from typing import Annotated

from .models import CancelResponse, PreprocessResponse
from .dependencies import get_session
from ..core.errors import Cancelled
from ..sessions.workspace import WorkspaceSession

router = APIRouter(prefix="/preprocess", tags=["preprocess"])


@router.post(
    "",
    response_model=PreprocessResponse,
    summary="Extract, chunk and embed every included document",
)
async def start_preprocess(
    session: Annotated[WorkspaceSession, Depends(get_session)],
    response: Response,
    wait: bool = True,
) -> PreprocessResponse:
    """
    Run preprocessing.

    With ``wait=true`` (default) the response is sent when the run ends:
    the summary on success, ``status="cancelled"`` on cancellation, or the
    provider error. With ``wait=false`` the run continues in the background
    and the call returns 202 immediately.

    Precondition failures (no workspace, already running, incomplete
    settings) are rejected before the run starts in both modes.
    """
    if not wait:
        session.preprocessor.start()
        response.status_code = status.HTTP_202_ACCEPTED
        return PreprocessResponse(status="started")

    try:
        summary = await session.preprocessor.preprocess()
    except Cancelled:
        return PreprocessResponse(status="cancelled")

    return PreprocessResponse(status="completed", summary=summary)


@router.post(
    "/cancel",
    response_model=CancelResponse,
    summary="Cancel the running preprocessing",
)
async def cancel_preprocess(
    session: Annotated[WorkspaceSession, Depends(get_session)],
) -> CancelResponse:
    return CancelResponse(cancelled=session.preprocessor.cancel())


@router.get(
    "/status",
    summary="Preprocessing state and last outcome",
)
async def preprocess_status(
    session: Annotated[WorkspaceSession, Depends(get_session)],
) -> dict:
    return session.preprocessor.status()
