"""
Workspace and Settings Routes

This module exposes endpoints for:
- Opening, inspecting and resetting the workspace
- Replacing the list of included documents
- Reading and replace-merging runtime settings
"""

from fastapi import APIRouter, Depends, status
from typing import Annotated

from .models import (
    IncludeFilesRequest,
    OperationResult,
    SettingsResponse,
    SettingsUpdateRequest,
    WorkspaceOpenRequest,
    WorkspaceResponse,
)
from .dependencies import get_registry, get_session
from ..sessions.models import WorkspaceSettings
from ..sessions.workspace import WorkspaceRegistry, WorkspaceSession

router = APIRouter(tags=["workspace"])

CLEARABLE_FIELDS = ("api_key", "llm_api_key")


# ---------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------

def _settings_response(s: WorkspaceSettings, reindex_required: bool = False) -> SettingsResponse:
    return SettingsResponse(
        embedding_host=s.embedding_host,
        embedding_model=s.embedding_model,
        api_key_set=s.embedding_api_key is not None,
        chunk_size=s.chunk_size,
        chunk_overlap=s.chunk_overlap,
        llm_host=s.llm_host,
        llm_model=s.llm_model,
        llm_api_key_set=s.llm_key is not None,
        reindex_required=reindex_required,
    )


# ---------------------------------------------------------------------
# Workspace Routes
# ---------------------------------------------------------------------

@router.post(
    "/workspace",
    response_model=WorkspaceResponse,
    summary="Open a folder as the workspace",
    status_code=status.HTTP_201_CREATED,
)
async def open_workspace(
    req: WorkspaceOpenRequest,
    registry: Annotated[WorkspaceRegistry, Depends(get_registry)],
) -> WorkspaceResponse:
    """
    Replace the current workspace. Active runs of the previous workspace
    are cancelled and its documents are discarded.
    """
    session = await registry.open(req.root, req.include_files)
    return WorkspaceResponse(**session.describe())


@router.get(
    "/workspace",
    response_model=WorkspaceResponse,
    summary="Describe the current workspace",
)
async def get_workspace(
    registry: Annotated[WorkspaceRegistry, Depends(get_registry)],
) -> WorkspaceResponse:
    if registry.session is None:
        return WorkspaceResponse()
    return WorkspaceResponse(**registry.session.describe())


@router.put(
    "/workspace/files",
    response_model=WorkspaceResponse,
    summary="Replace the list of included documents",
)
async def set_include_files(
    req: IncludeFilesRequest,
    session: Annotated[WorkspaceSession, Depends(get_session)],
) -> WorkspaceResponse:
    session.set_include_files(req.files)
    return WorkspaceResponse(**session.describe())


@router.delete(
    "/workspace",
    response_model=OperationResult,
    summary="Reset the workspace",
)
async def reset_workspace(
    registry: Annotated[WorkspaceRegistry, Depends(get_registry)],
) -> OperationResult:
    closed = await registry.reset()
    return OperationResult(status="deleted" if closed else "ok")


# ---------------------------------------------------------------------
# Settings Routes
# ---------------------------------------------------------------------

@router.get(
    "/settings",
    response_model=SettingsResponse,
    summary="Current runtime settings (API keys are never returned)",
)
async def get_settings(
    registry: Annotated[WorkspaceRegistry, Depends(get_registry)],
) -> SettingsResponse:
    current = registry.session.settings if registry.session else registry.settings
    return _settings_response(current)


@router.put(
    "/settings",
    response_model=SettingsResponse,
    summary="Replace-merge runtime settings",
)
async def update_settings(
    req: SettingsUpdateRequest,
    registry: Annotated[WorkspaceRegistry, Depends(get_registry)],
) -> SettingsResponse:
    """
    Only fields present in the request body are merged. A change to the
    embedding host, model or chunking invalidates existing embeddings.
    """
    # An explicit null clears an API key; for every other field it is ignored
    patch = {
        key: value
        for key, value in req.model_dump(exclude_unset=True).items()
        if value is not None or key in CLEARABLE_FIELDS
    }
    new_settings, stale = registry.configure(patch)
    return _settings_response(new_settings, reindex_required=stale)
