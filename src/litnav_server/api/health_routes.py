from fastapi import APIRouter, Depends
from typing import Annotated

from .dependencies import get_registry
from ..sessions.workspace import WorkspaceRegistry

router = APIRouter(tags=["health"])


@router.get("/health")
def health(registry: Annotated[WorkspaceRegistry, Depends(get_registry)]):
    return {"status": "ok", "workspace_open": registry.session is not None}
