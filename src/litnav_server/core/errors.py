"""
Error Taxonomy and Global Error Handling

This module defines every failure kind the pipeline can raise, together with
the FastAPI exception handlers that translate them into HTTP responses.

Design Goals
------------
- Precondition failures are returned synchronously to the caller
- Provider failures carry a human-readable message, never a stack trace
- Cancellation is its own kind and is never reported as a failure
- Unexpected exceptions are logged in full and answered with a generic 500
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger("litnav.errors")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class LitNavError(RuntimeError):
    """Base class for all pipeline errors."""

    code: str = "litnav_error"
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class WorkspaceNotConfigured(LitNavError):
    """No workspace root or no included documents."""

    code = "workspace_not_configured"
    status_code = 409


class SettingsIncomplete(LitNavError):
    """A required endpoint host or model name is blank."""

    code = "settings_incomplete"
    status_code = 400


class AlreadyRunning(LitNavError):
    """A run is already active in the requested slot."""

    code = "already_running"
    status_code = 409


class NotReady(LitNavError):
    """Search or sweep requested before the data it needs exists."""

    code = "not_ready"
    status_code = 409


class Cancelled(LitNavError):
    """User-initiated cancellation. Not a failure."""

    code = "cancelled"
    status_code = 409

    def __init__(self, message: str = "Operation cancelled.") -> None:
        super().__init__(message)


class EmbeddingProviderError(LitNavError):
    """The embedding endpoint failed or answered with an unexpected shape."""

    code = "embedding_provider_error"
    status_code = 502


class LLMProviderError(LitNavError):
    """A classification call failed or returned an unusable verdict."""

    code = "llm_provider_error"
    status_code = 502


class LLMTransportError(LLMProviderError):
    """The LLM endpoint cannot be reached or rejects our credentials."""

    code = "llm_transport_error"


class InvalidReclassification(LitNavError):
    """Only existing uncertain results may be moved to another bucket."""

    code = "invalid_reclassification"
    status_code = 409


class UnexpectedIO(LitNavError):
    """Reading a source document failed."""

    code = "unexpected_io"
    status_code = 500


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def litnav_error_handler(
    request: Request,
    exc: LitNavError,
) -> JSONResponse:
    """
    Translate a known pipeline error into a deterministic JSON response.

    The message is meant for a transient status line in the consuming UI.
    """
    if exc.status_code >= 500:
        logger.error(
            "%s during %s %s: %s",
            exc.code,
            request.method,
            request.url.path,
            exc.message,
        )
    else:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.code)

    payload: Dict[str, Any] = {
        "error": exc.code,
        "detail": exc.message,
    }
    return JSONResponse(status_code=exc.status_code, content=payload)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    """
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
