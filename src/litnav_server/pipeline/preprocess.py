"""
Preprocessing Orchestrator

Drives one preprocessing run over the workspace: extract page text from every
included file, chunk it, then embed all chunks in fixed-size batches.

State machine
-------------
    IDLE -> EXTRACTING -> EMBEDDING -> COMPLETED -> IDLE
    EXTRACTING | EMBEDDING -> CANCELLING -> IDLE
    any active state -> FAILED -> IDLE

Rollback policy
---------------
A run either completes or leaves NO documents behind. Cancellation and
failures both clear the index, so search never serves a partial index.

Events (channel ``preprocess``)
-------------------------------
- progress  {phase: "extract", current, total, file?}  after every file
- progress  {phase: "embed", current, total}           after every batch
- complete  {document_count, chunk_count}
- cancelled {}
- error     {message}
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Literal, Optional

from pydantic import BaseModel, ConfigDict

from ..config import settings as app_settings
from ..core.cancellation import CancellationToken
from ..core.errors import (
    AlreadyRunning,
    Cancelled,
    LitNavError,
    SettingsIncomplete,
    WorkspaceNotConfigured,
)
from ..core.events import EventChannel, PREPROCESS_CHANNEL
from ..embeddings.embedder import Embedder
from ..embeddings.index import VectorIndex
from ..embeddings.models import Chunk, Document
from ..ingest.chunker import chunk_page_text
from ..ingest.extractor import PageExtractor
from ..sessions.models import Workspace, WorkspaceSettings

logger = logging.getLogger("litnav.preprocess")


class PreprocessState(str, Enum):
    IDLE = "idle"
    EXTRACTING = "extracting"
    EMBEDDING = "embedding"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATES = (
    PreprocessState.EXTRACTING,
    PreprocessState.EMBEDDING,
    PreprocessState.CANCELLING,
)


class PreprocessSummary(BaseModel):
    document_count: int
    chunk_count: int

    model_config = ConfigDict(extra="forbid", frozen=True)


class RunOutcome(BaseModel):
    status: Literal["completed", "cancelled", "failed"]
    message: Optional[str] = None
    summary: Optional[PreprocessSummary] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class PreprocessOrchestrator:
    """
    Owns the mutation rights over a session's VectorIndex.

    Only one run may be active at a time; the guard in ``start`` enforces it
    without a lock because all state changes happen on the event loop.
    """

    def __init__(
        self,
        workspace: Workspace,
        settings_provider: Callable[[], WorkspaceSettings],
        index: VectorIndex,
        embedder: Embedder,
        extractor: PageExtractor,
        events: EventChannel,
        batch_size: Optional[int] = None,
    ) -> None:
        self._workspace = workspace
        self._settings_provider = settings_provider
        self._index = index
        self._embedder = embedder
        self._extractor = extractor
        self._events = events
        self._batch_size = batch_size or app_settings.embedding_batch_size

        self._state = PreprocessState.IDLE
        self._token: Optional[CancellationToken] = None
        self._task: Optional["asyncio.Task[PreprocessSummary]"] = None
        self.last_outcome: Optional[RunOutcome] = None
        # Settings the current index was embedded with; None when nothing is indexed
        self.indexed_settings: Optional[WorkspaceSettings] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> PreprocessState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state in ACTIVE_STATES

    def _set_state(self, state: PreprocessState) -> None:
        if state != self._state:
            logger.info("Preprocess state %s -> %s", self._state.value, state.value)
            self._state = state

    def status(self) -> dict:
        return {
            "state": self._state.value,
            "last_outcome": self.last_outcome.model_dump() if self.last_outcome else None,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(self) -> "asyncio.Task[PreprocessSummary]":
        """
        Validate preconditions and launch a run in the background.

        Raises
        ------
        WorkspaceNotConfigured, AlreadyRunning, SettingsIncomplete
            Synchronously, before any state is touched.
        """
        if not self._workspace.is_configured:
            raise WorkspaceNotConfigured("Workspace root or included files are not set.")
        if self.is_running:
            raise AlreadyRunning("Preprocessing is already running.")

        snapshot = self._settings_provider().model_copy()
        if not snapshot.embedding_configured:
            raise SettingsIncomplete("Embedding host and model must be configured.")

        paths = list(self._workspace.include_files)
        token = CancellationToken()

        self._token = token
        self._set_state(PreprocessState.EXTRACTING)

        task = asyncio.create_task(self._run(paths, snapshot, token))
        task.add_done_callback(_consume_result)
        self._task = task
        return task

    async def preprocess(self) -> PreprocessSummary:
        """
        Run preprocessing and wait for it.

        The run is shielded: if the awaiting caller goes away the run keeps
        going and can still be cancelled through ``cancel``.
        """
        return await asyncio.shield(self.start())

    def cancel(self) -> bool:
        if not self.is_running or self._token is None:
            return False
        self._set_state(PreprocessState.CANCELLING)
        self._token.cancel()
        return True

    async def wait_closed(self) -> None:
        """Wait for an active run to finish, whatever its outcome."""
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Run body
    # ------------------------------------------------------------------

    async def _run(
        self,
        paths: List[str],
        snapshot: WorkspaceSettings,
        token: CancellationToken,
    ) -> PreprocessSummary:
        try:
            self._index.clear()
            self.indexed_settings = None
            await self._extract_all(paths, snapshot, token)

            token.raise_if_cancelled()
            self._set_state(PreprocessState.EMBEDDING)
            await self._embed_all(snapshot, token)

            summary = PreprocessSummary(
                document_count=len(self._index),
                chunk_count=sum(len(d.chunks) for d in self._index.documents()),
            )
            self._set_state(PreprocessState.COMPLETED)
            self.indexed_settings = snapshot
            self.last_outcome = RunOutcome(status="completed", summary=summary)
            self._events.publish(PREPROCESS_CHANNEL, "complete", summary.model_dump())
            logger.info(
                "Preprocessing complete: %d documents, %d chunks",
                summary.document_count,
                summary.chunk_count,
            )
            return summary

        except Cancelled:
            self._index.clear()
            self.last_outcome = RunOutcome(status="cancelled", message="Preprocessing cancelled.")
            self._events.publish(PREPROCESS_CHANNEL, "cancelled", {})
            logger.info("Preprocessing cancelled; index cleared")
            raise

        except asyncio.CancelledError:
            self._index.clear()
            raise

        except Exception as exc:
            message = exc.message if isinstance(exc, LitNavError) else f"{type(exc).__name__}: {exc}"
            self._set_state(PreprocessState.FAILED)
            self._index.clear()
            self.last_outcome = RunOutcome(status="failed", message=message)
            self._events.publish(PREPROCESS_CHANNEL, "error", {"message": message})
            if isinstance(exc, LitNavError):
                logger.error("Preprocessing failed: %s", message)
            else:
                logger.exception("Unexpected error during preprocessing")
            raise

        finally:
            self._token = None
            self._task = None
            self._set_state(PreprocessState.IDLE)

    async def _extract_all(
        self,
        paths: List[str],
        snapshot: WorkspaceSettings,
        token: CancellationToken,
    ) -> None:
        total = len(paths)
        next_chunk_id = 0

        self._events.publish(
            PREPROCESS_CHANNEL,
            "progress",
            {"phase": "extract", "current": 0, "total": total},
        )

        for position, path in enumerate(paths, start=1):
            token.raise_if_cancelled()

            pages = await token.guard(asyncio.to_thread(self._extractor.extract, path))

            if pages is not None:
                chunks: List[Chunk] = []
                for page_number, page_text in enumerate(pages, start=1):
                    for piece in chunk_page_text(
                        page_text,
                        page_number,
                        snapshot.chunk_size,
                        snapshot.chunk_overlap,
                    ):
                        chunks.append(Chunk(id=next_chunk_id, page=piece.page, text=piece.text))
                        next_chunk_id += 1

                self._index.add_document(
                    Document(id=path, path=path, page_count=len(pages), chunks=chunks)
                )
                logger.debug("Extracted %s: %d pages, %d chunks", path, len(pages), len(chunks))

            self._events.publish(
                PREPROCESS_CHANNEL,
                "progress",
                {"phase": "extract", "current": position, "total": total, "file": path},
            )

    async def _embed_all(self, snapshot: WorkspaceSettings, token: CancellationToken) -> None:
        jobs = [chunk for _doc, chunk in self._index.all_chunks()]
        total = len(jobs)
        processed = 0

        self._events.publish(
            PREPROCESS_CHANNEL,
            "progress",
            {"phase": "embed", "current": 0, "total": total},
        )

        for start in range(0, total, self._batch_size):
            token.raise_if_cancelled()

            batch = jobs[start : start + self._batch_size]
            vectors = await self._embedder.embed(
                [chunk.text for chunk in batch],
                host=snapshot.embedding_host,
                model=snapshot.embedding_model,
                api_key=snapshot.embedding_api_key,
                cancel_token=token,
            )

            for chunk, vector in zip(batch, vectors):
                chunk.attach_embedding(vector)
            processed += len(batch)

            self._events.publish(
                PREPROCESS_CHANNEL,
                "progress",
                {"phase": "embed", "current": processed, "total": total},
            )


def _consume_result(task: "asyncio.Task") -> None:
    # Outcomes are already reported through events; keep asyncio from warning
    # about unretrieved exceptions of background runs.
    if not task.cancelled():
        task.exception()
