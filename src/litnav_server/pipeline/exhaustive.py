"""
Exhaustive Classifier

Sweeps every chunk of a set of documents and asks the LLM to triage each one
as relevant, non-relevant or uncertain. Unlike dense search this never looks
at embeddings, so it finds passages the embedding model ranks poorly.

Run slots
---------
The all-documents sweep and the single-document sweep are independent:
each ``SweepMode`` has its own ``SweepSlot`` with its own state, results and
cancellation token, so both can run concurrently. A second start in a busy
slot fails with AlreadyRunning.

Failure policy
--------------
- A chunk whose classification fails (timeout, bad answer, 5xx) is recorded
  as ``uncertain`` with the failure as its reason; the sweep continues.
- LLMTransportError (endpoint unreachable, credentials rejected) stops the
  sweep with an ``error`` event; results gathered so far are kept.
- Cancellation keeps results gathered so far and emits ``cancelled``.

Events (channel ``exhaustive:<mode>``)
--------------------------------------
- start     {total, query, document_ids}
- progress  {current, total, document_id, path, result}
- complete  {total, relevant, non_relevant, uncertain}
- cancelled {current, total}
- error     {message, current, total}
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Callable, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..core.cancellation import CancellationToken
from ..core.errors import (
    AlreadyRunning,
    Cancelled,
    InvalidReclassification,
    LitNavError,
    LLMProviderError,
    LLMTransportError,
    NotReady,
    SettingsIncomplete,
)
from ..core.events import EventChannel
from ..embeddings.index import VectorIndex
from ..embeddings.models import Chunk, Document
from ..llm.client import Classification, LLMClient, Verdict
from ..sessions.models import WorkspaceSettings

logger = logging.getLogger("litnav.exhaustive")


class SweepMode(str, Enum):
    ALL = "all"
    DOCUMENT = "document"


class SweepState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    CANCELLING = "cancelling"


class ClassificationResult(BaseModel):
    document_id: str
    chunk_id: int
    page: int
    text: str
    classification: Classification
    reason: Optional[str] = None
    reclassified: bool = False

    model_config = ConfigDict(extra="forbid", frozen=True)


class SweepSummary(BaseModel):
    status: Literal["completed", "cancelled", "failed"]
    total: int = Field(..., ge=0)
    processed: int = Field(..., ge=0)
    relevant: int = 0
    non_relevant: int = 0
    uncertain: int = 0
    message: Optional[str] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


def count_buckets(results: List[ClassificationResult]) -> Dict[str, int]:
    counts = {"relevant": 0, "non_relevant": 0, "uncertain": 0}
    for r in results:
        if r.classification is Classification.RELEVANT:
            counts["relevant"] += 1
        elif r.classification is Classification.NON_RELEVANT:
            counts["non_relevant"] += 1
        else:
            counts["uncertain"] += 1
    return counts


class SweepSlot:
    """State machine and retained results of one sweep mode."""

    def __init__(self, mode: SweepMode) -> None:
        self.mode = mode
        self.state = SweepState.IDLE
        self.query: Optional[str] = None
        self.total = 0
        self.results: List[ClassificationResult] = []
        self.last_summary: Optional[SweepSummary] = None
        self.token: Optional[CancellationToken] = None
        self.task: Optional["asyncio.Task[SweepSummary]"] = None

    @property
    def channel(self) -> str:
        return f"exhaustive:{self.mode.value}"

    @property
    def is_running(self) -> bool:
        return self.state is not SweepState.IDLE

    def status(self) -> dict:
        return {
            "mode": self.mode.value,
            "state": self.state.value,
            "query": self.query,
            "total": self.total,
            "processed": len(self.results),
            "last_summary": self.last_summary.model_dump() if self.last_summary else None,
        }


class ExhaustiveClassifier:
    def __init__(
        self,
        index: VectorIndex,
        llm: LLMClient,
        events: EventChannel,
        settings_provider: Callable[[], WorkspaceSettings],
    ) -> None:
        self._index = index
        self._llm = llm
        self._events = events
        self._settings_provider = settings_provider
        self._slots: Dict[SweepMode, SweepSlot] = {mode: SweepSlot(mode) for mode in SweepMode}

    def slot(self, mode: SweepMode) -> SweepSlot:
        return self._slots[SweepMode(mode)]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def start(
        self,
        mode: SweepMode,
        query: str,
        document_id: Optional[str] = None,
    ) -> "asyncio.Task[SweepSummary]":
        """
        Validate preconditions and launch a sweep in the slot for ``mode``.

        ``SweepMode.ALL`` sweeps every document; ``SweepMode.DOCUMENT``
        sweeps only ``document_id``.
        """
        slot = self.slot(mode)
        if slot.is_running:
            raise AlreadyRunning(f"An exhaustive search ({slot.mode.value}) is already running.")

        snapshot = self._settings_provider().model_copy()
        if not snapshot.llm_configured:
            raise SettingsIncomplete("LLM host and model must be configured for exhaustive search.")

        jobs = self._select_jobs(slot.mode, document_id)

        token = CancellationToken()
        slot.state = SweepState.RUNNING
        slot.query = query
        slot.total = len(jobs)
        slot.results = []
        slot.token = token

        logger.info("Exhaustive search (%s) started over %d chunks", slot.mode.value, len(jobs))
        task = asyncio.create_task(self._run(slot, query, jobs, snapshot, token))
        task.add_done_callback(_consume_result)
        slot.task = task
        return task

    async def sweep(
        self,
        mode: SweepMode,
        query: str,
        document_id: Optional[str] = None,
    ) -> SweepSummary:
        return await asyncio.shield(self.start(mode, query, document_id))

    def cancel(self, mode: SweepMode) -> bool:
        slot = self.slot(mode)
        if slot.state is not SweepState.RUNNING or slot.token is None:
            return False
        slot.state = SweepState.CANCELLING
        slot.token.cancel()
        return True

    def results(self, mode: SweepMode) -> List[ClassificationResult]:
        return list(self.slot(mode).results)

    def reclassify(
        self,
        mode: SweepMode,
        document_id: str,
        chunk_id: int,
        classification: Classification,
    ) -> ClassificationResult:
        """
        Move a retained ``uncertain`` result into the relevant or
        non-relevant bucket.
        """
        if classification is Classification.UNCERTAIN:
            raise InvalidReclassification("Results can only be moved out of 'uncertain'.")

        slot = self.slot(mode)
        for position, result in enumerate(slot.results):
            if result.document_id == document_id and result.chunk_id == chunk_id:
                if result.classification is not Classification.UNCERTAIN:
                    raise InvalidReclassification(
                        f"Chunk {chunk_id} is already classified as {result.classification.value}."
                    )
                updated = result.model_copy(
                    update={"classification": classification, "reclassified": True}
                )
                slot.results[position] = updated
                return updated

        raise InvalidReclassification(
            f"No result for chunk {chunk_id} of {document_id} in the {slot.mode.value} sweep."
        )

    async def wait_closed(self) -> None:
        tasks = [s.task for s in self._slots.values() if s.task is not None]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _select_jobs(
        self,
        mode: SweepMode,
        document_id: Optional[str],
    ) -> List[Tuple[Document, Chunk]]:
        if mode is SweepMode.DOCUMENT:
            if not document_id:
                raise NotReady("Select a document for a single-document exhaustive search.")
            document = self._index.get(document_id)
            if document is None:
                raise NotReady(f"Document has not been preprocessed: {document_id}")
            jobs = [(document, c) for c in sorted(document.chunks, key=lambda c: c.id)]
        else:
            jobs = self._index.all_chunks()

        if not jobs:
            raise NotReady("No chunks available; run preprocessing first.")
        return jobs

    async def _run(
        self,
        slot: SweepSlot,
        query: str,
        jobs: List[Tuple[Document, Chunk]],
        snapshot: WorkspaceSettings,
        token: CancellationToken,
    ) -> SweepSummary:
        total = len(jobs)
        self._events.publish(
            slot.channel,
            "start",
            {
                "total": total,
                "query": query,
                "document_ids": list(dict.fromkeys(doc.id for doc, _ in jobs)),
            },
        )

        try:
            for document, chunk in jobs:
                token.raise_if_cancelled()

                verdict = await self._classify(query, chunk, snapshot, token)
                result = ClassificationResult(
                    document_id=document.id,
                    chunk_id=chunk.id,
                    page=chunk.page,
                    text=chunk.text,
                    classification=verdict.classification,
                    reason=verdict.reason,
                )
                slot.results.append(result)

                self._events.publish(
                    slot.channel,
                    "progress",
                    {
                        "current": len(slot.results),
                        "total": total,
                        "document_id": document.id,
                        "path": document.path,
                        "result": result.model_dump(mode="json"),
                    },
                )

            counts = count_buckets(slot.results)
            summary = SweepSummary(status="completed", total=total, processed=len(slot.results), **counts)
            self._events.publish(slot.channel, "complete", {"total": total, **counts})
            logger.info(
                "Exhaustive search (%s) complete: %d relevant, %d non-relevant, %d uncertain",
                slot.mode.value,
                counts["relevant"],
                counts["non_relevant"],
                counts["uncertain"],
            )

        except Cancelled:
            current = len(slot.results)
            summary = SweepSummary(
                status="cancelled",
                total=total,
                processed=current,
                message="Exhaustive search cancelled.",
                **count_buckets(slot.results),
            )
            self._events.publish(slot.channel, "cancelled", {"current": current, "total": total})
            logger.info("Exhaustive search (%s) cancelled at %d/%d", slot.mode.value, current, total)

        except Exception as exc:
            current = len(slot.results)
            message = exc.message if isinstance(exc, LitNavError) else f"{type(exc).__name__}: {exc}"
            slot.last_summary = SweepSummary(
                status="failed",
                total=total,
                processed=current,
                message=message,
                **count_buckets(slot.results),
            )
            self._events.publish(
                slot.channel,
                "error",
                {"message": message, "current": current, "total": total},
            )
            if isinstance(exc, LitNavError):
                logger.error("Exhaustive search (%s) aborted: %s", slot.mode.value, message)
            else:
                logger.exception("Unexpected error during exhaustive search (%s)", slot.mode.value)
            raise

        finally:
            slot.token = None
            slot.task = None
            slot.state = SweepState.IDLE

        slot.last_summary = summary
        return summary

    async def _classify(
        self,
        query: str,
        chunk: Chunk,
        snapshot: WorkspaceSettings,
        token: CancellationToken,
    ) -> Verdict:
        try:
            return await self._llm.classify(
                query,
                chunk.text,
                host=snapshot.llm_host,
                model=snapshot.llm_model,
                api_key=snapshot.llm_key,
                cancel_token=token,
            )
        except LLMTransportError:
            raise
        except LLMProviderError as exc:
            # Non-fatal: the chunk lands in the uncertain bucket
            logger.warning("Classification failed for chunk %d: %s", chunk.id, exc.message)
            return Verdict(
                classification=Classification.UNCERTAIN,
                reason=f"classification failed: {exc.message}",
            )


def _consume_result(task: "asyncio.Task") -> None:
    if not task.cancelled():
        task.exception()
