"""
Workspace Session

A WorkspaceSession is the explicit context object for one opened folder. It
owns the workspace definition, the runtime settings, the in-memory index and
the run controllers (preprocessing and the two exhaustive sweep slots).

Design choices
--------------
- In-memory only (no persistence across process restarts).
- Exactly one live session per process, held by a ``WorkspaceRegistry``
  that the FastAPI app keeps on ``app.state``. No module-level singleton.
- Settings survive a workspace reset: the registry carries them over to the
  next session, the way the desktop client keeps them between folders.
- The event channel belongs to the registry so that subscribers stay
  connected across workspace changes.
"""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional, Tuple

import numpy as np

from ..config import settings as app_settings
from ..core.errors import NotReady, SettingsIncomplete, WorkspaceNotConfigured
from ..core.events import EventChannel
from ..embeddings.embedder import Embedder
from ..embeddings.index import VectorIndex
from ..embeddings.models import DocumentHits
from ..ingest.extractor import DefaultPageExtractor, PageExtractor, discover_documents
from ..llm.client import LLMClient
from ..pipeline.exhaustive import ExhaustiveClassifier, SweepMode
from ..pipeline.preprocess import PreprocessOrchestrator
from .models import Workspace, WorkspaceSettings

logger = logging.getLogger("litnav.session")


class WorkspaceSession:
    """
    All state of one opened workspace.
    """

    def __init__(
        self,
        root: str,
        include_files: Optional[List[str]] = None,
        settings: Optional[WorkspaceSettings] = None,
        events: Optional[EventChannel] = None,
        embedder: Optional[Embedder] = None,
        llm: Optional[LLMClient] = None,
        extractor: Optional[PageExtractor] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        """
        Parameters
        ----------
        root : str
            Workspace folder.

        include_files : Optional[List[str]]
            Documents to preprocess, in order. Discovered under ``root``
            when omitted.

        settings : Optional[WorkspaceSettings]
            Initial runtime settings. Defaults to the process configuration.
        """
        if include_files is None:
            include_files = discover_documents(root, app_settings.document_extension_list)

        self.workspace = Workspace(root=root)
        self.workspace.set_include_files(include_files)
        self.settings = settings or WorkspaceSettings.from_config(app_settings)
        self.events = events or EventChannel()
        self.index = VectorIndex()
        self.embedder = embedder or Embedder()

        self.preprocessor = PreprocessOrchestrator(
            workspace=self.workspace,
            settings_provider=lambda: self.settings,
            index=self.index,
            embedder=self.embedder,
            extractor=extractor or DefaultPageExtractor(),
            events=self.events,
            batch_size=batch_size,
        )
        self.classifier = ExhaustiveClassifier(
            index=self.index,
            llm=llm or LLMClient(),
            events=self.events,
            settings_provider=lambda: self.settings,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, patch: Mapping[str, Any]) -> Tuple[WorkspaceSettings, bool]:
        """
        Replace-merge ``patch`` into the settings.

        Returns the new settings and whether existing embeddings became
        stale. Stale embeddings are dropped immediately when no run is
        active. An active run keeps the settings it started with, and its
        index is refused by ``search`` once it completes.
        """
        new_settings = self.settings.merged(patch)
        stale = new_settings.embedding_changed(self.settings) and (
            len(self.index) > 0 or self.preprocessor.is_running
        )
        self.settings = new_settings

        if stale and not self.preprocessor.is_running:
            self.index.clear()
            logger.info("Embedding settings changed; index cleared, re-run preprocessing")

        return self.settings, stale

    def set_include_files(self, files: List[str]) -> List[str]:
        return self.workspace.set_include_files(files)

    # ------------------------------------------------------------------
    # Dense search
    # ------------------------------------------------------------------

    async def search(self, query: str, per_doc_n: int) -> List[DocumentHits]:
        """
        Embed ``query`` and rank every document's chunks against it.
        """
        if self.preprocessor.is_running:
            raise NotReady("Preprocessing is in progress.")
        if not self.index.has_embeddings:
            raise NotReady("Preprocessing has not completed; no embeddings available.")
        indexed = self.preprocessor.indexed_settings
        if indexed is not None and self.settings.embedding_changed(indexed):
            raise NotReady(
                "Embedding settings changed since preprocessing; re-run preprocessing."
            )
        if not self.settings.embedding_configured:
            raise SettingsIncomplete("Embedding host and model must be configured.")

        vectors = await self.embedder.embed(
            [query],
            host=self.settings.embedding_host,
            model=self.settings.embedding_model,
            api_key=self.settings.embedding_api_key,
        )
        query_vector = vectors[0]
        query_norm = float(np.linalg.norm(np.asarray(query_vector, dtype=np.float64)))

        return self.index.search(query_vector, query_norm, per_doc_n)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Cancel active runs, wait for them to unwind, drop all documents."""
        self.preprocessor.cancel()
        for mode in SweepMode:
            self.classifier.cancel(mode)

        await self.preprocessor.wait_closed()
        await self.classifier.wait_closed()
        self.index.clear()

    def describe(self) -> dict:
        return {
            "root": self.workspace.root,
            "include_files": list(self.workspace.include_files),
            "index": self.index.stats(),
            "preprocess": self.preprocessor.status(),
            "exhaustive": {mode.value: self.classifier.slot(mode).status() for mode in SweepMode},
        }


class WorkspaceRegistry:
    """
    Holds the single live WorkspaceSession plus state that outlives it
    (settings and the event channel).
    """

    def __init__(
        self,
        events: Optional[EventChannel] = None,
        **session_kwargs: Any,
    ) -> None:
        self.events = events or EventChannel()
        self.settings = WorkspaceSettings.from_config(app_settings)
        self._session: Optional[WorkspaceSession] = None
        self._session_kwargs = session_kwargs

    @property
    def session(self) -> Optional[WorkspaceSession]:
        return self._session

    def current(self) -> WorkspaceSession:
        if self._session is None:
            raise WorkspaceNotConfigured("No workspace is open.")
        return self._session

    async def open(self, root: str, include_files: Optional[List[str]] = None) -> WorkspaceSession:
        """Tear down the current session (if any) and open ``root``."""
        session = WorkspaceSession(
            root,
            include_files=include_files,
            settings=self.settings,
            events=self.events,
            **self._session_kwargs,
        )
        await self.reset()
        self._session = session
        logger.info(
            "Workspace opened: %s (%d documents)",
            root,
            len(session.workspace.include_files),
        )
        return session

    async def reset(self) -> bool:
        if self._session is None:
            return False
        session, self._session = self._session, None
        self.settings = session.settings
        await session.close()
        logger.info("Workspace reset: %s", session.workspace.root)
        return True

    def configure(self, patch: Mapping[str, Any]) -> Tuple[WorkspaceSettings, bool]:
        if self._session is not None:
            self.settings, stale = self._session.configure(patch)
            return self.settings, stale
        self.settings = self.settings.merged(patch)
        return self.settings, False
