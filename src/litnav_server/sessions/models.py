"""
Workspace and runtime settings models.

``WorkspaceSettings`` is replaced wholesale by a replace-merge; no validation
happens beyond type coercion. Floors and caps on chunk size and overlap are
applied by the chunker when the values are consumed.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, SecretStr

from ..config import Settings

# Changing any of these invalidates existing embeddings
EMBEDDING_FIELDS = ("embedding_host", "embedding_model", "chunk_size", "chunk_overlap")


def _secret(value: Optional[SecretStr]) -> Optional[str]:
    if value is None:
        return None
    return value.get_secret_value() or None


class WorkspaceSettings(BaseModel):
    embedding_host: str = ""
    embedding_model: str = ""
    api_key: Optional[SecretStr] = None
    chunk_size: int = 1200
    chunk_overlap: int = 200
    llm_host: str = ""
    llm_model: str = ""
    llm_api_key: Optional[SecretStr] = None

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_config(cls, config: Settings) -> "WorkspaceSettings":
        return cls(
            embedding_host=config.embedding_host,
            embedding_model=config.embedding_model,
            api_key=config.embedding_api_key,
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            llm_host=config.llm_host,
            llm_model=config.llm_model,
            llm_api_key=config.llm_api_key,
        )

    def merged(self, patch: Mapping[str, Any]) -> "WorkspaceSettings":
        """Return a new instance with ``patch`` laid over the current values."""
        return WorkspaceSettings.model_validate({**self.model_dump(), **dict(patch)})

    def embedding_changed(self, other: "WorkspaceSettings") -> bool:
        return any(getattr(self, f) != getattr(other, f) for f in EMBEDDING_FIELDS)

    @property
    def embedding_configured(self) -> bool:
        return bool(self.embedding_host.strip() and self.embedding_model.strip())

    @property
    def llm_configured(self) -> bool:
        return bool(self.llm_host.strip() and self.llm_model.strip())

    @property
    def embedding_api_key(self) -> Optional[str]:
        return _secret(self.api_key)

    @property
    def llm_key(self) -> Optional[str]:
        return _secret(self.llm_api_key)


class Workspace(BaseModel):
    """Root folder plus the ordered list of documents to preprocess."""

    root: Optional[str] = None
    include_files: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    @property
    def is_configured(self) -> bool:
        return bool(self.root) and bool(self.include_files)

    def set_include_files(self, files: List[str]) -> List[str]:
        # dict.fromkeys de-duplicates while keeping first-seen order
        self.include_files = list(dict.fromkeys(f for f in files if f))
        return list(self.include_files)
