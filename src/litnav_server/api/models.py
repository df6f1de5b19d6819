"""
API Models for the LitNav Server

This module defines all Pydantic models used for request/response validation
across workspace, settings, preprocessing, search and exhaustive-search
endpoints.

Design Goals
------------
- Strong typing
- Safe defaults (no shared mutable state)
- API keys are accepted but never echoed back
"""

from __future__ import annotations

from typing import List, Optional, Dict, Any, Literal
from pydantic import BaseModel, Field, ConfigDict, SecretStr

from ..embeddings.models import DocumentHits
from ..llm.client import Classification
from ..pipeline.exhaustive import ClassificationResult, SweepSummary
from ..pipeline.preprocess import PreprocessSummary


# ---------------------------------------------------------------------
# Shared Contracts
# ---------------------------------------------------------------------

class OperationResult(BaseModel):
    """
    Standardized mutation operation result.
    """
    status: Literal["updated", "deleted", "ok"]
    count: Optional[int] = Field(default=None, ge=0)
    details: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Workspace Models
# ---------------------------------------------------------------------

class WorkspaceOpenRequest(BaseModel):
    """
    Open a folder as the workspace. When ``include_files`` is omitted the
    folder is scanned for supported documents.
    """
    root: str = Field(..., min_length=1)
    include_files: Optional[List[str]] = None

    model_config = ConfigDict(extra="forbid")


class IncludeFilesRequest(BaseModel):
    files: List[str] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


class IndexStats(BaseModel):
    document_count: int = Field(..., ge=0)
    chunk_count: int = Field(..., ge=0)
    embedded_chunk_count: int = Field(..., ge=0)
    chunks_per_document: Dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class WorkspaceResponse(BaseModel):
    root: Optional[str] = None
    include_files: List[str] = Field(default_factory=list)
    index: Optional[IndexStats] = None
    preprocess: Optional[Dict[str, Any]] = None
    exhaustive: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Settings Models
# ---------------------------------------------------------------------

class SettingsUpdateRequest(BaseModel):
    """
    Partial settings; only fields present in the request are merged.
    """
    embedding_host: Optional[str] = None
    embedding_model: Optional[str] = None
    api_key: Optional[SecretStr] = None
    chunk_size: Optional[int] = None
    chunk_overlap: Optional[int] = None
    llm_host: Optional[str] = None
    llm_model: Optional[str] = None
    llm_api_key: Optional[SecretStr] = None

    model_config = ConfigDict(extra="forbid")


class SettingsResponse(BaseModel):
    embedding_host: str
    embedding_model: str
    api_key_set: bool
    chunk_size: int
    chunk_overlap: int
    llm_host: str
    llm_model: str
    llm_api_key_set: bool
    reindex_required: bool = False

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Preprocessing Models
# ---------------------------------------------------------------------

class PreprocessResponse(BaseModel):
    status: Literal["completed", "cancelled", "started"]
    summary: Optional[PreprocessSummary] = None

    model_config = ConfigDict(extra="forbid")


class CancelResponse(BaseModel):
    cancelled: bool

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Search Models
# ---------------------------------------------------------------------

class SearchRequest(BaseModel):
    """
    Dense vector search request.
    """
    query: str = Field(..., min_length=1)
    per_doc_n: int = Field(default=3, ge=1, le=100)

    model_config = ConfigDict(extra="forbid")


class SearchResponse(BaseModel):
    results: List[DocumentHits] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Exhaustive Search Models
# ---------------------------------------------------------------------

class ExhaustiveRequest(BaseModel):
    query: str = Field(..., min_length=1)
    document_id: Optional[str] = None
    wait: bool = False

    model_config = ConfigDict(extra="forbid")


class ExhaustiveStartResponse(BaseModel):
    status: Literal["started", "completed", "cancelled"]
    total: int = Field(..., ge=0)
    summary: Optional[SweepSummary] = None

    model_config = ConfigDict(extra="forbid")


class ExhaustiveResultsResponse(BaseModel):
    mode: str
    state: str
    total: int = Field(..., ge=0)
    results: List[ClassificationResult] = Field(default_factory=list)
    counts: Dict[str, int] = Field(default_factory=dict)

    model_config = ConfigDict(extra="forbid")


class ReclassifyRequest(BaseModel):
    document_id: str = Field(..., min_length=1)
    chunk_id: int = Field(..., ge=0)
    classification: Classification

    model_config = ConfigDict(extra="forbid")
