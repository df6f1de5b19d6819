"""
Embedding Client

This module implements the client for any OpenAI-compatible embeddings
endpoint (OpenAI, LM Studio, Ollama, vLLM, ...). It is responsible for:

- Building the endpoint URL from a user-supplied host
- Network and transport error isolation
- Strict response validation
- Cooperative cancellation of the in-flight request

Batching is the caller's job: every ``embed`` call issues exactly one request.
The class holds no per-run state and is safe to reuse across runs.
"""

from __future__ import annotations

from typing import List, Sequence, Optional
import logging
import math
import httpx

from ..config import settings
from ..core.cancellation import CancellationToken
from ..core.errors import EmbeddingProviderError

logger = logging.getLogger("litnav.embedder")


def build_endpoint_url(host: str, path: str) -> str:
    """
    Join ``host`` and an absolute API ``path`` such as ``/v1/embeddings``.

    Hosts entered as ``http://localhost:1234/v1`` would otherwise produce a
    doubled ``/v1/v1/`` segment, which is collapsed to a single ``/v1/``.
    """
    url = f"{host.strip().rstrip('/')}/{path.lstrip('/')}"
    return url.replace("/v1/v1/", "/v1/")


class Embedder:
    """
    Asynchronous embedding generator for one batch of text.

    This class performs no caching and no batching; the preprocessing
    orchestrator slices its job list and calls ``embed`` once per batch.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        timeout : Optional[float]
            HTTP timeout for each request. Defaults to settings.embedding_timeout.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, mainly for tests (httpx.MockTransport).
        """
        self.timeout = timeout if timeout is not None else settings.embedding_timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: Sequence[str],
        host: str,
        model: str,
        api_key: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> List[List[float]]:
        """
        Generate embeddings for a sequence of input texts in one request.

        Parameters
        ----------
        texts : Sequence[str]
            Input strings; the result has the same length and order.

        host : str
            Base URL of the provider, with or without a trailing ``/v1``.

        model : str
            Embedding model name.

        api_key : Optional[str]
            Sent as a bearer token when set.

        cancel_token : Optional[CancellationToken]
            Aborts the request when cancelled.

        Returns
        -------
        List[List[float]]
            One vector per input text.

        Raises
        ------
        Cancelled
            If the token was cancelled before or during the request.

        EmbeddingProviderError
            If the request fails or the response is malformed.
        """
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        if not texts:
            return []

        url = build_endpoint_url(host, "/v1/embeddings")
        payload = {
            "model": model,
            "input": list(texts),
        }
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        request = self._post(url, payload, headers, len(texts))
        if cancel_token is not None:
            data = await cancel_token.guard(request)
        else:
            data = await request

        embeddings = self._extract_embeddings(data)
        if len(embeddings) != len(texts):
            raise EmbeddingProviderError(
                f"Embedding response has {len(embeddings)} vectors for {len(texts)} inputs."
            )
        return embeddings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _post(self, url: str, payload: dict, headers: dict, batch_size: int) -> dict:
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(url, json=payload, headers=headers)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error(
                    "Embedding request failed (%s): batch size=%d, error=%s",
                    type(exc).__name__,
                    batch_size,
                    str(exc),
                )
                raise EmbeddingProviderError(
                    f"Embedding request failed: {type(exc).__name__}: {exc}"
                ) from exc

            try:
                return response.json()
            except ValueError as exc:
                raise EmbeddingProviderError(
                    "Embedding response is not valid JSON."
                ) from exc

    @staticmethod
    def _extract_embeddings(data: dict) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI-compatible providers return:
            { "data": [ {"embedding": [...], "index": 0}, ... ] }

        When every record carries an integer ``index`` the records are
        ordered by it; otherwise response order is kept.

        Raises
        ------
        EmbeddingProviderError
            If the API returns unexpected structure.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingProviderError("Invalid embedding response: missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingProviderError("Invalid embedding response: 'data' must be a list.")

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingProviderError(
                    f"Malformed embedding record at index {index}."
                )

        if records and all(
            isinstance(r.get("index"), int) and not isinstance(r.get("index"), bool)
            for r in records
        ):
            records = sorted(records, key=lambda r: r["index"])

        embeddings: List[List[float]] = []

        for index, record in enumerate(records):
            emb = record["embedding"]
            if not isinstance(emb, list) or not emb or not all(
                isinstance(x, (float, int)) and not isinstance(x, bool) and math.isfinite(x)
                for x in emb
            ):
                raise EmbeddingProviderError(
                    f"Invalid embedding vector at index {index}: must be a non-empty list of finite numbers."
                )

            embeddings.append([float(x) for x in emb])

        return embeddings
