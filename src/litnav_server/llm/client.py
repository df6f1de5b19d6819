"""
LLM Classification Client

Talks to any OpenAI-compatible chat completions endpoint and turns its answer
into a discrete relevance verdict for one chunk of text.

Failure classes
---------------
- LLMTransportError: the endpoint is unreachable or rejects our credentials.
  No further call can succeed, so an exhaustive sweep stops on it.
- LLMProviderError: anything else (timeouts, 5xx, unusable answers). These
  only affect the chunk being classified.
"""

from __future__ import annotations

import json
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict

from ..config import settings
from ..core.cancellation import CancellationToken
from ..core.errors import LLMProviderError, LLMTransportError
from ..embeddings.embedder import build_endpoint_url
from ..prompts import CLASSIFY_SYSTEM_PROMPT, CLASSIFY_USER_TEMPLATE

logger = logging.getLogger("litnav.llm")


class Classification(str, Enum):
    RELEVANT = "relevant"
    NON_RELEVANT = "non-relevant"
    UNCERTAIN = "uncertain"


class Verdict(BaseModel):
    classification: Classification
    reason: Optional[str] = None

    model_config = ConfigDict(extra="forbid", frozen=True)


_LABELS = {
    "relevant": Classification.RELEVANT,
    "non-relevant": Classification.NON_RELEVANT,
    "nonrelevant": Classification.NON_RELEVANT,
    "not-relevant": Classification.NON_RELEVANT,
    "irrelevant": Classification.NON_RELEVANT,
    "uncertain": Classification.UNCERTAIN,
    "unsure": Classification.UNCERTAIN,
}

_LABEL_PATTERN = re.compile(
    r"\b(non[-_ ]?relevant|not[-_ ]relevant|irrelevant|relevant|uncertain|unsure)\b",
    re.IGNORECASE,
)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$")


def _normalize_label(raw: str) -> Optional[Classification]:
    key = re.sub(r"[\s_]+", "-", raw.strip().lower())
    return _LABELS.get(key)


def parse_verdict(content: str) -> Verdict:
    """
    Parse an assistant message into a Verdict.

    The JSON form ``{"label": ..., "reason": ...}`` is preferred; a bare
    answer is accepted when it contains a recognised label word.

    Raises
    ------
    LLMProviderError
        If no label can be recognised.
    """
    if not isinstance(content, str) or not content.strip():
        raise LLMProviderError("Empty classification answer.")

    text = _FENCE_PATTERN.sub("", content.strip())

    label: Optional[Classification] = None
    reason: Optional[str] = None

    try:
        data = json.loads(text)
    except ValueError:
        data = None

    if isinstance(data, dict):
        raw = data.get("label", data.get("classification", data.get("verdict")))
        if isinstance(raw, str):
            label = _normalize_label(raw)
        raw_reason = data.get("reason")
        if isinstance(raw_reason, str) and raw_reason.strip():
            reason = raw_reason.strip()
    else:
        match = _LABEL_PATTERN.search(text)
        if match:
            label = _normalize_label(match.group(1))
            reason = text

    if label is None:
        raise LLMProviderError(f"Unrecognised classification answer: {content[:200]!r}")

    if label is not Classification.UNCERTAIN:
        reason = None

    return Verdict(classification=label, reason=reason)


class LLMClient:
    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout if timeout is not None else settings.llm_timeout
        self._transport = transport

    async def chat(
        self,
        host: str,
        model: str,
        messages: List[Dict[str, Any]],
        api_key: Optional[str] = None,
        temperature: float = 0.0,
    ) -> Dict[str, Any]:
        """
        Returns the raw assistant message dict, e.g.:
        {
            "role": "assistant",
            "content": "..."
        }
        """
        payload = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"

        url = build_endpoint_url(host, "/v1/chat/completions")

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.post(url, json=payload, headers=headers)
                resp.raise_for_status()
            except (httpx.ConnectError, httpx.ConnectTimeout) as exc:
                logger.error("LLM endpoint unreachable: %s", exc)
                raise LLMTransportError(f"LLM endpoint unreachable: {exc}") from exc
            except httpx.HTTPStatusError as exc:
                status = exc.response.status_code
                if status in (401, 403):
                    raise LLMTransportError(
                        f"LLM endpoint rejected credentials (HTTP {status})."
                    ) from exc
                raise LLMProviderError(f"LLM request failed (HTTP {status}).") from exc
            except httpx.HTTPError as exc:
                logger.warning("LLM request failed (%s): %s", type(exc).__name__, exc)
                raise LLMProviderError(
                    f"LLM request failed: {type(exc).__name__}"
                ) from exc

        try:
            data = resp.json()
            return data["choices"][0]["message"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise LLMProviderError("Malformed chat completion response.") from exc

    async def classify(
        self,
        query: str,
        text: str,
        host: str,
        model: str,
        api_key: Optional[str] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> Verdict:
        """
        Ask the model whether ``text`` is relevant to ``query``.

        Raises Cancelled when the token fires during the call.
        """
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        messages = [
            {"role": "system", "content": CLASSIFY_SYSTEM_PROMPT},
            {"role": "user", "content": CLASSIFY_USER_TEMPLATE.format(query=query, text=text)},
        ]

        request = self.chat(host, model, messages, api_key=api_key)
        if cancel_token is not None:
            message = await cancel_token.guard(request)
        else:
            message = await request

        content = message.get("content") if isinstance(message, dict) else None
        return parse_verdict(content)
