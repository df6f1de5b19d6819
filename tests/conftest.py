import asyncio
import json
import string

import httpx
import pytest

from litnav_server.core.errors import UnexpectedIO
from litnav_server.core.events import EventChannel
from litnav_server.embeddings.embedder import Embedder
from litnav_server.llm.client import LLMClient
from litnav_server.sessions.models import WorkspaceSettings
from litnav_server.sessions.workspace import WorkspaceSession

ALPHABET = string.ascii_lowercase


def letter_vector(text):
    """Bag-of-letters embedding: identical texts get identical vectors."""
    lowered = text.lower()
    return [float(lowered.count(c)) for c in ALPHABET]


class FakeExtractor:
    def __init__(self, pages_by_path, fail_on=None):
        self.pages_by_path = pages_by_path
        self.fail_on = fail_on
        self.calls = []

    def extract(self, path):
        self.calls.append(path)
        if path == self.fail_on:
            raise UnexpectedIO(f"Failed to read {path}: permission denied")
        return self.pages_by_path.get(path)


class EmbeddingStub:
    """httpx handler speaking the OpenAI embeddings format."""

    def __init__(self, status_code=200):
        self.status_code = status_code
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "boom"})
        body = json.loads(request.content)
        data = [
            {"object": "embedding", "index": i, "embedding": letter_vector(text)}
            for i, text in enumerate(body["input"])
        ]
        return httpx.Response(200, json={"data": data, "model": body["model"]})


class GatedEmbeddingStub(EmbeddingStub):
    """Holds every request until ``gate`` is set."""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.gate = asyncio.Event()

    async def __call__(self, request):
        self.entered.set()
        await self.gate.wait()
        return super().__call__(request)


class LLMStub:
    """
    httpx handler speaking the chat completions format.

    The verdict is picked from a marker in the passage:
    [rel], [non], [unc], [fail] (HTTP 500), [auth] (HTTP 401), [block] (never answers).
    """

    def __init__(self, block_after=None):
        self.block_after = block_after
        self.calls = 0
        self.entered = asyncio.Event()

    async def __call__(self, request):
        self.calls += 1
        passage = json.loads(request.content)["messages"][1]["content"]

        if "[block]" in passage or (self.block_after is not None and self.calls > self.block_after):
            self.entered.set()
            await asyncio.Event().wait()
        if "[fail]" in passage:
            return httpx.Response(500, json={"error": "overloaded"})
        if "[auth]" in passage:
            return httpx.Response(401, json={"error": "bad key"})

        if "[non]" in passage:
            answer = {"label": "non-relevant", "reason": "off topic"}
        elif "[unc]" in passage:
            answer = {"label": "uncertain", "reason": "passage is truncated"}
        else:
            answer = {"label": "relevant", "reason": "on topic"}

        return httpx.Response(
            200,
            json={"choices": [{"message": {"role": "assistant", "content": json.dumps(answer)}}]},
        )


async def next_matching(sub, predicate, timeout=5.0):
    """Read events from ``sub`` until one matches; return everything read."""
    seen = []

    async def _loop():
        while True:
            event = await sub.get()
            seen.append(event)
            if predicate(event):
                return seen

    return await asyncio.wait_for(_loop(), timeout)


def configured_settings(**overrides):
    values = {
        "embedding_host": "http://embed.test/v1",
        "embedding_model": "text-embed",
        "chunk_size": 200,
        "chunk_overlap": 50,
        "llm_host": "http://llm.test",
        "llm_model": "triage",
    }
    values.update(overrides)
    return WorkspaceSettings(**values)


def make_session(
    pages_by_path,
    embedding_stub=None,
    llm_stub=None,
    fail_on=None,
    settings=None,
    batch_size=2,
):
    return WorkspaceSession(
        "/workspace",
        include_files=list(pages_by_path),
        settings=settings or configured_settings(),
        events=EventChannel(queue_size=512),
        embedder=Embedder(transport=httpx.MockTransport(embedding_stub or EmbeddingStub())),
        llm=LLMClient(transport=httpx.MockTransport(llm_stub or LLMStub())),
        extractor=FakeExtractor(pages_by_path, fail_on=fail_on),
        batch_size=batch_size,
    )


@pytest.fixture
def embedding_stub():
    return EmbeddingStub()


@pytest.fixture
def llm_stub():
    return LLMStub()
