import httpx
import pytest
from httpx import ASGITransport, AsyncClient
from unittest.mock import AsyncMock

from conftest import EmbeddingStub, FakeExtractor, LLMStub
from litnav_server.api.events_routes import _stream, format_sse
from litnav_server.core.events import EventChannel
from litnav_server.embeddings.embedder import Embedder
from litnav_server.llm.client import LLMClient
from litnav_server.main import create_app
from litnav_server.sessions.workspace import WorkspaceRegistry

NOTES = "/ws/notes.pdf"
THANKS = "/ws/thanks.pdf"

PAGES = {
    NOTES: ["[rel] grid cells fire in a hexagonal lattice", "[unc] table of contents"],
    THANKS: ["[non] we thank the funding agencies"],
}

SETTINGS = {
    "embedding_host": "http://embed.test/v1",
    "embedding_model": "text-embed",
    "chunk_size": 200,
    "chunk_overlap": 50,
    "llm_host": "http://llm.test",
    "llm_model": "triage",
}


def make_registry(embedding_stub=None):
    return WorkspaceRegistry(
        events=EventChannel(queue_size=512),
        embedder=Embedder(transport=httpx.MockTransport(embedding_stub or EmbeddingStub())),
        llm=LLMClient(transport=httpx.MockTransport(LLMStub())),
        extractor=FakeExtractor(PAGES),
        batch_size=4,
    )


def client_for(registry):
    app = create_app(registry)
    return AsyncClient(transport=ASGITransport(app=app), base_url="http://test")


async def open_configured_workspace(client):
    resp = await client.put("/settings", json=SETTINGS)
    assert resp.status_code == 200
    resp = await client.post("/workspace", json={"root": "/ws", "include_files": [NOTES, THANKS]})
    assert resp.status_code == 201
    return resp.json()


# ---------------------------------------------------------------------
# Health, workspace, settings
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_health_reports_workspace():
    async with client_for(make_registry()) as client:
        resp = await client.get("/health")
        assert resp.json() == {"status": "ok", "workspace_open": False}

        await open_configured_workspace(client)
        resp = await client.get("/health")
        assert resp.json()["workspace_open"] is True


@pytest.mark.asyncio
async def test_operations_without_workspace_are_rejected():
    async with client_for(make_registry()) as client:
        resp = await client.post("/search", json={"query": "grid cells"})

    assert resp.status_code == 409
    assert resp.json()["error"] == "workspace_not_configured"


@pytest.mark.asyncio
async def test_settings_never_echo_api_keys():
    async with client_for(make_registry()) as client:
        resp = await client.put("/settings", json={**SETTINGS, "api_key": "sk-very-secret"})
        assert resp.status_code == 200
        assert resp.json()["api_key_set"] is True
        assert "sk-very-secret" not in resp.text

        # null clears a key but leaves other fields alone
        resp = await client.put("/settings", json={"api_key": None, "embedding_model": None})
        body = resp.json()
        assert body["api_key_set"] is False
        assert body["embedding_model"] == "text-embed"


@pytest.mark.asyncio
async def test_open_workspace_discovers_pdfs(tmp_path):
    (tmp_path / "a.pdf").write_bytes(b"%PDF-1.4")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b.PDF").write_bytes(b"%PDF-1.4")
    (tmp_path / "notes.txt").write_text("not included by default")

    async with client_for(make_registry()) as client:
        resp = await client.post("/workspace", json={"root": str(tmp_path)})

    assert resp.status_code == 201
    assert resp.json()["include_files"] == [
        str(tmp_path / "a.pdf"),
        str(tmp_path / "sub" / "b.PDF"),
    ]


@pytest.mark.asyncio
async def test_open_missing_folder_is_rejected(tmp_path):
    async with client_for(make_registry()) as client:
        resp = await client.post("/workspace", json={"root": str(tmp_path / "missing")})

    assert resp.status_code == 409
    assert resp.json()["error"] == "workspace_not_configured"


@pytest.mark.asyncio
async def test_reset_keeps_settings():
    registry = make_registry()
    async with client_for(registry) as client:
        await open_configured_workspace(client)

        resp = await client.delete("/workspace")
        assert resp.json()["status"] == "deleted"
        resp = await client.delete("/workspace")
        assert resp.json()["status"] == "ok"

        resp = await client.get("/workspace")
        assert resp.json()["root"] is None
        resp = await client.get("/settings")
        assert resp.json()["embedding_model"] == "text-embed"


@pytest.mark.asyncio
async def test_replace_include_files():
    async with client_for(make_registry()) as client:
        await open_configured_workspace(client)
        resp = await client.put("/workspace/files", json={"files": [THANKS, THANKS, NOTES]})

    assert resp.json()["include_files"] == [THANKS, NOTES]


# ---------------------------------------------------------------------
# Preprocessing and search
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_preprocess_requires_settings():
    async with client_for(make_registry()) as client:
        await client.post("/workspace", json={"root": "/ws", "include_files": [NOTES]})
        resp = await client.post("/preprocess")

    assert resp.status_code == 400
    assert resp.json()["error"] == "settings_incomplete"


@pytest.mark.asyncio
async def test_search_before_preprocess_is_not_ready():
    async with client_for(make_registry()) as client:
        await open_configured_workspace(client)
        resp = await client.post("/search", json={"query": "grid cells"})

    assert resp.status_code == 409
    assert resp.json()["error"] == "not_ready"


@pytest.mark.asyncio
async def test_preprocess_then_search():
    async with client_for(make_registry()) as client:
        await open_configured_workspace(client)

        resp = await client.post("/preprocess")
        assert resp.status_code == 200
        assert resp.json() == {
            "status": "completed",
            "summary": {"document_count": 2, "chunk_count": 3},
        }

        resp = await client.post("/search", json={"query": "grid cells", "per_doc_n": 1})
        assert resp.status_code == 200
        results = resp.json()["results"]

        resp = await client.get("/workspace")
        assert resp.json()["index"]["embedded_chunk_count"] == 3

    assert {r["document_id"] for r in results} == {NOTES, THANKS}
    assert all(len(r["hits"]) == 1 for r in results)
    scores = [r["hits"][0]["score"] for r in results]
    assert scores == sorted(scores, reverse=True)


@pytest.mark.asyncio
async def test_background_preprocess_returns_202():
    registry = make_registry()
    async with client_for(registry) as client:
        await open_configured_workspace(client)

        resp = await client.post("/preprocess", params={"wait": "false"})
        assert resp.status_code == 202
        assert resp.json()["status"] == "started"

        await registry.current().preprocessor.wait_closed()
        resp = await client.get("/preprocess/status")

    assert resp.json()["state"] == "idle"
    assert resp.json()["last_outcome"]["status"] == "completed"


@pytest.mark.asyncio
async def test_cancel_when_idle_reports_false():
    async with client_for(make_registry()) as client:
        await open_configured_workspace(client)
        resp = await client.post("/preprocess/cancel")

    assert resp.json() == {"cancelled": False}


@pytest.mark.asyncio
async def test_embedding_failure_maps_to_502():
    async with client_for(make_registry(EmbeddingStub(status_code=500))) as client:
        await open_configured_workspace(client)
        resp = await client.post("/preprocess")

    assert resp.status_code == 502
    assert resp.json()["error"] == "embedding_provider_error"


# ---------------------------------------------------------------------
# Exhaustive search
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_exhaustive_sweep_and_reclassify():
    async with client_for(make_registry()) as client:
        await open_configured_workspace(client)
        await client.post("/preprocess")

        resp = await client.post("/exhaustive/all", json={"query": "grid cells", "wait": True})
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "completed"
        assert body["total"] == 3
        assert body["summary"]["uncertain"] == 1

        resp = await client.get("/exhaustive/all/results")
        assert resp.json()["counts"] == {"relevant": 1, "non_relevant": 1, "uncertain": 1}

        resp = await client.patch(
            "/exhaustive/all/results",
            json={"document_id": NOTES, "chunk_id": 1, "classification": "non-relevant"},
        )
        assert resp.status_code == 200
        assert resp.json()["reclassified"] is True

        resp = await client.patch(
            "/exhaustive/all/results",
            json={"document_id": NOTES, "chunk_id": 1, "classification": "relevant"},
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_reclassification"


@pytest.mark.asyncio
async def test_document_sweep_in_background():
    registry = make_registry()
    async with client_for(registry) as client:
        await open_configured_workspace(client)
        await client.post("/preprocess")

        resp = await client.post("/exhaustive/document", json={"query": "grid cells", "document_id": THANKS})
        assert resp.status_code == 202
        assert resp.json() == {"status": "started", "total": 1, "summary": None}

        await registry.current().classifier.wait_closed()
        resp = await client.get("/exhaustive/document/results")

    body = resp.json()
    assert body["state"] == "idle"
    assert [r["document_id"] for r in body["results"]] == [THANKS]


@pytest.mark.asyncio
async def test_unknown_mode_is_rejected():
    async with client_for(make_registry()) as client:
        await open_configured_workspace(client)
        resp = await client.post("/exhaustive/everything", json={"query": "grid cells"})

    assert resp.status_code == 422


# ---------------------------------------------------------------------
# Event stream
# ---------------------------------------------------------------------

def test_format_sse():
    events = EventChannel(queue_size=4)
    event = events.publish("preprocess", "progress", {"phase": "embed", "current": 4, "total": 8})

    frame = format_sse(event)

    assert frame.startswith("id: 0\nevent: progress\ndata: {")
    assert frame.endswith("}\n\n")
    assert '"current":4' in frame


@pytest.mark.asyncio
async def test_stream_filters_by_channel_and_unsubscribes():
    events = EventChannel(queue_size=8)
    sub = events.subscribe()
    events.publish("exhaustive:all", "start", {"total": 2})
    wanted = events.publish("preprocess", "complete", {"document_count": 1, "chunk_count": 2})

    request = AsyncMock()
    request.is_disconnected.side_effect = [False, False, True]

    frames = [frame async for frame in _stream(request, sub, "preprocess")]

    assert frames == [": connected\n\n", format_sse(wanted)]
    assert events.subscriber_count == 0
