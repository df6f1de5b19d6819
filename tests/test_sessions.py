import pytest
from pydantic import SecretStr

from conftest import configured_settings, make_session
from litnav_server.core.errors import WorkspaceNotConfigured
from litnav_server.core.events import EventChannel
from litnav_server.sessions.models import Workspace, WorkspaceSettings
from litnav_server.sessions.workspace import WorkspaceRegistry


def test_merge_replaces_only_given_fields():
    base = configured_settings(api_key=SecretStr("sk-one"))

    merged = base.merged({"chunk_size": 800})

    assert merged.chunk_size == 800
    assert merged.embedding_model == base.embedding_model
    assert merged.embedding_api_key == "sk-one"
    assert base.chunk_size == 200


def test_embedding_changes_are_detected():
    base = configured_settings()

    assert base.merged({"chunk_overlap": 10}).embedding_changed(base)
    assert base.merged({"embedding_host": "http://other/v1"}).embedding_changed(base)
    assert not base.merged({"llm_model": "other"}).embedding_changed(base)


def test_blank_api_key_counts_as_unset():
    settings = WorkspaceSettings(api_key=SecretStr(""), llm_api_key=None)

    assert settings.embedding_api_key is None
    assert settings.llm_key is None
    assert not settings.embedding_configured
    assert not settings.llm_configured


def test_include_list_is_deduplicated_in_order():
    workspace = Workspace(root="/ws")

    assert workspace.set_include_files(["/ws/b.pdf", "/ws/a.pdf", "/ws/b.pdf", ""]) == [
        "/ws/b.pdf",
        "/ws/a.pdf",
    ]
    assert workspace.is_configured
    assert not Workspace(root="/ws").is_configured


def test_describe_reports_index_and_state():
    session = make_session({"/workspace/a.pdf": ["text"]})

    info = session.describe()

    assert info["root"] == "/workspace"
    assert info["include_files"] == ["/workspace/a.pdf"]
    assert info["index"]["document_count"] == 0
    assert info["preprocess"] == {"state": "idle", "last_outcome": None}
    assert info["exhaustive"]["all"]["state"] == "idle"
    assert info["exhaustive"]["document"]["processed"] == 0


@pytest.mark.asyncio
async def test_registry_carries_settings_across_workspaces(tmp_path):
    registry = WorkspaceRegistry(events=EventChannel(queue_size=8))
    registry.configure({"embedding_model": "first-model"})

    with pytest.raises(WorkspaceNotConfigured):
        registry.current()

    session = await registry.open(str(tmp_path), include_files=["/ws/a.pdf"])
    assert session.settings.embedding_model == "first-model"
    assert session.events is registry.events

    registry.configure({"embedding_model": "second-model"})
    assert await registry.reset() is True
    assert registry.session is None

    reopened = await registry.open(str(tmp_path), include_files=["/ws/a.pdf"])
    assert reopened.settings.embedding_model == "second-model"
    assert reopened is not session
