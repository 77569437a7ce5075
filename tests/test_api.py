"""End-to-end tests for the web API against an in-memory project repo and a local sandbox."""

from __future__ import annotations

from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from artifacts import serialize_artifact
from backend.web.main import app
from config.loader import ConfigLoader
from tests.fakes.project_repo import InMemoryProjectRepo
from workspace.state import ErrorRecord


@pytest.fixture
def repo() -> InMemoryProjectRepo:
    return InMemoryProjectRepo()


@pytest.fixture
def client(tmp_path: Path, repo: InMemoryProjectRepo):
    app.state.settings = ConfigLoader(home=tmp_path, env={}).load(
        {
            "sandbox": {"provider": "local", "local": {"root_dir": str(tmp_path / "box")}},
            "sync": {"mount_debounce_sec": 5},
            "persistence": {"save_debounce_sec": 5},
        }
    )
    app.state.project_repo = repo
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        for attr in ("settings", "project_repo", "coordinator"):
            if hasattr(app.state, attr):
                delattr(app.state, attr)


def _create(client: TestClient, conversation_id: str = "c1") -> dict:
    response = client.post("/api/conversations", json={"conversation_id": conversation_id})
    assert response.status_code == 200
    return response.json()


def test_create_conversation_binds_a_project(client, repo):
    body = _create(client)
    assert body["conversation_id"] == "c1"
    assert body["project"]["chat_uuid"] == "c1"
    assert body["project"]["local_only"] is False
    assert len(repo.projects) == 1

    duplicate = client.post("/api/conversations", json={"conversation_id": "c1"})
    assert duplicate.status_code == 409


def test_stream_applies_closed_artifacts(client):
    _create(client)
    text = "Here it is\n" + serialize_artifact({"src/main.ts": "console.log(1)", "index.html": "<p/>"})
    chunks = [text[i : i + 11] for i in range(0, len(text), 11)]

    response = client.post("/api/conversations/c1/stream", json={"chunks": chunks})
    assert response.status_code == 200
    assert response.json()["paths"] == ["src/main.ts", "index.html"]

    files = client.get("/api/conversations/c1/files").json()
    assert files["files"] == {"src/main.ts": "console.log(1)", "index.html": "<p/>"}
    assert files["pending_sync"] == ["index.html", "src/main.ts"]
    assert files["active"] is True


def test_file_editing_endpoints(client):
    _create(client)
    base = "/api/conversations/c1"

    assert client.put(f"{base}/files", json={"path": "a.ts", "content": "1"}).status_code == 200
    assert client.get(f"{base}/files/content", params={"path": "a.ts"}).json()["content"] == "1"
    assert client.get(f"{base}/files/content", params={"path": "nope.ts"}).status_code == 404

    assert client.post(f"{base}/files/rename", json={"old_path": "a.ts", "new_path": "b.ts"}).status_code == 200
    assert client.post(f"{base}/files/rename", json={"old_path": "a.ts", "new_path": "c.ts"}).status_code == 404

    assert client.post(f"{base}/folders", json={"path": "lib"}).json() == {"placeholder": "lib/index.tsx"}
    assert client.post(f"{base}/selection", json={"path": "b.ts"}).json() == {"selected_path": "b.ts"}
    assert client.delete(f"{base}/files", params={"path": "lib"}).json() == {"removed": ["lib/index.tsx"]}

    files = client.get(f"{base}/files").json()
    assert files["files"] == {"b.ts": "1"}
    assert files["selected_path"] == "b.ts"


def test_inactive_and_unknown_conversations_are_rejected(client):
    _create(client, "c1")
    _create(client, "c2")
    assert client.put("/api/conversations/c1/files", json={"path": "a", "content": ""}).status_code == 409
    assert client.put("/api/conversations/zz/files", json={"path": "a", "content": ""}).status_code == 404
    assert client.get("/api/conversations/zz/files").status_code == 404
    assert client.delete("/api/conversations/zz").status_code == 404

    assert client.post("/api/conversations/c1/activate").status_code == 200
    assert client.put("/api/conversations/c1/files", json={"path": "a", "content": ""}).status_code == 200


def test_preview_view_mounts_into_local_sandbox(client, tmp_path):
    _create(client)
    client.put("/api/conversations/c1/files", json={"path": "src/app.ts", "content": "export {}"})

    response = client.post("/api/views/preview")
    assert response.json() == {"view": "preview", "mounted": 1}
    assert (tmp_path / "box" / "src" / "app.ts").read_text() == "export {}"

    assert client.post("/api/views/gallery").status_code == 400


def test_error_queue_endpoints(client):
    store = app.state.coordinator.store
    store.push_error(ErrorRecord(message="first", code="E1"))
    store.push_error(ErrorRecord(message="second", code="E2"))

    errors = client.get("/api/errors").json()["errors"]
    assert [e["code"] for e in errors] == ["E2", "E1"]

    response = client.delete("/api/errors/0").json()
    assert response["removed"]["code"] == "E2"
    assert client.delete("/api/errors/7").status_code == 404
    assert client.delete("/api/errors").json() == {"errors": []}


def test_delete_conversation_and_project_listing(client, repo):
    _create(client, "c1")
    _create(client, "c2")
    assert [p["chat_uuid"] for p in client.get("/api/projects").json()["projects"]] == ["c1", "c2"]

    assert client.delete("/api/conversations/c1").json() == {"conversation_id": "c1", "deleted": True}
    assert [p["chat_uuid"] for p in client.get("/api/projects").json()["projects"]] == ["c2"]


def test_terminal_endpoints_for_unknown_session(client):
    assert client.get("/api/terminals").json() == {"selected_id": None, "sessions": []}
    assert client.post("/api/terminals/nope/select").status_code == 404
    assert client.delete("/api/terminals/nope").status_code == 404
    assert client.post("/api/terminals/nope/input", json={"data": "ls\n"}).status_code == 404
