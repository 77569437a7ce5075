import asyncio

import pytest

from artifacts import serialize_artifact
from backend.web.services.binding_service import NEW_PROJECT_DESCRIPTION, ProjectBindingService
from storage.models import CreateProjectRequest
from tests.fakes.project_repo import InMemoryProjectRepo
from workspace import ChatWorkspaceStore


def _service(repo: InMemoryProjectRepo | None = None):
    repo = repo or InMemoryProjectRepo()
    store = ChatWorkspaceStore()
    return ProjectBindingService(repo, store), repo, store


@pytest.mark.asyncio
async def test_concurrent_ensure_creates_exactly_one_project():
    service, repo, _ = _service(InMemoryProjectRepo(lookup_yield=0.01))
    first, second = await asyncio.gather(service.ensure_project_for("c1"), service.ensure_project_for("c1"))

    assert first.id == second.id
    assert len(repo.projects) == 1
    assert len(repo.calls_named("create_project")) == 1


@pytest.mark.asyncio
async def test_create_race_across_services_adopts_the_winner():
    repo = InMemoryProjectRepo(lookup_yield=0.01)
    left, _, _ = _service(repo)
    right, _, _ = _service(repo)

    a, b = await asyncio.gather(left.ensure_project_for("c1"), right.ensure_project_for("c1"))

    assert a.id == b.id
    assert len(repo.projects) == 1
    assert len(repo.calls_named("create_project")) == 2


@pytest.mark.asyncio
async def test_existing_project_is_reused():
    service, repo, _ = _service()
    existing = await repo.create_project(CreateProjectRequest(name="Mine", chat_uuid="c1"))

    record = await service.ensure_project_for("c1")
    assert record.id == existing.id
    assert await service.ensure_project_for("c1") is record
    assert len(repo.calls_named("find_by_chat_uuid")) == 1


@pytest.mark.asyncio
async def test_new_project_uses_chat_defaults():
    service, _, _ = _service()
    record = await service.ensure_project_for("c1")
    assert record.name.startswith("Chat Project ")
    assert record.description == NEW_PROJECT_DESCRIPTION
    assert record.chat_uuid == "c1"
    assert record.context["project_type"] == "web_app"


@pytest.mark.asyncio
async def test_missing_credential_binds_locally_and_warns_once(caplog):
    service, repo, _ = _service(InMemoryProjectRepo(credential=False))
    first = await service.ensure_project_for("c1")
    await service.ensure_project_for("c2")

    assert first.local_only
    assert repo.projects == {}
    assert caplog.text.count("No backend credential configured") == 1


@pytest.mark.asyncio
async def test_backend_failure_falls_back_then_recovers():
    repo = InMemoryProjectRepo()
    repo.fail_writes = True
    service, _, _ = _service(repo)

    local = await service.ensure_project_for("c1")
    assert local.local_only
    service.apply_local(local.id, "chat", [{"role": "user", "content": "hi"}])

    repo.fail_writes = False
    remote = await service.ensure_project_for("c1")
    assert not remote.local_only
    assert remote.chat_messages == [{"role": "user", "content": "hi"}]


@pytest.mark.asyncio
async def test_switch_to_rebuilds_files_from_transcript():
    service, repo, store = _service()
    record = await repo.create_project(CreateProjectRequest(name="p", chat_uuid="c1"))
    await repo.save_chat(
        record.id,
        [
            {"role": "user", "content": "build"},
            {"role": "assistant", "content": serialize_artifact({"a.ts": "1", "b.ts": "2"})},
            {"role": "assistant", "content": serialize_artifact({"a.ts": "3"})},
        ],
    )

    switched = await service.switch_to("c1")
    assert switched.id == record.id
    assert store.active_id == "c1"
    assert store.files() == {"a.ts": "3", "b.ts": "2"}
    assert dict(store.active_state().prior_snapshot) == {"a.ts": "3"}
    assert store.active_state().needs_incremental_sync == {}


@pytest.mark.asyncio
async def test_switch_to_prefers_builder_state_and_keeps_live_edits():
    service, repo, store = _service()
    record = await repo.create_project(CreateProjectRequest(name="p", chat_uuid="c1"))
    await repo.save_builder_state(record.id, {"files": {"x.ts": "saved"}, "selected_path": "x.ts"})

    await service.switch_to("c1")
    assert store.files() == {"x.ts": "saved"}
    assert store.active_state().selected_path == "x.ts"

    store.update_content("x.ts", "edited")
    await service.switch_to("c2")
    await service.switch_to("c1")
    assert store.files() == {"x.ts": "edited"}

    await service.switch_to("c1", reload=True)
    assert store.files() == {"x.ts": "saved"}


@pytest.mark.asyncio
async def test_delete_project_clears_binding_and_workspace():
    service, repo, store = _service()
    await service.switch_to("c1")
    project_id = service.current.id

    assert await service.delete_project("c1") is True
    assert project_id not in repo.projects
    assert service.current is None
    assert store.get_state("c1") is None


@pytest.mark.asyncio
async def test_list_projects_falls_back_to_local_bindings():
    service, repo, _ = _service(InMemoryProjectRepo(credential=False))
    await service.ensure_project_for("c1")
    assert [p.chat_uuid for p in await service.list_projects()] == ["c1"]
    assert repo.calls_named("list_projects") == []


def test_apply_local_rejects_unknown_kind():
    service, _, _ = _service()
    service._bind_local("c1")
    with pytest.raises(ValueError, match="Unknown save kind"):
        service.apply_local("c1", "settings", {})
