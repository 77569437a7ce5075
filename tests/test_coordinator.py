import asyncio

import pytest

from artifacts import serialize_artifact
from backend.web.services.binding_service import ProjectBindingService
from backend.web.services.coordinator import (
    ActivateView,
    CreateConversation,
    SwitchConversation,
    ViewKind,
    WorkspaceCoordinator,
)
from backend.web.services.persistence_service import PersistenceGateway, SaveKind
from sandbox.error_detector import RegexErrorDetector
from sandbox.instance import SandboxInstance
from sandbox.sync import WorkspaceSyncBridge
from sandbox.terminal import TerminalSessionManager
from tests.fakes.project_repo import InMemoryProjectRepo
from tests.fakes.sandbox import RecordingSandbox
from workspace import ChatWorkspaceStore

DEBOUNCE = 0.05


def _coordinator(repo: InMemoryProjectRepo | None = None):
    repo = repo or InMemoryProjectRepo()
    sandbox = RecordingSandbox()
    store = ChatWorkspaceStore()
    instance = SandboxInstance(lambda: sandbox)
    binding = ProjectBindingService(repo, store)
    coordinator = WorkspaceCoordinator(
        store,
        WorkspaceSyncBridge(store, instance, debounce_sec=DEBOUNCE),
        TerminalSessionManager(instance, detector=RegexErrorDetector()),
        binding,
        PersistenceGateway(repo, binding, debounce_sec=DEBOUNCE),
    )
    return coordinator, repo, sandbox


async def _chunks(text: str, size: int = 5):
    for i in range(0, len(text), size):
        yield text[i : i + size]
        await asyncio.sleep(0)


async def _shutdown(coordinator: WorkspaceCoordinator) -> None:
    await coordinator.gateway.flush()
    await coordinator.terminals.close_all()
    coordinator.close()
    await coordinator.bridge.shutdown()


@pytest.mark.asyncio
async def test_create_conversation_never_reuses_an_id():
    coordinator, repo, _ = _coordinator()
    record = await coordinator.dispatch(CreateConversation("c1"))
    assert record.chat_uuid == "c1"
    with pytest.raises(ValueError, match="already exists"):
        await coordinator.dispatch(CreateConversation("c1"))

    generated = await coordinator.dispatch(CreateConversation())
    assert generated.chat_uuid not in {"c1", ""}
    assert coordinator.store.active_id == generated.chat_uuid
    await _shutdown(coordinator)


@pytest.mark.asyncio
async def test_first_turn_is_initial_then_incremental():
    coordinator, _, _ = _coordinator()
    await coordinator.dispatch(SwitchConversation("c1"))
    state = coordinator.store.active_state()

    applied = await coordinator.stream(_chunks(serialize_artifact({"a.ts": "1", "b.ts": "2"})))
    assert [m.path for m in applied] == ["a.ts", "b.ts"]
    assert state.needs_initial_sync == {"a.ts": True, "b.ts": True}
    assert state.needs_incremental_sync == {}

    await coordinator.stream(_chunks(serialize_artifact({"c.ts": "3"})))
    assert state.needs_incremental_sync == {"c.ts": True}
    assert dict(state.prior_snapshot) == {"a.ts": "1", "b.ts": "2"}
    await _shutdown(coordinator)


@pytest.mark.asyncio
async def test_stream_mounts_and_saves_after_quiet_period():
    coordinator, repo, sandbox = _coordinator()
    record = await coordinator.dispatch(SwitchConversation("c1"))
    messages = [{"role": "assistant", "content": serialize_artifact({"a.ts": "1"})}]

    await coordinator.stream(_chunks(messages[0]["content"]), messages)
    await asyncio.sleep(DEBOUNCE * 5)

    assert sandbox.files == {"a.ts": "1"}
    assert coordinator.store.active_state().pending_paths() == []
    saved = repo.projects[record.id]
    assert saved.chat_messages == messages
    assert saved.builder_state["files"] == {"a.ts": "1"}
    assert saved.last_activity is not None
    await _shutdown(coordinator)


@pytest.mark.asyncio
async def test_switch_cancels_previous_conversation_timers():
    coordinator, repo, sandbox = _coordinator()
    first = await coordinator.dispatch(SwitchConversation("c1"))
    coordinator.store.update_content("a.ts", "unsaved")
    assert coordinator.bridge.is_pending("c1")
    assert (first.id, SaveKind.WORKSPACE) in coordinator.gateway.pending()

    await coordinator.dispatch(SwitchConversation("c2"))
    assert not coordinator.bridge.is_pending("c1")
    assert all(project_id != first.id for project_id, _ in coordinator.gateway.pending())

    await asyncio.sleep(DEBOUNCE * 5)
    assert "a.ts" not in sandbox.files
    assert repo.projects[first.id].builder_state is None
    await _shutdown(coordinator)


@pytest.mark.asyncio
async def test_switch_mid_stream_drops_remaining_mutations():
    coordinator, _, _ = _coordinator()
    await coordinator.dispatch(SwitchConversation("c1"))
    coordinator.begin_turn()
    coordinator.feed('<artifact id="x"><file path="a.ts">1</file>')

    await coordinator.dispatch(SwitchConversation("c2"))
    with pytest.raises(RuntimeError, match="outside of an assistant turn"):
        coordinator.feed("</artifact>")
    assert coordinator.store.get_state("c1").files == {}
    assert coordinator.store.files() == {}
    await _shutdown(coordinator)


@pytest.mark.asyncio
async def test_preview_view_mounts_immediately():
    coordinator, _, sandbox = _coordinator()
    await coordinator.dispatch(SwitchConversation("c1"))
    coordinator.store.update_content("index.html", "<h1>hi</h1>")

    result = await coordinator.dispatch(ActivateView(ViewKind.PREVIEW))
    assert result == {"view": "preview", "mounted": 1}
    assert sandbox.files == {"index.html": "<h1>hi</h1>"}
    assert not coordinator.bridge.is_pending("c1")
    await _shutdown(coordinator)


@pytest.mark.asyncio
async def test_terminal_view_opens_a_session_and_errors_reach_store():
    coordinator, _, sandbox = _coordinator()
    await coordinator.dispatch(SwitchConversation("c1"))

    result = await coordinator.dispatch(ActivateView(ViewKind.TERMINAL))
    process_id = result["selected_terminal"]
    await coordinator.terminals.wait_ready(process_id)
    again = await coordinator.dispatch(ActivateView("terminal"))
    assert again["selected_terminal"] == process_id
    assert len(coordinator.terminals.list_sessions()) == 1

    sandbox.processes[0].emit("TypeError: undefined is not a function\n")
    for _ in range(5):
        await asyncio.sleep(0)
    assert [e.message for e in coordinator.store.errors] == ["undefined is not a function"]
    await _shutdown(coordinator)


@pytest.mark.asyncio
async def test_delete_conversation_removes_project_and_workspace():
    coordinator, repo, _ = _coordinator()
    record = await coordinator.dispatch(SwitchConversation("c1"))
    coordinator.store.update_content("a.ts", "1")

    assert await coordinator.delete_conversation("c1") is True
    assert record.id not in repo.projects
    assert coordinator.store.active_id is None
    assert coordinator.gateway.pending() == []
    await _shutdown(coordinator)


@pytest.mark.asyncio
async def test_unknown_command_is_rejected():
    coordinator, _, _ = _coordinator()
    with pytest.raises(TypeError, match="Unknown command"):
        await coordinator.dispatch(object())  # type: ignore[arg-type]
    await _shutdown(coordinator)
