import asyncio

import pytest

from artifacts import Mutation
from sandbox.instance import SandboxInstance, SandboxLimitError
from sandbox.sync import WorkspaceSyncBridge
from tests.fakes.sandbox import RecordingSandbox
from workspace import ChatWorkspaceStore, SyncOrigin

DEBOUNCE = 0.02


def _bridge(store, sandbox=None, **kwargs):
    created: list[RecordingSandbox] = []

    def factory():
        box = sandbox or RecordingSandbox()
        created.append(box)
        return box

    bridge = WorkspaceSyncBridge(store, SandboxInstance(factory), debounce_sec=DEBOUNCE, **kwargs)
    return bridge, created


@pytest.mark.asyncio
async def test_burst_of_schedules_mounts_once_with_latest_files():
    store = ChatWorkspaceStore()
    store.switch_conversation("c1")
    bridge, created = _bridge(store)

    for i in range(5):
        store.update_content("src/a.ts", str(i))
        bridge.schedule_mount("c1")
    await asyncio.sleep(DEBOUNCE * 4)

    sandbox = created[0]
    assert sandbox.writes() == ["src/a.ts"]
    assert sandbox.files == {"src/a.ts": "4"}
    assert ("mkdir", "src") in sandbox.ops


@pytest.mark.asyncio
async def test_mount_resets_sync_flags_of_active_workspace():
    store = ChatWorkspaceStore()
    state = store.switch_conversation("c1")
    store.apply_mutation_batch([Mutation("a.ts", "1")], SyncOrigin.INITIAL)
    bridge, _ = _bridge(store)

    assert await bridge.mount(state) == 1
    assert state.needs_initial_sync == {}
    assert state.needs_incremental_sync == {}


@pytest.mark.asyncio
async def test_timer_for_inactive_conversation_is_skipped():
    store = ChatWorkspaceStore()
    store.switch_conversation("c1")
    store.update_content("a.ts", "1")
    bridge, created = _bridge(store)

    bridge.schedule_mount("c1")
    store.switch_conversation("c2")
    await asyncio.sleep(DEBOUNCE * 3)
    assert created == []


@pytest.mark.asyncio
async def test_full_replace_removes_stale_files():
    store = ChatWorkspaceStore()
    state = store.switch_conversation("c1")
    store.replace_files({"a.ts": "1", "b.ts": "2"})
    sandbox = RecordingSandbox()
    bridge, _ = _bridge(store, sandbox)
    await bridge.mount(state)

    store.delete("b.ts")
    await bridge.mount(state, full_replace=True)
    assert ("remove", "b.ts") in sandbox.ops
    assert sandbox.files == {"a.ts": "1"}


@pytest.mark.asyncio
async def test_leading_slash_paths_are_written_relative():
    store = ChatWorkspaceStore()
    state = store.switch_conversation("c1")
    store.update_content("/src/./main.ts", "x")
    sandbox = RecordingSandbox()
    bridge, _ = _bridge(store, sandbox)
    await bridge.mount(state)
    assert sandbox.files == {"src/main.ts": "x"}


@pytest.mark.asyncio
async def test_boot_failure_blocks_later_mounts_until_cleared():
    store = ChatWorkspaceStore()
    store.switch_conversation("c1")
    store.update_content("a.ts", "1")
    fatal: list[Exception] = []
    boxes = iter([RecordingSandbox(boot_error=SandboxLimitError("Unable to create more instances")), RecordingSandbox()])
    bridge = WorkspaceSyncBridge(
        store,
        SandboxInstance(lambda: next(boxes)),
        debounce_sec=DEBOUNCE,
        on_fatal=fatal.append,
    )

    bridge.schedule_mount("c1")
    await asyncio.sleep(DEBOUNCE * 3)
    assert len(fatal) == 1
    assert bridge.fatal_error is fatal[0]

    bridge.schedule_mount("c1")
    await asyncio.sleep(DEBOUNCE * 3)
    assert len(fatal) == 2
    assert fatal[1] is fatal[0]

    bridge.clear_fatal()
    assert await bridge.mount(store.active_state()) == 1


@pytest.mark.asyncio
async def test_cancel_drops_pending_mount():
    store = ChatWorkspaceStore()
    store.switch_conversation("c1")
    bridge, created = _bridge(store)
    bridge.schedule_mount("c1", full_replace=True)
    assert bridge.is_pending("c1")
    assert bridge.cancel("c1") is True
    await asyncio.sleep(DEBOUNCE * 3)
    assert created == []


@pytest.mark.asyncio
async def test_switch_during_mount_leaves_only_new_conversation_files():
    store = ChatWorkspaceStore()
    first = store.switch_conversation("a")
    store.replace_files({f"a{i}.ts": str(i) for i in range(10)})
    sandbox = RecordingSandbox(write_delay=0.01)
    bridge, _ = _bridge(store, sandbox)

    pending = asyncio.create_task(bridge.mount(first))
    await asyncio.sleep(0.025)
    second = store.switch_conversation("b")
    store.replace_files({"b.ts": "b"})
    await bridge.mount(second, full_replace=True)

    assert await pending < 10
    assert sandbox.files == {"b.ts": "b"}


@pytest.mark.asyncio
async def test_edits_during_mount_stay_flagged():
    store = ChatWorkspaceStore()
    state = store.switch_conversation("c1")
    store.apply_mutation_batch([Mutation("a.ts", "1"), Mutation("b.ts", "1")], SyncOrigin.INITIAL)
    sandbox = RecordingSandbox(write_delay=0.01)
    bridge, _ = _bridge(store, sandbox)

    pending = asyncio.create_task(bridge.mount(state))
    await asyncio.sleep(0.005)
    store.update_content("late.ts", "x")
    store.update_content("b.ts", "2")
    assert await pending == 2

    assert sandbox.files == {"a.ts": "1", "b.ts": "1"}
    assert state.needs_initial_sync == {"b.ts": True}
    assert state.needs_incremental_sync == {"late.ts": True}

    assert await bridge.mount(state) == 3
    assert sandbox.files == {"a.ts": "1", "b.ts": "2", "late.ts": "x"}
    assert state.needs_initial_sync == {}
    assert state.needs_incremental_sync == {}
