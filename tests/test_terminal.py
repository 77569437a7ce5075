import asyncio

import pytest

from sandbox.instance import SandboxInstance
from sandbox.lifecycle import TerminalSessionState
from sandbox.terminal import PROCESS_ID_LENGTH, TerminalSessionManager, generate_process_id
from tests.fakes.sandbox import RecordingSandbox
from workspace.state import ErrorRecord


async def _settle() -> None:
    for _ in range(5):
        await asyncio.sleep(0)


def _manager(sandbox: RecordingSandbox | None = None, **kwargs):
    box = sandbox or RecordingSandbox()
    return TerminalSessionManager(SandboxInstance(lambda: box), **kwargs), box


class _ExplodingDetector:
    def detect(self, text: str) -> list[ErrorRecord]:
        raise ValueError("detector bug")


class _EchoDetector:
    def detect(self, text: str) -> list[ErrorRecord]:
        return [ErrorRecord(message=line, code=line) for line in text.splitlines() if "boom" in line]


def test_process_ids_are_short_base36():
    process_id = generate_process_id()
    assert len(process_id) == PROCESS_ID_LENGTH
    assert process_id.isalnum() and process_id == process_id.lower()


@pytest.mark.asyncio
async def test_create_returns_id_then_becomes_ready():
    manager, box = _manager(shell=("/bin/bash", "-l"), env={"TERM": "xterm"})
    process_id = manager.create()
    assert manager.get(process_id).state in {TerminalSessionState.CREATED, TerminalSessionState.INITIALIZING}
    assert manager.selected_id == process_id

    session = await manager.wait_ready(process_id)
    assert session.state == TerminalSessionState.READY
    assert box.spawned == [(("/bin/bash", "-l"), {"TERM": "xterm"})]


@pytest.mark.asyncio
async def test_output_fans_out_to_handlers():
    manager, box = _manager()
    process_id = manager.create()
    await manager.wait_ready(process_id)
    seen: list[str] = []
    unsubscribe = manager.on_output(process_id, seen.append)

    box.processes[0].emit("hello\n")
    await _settle()
    unsubscribe()
    box.processes[0].emit("ignored\n")
    await _settle()
    assert seen == ["hello\n"]


@pytest.mark.asyncio
async def test_write_marks_busy_and_returns_to_ready():
    manager, box = _manager()
    process_id = manager.create()
    states: list[TerminalSessionState] = []

    original_write = None

    async def spying_write(data: str) -> None:
        states.append(manager.get(process_id).state)
        await original_write(data)

    session = await manager.wait_ready(process_id)
    original_write = session.process.write
    session.process.write = spying_write  # type: ignore[method-assign]

    await manager.write(process_id, "ls\n")
    assert states == [TerminalSessionState.BUSY]
    assert session.state == TerminalSessionState.READY
    assert box.processes[0].written == ["ls\n"]


@pytest.mark.asyncio
async def test_detected_errors_reach_sink_once_lines_complete():
    sunk: list[ErrorRecord] = []
    manager, box = _manager(detector=_EchoDetector(), error_sink=sunk.append)
    process_id = manager.create()
    await manager.wait_ready(process_id)

    box.processes[0].emit("all good\nboo")
    await _settle()
    assert sunk == []
    box.processes[0].emit("m happened\n")
    await _settle()
    assert [r.code for r in sunk] == ["boom happened"]


@pytest.mark.asyncio
async def test_detector_failure_is_swallowed():
    manager, box = _manager(detector=_ExplodingDetector(), error_sink=lambda r: None)
    process_id = manager.create()
    await manager.wait_ready(process_id)
    seen: list[str] = []
    manager.on_output(process_id, seen.append)

    box.processes[0].emit("line\n")
    box.processes[0].emit("next\n")
    await _settle()
    assert seen == ["line\n", "next\n"]
    assert manager.get(process_id).state == TerminalSessionState.READY


@pytest.mark.asyncio
async def test_process_exit_closes_session_and_reselects():
    manager, box = _manager()
    first = manager.create()
    second = manager.create()
    await manager.wait_ready(first)
    await manager.wait_ready(second)
    assert manager.selected_id == second

    box.processes[1].exit(0)
    await _settle()
    assert manager.get(second) is None
    assert manager.selected_id == first


@pytest.mark.asyncio
async def test_close_terminates_process_and_rejects_writes():
    manager, box = _manager()
    process_id = manager.create()
    await manager.wait_ready(process_id)
    await manager.close(process_id)

    assert box.processes[0].terminated
    assert manager.list_sessions() == []
    assert manager.selected_id is None
    with pytest.raises(KeyError):
        await manager.write(process_id, "ls\n")


@pytest.mark.asyncio
async def test_close_while_starting_terminates_spawned_process():
    manager, box = _manager(RecordingSandbox(ready_delay=0.05))
    process_id = manager.create()
    await asyncio.sleep(0.01)
    assert len(box.processes) == 1

    await manager.close(process_id)
    await _settle()
    assert [p.terminated for p in box.processes] == [True]
    assert manager.get(process_id) is None


@pytest.mark.asyncio
async def test_start_failure_surfaces_on_wait_ready():
    manager, _ = _manager(RecordingSandbox(boot_error=OSError("docker daemon down")))
    process_id = manager.create()
    session = manager.get(process_id)
    with pytest.raises(Exception, match="docker daemon down"):
        await manager.wait_ready(process_id)
    assert session.state == TerminalSessionState.CLOSED
    assert manager.get(process_id) is None


@pytest.mark.asyncio
async def test_reset_replaces_all_sessions():
    manager, _ = _manager()
    old = [manager.create(), manager.create()]
    for process_id in old:
        await manager.wait_ready(process_id)

    fresh = await manager.reset()
    await manager.wait_ready(fresh)
    assert [s.process_id for s in manager.list_sessions()] == [fresh]
    assert fresh not in old
