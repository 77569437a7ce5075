"""Lifecycle state machine contracts for the sandbox instance and terminal sessions.

Fail-loud policy:
- Invalid state strings raise immediately.
- Illegal transitions raise immediately.
"""

from __future__ import annotations

from enum import StrEnum


class SandboxState(StrEnum):
    NONE = "none"
    BOOTING = "booting"
    READY = "ready"
    FAILED = "failed"


class TerminalSessionState(StrEnum):
    CREATED = "created"
    INITIALIZING = "initializing"
    READY = "ready"
    BUSY = "busy"
    CLOSED = "closed"


def parse_terminal_session_state(value: str | None) -> TerminalSessionState:
    if value is None:
        raise RuntimeError("Terminal session state is required")
    try:
        return TerminalSessionState(value)
    except ValueError as e:
        raise RuntimeError(f"Invalid terminal session state: {value}") from e


def assert_sandbox_transition(
    current: SandboxState,
    target: SandboxState,
    *,
    reason: str,
) -> None:
    if current == target:
        return

    allowed: set[tuple[SandboxState, SandboxState]] = {
        (SandboxState.NONE, SandboxState.BOOTING),
        (SandboxState.BOOTING, SandboxState.READY),
        (SandboxState.BOOTING, SandboxState.FAILED),
        (SandboxState.READY, SandboxState.NONE),
        # @@@failed-is-sticky - leaving FAILED needs an explicit reset(), never a boot
        (SandboxState.FAILED, SandboxState.NONE),
    }
    if (current, target) not in allowed:
        raise RuntimeError(f"Illegal sandbox transition: {current} -> {target} ({reason})")


def assert_terminal_transition(
    current: TerminalSessionState | None,
    target: TerminalSessionState,
    *,
    reason: str,
) -> None:
    if current is None:
        if target != TerminalSessionState.CREATED:
            raise RuntimeError(f"Illegal terminal transition: <new> -> {target} ({reason})")
        return
    if current == target:
        return

    allowed: set[tuple[TerminalSessionState, TerminalSessionState]] = {
        (TerminalSessionState.CREATED, TerminalSessionState.INITIALIZING),
        (TerminalSessionState.CREATED, TerminalSessionState.CLOSED),
        (TerminalSessionState.INITIALIZING, TerminalSessionState.READY),
        (TerminalSessionState.INITIALIZING, TerminalSessionState.CLOSED),
        (TerminalSessionState.READY, TerminalSessionState.BUSY),
        (TerminalSessionState.READY, TerminalSessionState.CLOSED),
        (TerminalSessionState.BUSY, TerminalSessionState.READY),
        (TerminalSessionState.BUSY, TerminalSessionState.CLOSED),
    }
    if (current, target) not in allowed:
        raise RuntimeError(f"Illegal terminal transition: {current} -> {target} ({reason})")
