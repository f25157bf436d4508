"""Shared test fixtures — FakeBackend for testing without real agent processes."""

from __future__ import annotations

from pathlib import Path

import pytest

from aku.config import AkuSettings
from aku.exceptions import SignalFailureError
from aku.processes.backend import ProcessBackend
from aku.processes.manager import AgentManager
from aku.processes.registry import InMemoryRegistryStore, RegistryStore


class FakeBackend(ProcessBackend):
    """Process backend with scripted pids and liveness. No real processes."""

    def __init__(self, missing: set[str] | None = None):
        self.alive: set[int] = set()
        self.unkillable: set[int] = set()
        self.missing = missing or set()
        self.launched: list[dict] = []  # record all launches for assertions
        self.terminated: list[int] = []
        self._next_pid = 4000

    def launch(self, command, stdin_path, log_path):
        self._next_pid += 1
        pid = self._next_pid
        log_path.parent.mkdir(parents=True, exist_ok=True)
        log_path.touch()
        self.launched.append({
            "pid": pid,
            "command": command,
            "prompt": stdin_path.read_bytes(),
            "log": log_path,
        })
        self.alive.add(pid)
        return pid

    def is_alive(self, pid):
        return pid in self.alive

    def terminate(self, pid):
        if pid in self.unkillable:
            raise SignalFailureError(f"Could not send SIGTERM to PID {pid}: Operation not permitted")
        self.terminated.append(pid)
        self.alive.discard(pid)

    def which(self, executable):
        if executable in self.missing:
            return None
        return f"/usr/local/bin/{executable}"

    def exit(self, pid: int) -> None:
        """Simulate the process exiting on its own."""
        self.alive.discard(pid)


@pytest.fixture
def aku_settings(tmp_path: Path) -> AkuSettings:
    return AkuSettings(
        dir=tmp_path / "aku",
        agent_command=["claude", "-p", "--dangerously-skip-permissions"],
        follow_interval=0,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def store(aku_settings) -> RegistryStore:
    s = RegistryStore(aku_settings.registry_path, aku_settings.lock_path)
    s.initialize()
    return s


@pytest.fixture
def manager(store, backend, aku_settings) -> AgentManager:
    return AgentManager(store, backend, aku_settings, sleep=lambda _s: None)


@pytest.fixture
def memory_store() -> InMemoryRegistryStore:
    return InMemoryRegistryStore()


@pytest.fixture
def memory_manager(memory_store, backend, aku_settings) -> AgentManager:
    return AgentManager(memory_store, backend, aku_settings, sleep=lambda _s: None)


@pytest.fixture
def make_backend():
    """Factory for extra FakeBackend instances, e.g. with missing executables."""
    return FakeBackend
