"""AgentManager — lifecycle of agent processes and their registry records.

Every operation is one locked load → mutate → save of the registry. The
``running`` status stored in a record is only a hint: it is checked
against the process backend on every read and corrected when the process
has gone away.

Known partial-failure window: if the registry cannot be saved after a
process was launched, that process keeps running untracked. It is not
killed to compensate; ``OrphanedProcessError`` reports its pid instead.
"""

from __future__ import annotations

import codecs
import logging
import os
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Iterator

from aku.config import AkuSettings, settings as default_settings
from aku.exceptions import (
    AgentNotFoundError,
    DependencyMissingError,
    DuplicateAgentError,
    OrphanedProcessError,
    SignalFailureError,
    SpawnError,
)
from aku.processes.backend import ProcessBackend
from aku.processes.prompt import DEFAULT_TASK, render_prompt, write_prompt
from aku.processes.registry import BaseRegistryStore
from aku.types import AgentRecord, AgentStatus, Registry, validate_name

_logger = logging.getLogger(__name__)


class StopOutcome(str, Enum):
    STOPPED = "stopped"                  # termination signal delivered
    ALREADY_STOPPED = "already_stopped"  # process was already gone
    FAILED = "failed"                    # signal could not be delivered


@dataclass
class StopResult:
    name: str
    pid: int
    outcome: StopOutcome
    error: str = ""


@dataclass
class Attachment:
    """A view onto an agent's log.

    ``chunks`` yields the existing log content and, while the agent is
    live, keeps yielding new output until the caller stops iterating.
    """

    record: AgentRecord
    live: bool
    chunks: Iterator[str]


class AgentManager:
    """Spawns, stops and tracks agent processes."""

    def __init__(
        self,
        store: BaseRegistryStore,
        backend: ProcessBackend,
        settings: AkuSettings | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._store = store
        self._backend = backend
        self._settings = settings or default_settings
        self._sleep = sleep

    # ── Spawn ────────────────────────────────────────────────────────────

    def agent_command(self) -> list[str]:
        """The configured agent command with its executable resolved on PATH."""
        command = list(self._settings.agent_command)
        if not command:
            raise DependencyMissingError("No agent command configured (AKU_AGENT_COMMAND).")
        resolved = self._backend.which(command[0])
        if resolved is None:
            raise DependencyMissingError(
                f"'{command[0]}' is required but was not found on PATH."
            )
        command[0] = resolved
        return command

    def spawn(
        self,
        name: str,
        task: str | None = None,
        agent_type: str | None = None,
    ) -> AgentRecord:
        """Launch a detached agent process and register it as running."""
        validate_name(name)
        command = self.agent_command()
        agent_type = agent_type or self._settings.default_type
        task = DEFAULT_TASK if task is None else task
        prompt_path = self._settings.prompt_path(name)
        log_path = self._settings.log_path(name)

        with self._store.locked():
            registry = self._store.load()
            if name in registry:
                raise DuplicateAgentError(f"Agent '{name}' already exists")

            log_existed = log_path.exists()
            try:
                write_prompt(prompt_path, render_prompt(name, task, agent_type))
                pid = self._backend.launch(command, prompt_path, log_path)
            except (OSError, UnicodeError) as e:
                prompt_path.unlink(missing_ok=True)
                if not log_existed:
                    log_path.unlink(missing_ok=True)
                raise SpawnError(f"Could not launch agent '{name}': {e}") from e

            record = AgentRecord(
                name=name,
                process_id=pid,
                log_path=str(log_path),
                prompt_path=str(prompt_path),
                agent_type=agent_type,
            )
            registry.add(record)
            try:
                self._store.save(registry)
            except OSError as e:
                _logger.error(
                    "Agent '%s' is running as PID %d but was not recorded: %s",
                    name, pid, e,
                )
                raise OrphanedProcessError(name, pid, str(e)) from e

        _logger.info("Spawned agent '%s' (PID %d, type %s)", name, pid, agent_type)
        return record

    # ── Stop ─────────────────────────────────────────────────────────────

    def stop(self, name: str) -> StopResult:
        """Stop one agent. Stopping an agent that already exited is not an error."""
        with self._store.transaction() as registry:
            record = _require(registry, name)
            return self._stop_record(record)

    def stop_all(self) -> list[StopResult]:
        """Stop every agent recorded as running, each independently."""
        with self._store.transaction() as registry:
            return [self._stop_record(record) for record in registry.running()]

    def _stop_record(self, record: AgentRecord) -> StopResult:
        pid = record.process_id
        if not self._backend.is_alive(pid):
            record.status = AgentStatus.STOPPED
            return StopResult(record.name, pid, StopOutcome.ALREADY_STOPPED)
        try:
            self._backend.terminate(pid)
        except SignalFailureError as e:
            _logger.warning("Could not stop agent '%s': %s", record.name, e)
            return StopResult(record.name, pid, StopOutcome.FAILED, str(e))
        record.status = AgentStatus.STOPPED
        _logger.info("Stopped agent '%s' (PID %d)", record.name, pid)
        return StopResult(record.name, pid, StopOutcome.STOPPED)

    # ── Inspect ──────────────────────────────────────────────────────────

    def list_agents(self) -> list[AgentRecord]:
        """All agents, with stale ``running`` hints corrected and persisted."""
        with self._store.locked():
            registry = self._store.load()
            if self._mark_exited(registry):
                self._store.save(registry)
        return list(registry.agents)

    def get(self, name: str) -> AgentRecord:
        """Exact-match lookup."""
        return _require(self._store.load(), name)

    def is_alive(self, record: AgentRecord) -> bool:
        return self._backend.is_alive(record.process_id)

    def _mark_exited(self, registry: Registry) -> list[str]:
        exited = []
        for record in registry.running():
            if not self._backend.is_alive(record.process_id):
                record.status = AgentStatus.STOPPED
                exited.append(record.name)
                _logger.info(
                    "Agent '%s' (PID %d) is no longer running; marked stopped",
                    record.name, record.process_id,
                )
        return exited

    # ── Clean ────────────────────────────────────────────────────────────

    def clean(self) -> int:
        """Drop stopped agents and their prompt files. Log files are kept."""
        with self._store.locked():
            registry = self._store.load()
            self._mark_exited(registry)
            removed = [r for r in registry.agents if not r.is_running]
            if not removed:
                return 0
            for record in removed:
                registry.remove(record.name)
            self._store.save(registry)

        for record in removed:
            # Derived from the name, not the stored field
            self._settings.prompt_path(record.name).unlink(missing_ok=True)
            _logger.info("Removed agent '%s'", record.name)
        return len(removed)

    # ── Logs ─────────────────────────────────────────────────────────────

    def logs(self, name: str) -> str:
        """Full log content of an agent ("" if nothing was written yet)."""
        record = self.get(name)
        text, _ = _read_from(Path(record.log_path), 0, _decoder(), final=True)
        return text

    def attach(self, name: str) -> Attachment:
        """Follow an agent's log; a dead agent gets a one-shot dump instead."""
        record = self.get(name)
        log_path = Path(record.log_path)
        if not self._backend.is_alive(record.process_id):
            text, _ = _read_from(log_path, 0, _decoder(), final=True)
            return Attachment(record, False, iter([text]))
        return Attachment(record, True, self._follow(log_path))

    def _follow(self, log_path: Path) -> Iterator[str]:
        decoder = _decoder()
        position = 0
        while True:
            chunk, position = _read_from(log_path, position, decoder)
            if chunk:
                yield chunk
            else:
                self._sleep(self._settings.follow_interval)


def _require(registry: Registry, name: str) -> AgentRecord:
    record = registry.get(name)
    if record is None:
        raise AgentNotFoundError(f"Agent not found: {name}")
    return record


def _decoder() -> codecs.IncrementalDecoder:
    return codecs.getincrementaldecoder("utf-8")(errors="replace")


def _read_from(
    path: Path,
    position: int,
    decoder: codecs.IncrementalDecoder,
    final: bool = False,
) -> tuple[str, int]:
    """Read everything after ``position``. Restarts if the file was truncated."""
    try:
        with open(path, "rb") as f:
            if os.fstat(f.fileno()).st_size < position:
                position = 0
                decoder.reset()
            f.seek(position)
            data = f.read()
    except FileNotFoundError:
        return "", position
    return decoder.decode(data, final), position + len(data)
