"""Custom exception hierarchy for aku."""

from __future__ import annotations


class AkuError(Exception):
    """Base for all aku errors."""


class InvalidNameError(AkuError):
    """Agent name contains characters outside [A-Za-z0-9_-]."""


class DuplicateAgentError(AkuError):
    """An agent with the given name is already registered."""


class AgentNotFoundError(AkuError):
    """No agent with the given name exists."""


class InvalidCountError(AkuError):
    """Batch count is not a positive integer."""


class DependencyMissingError(AkuError):
    """The agent executable is not on PATH."""


class CorruptRegistryError(AkuError):
    """The registry document exists but cannot be parsed."""


class SignalFailureError(AkuError):
    """A termination signal could not be delivered."""


class SpawnError(AkuError):
    """The agent process could not be launched. Nothing was recorded."""


class OrphanedProcessError(AkuError):
    """The agent process was launched but could not be recorded."""

    def __init__(self, name: str, pid: int, reason: str) -> None:
        self.name = name
        self.pid = pid
        super().__init__(
            f"Agent '{name}' is running as PID {pid} but the registry could not "
            f"be saved ({reason}). It is not tracked; stop it manually if needed."
        )
