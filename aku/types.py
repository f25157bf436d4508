"""Core types shared across aku subsystems."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, model_validator

from aku.exceptions import DuplicateAgentError, InvalidNameError

# ── Names ────────────────────────────────────────────────────────────────────

NAME_PATTERN = re.compile(r"[A-Za-z0-9_-]+")


def is_valid_name(name: str) -> bool:
    return NAME_PATTERN.fullmatch(name) is not None


def validate_name(name: str) -> str:
    if not is_valid_name(name):
        raise InvalidNameError(
            f"Invalid agent name '{name}'. Use alphanumeric, dash, or underscore only."
        )
    return name


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


# ── Agent records ────────────────────────────────────────────────────────────


class AgentStatus(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"


class AgentRecord(BaseModel):
    """One tracked agent: a registry entry backed by an OS process.

    Field aliases are the keys used in ``agents.json``.
    """

    name: str = Field(frozen=True)
    process_id: int = Field(alias="pid", frozen=True)
    log_path: str = Field(alias="log")
    prompt_path: str = Field(alias="prompt")
    status: AgentStatus = AgentStatus.RUNNING
    started_at: datetime = Field(alias="started", default_factory=utc_now)
    agent_type: str = Field(alias="type", default="general")

    model_config = {"populate_by_name": True}

    @property
    def is_running(self) -> bool:
        return self.status == AgentStatus.RUNNING


class Registry(BaseModel):
    """Ordered collection of agent records with unique names."""

    agents: list[AgentRecord]

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def check_unique_names(self) -> Registry:
        seen: set[str] = set()
        for agent in self.agents:
            if agent.name in seen:
                raise ValueError(f"duplicate agent name '{agent.name}'")
            seen.add(agent.name)
        return self

    def __contains__(self, name: object) -> bool:
        return any(a.name == name for a in self.agents)

    def __len__(self) -> int:
        return len(self.agents)

    def get(self, name: str) -> AgentRecord | None:
        """Exact-match lookup."""
        return next((a for a in self.agents if a.name == name), None)

    def add(self, record: AgentRecord) -> None:
        if record.name in self:
            raise DuplicateAgentError(f"Agent '{record.name}' already exists")
        self.agents.append(record)

    def remove(self, name: str) -> AgentRecord | None:
        record = self.get(name)
        if record is not None:
            self.agents.remove(record)
        return record

    def running(self) -> list[AgentRecord]:
        return [a for a in self.agents if a.is_running]

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
